"""Error taxonomy for credential resolution and the OAuth flow."""

from __future__ import annotations

from typing import Iterable, Sequence


class AuthError(RuntimeError):
    """Base class for every authentication failure surfaced to the operator."""


class CredentialSourceError(AuthError):
    """A credential source was attempted and rejected."""

    def __init__(self, source: str, message: str):
        super().__init__(f"{source}: {message}")
        self.source = source


class CredentialDecodeError(CredentialSourceError):
    """The inline credentials value is not valid base64 text."""


class CredentialParseError(CredentialSourceError):
    """The credentials payload is not a JSON object."""


class CredentialFileError(CredentialSourceError):
    """The key file could not be read."""

    def __init__(self, source: str, path: str):
        super().__init__(
            source,
            f'cannot read file at "{path}". Check that the file exists and is readable.',
        )
        self.path = path


class CredentialShapeError(CredentialSourceError):
    """The parsed document does not look like a service account key."""


class WrongCredentialTypeError(CredentialShapeError):
    def __init__(self, source: str, actual: object):
        shown = actual if actual is not None else "no type field"
        super().__init__(
            source,
            'expected service account credentials (type: "service_account"), '
            f'got "{shown}". '
            "Use a service account key JSON, not an OAuth2 client credentials file.",
        )
        self.actual = actual


class MissingFieldsError(CredentialShapeError):
    def __init__(self, source: str, fields: Iterable[str]):
        self.fields = list(fields)
        super().__init__(
            source,
            "service account JSON is missing required field(s): " + ", ".join(self.fields),
        )


class OAuthClientConfigError(AuthError):
    """The OAuth client keys file is missing or malformed."""


def describe_ports(ports: Sequence[int]) -> str:
    """Render a port collection the way operators configure it (e.g. ``3000-3004``)."""
    values = sorted(ports)
    if not values:
        return "none"
    if len(values) > 1 and values == list(range(values[0], values[-1] + 1)):
        return f"{values[0]}-{values[-1]}"
    return ", ".join(str(p) for p in values)


class PortExhaustionError(AuthError):
    """No port in the callback range could be bound."""

    def __init__(self, ports: Sequence[int]):
        self.ports = tuple(ports)
        super().__init__(
            "Could not start the authentication callback server: "
            f"no free port in range {describe_ports(self.ports)}. "
            "Free one of these ports and try again.",
        )


class OAuthExchangeError(AuthError):
    """The redirect carried an error or the authorization code exchange failed."""

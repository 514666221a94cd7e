"""Service account credential validation and source resolution.

Two sources, tried in strict order:

1. ``GOOGLE_DRIVE_CREDENTIALS_CONFIG``: base64-encoded key JSON (ephemeral compute).
2. ``GOOGLE_DRIVE_SERVICE_ACCOUNT_PATH``: path to a mounted key file.

When the first is present and non-blank the second is never consulted.
"""

from __future__ import annotations

import base64
import binascii
import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable

from google.oauth2 import service_account

from auth.errors import (
    CredentialDecodeError,
    CredentialFileError,
    CredentialParseError,
    MissingFieldsError,
    WrongCredentialTypeError,
)
from auth.scopes import SCOPES
from utils.logging_config import logger

INLINE_CREDENTIALS_ENV_VAR = "GOOGLE_DRIVE_CREDENTIALS_CONFIG"
KEY_FILE_ENV_VAR = "GOOGLE_DRIVE_SERVICE_ACCOUNT_PATH"

SERVICE_ACCOUNT_TYPE = "service_account"
REQUIRED_FIELDS = ("client_email", "private_key")


@dataclass(frozen=True)
class ValidatedServiceAccount:
    """A service account key that passed validation, tagged with its scopes."""

    info: dict[str, Any] = field(repr=False)
    scopes: tuple[str, ...]
    source: str

    @property
    def client_email(self) -> str:
        return self.info["client_email"]

    def to_credentials(self) -> service_account.Credentials:
        """Build google-auth service account credentials for the validated key."""
        return service_account.Credentials.from_service_account_info(
            self.info,
            scopes=list(self.scopes),
        )


def validate_service_account_info(info: dict[str, Any], source: str) -> None:
    """Check that `info` has the shape of a service account key.

    Args:
        info: Parsed credential document.
        source: Name of the input it came from, used in diagnostics.

    Raises:
        WrongCredentialTypeError: If ``type`` is not exactly ``"service_account"``.
        MissingFieldsError: If ``client_email`` or ``private_key`` is absent or empty.
    """
    if info.get("type") != SERVICE_ACCOUNT_TYPE:
        raise WrongCredentialTypeError(source, info.get("type"))

    missing = [name for name in REQUIRED_FIELDS if not info.get(name)]
    if missing:
        raise MissingFieldsError(source, missing)


def _read_text(path: str) -> str:
    return Path(path).read_text(encoding="utf-8")


def _parse_document(raw: str, source: str, what: str) -> dict[str, Any]:
    try:
        parsed = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise CredentialParseError(source, f"{what} is not valid JSON.") from exc
    if not isinstance(parsed, dict):
        raise CredentialParseError(source, f"{what} is not a JSON object.")
    return parsed


def _decode_inline(inline_b64: str) -> str:
    try:
        return base64.b64decode("".join(inline_b64.split()), validate=True).decode("utf-8")
    except (binascii.Error, UnicodeDecodeError) as exc:
        raise CredentialDecodeError(INLINE_CREDENTIALS_ENV_VAR, "base64 decode failed.") from exc


def resolve_service_account(
    inline_b64: str | None,
    file_path: str | None,
    *,
    read_file: Callable[[str], str] = _read_text,
) -> ValidatedServiceAccount:
    """Pick the winning credential source, load it and validate it.

    Args:
        inline_b64: Value of ``GOOGLE_DRIVE_CREDENTIALS_CONFIG`` (may be None/blank).
        file_path: Value of ``GOOGLE_DRIVE_SERVICE_ACCOUNT_PATH``.
        read_file: Reads a file path into text. Only called for the file source.

    Returns:
        The validated key, tagged with the fixed scope list.

    Raises:
        CredentialSourceError: Any decode, read, parse or shape failure. The
            message names the source that was attempted.
    """
    if inline_b64 and inline_b64.strip():
        decoded = _decode_inline(inline_b64)
        info = _parse_document(decoded, INLINE_CREDENTIALS_ENV_VAR, "decoded value")
        validate_service_account_info(info, INLINE_CREDENTIALS_ENV_VAR)
        logger.info(f"Auth method: service account (base64) - {info['client_email']}")
        return ValidatedServiceAccount(info=info, scopes=SCOPES, source=INLINE_CREDENTIALS_ENV_VAR)

    path = file_path or ""
    try:
        content = read_file(path)
    except (OSError, UnicodeDecodeError) as exc:
        raise CredentialFileError(KEY_FILE_ENV_VAR, path) from exc

    info = _parse_document(content, KEY_FILE_ENV_VAR, f'file at "{path}"')
    validate_service_account_info(info, KEY_FILE_ENV_VAR)
    logger.info(f"Auth method: service account (key file) - {info['client_email']}")
    return ValidatedServiceAccount(info=info, scopes=SCOPES, source=KEY_FILE_ENV_VAR)

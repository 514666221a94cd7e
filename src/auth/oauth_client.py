"""OAuth2 client holder and the credential store shared by the auth components."""

from __future__ import annotations

import json
import threading
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Iterable

from google.oauth2.credentials import Credentials
from google_auth_oauthlib.flow import Flow

from auth.errors import OAuthClientConfigError
from auth.scopes import SCOPES
from utils.logging_config import logger
from utils.settings import AuthSettings, load_settings

_CLIENT_SECTIONS = ("installed", "web")


class CredentialStore:
    """Holds the current OAuth token record.

    Writers always replace the whole `Credentials` object; the token manager and
    the callback server share one instance. Swaps may come from worker threads.
    """

    def __init__(self, credentials: Credentials | None = None):
        self._credentials = credentials
        self._lock = threading.Lock()

    @property
    def credentials(self) -> Credentials | None:
        with self._lock:
            return self._credentials

    def swap(self, credentials: Credentials | None) -> Credentials | None:
        """Install a complete token record, returning the previous one."""
        with self._lock:
            previous, self._credentials = self._credentials, credentials
        return previous

    def clear(self) -> None:
        self.swap(None)


@dataclass
class OAuthClient:
    """OAuth client configuration plus the shared token store."""

    client_config: dict[str, Any]
    scopes: tuple[str, ...] = SCOPES
    store: CredentialStore = field(default_factory=CredentialStore)

    @property
    def credentials(self) -> Credentials | None:
        return self.store.credentials

    @property
    def client_id(self) -> str:
        return _client_section(self.client_config)["client_id"]

    def create_flow(self, redirect_uri: str) -> Flow:
        """Return a new authorization-code flow bound to `redirect_uri`."""
        return Flow.from_client_config(
            self.client_config,
            scopes=list(self.scopes),
            redirect_uri=redirect_uri,
        )


def _client_section(config: dict[str, Any]) -> dict[str, Any]:
    for name in _CLIENT_SECTIONS:
        section = config.get(name)
        if isinstance(section, dict):
            return section
    raise KeyError("installed/web")


def load_client_config(path: str) -> dict[str, Any]:
    """Read and check an OAuth client keys file downloaded from the Cloud Console.

    Raises:
        OAuthClientConfigError: If the file is missing, not JSON, or lacks a
            usable ``installed``/``web`` section.
    """
    keys_path = Path(path).expanduser()
    try:
        raw = keys_path.read_text(encoding="utf-8")
    except OSError as exc:
        raise OAuthClientConfigError(
            f'OAuth client credentials not found at "{keys_path}". '
            "Download an OAuth client (Desktop app) JSON from the Google Cloud Console "
            "or set GOOGLE_DRIVE_OAUTH_CREDENTIALS.",
        ) from exc

    try:
        config = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise OAuthClientConfigError(
            f'OAuth client credentials at "{keys_path}" are not valid JSON.',
        ) from exc

    if not isinstance(config, dict):
        raise OAuthClientConfigError(
            f'OAuth client credentials at "{keys_path}" must be a JSON object.',
        )
    if config.get("type") == "service_account":
        raise OAuthClientConfigError(
            f'"{keys_path}" is a service account key. Set GOOGLE_DRIVE_SERVICE_ACCOUNT_PATH '
            "to use it, or provide an OAuth client credentials file.",
        )

    try:
        section = _client_section(config)
    except KeyError as exc:
        raise OAuthClientConfigError(
            f'OAuth client credentials at "{keys_path}" must contain an "installed" or "web" section.',
        ) from exc

    missing = [name for name in ("client_id", "client_secret") if not section.get(name)]
    if missing:
        raise OAuthClientConfigError(
            f'OAuth client credentials at "{keys_path}" are missing: {", ".join(missing)}',
        )

    section.setdefault("auth_uri", "https://accounts.google.com/o/oauth2/auth")
    section.setdefault("token_uri", "https://oauth2.googleapis.com/token")
    return config


def initialize_oauth_client(
    settings: AuthSettings | None = None,
    scopes: Iterable[str] = SCOPES,
) -> OAuthClient:
    """Create the OAuth client from the configured keys file."""
    settings = settings or load_settings()
    config = load_client_config(settings.oauth_credentials_path)
    logger.debug(f"Loaded OAuth client configuration from {settings.oauth_credentials_path}")
    return OAuthClient(client_config=config, scopes=tuple(scopes))

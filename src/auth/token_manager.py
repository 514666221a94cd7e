"""Persistence and validity checks for the user's OAuth tokens."""

from __future__ import annotations

import asyncio
import json
import os
import tempfile
from pathlib import Path

from google.auth.exceptions import RefreshError, TransportError
from google.auth.transport.requests import Request
from google.oauth2.credentials import Credentials

from auth.oauth_client import OAuthClient
from utils.google_api import execute_with_retry
from utils.logging_config import logger


class TokenManager:
    """Loads, refreshes and stores tokens for one OAuth client.

    Every write goes through `save_tokens`, which persists the complete record
    before swapping it into the client's shared store.
    """

    def __init__(self, client: OAuthClient, token_path: str | Path):
        self.client = client
        self.token_path = Path(token_path).expanduser()

    def load_tokens(self) -> Credentials | None:
        """Return stored credentials, or None when absent or unusable."""
        if not self.token_path.exists():
            return None
        try:
            info = json.loads(self.token_path.read_text(encoding="utf-8"))
            return Credentials.from_authorized_user_info(info, list(self.client.scopes))
        except (OSError, ValueError) as exc:
            # json.JSONDecodeError is a ValueError; so are missing-field errors.
            logger.warning(f"Ignoring unreadable token file {self.token_path}: {exc}")
            return None

    def save_tokens(self, credentials: Credentials) -> None:
        """Persist `credentials` (mode 0600) and install them in the shared store."""
        self.token_path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(
            dir=self.token_path.parent,
            prefix=".tokens-",
            suffix=".json",
        )
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                handle.write(credentials.to_json())
            os.chmod(tmp_name, 0o600)
            os.replace(tmp_name, self.token_path)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise
        self.client.store.swap(credentials)
        logger.info(f"Tokens saved to {self.token_path}")

    def clear_tokens(self) -> None:
        self.token_path.unlink(missing_ok=True)
        self.client.store.clear()

    def _refresh(self, credentials: Credentials) -> None:
        execute_with_retry(lambda: credentials.refresh(Request()), operation="token refresh")

    async def validate_tokens(self) -> bool:
        """Return True when usable tokens are installed in the shared store.

        Expired tokens with a refresh token are refreshed and saved. A rejected
        refresh (revoked grant, changed scopes) means the user must sign in again.
        """
        credentials = self.load_tokens()
        if credentials is None:
            return False

        if credentials.valid:
            self.client.store.swap(credentials)
            return True

        if not credentials.refresh_token:
            logger.info("Stored access token expired and no refresh token is available.")
            return False

        try:
            await asyncio.to_thread(self._refresh, credentials)
        except (RefreshError, TransportError) as exc:
            logger.warning(f"Token refresh failed: {exc}")
            return False

        await asyncio.to_thread(self.save_tokens, credentials)
        logger.info("Access token refreshed.")
        return True

"""Top-level authentication entry points.

`get_credentials` picks the strategy: a configured service account wins,
otherwise the interactive OAuth2 flow runs through `authenticate`.
"""

from __future__ import annotations

import asyncio
import sys
from typing import Any

from auth.credentials import resolve_service_account
from auth.errors import AuthError, OAuthExchangeError, describe_ports
from auth.oauth_client import OAuthClient, initialize_oauth_client
from auth.server import AuthServer
from auth.token_manager import TokenManager
from utils.logging_config import logger
from utils.settings import AuthSettings, load_settings


def _say(message: str) -> None:
    print(message, file=sys.stderr)


async def _wait_for_flow(server: AuthServer, timeout: float | None) -> None:
    try:
        completed = await server.wait_for_completion(timeout)
    except asyncio.TimeoutError as exc:
        raise OAuthExchangeError(
            f"Authentication was not completed within {timeout:g} seconds.",
        ) from exc
    if not completed:
        raise server.error or OAuthExchangeError("Authentication did not complete.")


async def authenticate(settings: AuthSettings | None = None, **server_options: Any) -> OAuthClient:
    """Return an OAuth client holding usable tokens, running the browser flow if needed.

    There is no timeout unless ``auth_timeout`` is configured: the operator
    either completes the flow in the browser or stops the process.

    Raises:
        OAuthClientConfigError: If the OAuth client keys file is unusable.
        PortExhaustionError: If no callback port could be bound.
        OAuthExchangeError: If the user denied access or the code exchange failed.
    """
    settings = settings or load_settings()
    logger.info("Initializing authentication...")

    client = initialize_oauth_client(settings)
    token_manager = TokenManager(client, settings.token_path)

    if await token_manager.validate_tokens():
        credentials = client.credentials
        logger.info("Authentication successful - using existing tokens")
        logger.debug(
            f"Credentials: has_access_token={bool(credentials.token)}, "
            f"has_refresh_token={bool(credentials.refresh_token)}, expiry={credentials.expiry}",
        )
        return client

    _say("\nNo valid authentication tokens found.\nStarting authentication flow...\n")

    server = AuthServer(client, token_manager, ports=settings.oauth_ports, **server_options)
    try:
        if not await server.start(open_browser=True):
            raise server.error
        await _wait_for_flow(server, settings.auth_timeout)
    finally:
        # Also runs on cancellation (Ctrl-C), so the port is always released.
        await server.stop()
    return client


async def run_auth_flow(
    settings: AuthSettings | None = None,
    *,
    open_browser: bool = True,
    force: bool = False,
    **server_options: Any,
) -> int:
    """Explicit (re)authentication. Returns the process exit status.

    Outcomes: tokens already valid (0), flow started and completed (0) or failed
    (1), and server could not start with no valid tokens (1).
    """
    _say("Google Drive - Manual Authentication")
    _say("=" * 40 + "\n")

    server: AuthServer | None = None
    try:
        settings = settings or load_settings()
        client = initialize_oauth_client(settings)
        token_manager = TokenManager(client, settings.token_path)
        if force:
            logger.info("Discarding stored tokens before re-authenticating.")
            token_manager.clear_tokens()

        server = AuthServer(client, token_manager, ports=settings.oauth_ports, **server_options)
        started = await server.start(open_browser=open_browser)

        if not started and not server.auth_completed_successfully:
            _say(
                "Authentication failed. Could not start server or validate existing tokens. "
                f"Check port availability ({describe_ports(settings.oauth_ports)}) and try again.",
            )
            return 1
        if server.auth_completed_successfully:
            _say("\nAuthentication successful! Existing tokens are valid.")
            _say("You can now use the Google Drive server.")
            return 0

        _say("Authentication server started. Please complete the authentication in your browser...")
        await _wait_for_flow(server, settings.auth_timeout)
        await server.stop()
        _say("\nAuthentication completed successfully!")
        _say("You can now use the Google Drive server.")
        return 0
    except (AuthError, ValueError) as error:
        _say(f"\nAuthentication failed: {error}")
        return 1
    finally:
        if server is not None:
            await server.stop()


async def get_credentials(settings: AuthSettings | None = None) -> Any:
    """Return google-auth credentials using a service account or OAuth user tokens."""
    settings = settings or load_settings()

    if settings.uses_service_account:
        account = resolve_service_account(
            settings.credentials_config,
            settings.service_account_path,
        )
        return account.to_credentials()

    client = await authenticate(settings)
    return client.credentials

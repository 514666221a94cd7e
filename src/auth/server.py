"""Local callback server for the interactive OAuth2 flow.

The server binds the first free port of a small range, sends the user to the
consent screen, and terminates the redirect locally. Completion is published
through a one-shot future that is resolved only after the tokens have been
persisted and installed in the shared credential store.
"""

from __future__ import annotations

import asyncio
import enum
import html
import sys
import webbrowser
from typing import Callable, Sequence
from urllib.parse import parse_qs, urlsplit

from auth.errors import AuthError, OAuthExchangeError, PortExhaustionError
from auth.oauth_client import OAuthClient
from auth.token_manager import TokenManager
from utils.logging_config import logger
from utils.settings import DEFAULT_OAUTH_PORTS

CALLBACK_PATH = "/oauth2callback"
DEFAULT_HOST = "127.0.0.1"

_SUCCESS_PAGE = (
    "<h1>Authentication successful</h1>"
    "<p>You can close this window and return to the terminal.</p>"
)
_ALREADY_DONE_PAGE = (
    "<h1>Authentication already completed</h1>"
    "<p>You can close this window.</p>"
)
_REASONS = {
    200: "OK",
    400: "Bad Request",
    404: "Not Found",
    405: "Method Not Allowed",
    500: "Internal Server Error",
}

_Outcome = tuple[bool, "AuthError | None"]


class ServerState(enum.Enum):
    IDLE = "idle"
    LISTENING = "listening"
    COMPLETED_SUCCESS = "completed_success"
    COMPLETED_FAILURE = "completed_failure"
    STOPPED = "stopped"


def _page(title: str, body: str) -> str:
    return (
        "<!DOCTYPE html><html><head><meta charset=\"utf-8\">"
        f"<title>{html.escape(title)}</title></head><body>{body}</body></html>"
    )


def _failure_page(reason: str) -> str:
    return _page(
        "Authentication failed",
        "<h1>Authentication failed</h1>"
        f"<p>{html.escape(reason)}</p>"
        "<p>Check the terminal for details and run the authentication again.</p>",
    )


class AuthServer:
    """Short-lived listener that receives the OAuth2 redirect.

    Args:
        client: OAuth client whose store receives the tokens.
        token_manager: Checks existing tokens and persists new ones. Must wrap
            the same `client`.
        ports: Candidate callback ports, tried in order.
        host: Interface to bind.
        browser_opener: Opens a URL in the user's browser.
    """

    def __init__(
        self,
        client: OAuthClient,
        token_manager: TokenManager,
        *,
        ports: Sequence[int] = DEFAULT_OAUTH_PORTS,
        host: str = DEFAULT_HOST,
        browser_opener: Callable[[str], object] = webbrowser.open,
    ):
        self.client = client
        self.token_manager = token_manager
        self.ports = tuple(ports)
        self.host = host
        self._browser_opener = browser_opener

        self._state = ServerState.IDLE
        self._server: asyncio.AbstractServer | None = None
        self._connections: set[asyncio.StreamWriter] = set()
        self._completion: asyncio.Future[bool] | None = None
        self._auth_completed = False
        self._flow = None
        self._expected_state: str | None = None
        self._code_received = False
        self.port: int | None = None
        self.auth_url: str | None = None
        self.error: AuthError | None = None

    @property
    def state(self) -> ServerState:
        return self._state

    @property
    def auth_completed_successfully(self) -> bool:
        return self._auth_completed

    @property
    def redirect_uri(self) -> str | None:
        if self.port is None:
            return None
        return f"http://localhost:{self.port}{CALLBACK_PATH}"

    async def start(self, open_browser: bool = True) -> bool:
        """Start the flow, or short-circuit when stored tokens are already valid.

        Returns:
            True if tokens were already valid or the listener is waiting for the
            redirect; False if no port in the range could be bound.
        """
        if self._state is not ServerState.IDLE:
            raise RuntimeError(f"AuthServer cannot start from state {self._state.value}")
        self._completion = asyncio.get_running_loop().create_future()

        if await self.token_manager.validate_tokens():
            logger.info("Existing tokens are valid; skipping the browser flow.")
            self._finish(True)
            return True

        self._server = await self._bind_first_available()
        if self._server is None:
            self._finish(False, PortExhaustionError(self.ports))
            return False

        self._flow = self.client.create_flow(self.redirect_uri)
        self.auth_url, self._expected_state = self._flow.authorization_url(
            access_type="offline",
            prompt="consent",
        )
        self._state = ServerState.LISTENING
        logger.info(f"Authentication callback listening on {self.redirect_uri}")

        print(f"\nAuthorize this app by visiting this URL:\n\n{self.auth_url}\n", file=sys.stderr)
        if open_browser:
            try:
                self._browser_opener(self.auth_url)
            except webbrowser.Error as exc:
                logger.warning(f"Could not open a browser ({exc}); open the URL above manually.")
        return True

    async def wait_for_completion(self, timeout: float | None = None) -> bool:
        """Wait until the flow finishes; True only if tokens were stored.

        Raises:
            asyncio.TimeoutError: If `timeout` seconds pass first.
        """
        if self._completion is None:
            return self._auth_completed
        return await asyncio.wait_for(asyncio.shield(self._completion), timeout)

    async def stop(self) -> None:
        """Release the port. Safe to call repeatedly or before `start()`."""
        server, self._server = self._server, None
        if server is not None:
            server.close()
            for writer in list(self._connections):
                writer.close()
            await server.wait_closed()
            logger.debug(f"Authentication callback on port {self.port} closed")
        if self._completion is not None and not self._completion.done():
            self._completion.set_result(False)
        self._state = ServerState.STOPPED

    async def _bind_first_available(self) -> asyncio.AbstractServer | None:
        for port in self.ports:
            try:
                server = await asyncio.start_server(self._handle_connection, self.host, port)
            except OSError as exc:
                logger.debug(f"Port {port} unavailable: {exc}")
                continue
            self.port = port
            return server
        return None

    def _finish(self, success: bool, error: AuthError | None = None) -> None:
        if self._completion is not None and self._completion.done():
            return
        if success:
            self._auth_completed = True
            self._state = ServerState.COMPLETED_SUCCESS
        else:
            self.error = error
            self._state = ServerState.COMPLETED_FAILURE
            logger.error(str(error))
        if self._completion is not None:
            self._completion.set_result(success)

    async def _handle_connection(
        self,
        reader: asyncio.StreamReader,
        writer: asyncio.StreamWriter,
    ) -> None:
        self._connections.add(writer)
        try:
            request_line = await reader.readline()
            if not request_line:
                return
            # Drain headers; the callback only needs the request target.
            while True:
                line = await reader.readline()
                if line in (b"\r\n", b"\n", b""):
                    break
            parts = request_line.decode("latin-1").split()
            if len(parts) < 2 or parts[0] != "GET":
                await self._respond(writer, 405, _page("Method not allowed", "<h1>405</h1>"))
                return
            status, body, outcome = await self._handle_callback(parts[1])
            try:
                await self._respond(writer, status, body)
            finally:
                # Publish only after the browser has its page; tokens are already stored.
                if outcome is not None:
                    self._finish(*outcome)
        except (ConnectionError, asyncio.IncompleteReadError) as exc:
            logger.debug(f"Callback connection dropped: {exc}")
        finally:
            self._connections.discard(writer)
            writer.close()

    async def _handle_callback(self, target: str) -> tuple[int, str, _Outcome | None]:
        url = urlsplit(target)
        if url.path != CALLBACK_PATH:
            return 404, _page("Not found", "<h1>Not found</h1>"), None
        if self._state is not ServerState.LISTENING or self._code_received:
            return 200, _page("Authentication complete", _ALREADY_DONE_PAGE), None

        params = parse_qs(url.query)
        if params.get("state", [None])[0] != self._expected_state:
            logger.warning("Ignoring OAuth callback with a mismatched state parameter.")
            return 400, _failure_page("The request state did not match this sign-in attempt."), None

        if "error" in params:
            reason = f"Authorization was denied: {params['error'][0]}"
            self._code_received = True
            return 400, _failure_page(reason), (False, OAuthExchangeError(reason))

        code = params.get("code", [""])[0]
        if not code:
            return 400, _failure_page("The redirect did not include an authorization code."), None

        # Later callbacks get the informational page while this one is exchanged.
        self._code_received = True
        try:
            await asyncio.to_thread(self._flow.fetch_token, code=code)
            await asyncio.to_thread(self.token_manager.save_tokens, self._flow.credentials)
        except Exception as exc:
            error = OAuthExchangeError(f"Authorization code exchange failed: {exc}")
            return 500, _failure_page("Exchanging the authorization code for tokens failed."), (False, error)

        logger.info("Authorization code exchanged; tokens stored.")
        return 200, _page("Authentication successful", _SUCCESS_PAGE), (True, None)

    async def _respond(self, writer: asyncio.StreamWriter, status: int, body: str) -> None:
        payload = body.encode("utf-8")
        head = (
            f"HTTP/1.1 {status} {_REASONS.get(status, 'OK')}\r\n"
            "Content-Type: text/html; charset=utf-8\r\n"
            f"Content-Length: {len(payload)}\r\n"
            "Connection: close\r\n\r\n"
        )
        writer.write(head.encode("latin-1") + payload)
        await writer.drain()

#  Copyright © 2025 Bentley Systems, Incorporated
#  Licensed under the Apache License, Version 2.0 (the "License");
#  you may not use this file except in compliance with the License.
#  You may obtain a copy of the License at
#      http://www.apache.org/licenses/LICENSE-2.0
#  Unless required by applicable law or agreed to in writing, software
#  distributed under the License is distributed on an "AS IS" BASIS,
#  WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
#  See the License for the specific language governing permissions and
#  limitations under the License.

from __future__ import annotations

import asyncio
import webbrowser
from types import TracebackType
from urllib.parse import urlparse

from aiohttp import web

from skybox import logging

from .data import Credential
from .exceptions import OAuthError
from .session import AuthorizationHandshake, Session

logger = logging.getLogger("oauth")

__all__ = ["OAuthRedirectHandler"]


class OAuthRedirectHandler:
    """An asynchronous context manager that completes an authorization handshake in a local web browser. Not
    thread-safe.

    This context manager starts an HTTP server at the session's redirect URL, which should be a loopback address. The
    user is sent to the consent page, and the OAuth server redirects them back to the local server, which completes the
    session's pending handshake.
    """

    _REDIRECT_HTML = """
<html>
  <body>
    <h1>Authorization request to Skybox has been completed.</h1>
    <p>You may close this tab or window now.</p>
    <script>setTimeout("window.close()", 2500);</script>
  </body>
</html>
""".encode("UTF-8")

    def __init__(self, session: Session) -> None:
        """
        :param session: The session to authorize.
        """
        self.__session = session
        self.__runner: web.AppRunner | None = None  # The HTTP server runner.
        self.__handshake: AuthorizationHandshake | None = None
        self.__authorisation: asyncio.Future[Credential] = asyncio.get_running_loop().create_future()

    @property
    def pending(self) -> bool:
        """Whether the handler is still waiting for the redirect.

        The handler is pending until a credential has been fetched or an error has occurred.
        """
        return not self.__authorisation.done()

    def __check_server_started(self) -> None:
        """Check if the redirect server has been started.

        :raises OAuthError: If the server has not been started.
        """
        if self.__runner is None:
            raise OAuthError("OAuth HTTP server not started.")

    async def __aenter__(self) -> OAuthRedirectHandler:
        """Start the redirect server."""
        if self.__runner is not None:
            raise OAuthError("OAuth redirect server cannot be reused.")

        logger.debug("Configuring OAuth HTTP server...")
        app = web.Application(logger=logger)
        uri = urlparse(self.__session.redirect_url)
        app.add_routes([web.get(uri.path or "/", self.__handle_request)])
        self.__runner = runner = web.AppRunner(app)
        await runner.setup()

        logger.debug("Starting OAuth HTTP server...")
        await web.TCPSite(runner, uri.hostname, uri.port, ssl_context=None).start()

        logger.debug("OAuth HTTP server started.")
        return self

    async def __aexit__(
        self, exc_type: type[Exception] | None, exc_val: Exception | None, exc_tb: TracebackType | None
    ) -> None:
        """Stop the redirect server."""
        self.__check_server_started()

        logger.debug("Stopping OAuth HTTP server...")
        await self.__runner.cleanup()
        logger.debug("OAuth HTTP server stopped.")

    async def __handle_request(self, request: web.Request) -> web.StreamResponse:
        """Handle the in-browser redirect from the OAuth server.

        Errors that are encountered by this handler would usually be invisible to other parts of the application, so
        they are logged and stored in the handler for later retrieval.
        """
        # This request is already successful. Any further errors will be raised in application code.
        response = web.StreamResponse(status=200, headers={"Content-Type": "text/html"})
        await response.prepare(request)
        await response.write(self._REDIRECT_HTML)
        if not self.pending:
            logger.warning("Ignoring unexpected OAuth redirect.")
            return response

        try:  # Broad exception handling to ensure any errors are logged and stored in the handler.
            if self.__handshake is None:
                raise OAuthError("No authorization handshake has been started.")
            credential = await self.__session.complete_authorization(self.__handshake, request.query)
            self.__authorisation.set_result(credential)
        except Exception as exc:
            logger.error("Unable to complete authorization.", exc_info=True)
            error = exc if isinstance(exc, OAuthError) else OAuthError(str(exc))
            self.__authorisation.set_exception(error)
        return response

    def begin(self) -> str:
        """Start a new authorization handshake on the session.

        :return: The URL of the consent page.

        :raises AlreadyAuthenticated: If the session is already authenticated.
        """
        self.__check_server_started()
        self.__handshake = self.__session.begin_authorization()
        return self.__handshake.url

    async def get_result(self, timeout_seconds: int | float = 60) -> Credential:
        """Get the result of the authorization process.

        This method will block until the authorization process is complete or the timeout is reached.

        :param timeout_seconds: The maximum time (in seconds) to wait for the authorization process to complete.

        :return: The credential.

        :raises OAuthError: If the authorization process times out.
        :raises OAuthError: If an error occurred during the authorization process.
        """
        self.__check_server_started()
        try:
            return await asyncio.wait_for(asyncio.shield(self.__authorisation), timeout_seconds)
        except asyncio.TimeoutError:
            raise OAuthError("Timed out waiting for OAuth response.")

    async def login(self, timeout_seconds: int | float = 60) -> Credential:
        """Authorize the application and authenticate the session.

        This method will launch a web browser to show the consent page to the user.

        :param timeout_seconds: The maximum time (in seconds) to wait for the authorization process to complete.

        :return: The credential.

        :raises AlreadyAuthenticated: If the session is already authenticated.
        :raises OAuthError: If the user does not authorize the application within the timeout.
        :raises OAuthError: If an error occurred during the authorization process.
        """
        webbrowser.open(self.begin())
        return await self.get_result(timeout_seconds)

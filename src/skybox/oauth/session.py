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

import enum
import hashlib
import secrets
import threading
from base64 import urlsafe_b64encode
from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass, field
from urllib.parse import parse_qsl, urlparse

from skybox import logging
from skybox.common import Request, Root, SignedRequest
from skybox.common.exceptions import AlreadyAuthenticated, NotAuthenticated

from .connector import OAuthConnector
from .data import Credential
from .exceptions import OAuthError
from .interfaces import ICredentialStore
from .store import MemoryCredentialStore

logger = logging.getLogger("oauth.session")

__all__ = [
    "AuthorizationHandshake",
    "Session",
    "SessionListener",
    "SessionState",
]


class SessionState(str, enum.Enum):
    """The authentication state of a session."""

    UNAUTHENTICATED = "unauthenticated"
    """The session has no credential."""

    AUTHORIZING = "authorizing"
    """An authorization handshake has been started, but not completed."""

    AUTHENTICATED = "authenticated"
    """The session has a credential, and can sign requests."""

    def __str__(self) -> str:
        return self.value


SessionListener = Callable[[SessionState, SessionState], object]


@dataclass(frozen=True, kw_only=True)
class AuthorizationHandshake:
    """The transient material for one attempt at authorizing the application.

    The host application sends the user to `url`. The OAuth server then redirects the user to `redirect_url`, and the
    host passes the redirect back to `Session.complete_authorization`.
    """

    url: str
    """The URL of the consent page."""

    redirect_url: str
    """The URL the user is sent back to."""

    state: str
    """A unique value, echoed back by the OAuth server, that ties the redirect to this attempt."""

    verifier: str = field(repr=False)
    """The PKCE code verifier."""


def _get_challenge(verifier: str) -> str:
    """Derive the S256 PKCE challenge for a code verifier.

    https://www.oauth.com/oauth2-servers/pkce/authorization-request/
    """
    digest = hashlib.sha256(verifier.encode("utf-8")).digest()
    return urlsafe_b64encode(digest).decode("utf-8").rstrip("=")


def _auth_headers(credential: Credential) -> dict[str, str]:
    return {"Authorization": f"Bearer {credential.access_token}"}


def _parse_provider_response(provider_response: str | Mapping[str, str]) -> dict[str, str]:
    """Get the query parameters of an authorization response, given either the redirect URL or its parameters."""
    if isinstance(provider_response, str):
        return dict(parse_qsl(urlparse(provider_response).query))
    return {str(key): str(provider_response[key]) for key in provider_response.keys()}


class Session:
    """The authentication state of one user of the application.

    A session starts `UNAUTHENTICATED`. It becomes `AUTHENTICATED` when a stored credential is restored, or when an
    authorization handshake is completed, and returns to `UNAUTHENTICATED` when it is invalidated::

        UNAUTHENTICATED -> AUTHORIZING -> AUTHENTICATED -> UNAUTHENTICATED
                           AUTHORIZING -> UNAUTHENTICATED (the handshake failed)
                                          AUTHENTICATED -> AUTHENTICATED (the credential was refreshed)
                                          AUTHENTICATED -> AUTHORIZING (the credential expired)

    Requests are only signed while the session is `AUTHENTICATED`. The credential is never exposed by the session,
    only the ID of the user it belongs to.

    The session state is guarded by a lock, so the session may be invalidated from any thread.
    """

    def __init__(
        self,
        oauth_connector: OAuthConnector,
        redirect_url: str,
        credential_store: ICredentialStore | None = None,
        root: Root = Root.FULL,
        scopes: Iterable[str] | None = None,
    ) -> None:
        """
        :param oauth_connector: The OAuth connector to use for the authorization handshake.
        :param redirect_url: The URL the OAuth server should redirect the user to after authorization.
        :param credential_store: Where the credential is persisted. Defaults to a new `MemoryCredentialStore`.
        :param root: The part of the user's storage the application has been granted access to.
        :param scopes: The OAuth scopes to request, or None to request the scopes configured for the application.
        """
        self._connector = oauth_connector
        self._redirect_url = redirect_url
        self._store = credential_store if credential_store is not None else MemoryCredentialStore()
        self._root = Root(root)
        self._scopes = tuple(scopes) if scopes is not None else None

        self._lock = threading.Lock()
        self._state = SessionState.UNAUTHENTICATED
        self._credential: Credential | None = None
        self._pending: AuthorizationHandshake | None = None
        self._listeners: list[SessionListener] = []

    def __repr__(self) -> str:
        return f"<Session {self._state} user_id={self.user_id!r} root={self._root}>"

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def is_authenticated(self) -> bool:
        """Whether the session can sign requests."""
        return self._state is SessionState.AUTHENTICATED

    @property
    def user_id(self) -> str | None:
        """The ID of the authorized user, or None if it is not known."""
        credential = self._credential
        return credential.user_id if credential is not None else None

    @property
    def root(self) -> Root:
        return self._root

    @property
    def redirect_url(self) -> str:
        return self._redirect_url

    def add_listener(self, listener: SessionListener) -> None:
        """Register a callback that is invoked with the old and new state whenever the session changes state.

        Listeners are invoked after the lock has been released, in registration order.
        """
        with self._lock:
            self._listeners.append(listener)

    def remove_listener(self, listener: SessionListener) -> None:
        with self._lock:
            self._listeners.remove(listener)

    def _set_state(self, new_state: SessionState) -> Callable[[], None]:
        """Change state while holding the lock.

        :return: A function that notifies listeners of the change. It must be called after the lock has been released.
        """
        assert self._lock.locked(), "self._lock should be acquired before changing state."
        old_state, self._state = self._state, new_state
        listeners = list(self._listeners)

        def notify() -> None:
            logger.debug(f"Session state changed from {old_state} to {new_state}")
            for listener in listeners:
                try:
                    listener(old_state, new_state)
                except Exception:
                    logger.exception(f"Exception in session listener {listener!r}")

        return notify

    def restore(self) -> bool:
        """Restore a credential from the credential store, without making any network requests.

        :return: True if the session is authenticated.
        """
        with self._lock:
            if self._credential is not None:
                return True
            credential = self._store.load()
            if credential is None:
                logger.debug("No stored credential to restore.")
                return False
            self._credential = credential
            self._pending = None
            notify = self._set_state(SessionState.AUTHENTICATED)
        notify()
        return True

    def begin_authorization(self) -> AuthorizationHandshake:
        """Start an authorization handshake.

        A new handshake supersedes any handshake that is still pending. An expired credential does not block a new
        handshake. It is dropped from the session, and replaced in the credential store once the handshake completes.

        :return: The handshake. The host application should send the user to `handshake.url`.

        :raise AlreadyAuthenticated: If the session already has a credential that has not expired.
        """
        with self._lock:
            if self._credential is not None:
                if not self._credential.is_expired:
                    raise AlreadyAuthenticated("The session is already authenticated. Invalidate it first.")
                logger.debug("Discarding expired credential to start a new authorization.")
                self._credential = None

            state = secrets.token_urlsafe(32)  # A unique state to prevent CSRF attacks.
            verifier = secrets.token_urlsafe(48)  # A unique code verifier for the PKCE challenge.
            params = {
                "response_type": "code",
                "redirect_uri": self._redirect_url,
                "state": state,
                "code_challenge": _get_challenge(verifier),
                "code_challenge_method": "S256",
            }
            if self._scopes is not None:
                params["scope"] = " ".join(self._scopes)

            handshake = AuthorizationHandshake(
                url=self._connector.create_authorization_url(params),
                redirect_url=self._redirect_url,
                state=state,
                verifier=verifier,
            )
            if self._pending is not None:
                logger.debug("Superseding pending authorization handshake.")
            self._pending = handshake
            notify = None
            if self._state is not SessionState.AUTHORIZING:
                notify = self._set_state(SessionState.AUTHORIZING)

        if notify is not None:
            notify()
        return handshake

    def _abandon(self, handshake: AuthorizationHandshake) -> None:
        """Drop a handshake that failed, if it is still the pending one."""
        with self._lock:
            if self._pending is not handshake:
                return
            self._pending = None
            notify = self._set_state(SessionState.UNAUTHENTICATED)
        notify()

    async def complete_authorization(
        self, handshake: AuthorizationHandshake, provider_response: str | Mapping[str, str]
    ) -> Credential:
        """Complete an authorization handshake with the response from the OAuth server.

        https://www.oauth.com/oauth2-servers/access-tokens/authorization-code-request/

        The credential is saved to the credential store before the session becomes `AUTHENTICATED`.

        :param handshake: The pending handshake.
        :param provider_response: The URL the user was redirected to, or its query parameters.

        :return: The new credential.

        :raise AuthError: If the handshake is not pending, the OAuth server reported an error, the response does not
            belong to the handshake, or the credential could not be fetched or saved.
        """
        with self._lock:
            if handshake is not self._pending:
                raise OAuthError("The authorization handshake is not pending.")

        params = _parse_provider_response(provider_response)
        try:
            if "error" in params:  # Check for an error response from the OAuth provider.
                raise OAuthError(params.get("error_description") or params["error"])
            if params.get("state") != handshake.state:  # The state must match the one generated for this handshake.
                raise OAuthError("Invalid state.")
            if not (code := params.get("code")):
                raise OAuthError("The authorization response does not include a code.")

            logger.debug("Fetching credential...")
            credential = await self._connector.fetch_token(
                {
                    "grant_type": "authorization_code",
                    "code": code,
                    "code_verifier": handshake.verifier,
                    "redirect_uri": handshake.redirect_url,
                }
            )
        except OAuthError:
            logger.debug("Authorization handshake failed.", exc_info=True)
            self._abandon(handshake)
            raise

        with self._lock:
            if handshake is not self._pending:
                raise OAuthError("The authorization handshake was superseded or abandoned.")
            self._pending = None
            try:
                self._store.save(credential)
            except Exception as exc:
                error = exc
                notify = self._set_state(SessionState.UNAUTHENTICATED)
            else:
                error = None
                self._credential = credential
                notify = self._set_state(SessionState.AUTHENTICATED)

        notify()
        if error is not None:
            raise OAuthError("Could not save the credential.") from error
        logger.info(f"Authorized user {credential.user_id}")
        return credential

    def sign_request(self, request: Request) -> SignedRequest:
        """Attach the credential to a request.

        :param request: The request to sign.

        :return: The signed message.

        :raise NotAuthenticated: If the session is not authenticated.
        :raise AlreadyDispatched: If the request has already been dispatched.
        """
        with self._lock:
            if self._state is not SessionState.AUTHENTICATED or self._credential is None:
                raise NotAuthenticated(f"Cannot sign {request!r}, the session is {self._state}.")
            return request.sign(_auth_headers(self._credential))

    async def refresh(self) -> bool:
        """Exchange the refresh token for a new credential.

        https://www.oauth.com/oauth2-servers/making-authenticated-requests/refreshing-an-access-token/

        A refreshed credential is discarded if the session was invalidated while the exchange was in progress.

        :return: True if the credential was replaced, False if there is no refresh token or the exchange failed.

        :raise NotAuthenticated: If the session is not authenticated.
        :raise AuthError: If the refreshed credential could not be saved.
        """
        with self._lock:
            old_credential = self._credential
            if self._state is not SessionState.AUTHENTICATED or old_credential is None:
                raise NotAuthenticated(f"Cannot refresh the credential, the session is {self._state}.")

        if old_credential.refresh_token is None:
            logger.debug("Refresh token is missing.")
            return False

        try:
            logger.debug("Refreshing credential...")
            new_credential = await self._connector.fetch_token(
                {"grant_type": "refresh_token", "refresh_token": old_credential.refresh_token}
            )
        except OAuthError:
            logger.warning("Unable to refresh the credential.", exc_info=True)
            return False

        # Refresh responses usually omit the refresh token and the user ID.
        update = {}
        if new_credential.refresh_token is None:
            update["refresh_token"] = old_credential.refresh_token
        if new_credential.user_id is None:
            update["user_id"] = old_credential.user_id
        if update:
            new_credential = new_credential.model_copy(update=update)

        with self._lock:
            if self._credential is not old_credential:
                logger.debug("Discarding refreshed credential, the session changed during the refresh.")
                return False
            try:
                self._store.save(new_credential)
            except Exception as exc:
                raise OAuthError("Could not save the refreshed credential.") from exc
            self._credential = new_credential
            notify = self._set_state(SessionState.AUTHENTICATED)

        notify()
        return True

    def invalidate(self) -> None:
        """Discard the credential and any pending handshake.

        The stored credential is also cleared. Requests that have already been dispatched are not cancelled.

        :raise AuthError: If the stored credential could not be cleared. The session is invalidated regardless.
        """
        self._invalidate(None)

    def invalidate_if_current(self, signed: SignedRequest) -> bool:
        """Invalidate the session because the service rejected `signed`.

        Nothing happens if the request was signed with a credential that is no longer current, for instance when the
        user signed out and authorized again while the request was in flight.

        :return: True if the session was invalidated.

        :raise AuthError: If the stored credential could not be cleared.
        """
        return self._invalidate(signed)

    def _invalidate(self, signed: SignedRequest | None) -> bool:
        with self._lock:
            if signed is not None and (
                self._credential is None
                or signed.headers.get("Authorization") != _auth_headers(self._credential)["Authorization"]
            ):
                logger.debug("Ignoring a rejection of a credential that is no longer current.")
                return False
            self._credential = None
            self._pending = None
            notify = None
            if self._state is not SessionState.UNAUTHENTICATED:
                notify = self._set_state(SessionState.UNAUTHENTICATED)
            try:
                self._store.clear()
            except Exception as exc:
                error = exc
            else:
                error = None

        if notify is not None:
            notify()
        if error is not None:
            raise OAuthError("Could not clear the stored credential.") from error
        return True

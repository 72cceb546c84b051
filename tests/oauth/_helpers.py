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


import asyncio
import contextlib
import hashlib
import json
import socket
import unittest
from base64 import urlsafe_b64encode
from collections.abc import Iterator
from unittest import mock
from urllib.parse import urlencode

from aiohttp.client import ClientSession

from skybox.common import RequestMethod
from skybox.common.test_tools import API_URL, CLIENT_ID, USER_ID, WEB_URL, MockResponse, TestTransport
from skybox.common.utils import BackoffLinear
from skybox.oauth import MemoryCredentialStore, OAuthConnector, Session, SessionState

STATE_TOKEN = "TestStateToken"
VERIFIER_TOKEN = "TestVerifierToken"
AUTHORIZATION_CODE = "TestAuthorizationCode"
NEW_ACCESS_TOKEN = "TestNewAccessToken"
NEW_REFRESH_TOKEN = "TestNewRefreshToken"


def _get_open_port() -> int:
    s = socket.socket(socket.AF_INET, type=socket.SOCK_STREAM)
    s.bind(("127.0.0.1", 0))
    _, port = s.getsockname()
    s.close()
    return port


REDIRECT_URL = f"http://127.0.0.1:{_get_open_port()}/auth/callback"

TOKEN_HEADERS = {"Accept": "application/json", "Content-Type": "application/x-www-form-urlencoded"}


def token_response(
    access_token: str = NEW_ACCESS_TOKEN, refresh_token: str | None = NEW_REFRESH_TOKEN, uid: int | None = int(USER_ID)
) -> MockResponse:
    content = {"access_token": access_token, "token_type": "bearer", "expires_in": 14400}
    if refresh_token is not None:
        content["refresh_token"] = refresh_token
    if uid is not None:
        content["uid"] = uid
    return MockResponse(status_code=200, content=json.dumps(content), headers={"Content-Type": "application/json"})


def error_response(status_code: int, error: str, description: str) -> MockResponse:
    return MockResponse(
        status_code=status_code,
        content=json.dumps({"error": error, "error_description": description}),
        headers={"Content-Type": "application/json"},
    )


@contextlib.contextmanager
def patch_urlsafe_tokens(state: str = STATE_TOKEN, verifier: str = VERIFIER_TOKEN) -> Iterator[None]:
    with mock.patch("secrets.token_urlsafe", side_effect=[state, verifier]):
        yield


async def get_redirect(state: str = STATE_TOKEN, code: str = AUTHORIZATION_CODE) -> str:
    async with ClientSession() as session:
        async with session.get(REDIRECT_URL, params={"state": state, "code": code}) as response:
            response.raise_for_status()
            return await response.text()


@contextlib.contextmanager
def patch_webbrowser_open(authenticate: bool) -> Iterator[mock.Mock]:
    """Patch the `webbrowser.open` function and optionally authenticate the user."""

    def webbrowser_open(_url: str) -> None:
        if authenticate:
            asyncio.ensure_future(get_redirect(state=STATE_TOKEN, code=AUTHORIZATION_CODE))

    with mock.patch("webbrowser.open", side_effect=webbrowser_open) as mock_open:
        yield mock_open


def get_expected_auth_url(state: str = STATE_TOKEN, verifier: str = VERIFIER_TOKEN, **extra: str) -> str:
    # urlsafe base64 encoded sha256 hash of the verifier token.
    expect_challenge = urlsafe_b64encode(hashlib.sha256(verifier.encode()).digest()).decode().strip("=")
    query = {
        "response_type": "code",
        "client_id": CLIENT_ID,
        "redirect_uri": REDIRECT_URL,
        "state": state,
        "code_challenge": expect_challenge,
        "code_challenge_method": "S256",
        **extra,
    }
    return WEB_URL + "/oauth2/authorize?" + urlencode(sorted(query.items()))


class TestWithSession(unittest.IsolatedAsyncioTestCase):
    def setUp(self) -> None:
        self.transport = TestTransport(base_url=API_URL)
        self.connector = OAuthConnector(
            self.transport,
            client_id=CLIENT_ID,
            base_uri=API_URL,
            authorize_uri=WEB_URL,
            backoff_method=BackoffLinear(0),
        )
        self.store = MemoryCredentialStore()
        self.session = Session(self.connector, REDIRECT_URL, credential_store=self.store)
        self.listener = mock.Mock()
        self.session.add_listener(self.listener)

    def assert_transitions(self, *transitions: tuple[SessionState, SessionState]) -> None:
        """Assert that the session listener was notified of exactly the given transitions, in order."""
        self.assertEqual([mock.call(*transition) for transition in transitions], self.listener.call_args_list)

    def assert_fetched_token(self, **data: str) -> None:
        """Assert that a token was fetched with the given data"""
        self.transport.assert_any_request_made(
            RequestMethod.POST,
            "/oauth2/token",
            headers=TOKEN_HEADERS,
            post_params=list({**data, "client_id": CLIENT_ID}.items()),
        )

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


import os
import tempfile
import unittest
from pathlib import Path
from unittest import mock

from parameterized import parameterized

from skybox.aio import AioTransport
from skybox.common import Root
from skybox.common.exceptions import InvalidArgument
from skybox.common.test_tools import CLIENT_ID, CLIENT_SECRET, TestTransport
from skybox.config import ClientConfig
from skybox.oauth import FileCredentialStore, MemoryCredentialStore, SessionState

PREFIX = "UNITTEST_SKYBOX_"


class TestClientConfigFromEnv(unittest.TestCase):
    def setUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        self.addCleanup(self._tmp.cleanup)
        self.dotenv_path = Path(self._tmp.name) / ".env"
        self.dotenv_path.write_text("", encoding="utf-8")

    def load(self, dotenv: str = "", **environ: str) -> ClientConfig:
        self.dotenv_path.write_text(dotenv, encoding="utf-8")
        with mock.patch.dict(os.environ, {PREFIX + key: value for key, value in environ.items()}):
            return ClientConfig.from_env(self.dotenv_path, prefix=PREFIX)

    def test_defaults(self) -> None:
        self.assertEqual(ClientConfig(), self.load())

    def test_from_dotenv(self) -> None:
        config = self.load(
            f"{PREFIX}CLIENT_ID={CLIENT_ID}\n"
            f"{PREFIX}API_URL=https://api.example.com/1\n"
            f"{PREFIX}ROOT=sandbox\n"
            f"{PREFIX}REQUEST_TIMEOUT=30\n"
            f"{PREFIX}MAX_ATTEMPTS=5\n"
            f"{PREFIX}VERIFY_SSL=false\n"
            f"{PREFIX}CREDENTIAL_FILE=~/.skybox/credential.json\n"
        )
        self.assertEqual(CLIENT_ID, config.client_id)
        self.assertEqual("https://api.example.com/1", config.api_url)
        self.assertIs(Root.APP_FOLDER, config.root)
        self.assertEqual(30.0, config.request_timeout)
        self.assertEqual(5, config.max_attempts)
        self.assertFalse(config.verify_ssl)
        self.assertEqual("~/.skybox/credential.json", config.credential_file)

    def test_environment_overrides_dotenv(self) -> None:
        config = self.load(f"{PREFIX}CLIENT_ID=from-dotenv\n{PREFIX}CLIENT_SECRET=secret\n", CLIENT_ID="from-environ")
        self.assertEqual("from-environ", config.client_id)
        self.assertEqual("secret", config.client_secret)

    def test_empty_values(self) -> None:
        config = self.load(CLIENT_ID="", REQUEST_TIMEOUT="")
        self.assertIsNone(config.client_id)
        self.assertIsNone(config.request_timeout)

    @parameterized.expand(
        [
            ("APP_FOLDER", Root.APP_FOLDER),
            ("app_folder", Root.APP_FOLDER),
            ("dropbox", Root.FULL),
            ("FULL", Root.FULL),
        ]
    )
    def test_root(self, value: str, expected: Root) -> None:
        self.assertIs(expected, self.load(ROOT=value).root)

    @parameterized.expand([("1", True), ("yes", True), ("On", True), ("0", False), ("no", False)])
    def test_bool(self, value: str, expected: bool) -> None:
        self.assertEqual(expected, self.load(VERIFY_SSL=value).verify_ssl)

    @parameterized.expand(
        [
            ("root", {"ROOT": "everything"}),
            ("request timeout", {"REQUEST_TIMEOUT": "soon"}),
            ("max attempts", {"MAX_ATTEMPTS": "three"}),
            ("verify ssl", {"VERIFY_SSL": "maybe"}),
        ]
    )
    def test_invalid_value(self, _label: str, environ: dict) -> None:
        with self.assertRaises(InvalidArgument) as cm:
            self.load(**environ)
        (key,) = environ
        self.assertIn(PREFIX + key, str(cm.exception))

    def test_repr_hides_secret(self) -> None:
        config = ClientConfig(client_id=CLIENT_ID, client_secret=CLIENT_SECRET)
        self.assertNotIn(CLIENT_SECRET, repr(config))


class TestClientConfigFactories(unittest.IsolatedAsyncioTestCase):
    def test_create_transport(self) -> None:
        self.assertIsInstance(ClientConfig(verify_ssl=False).create_transport(), AioTransport)

    def test_create_memory_credential_store(self) -> None:
        self.assertIsInstance(ClientConfig().create_credential_store(), MemoryCredentialStore)

    def test_create_file_credential_store(self) -> None:
        store = ClientConfig(credential_file="~/.skybox/credential.json").create_credential_store()
        self.assertIsInstance(store, FileCredentialStore)
        self.assertEqual(Path("~/.skybox/credential.json").expanduser(), store.path)

    def test_create_oauth_connector(self) -> None:
        config = ClientConfig(client_id=CLIENT_ID, api_url="https://api.example.com/1/", web_url="https://example.com")
        connector = config.create_oauth_connector(TestTransport())
        self.assertEqual(CLIENT_ID, connector.client_id)
        self.assertEqual("https://api.example.com/1", connector.base_uri)
        self.assertEqual("https://example.com", connector.authorize_uri)

    def test_create_oauth_connector_requires_client_id(self) -> None:
        with self.assertRaises(InvalidArgument):
            ClientConfig().create_oauth_connector(TestTransport())

    def test_create_session(self) -> None:
        config = ClientConfig(client_id=CLIENT_ID, root=Root.APP_FOLDER, redirect_url="http://127.0.0.1:8000/cb")
        session = config.create_session(TestTransport())
        self.assertEqual(SessionState.UNAUTHENTICATED, session.state)
        self.assertIs(Root.APP_FOLDER, session.root)
        self.assertEqual("http://127.0.0.1:8000/cb", session.redirect_url)
        self.assertFalse(session.restore())

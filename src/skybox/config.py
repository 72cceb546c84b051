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

import dataclasses
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import dotenv

from skybox import logging
from skybox.aio import AioTransport
from skybox.common import ITransport, Root
from skybox.common.exceptions import InvalidArgument
from skybox.oauth import FileCredentialStore, ICredentialStore, MemoryCredentialStore, OAuthConnector, Session

logger = logging.getLogger("config")

__all__ = [
    "ClientConfig",
]

DEFAULT_API_URL = "https://api.skybox.io/1"
DEFAULT_CONTENT_URL = "https://api-content.skybox.io/1"
DEFAULT_WEB_URL = "https://www.skybox.io/1"
DEFAULT_REDIRECT_URL = "http://localhost:32369/auth/callback"
DEFAULT_USER_AGENT = "skybox-sdk-python"


def _to_bool(value: str) -> bool:
    match value.strip().lower():
        case "1" | "true" | "yes" | "on":
            return True
        case "0" | "false" | "no" | "off" | "":
            return False
        case _:
            raise ValueError(f"'{value}' is not a boolean")


def _to_root(value: str) -> Root:
    # Accept member names, e.g. `APP_FOLDER`, as well as values, e.g. `sandbox`.
    if value.upper() in Root.__members__:
        return Root[value.upper()]
    return Root(value)


def _to_optional_float(value: str) -> float | None:
    return float(value) if value.strip() else None


def _to_optional_str(value: str) -> str | None:
    return value or None


@dataclass(frozen=True, kw_only=True)
class ClientConfig:
    """Settings for connecting to the service.

    Every setting can be loaded from the environment with `ClientConfig.from_env()`. The environment variable for a
    setting is its name in upper case, with a prefix, e.g. `SKYBOX_CLIENT_ID` for `client_id`.
    """

    api_url: str = DEFAULT_API_URL
    """The base URL of the metadata and file operations API."""

    content_url: str = DEFAULT_CONTENT_URL
    """The base URL of the file contents API."""

    web_url: str = DEFAULT_WEB_URL
    """The base URL of the web consent page."""

    client_id: str | None = None
    """The application key. Required for the authorization handshake."""

    client_secret: str | None = field(default=None, repr=False)
    """The application secret. Public clients that rely on PKCE leave it unset."""

    redirect_url: str = DEFAULT_REDIRECT_URL
    """The URL the OAuth server redirects the user to after authorization."""

    root: Root = Root.FULL
    """The part of the user's storage the application has been granted access to."""

    user_agent: str = DEFAULT_USER_AGENT
    """The value of the `User-Agent` header."""

    request_timeout: float | None = None
    """Total timeout (in seconds) for each request, or None for no timeout."""

    max_attempts: int = 3
    """Number of attempts to connect to the service before a request fails."""

    verify_ssl: bool = True
    """Verify SSL certificates. This should never be disabled in production environments."""

    credential_file: str | None = None
    """Where to persist the credential between runs, or None to keep it in memory."""

    @classmethod
    def from_env(cls, dotenv_path: str | os.PathLike | None = None, prefix: str = "SKYBOX_") -> ClientConfig:
        """Load settings from a `.env` file and the process environment.

        Process environment variables take precedence over the `.env` file. Settings that are not set keep their
        default values.

        :param dotenv_path: The `.env` file to read. By default, the nearest `.env` file to the current working
            directory is used, if there is one.
        :param prefix: The prefix of the environment variable names.

        :return: The settings.

        :raise InvalidArgument: If a variable has a value that cannot be converted.
        """
        if dotenv_path is None:
            dotenv_path = dotenv.find_dotenv(usecwd=True) or None

        values: dict[str, str | None] = {}
        if dotenv_path is not None:
            logger.debug(f"Loading settings from {dotenv_path}")
            values.update(dotenv.dotenv_values(dotenv_path, encoding="utf-8"))
        values.update(os.environ)

        converters: dict[str, Any] = {
            "root": _to_root,
            "request_timeout": _to_optional_float,
            "max_attempts": int,
            "verify_ssl": _to_bool,
            "client_id": _to_optional_str,
            "client_secret": _to_optional_str,
            "credential_file": _to_optional_str,
        }
        kwargs = {}
        for config_field in dataclasses.fields(cls):
            key = prefix + config_field.name.upper()
            if (value := values.get(key)) is None:
                continue
            convert = converters.get(config_field.name, str)
            try:
                kwargs[config_field.name] = convert(value)
            except ValueError as e:
                raise InvalidArgument(f"Invalid value for {key}", caused_by=e) from e
        return cls(**kwargs)

    def create_transport(self) -> AioTransport:
        """Create an HTTP transport with these settings."""
        return AioTransport(user_agent=self.user_agent, max_attempts=self.max_attempts, verify_ssl=self.verify_ssl)

    def create_credential_store(self) -> ICredentialStore:
        """Create the credential store, a file store if `credential_file` is set, or a memory store otherwise."""
        if self.credential_file is None:
            return MemoryCredentialStore()
        return FileCredentialStore(Path(self.credential_file).expanduser())

    def create_oauth_connector(self, transport: ITransport) -> OAuthConnector:
        """Create an OAuth connector for the application.

        :raise InvalidArgument: If `client_id` is not set.
        """
        if self.client_id is None:
            raise InvalidArgument("client_id is required for authorization")
        return OAuthConnector(
            transport=transport,
            client_id=self.client_id,
            client_secret=self.client_secret,
            base_uri=self.api_url,
            authorize_uri=self.web_url,
        )

    def create_session(self, transport: ITransport) -> Session:
        """Create a session, with a credential store and OAuth connector for these settings.

        The stored credential is not restored. Call `Session.restore()` to restore it.
        """
        return Session(
            oauth_connector=self.create_oauth_connector(transport),
            redirect_url=self.redirect_url,
            credential_store=self.create_credential_store(),
            root=self.root,
        )

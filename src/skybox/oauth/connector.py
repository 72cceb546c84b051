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

from collections.abc import Mapping
from types import TracebackType
from typing import Any, Literal, TypeVar
from urllib.parse import urlencode

from skybox import logging
from skybox.common import APIConnector, RequestMethod
from skybox.common.exceptions import MalformedResponse, ServiceRejected, SkyboxClientException
from skybox.common.interfaces import ITransport
from skybox.common.utils import BackoffIncremental, BackoffMethod, Retry

from .data import Credential
from .exceptions import OAuthError

logger = logging.getLogger("oauth")

__all__ = ["OAuthConnector"]

T = TypeVar("T", bound=Credential)

DEFAULT_BASE_URI = "https://api.skybox.io/1"
DEFAULT_AUTHORIZE_URI = "https://www.skybox.io/1"


class OAuthConnector:
    """OAuth connector, used to build consent URLs and to exchange authorization grants for credentials.

    Requests made by the connector are never signed with a user credential. The application's client ID, and the client
    secret if there is one, are only sent to the token endpoint.
    """

    def __init__(
        self,
        transport: ITransport,
        client_id: str,
        client_secret: str | None = None,
        base_uri: str = DEFAULT_BASE_URI,
        authorize_uri: str = DEFAULT_AUTHORIZE_URI,
        max_attempts: int = 3,
        backoff_method: BackoffMethod = BackoffIncremental(2),
    ) -> None:
        """
        :param transport: The transport to use for making requests.
        :param client_id: The OAuth client ID (app key), as registered with the service.
        :param client_secret: The OAuth client secret (app secret). Public clients that rely on PKCE omit it.
        :param base_uri: The base URI of the token endpoint.
        :param authorize_uri: The base URI of the web consent page.
        :param max_attempts: Number of attempts for a token request that fails with a gateway error.
        :param backoff_method: Backoff between attempts.
        """
        self._connector = APIConnector(base_uri, transport)
        self.__authorize_uri = authorize_uri.rstrip("/")
        self.__client_id = client_id
        self.__client_secret = client_secret
        self._retry = Retry(logger=logger, max_attempts=max_attempts, backoff_method=backoff_method)

    def endpoint(self, endpoint_type: Literal["authorize", "token"]) -> str:
        """Returns the relevant OAuth endpoint by endpoint type. Possible values: "authorize", "token"."""
        match endpoint_type:
            case "authorize":
                return "/oauth2/authorize"
            case "token":
                return "/oauth2/token"
        raise OAuthError("Invalid endpoint type provided. Available: authorize, token")

    @property
    def base_uri(self) -> str:
        return self._connector.base_url.rstrip("/")

    @property
    def authorize_uri(self) -> str:
        return self.__authorize_uri

    @property
    def client_id(self) -> str:
        return self.__client_id

    def create_authorization_url(self, params: Mapping[str, str]) -> str:
        """Build the URL of the web consent page.

        :param params: The query parameters for the authorization request. The client ID is added automatically.

        :return: The authorization URL, with query parameters in a stable order.
        """
        qs_params = {"client_id": self.client_id, **params}
        return self.authorize_uri + self.endpoint("authorize") + "?" + urlencode(sorted(qs_params.items()))

    async def __aenter__(self) -> OAuthConnector:
        await self._connector.open()
        return self

    async def __aexit__(
        self, exc_type: type[Exception] | None, exc_value: Exception | None, traceback: TracebackType | None
    ) -> None:
        await self._connector.close()

    async def _call_api(self, method: RequestMethod, resource_path: str, **kwargs: Any) -> Any:
        """Wrapper for APIConnector.call_api() with retry on 502 and 504 errors.

        Gateway errors mean the request never reached the OAuth server, so sending it again cannot consume an
        authorization code twice.
        """
        async for attempt in self._retry:
            try:
                return await self._connector.call_api(method, resource_path, **kwargs)
            except ServiceRejected as e:
                if e.status in {502, 504}:
                    logger.warning(f"OAuth {attempt} failed with status {e.status}")
                    attempt.set_exception(e)
                else:
                    raise

    async def fetch_token(self, data: dict[str, Any], expected_response_model: type[T] = Credential) -> T:
        """Fetch a credential from the token endpoint.

        :param data: The grant to send to the server.
        :param expected_response_model: The model to parse the token response into.

        :return: The credential.

        :raises OAuthError: If the credential cannot be fetched.
        """
        data = {**data, "client_id": self.client_id}
        if self.__client_secret is not None:
            data["client_secret"] = self.__client_secret

        try:
            async with self._connector:
                try:
                    return await self._call_api(
                        RequestMethod.POST,
                        self.endpoint("token"),
                        header_params={
                            "Accept": "application/json",
                            "Content-Type": "application/x-www-form-urlencoded",
                        },
                        post_params=data,
                        response_types_map={"200": expected_response_model},
                    )
                except ServiceRejected as e:
                    error_json = e.content if isinstance(e.content, dict) else {}
                    title = error_json.get("error", "Unexpected response from server")
                    detail = error_json.get("error_description", str(e))
                    raise OAuthError(f"{title}: {detail}") from e
                except MalformedResponse as e:
                    raise OAuthError("Invalid token response from server.") from e
        except OAuthError:
            raise
        except SkyboxClientException as exc:
            raise OAuthError(f"Unable to fetch access token. {exc}") from exc

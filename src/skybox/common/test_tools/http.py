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


import unittest
from abc import ABC, abstractmethod
from collections.abc import Iterator, Mapping
from contextlib import contextmanager
from typing import Any
from unittest import mock

from skybox.config import ClientConfig
from skybox.files import RestClient
from skybox.oauth import MemoryCredentialStore, OAuthConnector, Session

from ..data import HTTPHeaderDict, HTTPResponse, RequestMethod
from ..interfaces import ITransport
from ..io import IDestination
from .consts import ACCESS_TOKEN, API_URL, CLIENT_ID, CONTENT_URL, CREDENTIAL, REDIRECT_URL, WEB_URL

Timeout = int | float | tuple[int | float, int | float]


class TestHTTPHeaderDict(HTTPHeaderDict):
    """Header dict that prints credentials in full, so that assertion failures show what actually differs."""

    __test__ = False  # Not a test case.

    def __repr__(self) -> str:
        return f"{type(self).__name__}({dict(self.items())!r})"


class MockResponse(mock.Mock):
    """A canned `HTTPResponse` for a mocked transport to return."""

    def __init__(
        self,
        status_code: int,
        reason: str | None = None,
        headers: Mapping[str, str] | None = None,
        body: bytes | None = None,
        content: str = "",
    ):
        """
        :param status_code: The status code.
        :param reason: The reason phrase.
        :param headers: The response headers.
        :param body: The raw body. Overrides `content` when given.
        :param content: The body as text, encoded as UTF-8.
        """
        super().__init__(spec=HTTPResponse)
        self.status = status_code
        self.reason = reason
        self.headers = TestHTTPHeaderDict(headers)
        self.data = content.encode("utf-8") if body is None else body
        self.getheader = mock.Mock(side_effect=lambda name, default=None: self.headers.get(name, default))
        self.getheaders = mock.Mock(return_value=self.headers.copy())


class AbstractTestRequestHandler(ABC):
    """Simulates an API by answering every `ITransport.request()` call made to a `TestTransport`."""

    @abstractmethod
    async def request(
        self,
        method: RequestMethod,
        url: str,
        headers: HTTPHeaderDict | None = None,
        post_params: list[tuple[str, str | bytes]] | None = None,
        body: object | str | bytes | None = None,
        request_timeout: Timeout | None = None,
    ) -> MockResponse: ...  # pragma: no cover

    @staticmethod
    def not_found() -> MockResponse:
        return MockResponse(status_code=404, reason="Not Found")

    @staticmethod
    def unauthorized() -> MockResponse:
        return MockResponse(status_code=401, reason="Unauthorized")


class TestTransport(mock.AsyncMock):
    """A mocked `ITransport`. Until told otherwise, every call gets a `503 Service Unavailable`."""

    open: mock.AsyncMock
    close: mock.AsyncMock
    request: mock.AsyncMock
    stream: mock.AsyncMock

    def __init__(self, *, base_url: str = API_URL) -> None:
        super().__init__(spec=ITransport)
        self._base_url = base_url.rstrip("/")
        self.request.return_value = MockResponse(status_code=503)
        self.stream.return_value = MockResponse(status_code=503)

    def _url(self, path: str) -> str:
        if "://" in path:
            return path
        return f"{self._base_url}/{path.lstrip('/')}"

    @staticmethod
    @contextmanager
    def _replaced(method: mock.AsyncMock, **attributes: Any) -> Iterator[None]:
        saved = {name: getattr(method, name) for name in attributes}
        for name, value in attributes.items():
            setattr(method, name, value)
        try:
            yield
        finally:
            for name, value in saved.items():
                setattr(method, name, value)

    @contextmanager
    def set_http_response(
        self,
        status_code: int,
        content: str = "",
        reason: str | None = None,
        headers: Mapping[str, str] | None = None,
    ) -> Iterator[MockResponse]:
        """Answer `request()` calls with a fixed response inside the block.

        :yields: The response.
        """
        response = MockResponse(status_code=status_code, content=content, reason=reason, headers=headers)
        with self._replaced(self.request, return_value=response, side_effect=None):
            yield response

    @contextmanager
    def set_stream_response(
        self,
        status_code: int,
        data: bytes = b"",
        content: str = "",
        headers: Mapping[str, str] | None = None,
        chunk_size: int = 4,
    ) -> Iterator[None]:
        """Answer `stream()` calls inside the block the way a real transport would.

        For a 2xx status, `data` is written to the destination `chunk_size` bytes at a time and the response has no
        body. For any other status the response carries `content` and nothing is written.
        """

        async def stream(
            method: RequestMethod,
            url: str,
            destination: IDestination,
            headers: HTTPHeaderDict | None = None,
            body: object | str | bytes | None = None,
            request_timeout: Timeout | None = None,
        ) -> MockResponse:
            if status_code // 100 != 2:
                return MockResponse(status_code=status_code, content=content, headers=response_headers)
            for start in range(0, len(data), chunk_size):
                await destination.write_chunk(start, data[start : start + chunk_size])
            return MockResponse(status_code=status_code, body=b"", headers=response_headers)

        response_headers = headers
        with self._replaced(self.stream, side_effect=stream):
            yield

    def set_request_handler(self, handler: AbstractTestRequestHandler) -> None:
        """Route every `request()` call to `handler`."""
        self.request.side_effect = handler.request

    def _expected(
        self,
        method: RequestMethod,
        path: str,
        headers: Mapping[str, str] | None,
        post_params: list[tuple[str, str]] | None,
        body: object | str | bytes | None,
        request_timeout: Timeout | None,
    ) -> dict[str, Any]:
        return {
            "method": method,
            "url": self._url(path),
            "headers": TestHTTPHeaderDict(headers or {}),
            "post_params": post_params,
            "body": body,
            "request_timeout": request_timeout,
        }

    def assert_request_made(
        self,
        method: RequestMethod,
        path: str = "",
        headers: Mapping[str, str] | None = None,
        post_params: list[tuple[str, str]] | None = None,
        body: object | str | bytes | None = None,
        request_timeout: Timeout | None = None,
    ) -> None:
        """Check the arguments of the latest `request()` call.

        :param path: Relative to the base URL, or absolute.
        """
        self.request.assert_called_with(**self._expected(method, path, headers, post_params, body, request_timeout))

    def assert_any_request_made(
        self,
        method: RequestMethod,
        path: str = "",
        headers: Mapping[str, str] | None = None,
        post_params: list[tuple[str, str]] | None = None,
        body: object | str | bytes | None = None,
        request_timeout: Timeout | None = None,
    ) -> None:
        """Check that some `request()` call had these arguments."""
        self.request.assert_any_call(**self._expected(method, path, headers, post_params, body, request_timeout))

    def assert_stream_made(
        self,
        method: RequestMethod,
        path: str = "",
        headers: Mapping[str, str] | None = None,
        request_timeout: Timeout | None = None,
    ) -> None:
        """Check the arguments of the latest `stream()` call, whatever its destination."""
        expected = self._expected(method, path, headers, None, None, request_timeout)
        del expected["post_params"]
        self.stream.assert_called_with(destination=mock.ANY, **expected)

    def assert_n_requests_made(self, n: int) -> None:
        """Check the combined number of `request()` and `stream()` calls."""
        assert self.request.await_count + self.stream.await_count == n

    def assert_no_requests(self) -> None:
        self.request.assert_not_called()
        self.stream.assert_not_called()


class TestWithRestClient(unittest.IsolatedAsyncioTestCase):
    """Provides a `RestClient` whose session has been restored from a stored credential."""

    def setUp(self) -> None:
        self.transport = TestTransport(base_url=API_URL)
        self.config = ClientConfig(api_url=API_URL, content_url=CONTENT_URL, web_url=WEB_URL, client_id=CLIENT_ID)
        self.credential_store = MemoryCredentialStore(CREDENTIAL)
        connector = OAuthConnector(self.transport, CLIENT_ID, base_uri=API_URL, authorize_uri=WEB_URL)
        self.session = Session(connector, REDIRECT_URL, credential_store=self.credential_store)
        self.session.restore()
        self.client = RestClient(self.session, self.transport, self.config)

    def _get_expected_headers(self, headers: Mapping[str, str] | None) -> TestHTTPHeaderDict:
        return TestHTTPHeaderDict({"Authorization": f"Bearer {ACCESS_TOKEN}", **(headers or {})})

    def assert_request_made(
        self,
        method: RequestMethod,
        path: str = "",
        headers: Mapping[str, str] | None = None,
        post_params: list[tuple[str, str]] | None = None,
        body: object | str | bytes | None = None,
    ) -> None:
        """Check that the latest `request()` call was signed and had these arguments.

        :param headers: The expected headers, apart from `Authorization`.
        """
        self.transport.assert_request_made(
            method=method,
            path=path,
            headers=self._get_expected_headers(headers),
            post_params=post_params,
            body=body,
            request_timeout=self.config.request_timeout,
        )

    def assert_stream_made(self, method: RequestMethod, path: str, headers: Mapping[str, str] | None = None) -> None:
        """Check that the latest `stream()` call was signed and had these arguments."""
        self.transport.assert_stream_made(
            method=method,
            path=path,
            headers=self._get_expected_headers(headers),
            request_timeout=self.config.request_timeout,
        )

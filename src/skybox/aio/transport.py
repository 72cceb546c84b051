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
import json
import re
from types import TracebackType
from urllib.parse import urlencode

import aiohttp
from aiohttp.client_exceptions import ClientConnectorError, ClientError
from aiohttp.typedefs import StrOrURL

from skybox.common import HTTPHeaderDict, HTTPResponse, RequestMethod
from skybox.common.exceptions import InvalidArgument, TransportError
from skybox.common.interfaces import ITransport
from skybox.common.io import IDestination, ISource
from skybox.common.utils import BackoffIncremental, BackoffMethod, Retry
from skybox.logging import getLogger

from ._helpers import BodyFactory, Context, ReadResponse, Settings, buffer_response, iter_source, stream_response

__all__ = ["AioTransport"]

logger = getLogger("aio.transport")

_RE_JSON = re.compile(r"json", re.IGNORECASE)

DEFAULT_CHUNK_SIZE = 1024 * 1024

Timeout = int | float | tuple[int | float, int | float]


def _client_timeout(request_timeout: Timeout | None) -> aiohttp.ClientTimeout | None:
    match request_timeout:
        case int() | float():
            return aiohttp.ClientTimeout(total=request_timeout)
        case (sock_connect, sock_read):
            return aiohttp.ClientTimeout(sock_connect=sock_connect, sock_read=sock_read)
        case _:
            return None


def _form_body(content_type: str, fields: list[tuple[str, str | bytes]]) -> BodyFactory:
    if content_type == "multipart/form-data":
        return lambda: aiohttp.FormData(fields, quote_fields=False)
    encoded = urlencode(fields)
    return lambda: encoded


def _fixed_body(body: str | bytes | None) -> BodyFactory:
    return lambda: body


class AioTransport(ITransport):
    """`ITransport` on top of an `aiohttp.ClientSession`.

    Only connection failures are retried. Once a request has reached the service it is never sent again, since it may
    not be idempotent.
    """

    def __init__(
        self,
        user_agent: str,
        max_attempts: int = 3,
        backoff_method: BackoffMethod = BackoffIncremental(2),
        num_pools: int = 4,
        verify_ssl: bool = True,
        proxy: StrOrURL | None = None,
        close_grace_period_ms: int = 250,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
    ):
        """
        :param user_agent: Sent as `User-Agent` unless a request sets its own.
        :param max_attempts: How many times to try connecting before giving up with a `TransportError`.
        :param backoff_method: The delay between connection attempts.
        :param num_pools: The connection limit of the pool.
        :param verify_ssl: Whether to check server certificates. Only disable this against a local test server.
        :param proxy: An optional proxy for every request.
        :param close_grace_period_ms: How long to wait for SSL connections to shut down on close.
        :param chunk_size: Bytes per chunk for streamed uploads and downloads, which bounds the memory a transfer uses.
        """
        self._settings = Settings(
            user_agent=user_agent,
            num_pools=num_pools,
            verify_ssl=verify_ssl,
            retry=Retry(
                logger=logger,
                max_attempts=max_attempts,
                backoff_method=backoff_method,
                retry_on=ClientConnectorError,
            ),
            proxy=proxy,
            close_grace_period_ms=close_grace_period_ms,
            chunk_size=chunk_size,
        )
        self._context: Context | None = None
        self._lock = asyncio.Lock()
        self._holders = 0

    async def open(self) -> None:
        async with self._lock:
            if self._context is None:
                logger.debug("Starting aiohttp session.")
                self._context = Context(self._settings)
            self._holders += 1
            logger.debug(f"Transport opened, {self._holders} holder(s).")

    async def close(self) -> None:
        async with self._lock:
            self._holders -= 1
            logger.debug(f"Transport closed, {self._holders} holder(s) remaining.")
            assert self._holders >= 0, "close() was called more often than open()."
            if self._holders == 0:
                logger.debug("Closing aiohttp session.")
                context, self._context = self._context, None
                await context.close()

    async def __aenter__(self) -> AioTransport:
        await self.open()
        return self

    async def __aexit__(
        self, exc_type: type[Exception] | None, exc_val: Exception | None, exc_tb: TracebackType | None
    ) -> None:
        await self.close()

    async def _send(
        self,
        method: RequestMethod,
        url: str,
        headers: HTTPHeaderDict,
        request_timeout: Timeout | None,
        body_factory: BodyFactory,
        read: ReadResponse = buffer_response,
    ) -> HTTPResponse:
        async with self._lock:
            context = self._context
        if context is None:
            raise TransportError(
                "Cannot make a request before the transport has been opened, or after it has been closed."
            )

        try:
            return await context.send(str(method), url, headers, _client_timeout(request_timeout), body_factory, read)
        except (ClientError, asyncio.TimeoutError, TimeoutError) as e:
            raise TransportError(msg="Could not complete HTTP request", caused_by=e)

    def _with_user_agent(self, headers: HTTPHeaderDict | None) -> HTTPHeaderDict:
        headers = HTTPHeaderDict(headers or {})
        headers.setdefault("User-Agent", self._settings.user_agent)
        return headers

    async def _encode(
        self, headers: HTTPHeaderDict, post_params: list[tuple[str, str | bytes]] | None, body: object
    ) -> BodyFactory:
        content_type = headers.get("Content-Type")
        if content_type in ("application/x-www-form-urlencoded", "multipart/form-data"):
            return _form_body(content_type, post_params or [])
        if isinstance(body, (str, bytes)):
            # Already serialised, so any content type goes.
            return _fixed_body(body)
        if isinstance(body, ISource):
            if "Content-Length" not in headers:
                headers["Content-Length"] = str(await body.get_size())
            chunk_size = self._settings.chunk_size
            return lambda: iter_source(body, chunk_size)
        if content_type is None or _RE_JSON.search(content_type):
            return _fixed_body(json.dumps(body) if body else None)
        raise TransportError(
            msg=f"Cannot encode a {type(body).__name__} body as '{content_type}'. "
            "Please check that your arguments match the declared content type."
        )

    async def request(
        self,
        method: RequestMethod,
        url: str,
        headers: HTTPHeaderDict | None = None,
        post_params: list[tuple[str, str | bytes]] | None = None,
        body: object | str | bytes | None = None,
        request_timeout: Timeout | None = None,
    ) -> HTTPResponse:
        if post_params is not None and body is not None:
            raise InvalidArgument(msg="HTTP body and post parameters cannot be used at the same time.")

        headers = self._with_user_agent(headers)
        body_factory = await self._encode(headers, post_params, body)
        return await self._send(method, url, headers, request_timeout, body_factory)

    async def stream(
        self,
        method: RequestMethod,
        url: str,
        destination: IDestination,
        headers: HTTPHeaderDict | None = None,
        body: object | str | bytes | None = None,
        request_timeout: Timeout | None = None,
    ) -> HTTPResponse:
        if body is not None and not isinstance(body, (str, bytes)):
            body = json.dumps(body)
        return await self._send(
            method,
            url,
            self._with_user_agent(headers),
            request_timeout,
            _fixed_body(body),
            read=stream_response(destination, self._settings.chunk_size),
        )

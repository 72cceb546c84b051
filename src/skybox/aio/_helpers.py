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
from collections.abc import AsyncIterator, Awaitable, Callable
from dataclasses import dataclass
from typing import Any

import aiohttp
from aiohttp.typedefs import StrOrURL

from skybox.common import HTTPHeaderDict, HTTPResponse
from skybox.common.exceptions import RetryError, TransportError
from skybox.common.io import IDestination, ISource
from skybox.common.utils import Retry

__all__ = ["BodyFactory", "Context", "ReadResponse", "Settings", "buffer_response", "iter_source", "stream_response"]

ReadResponse = Callable[[aiohttp.ClientResponse], Awaitable[HTTPResponse]]

BodyFactory = Callable[[], Any]
"""Builds the `data` argument for one attempt. Streamed bodies can only be consumed once."""


@dataclass(frozen=True, kw_only=True)
class Settings:
    user_agent: str
    num_pools: int
    verify_ssl: bool
    retry: Retry
    """Decides which failed connection attempts are repeated."""

    proxy: StrOrURL | None
    close_grace_period_ms: int
    chunk_size: int
    """Bytes per chunk when streaming uploads and downloads."""


async def iter_source(source: ISource, chunk_size: int) -> AsyncIterator[bytes]:
    """Yield the contents of an upload source in chunks.

    :raise TransportError: If the source runs dry before its declared size.
    """
    size = await source.get_size()
    sent = 0
    while sent < size:
        chunk = await source.read_chunk(sent, min(chunk_size, size - sent))
        if not chunk:
            raise TransportError(f"Upload source ended after {sent} of {size} bytes")
        yield chunk
        sent += len(chunk)


def _convert(resp: aiohttp.ClientResponse, data: bytes) -> HTTPResponse:
    return HTTPResponse(status=resp.status, data=data, reason=resp.reason, headers=HTTPHeaderDict(resp.headers))


async def buffer_response(resp: aiohttp.ClientResponse) -> HTTPResponse:
    return _convert(resp, await resp.read())


def stream_response(destination: IDestination, chunk_size: int) -> ReadResponse:
    """Write a 2xx body to `destination`. Any other body is buffered so that it can be decoded as an error."""

    async def read(resp: aiohttp.ClientResponse) -> HTTPResponse:
        if resp.status // 100 != 2:
            return await buffer_response(resp)
        position = 0
        async for chunk in resp.content.iter_chunked(chunk_size):
            await destination.write_chunk(position, chunk)
            position += len(chunk)
        return _convert(resp, b"")

    return read


class Context:
    """Owns the aiohttp session for one open period of a transport."""

    def __init__(self, settings: Settings) -> None:
        connector = aiohttp.TCPConnector(ssl=None if settings.verify_ssl else False, limit=settings.num_pools)
        self._session: aiohttp.ClientSession | None = aiohttp.ClientSession(
            connector=connector, skip_auto_headers=["Accept", "Accept-Encoding"]
        )
        self._settings = settings

    async def close(self) -> None:
        session, self._session = self._session, None
        await session.close()
        # SSL connections need a moment to shut down cleanly.
        # https://docs.aiohttp.org/en/stable/client_advanced.html#graceful-shutdown
        await asyncio.sleep(self._settings.close_grace_period_ms / 1000)

    async def send(
        self,
        method: str,
        url: str,
        headers: HTTPHeaderDict,
        timeout: aiohttp.ClientTimeout | None,
        body_factory: BodyFactory,
        read: ReadResponse = buffer_response,
    ) -> HTTPResponse:
        """Send a request, repeating it while the retry policy allows.

        :raise TransportError: If the session is closed, or every attempt failed.
        """
        if self._session is None:
            raise TransportError("Cannot make a request after the transport has been closed.")

        try:
            async for attempt in self._settings.retry:
                with attempt.suppress_errors():
                    async with self._session.request(
                        allow_redirects=False,
                        method=method,
                        url=url,
                        headers=headers,
                        data=body_factory(),
                        timeout=timeout,
                        proxy=self._settings.proxy,
                    ) as resp:
                        return await read(resp)
        except RetryError as error:
            raise TransportError("Reached maximum number of retries", caused_by=error).with_traceback(
                error.__traceback__
            )

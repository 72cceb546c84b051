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

from types import TracebackType

from pure_interface import Interface

from .data import HTTPHeaderDict, HTTPResponse, RequestMethod
from .io.interfaces import IDestination

__all__ = [
    "ITransport",
]

Timeout = int | float | tuple[int | float, int | float]


class ITransport(Interface):
    """The HTTP layer that every API call goes through.

    Implementations keep a count of `open()` calls and release their connection pool only when `close()` has been
    called as many times, so that several clients can share one transport. Use it as an async context manager to pair
    the two calls.

    Neither `request()` nor `stream()` follows redirects. To abort a call in progress, cancel the task awaiting it.
    """

    async def open(self) -> None:
        """Acquire connection resources, or bump the open count if they are already held."""
        ...  # pragma: no cover

    async def close(self) -> None:
        """Drop one open count, releasing connection resources when it reaches zero."""
        ...  # pragma: no cover

    async def __aenter__(self) -> ITransport: ...

    async def __aexit__(
        self, exc_type: type[Exception] | None, exc_val: Exception | None, exc_tb: TracebackType | None
    ) -> None: ...

    async def request(
        self,
        method: RequestMethod,
        url: str,
        headers: HTTPHeaderDict | None = None,
        post_params: list[tuple[str, str | bytes]] | None = None,
        body: object | str | bytes | None = None,
        request_timeout: Timeout | None = None,
    ) -> HTTPResponse:
        """Perform a call and return the response with its body read into memory.

        :param method: The HTTP verb.
        :param url: The absolute URL to call.
        :param headers: Headers to send.
        :param post_params: Form fields, encoded as urlencoded or multipart according to the `Content-Type` header.
        :param body: Raw body. Strings and bytes are sent as-is, an `ISource` is uploaded chunk by chunk, and any other
            object is serialised as JSON.
        :param request_timeout: Either a total timeout in seconds or a `(connect, read)` pair.

        :return: The response.

        :raise InvalidArgument: If both `post_params` and `body` are given.
        :raise TransportError: If the call could not be completed.
        """
        ...  # pragma: no cover

    async def stream(
        self,
        method: RequestMethod,
        url: str,
        destination: IDestination,
        headers: HTTPHeaderDict | None = None,
        body: object | str | bytes | None = None,
        request_timeout: Timeout | None = None,
    ) -> HTTPResponse:
        """Perform a call and write a successful response body to `destination` as it arrives.

        For a 2xx status the returned response carries no `data`. Other responses are read into memory, so that the
        caller can decode the error they describe, and `destination` is left untouched.

        :param method: The HTTP verb.
        :param url: The absolute URL to call.
        :param destination: Where a successful body is written.
        :param headers: Headers to send.
        :param body: Raw body, as for `request()`.
        :param request_timeout: Either a total timeout in seconds or a `(connect, read)` pair.

        :return: The response.

        :raise TransportError: If the call could not be completed.
        """
        ...  # pragma: no cover

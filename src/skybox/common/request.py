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
import enum
import itertools
import threading
from collections.abc import Callable, Generator, Mapping
from dataclasses import dataclass
from typing import Any, Generic, TypeVar
from uuid import UUID, uuid4

from skybox import logging

from .data import HTTPHeaderDict, HTTPResponse, RequestMethod
from .exceptions import (
    AlreadyDispatched,
    Cancelled,
    MalformedResponse,
    NetworkFailure,
    NotAuthenticated,
    ServiceRejected,
    SkyboxClientException,
    TransportError,
)
from .interfaces import ITransport
from .io.interfaces import IDestination

logger = logging.getLogger("request")

__all__ = [
    "Request",
    "RequestState",
    "SignedRequest",
]

T = TypeVar("T")

RequestTimeout = int | float | tuple[int | float, int | float] | None

# Shared by every request in the process, so that dispatch order can be reconstructed from logs.
_SEQUENCE = itertools.count(1)


class RequestState(str, enum.Enum):
    """The lifecycle state of a request."""

    PENDING = "pending"
    """The request has been created but not dispatched."""

    IN_FLIGHT = "in-flight"
    """The request has been handed to the transport."""

    COMPLETED = "completed"
    """The response was parsed into a result."""

    FAILED = "failed"
    """The request failed with an error."""

    CANCELLED = "cancelled"
    """The request was cancelled by the caller."""

    @property
    def terminal(self) -> bool:
        """Whether the request can no longer change state."""
        return self in (RequestState.COMPLETED, RequestState.FAILED, RequestState.CANCELLED)

    def __str__(self) -> str:
        return self.value


@dataclass(frozen=True, kw_only=True)
class SignedRequest:
    """The HTTP message for a request, including its authentication headers."""

    method: RequestMethod
    url: str
    headers: HTTPHeaderDict
    post_params: list[tuple[str, str | bytes]] | None = None
    body: object | str | bytes | None = None
    request_timeout: RequestTimeout = None


class Request(Generic[T]):
    """One outstanding network operation.

    A request is created in the `PENDING` state, signed by the session, and then dispatched to a transport. It ends in
    exactly one terminal state, and its done callbacks are invoked exactly once, with the request itself, when that
    state is reached:

    - `COMPLETED`, when the response was parsed into a result;
    - `FAILED`, when the transport failed (`NetworkFailure`), the service rejected the request (`ServiceRejected`), or
      the response could not be parsed (`MalformedResponse`);
    - `CANCELLED`, when the caller cancelled the request first (`Cancelled`).

    A notification that arrives after the request reached a terminal state is ignored. This holds even when
    cancellation races with delivery from another thread.

    Requests are awaitable::

        metadata = await request
    """

    def __init__(
        self,
        method: RequestMethod,
        url: str,
        parser: Callable[[HTTPResponse], T],
        *,
        description: str | None = None,
        headers: Mapping[str, str] | None = None,
        post_params: list[tuple[str, str | bytes]] | None = None,
        body: object | str | bytes | None = None,
        destination: IDestination | None = None,
        request_timeout: RequestTimeout = None,
    ) -> None:
        """
        :param method: HTTP request method.
        :param url: The fully encoded request URL.
        :param parser: Converts the raw response into the result, or raises an error.
        :param description: A short description of the operation, for logging.
        :param headers: Request headers, not including authentication headers.
        :param post_params: Request form parameters.
        :param body: Request body.
        :param destination: If provided, a successful response body is streamed into this destination, rather than
            buffered in memory.
        :param request_timeout: Timeout setting for this request.
        """
        self._method = method
        self._url = url
        self._parser = parser
        self._description = description or f"{method} {url.split('?', 1)[0]}"
        self._headers = HTTPHeaderDict(headers)
        self._post_params = post_params
        self._body = body
        self._destination = destination
        self._request_timeout = request_timeout

        self._handle = uuid4()
        self._lock = threading.Lock()
        self._state = RequestState.PENDING
        self._signed: SignedRequest | None = None
        self._sequence: int | None = None
        self._task: asyncio.Task | None = None
        self._result: T | None = None
        self._error: SkyboxClientException | None = None
        self._callbacks: list[Callable[[Request[T]], Any]] = []

    def __repr__(self) -> str:
        sequence = "" if self._sequence is None else f"#{self._sequence} "
        return f"<Request {sequence}{self._description} ({self._state})>"

    @property
    def handle(self) -> UUID:
        """A caller-visible identifier for this request."""
        return self._handle

    @property
    def description(self) -> str:
        return self._description

    @property
    def method(self) -> RequestMethod:
        return self._method

    @property
    def url(self) -> str:
        return self._url

    @property
    def state(self) -> RequestState:
        """The current lifecycle state."""
        return self._state

    @property
    def sequence(self) -> int | None:
        """The dispatch sequence number, or None if the request has not been dispatched."""
        return self._sequence

    @property
    def signed(self) -> SignedRequest | None:
        """The signed message, or None if the request has not been signed."""
        return self._signed

    @property
    def done(self) -> bool:
        """Whether the request has reached a terminal state."""
        return self._state.terminal

    @property
    def succeeded(self) -> bool:
        return self._state is RequestState.COMPLETED

    @property
    def cancelled(self) -> bool:
        return self._state is RequestState.CANCELLED

    def sign(self, auth_headers: Mapping[str, str]) -> SignedRequest:
        """Attach authentication headers to the request.

        Signing again before dispatch replaces the previous signature.

        :param auth_headers: The headers that authenticate the request.

        :return: The signed message that will be dispatched.

        :raise AlreadyDispatched: If the request is no longer pending.
        """
        with self._lock:
            if self._state is not RequestState.PENDING:
                raise AlreadyDispatched(f"{self!r} cannot be signed, it is already {self._state.value}.")
            headers = self._headers.copy()
            headers.update(auth_headers)
            self._signed = SignedRequest(
                method=self._method,
                url=self._url,
                headers=headers,
                post_params=self._post_params,
                body=self._body,
                request_timeout=self._request_timeout,
            )
            return self._signed

    def dispatch(self, transport: ITransport) -> None:
        """Hand the signed request to a transport.

        The request is sent by a new task on the running event loop, so this method returns immediately.

        :param transport: The transport to send the request with.

        :raise AlreadyDispatched: If the request is no longer pending.
        :raise NotAuthenticated: If the request has not been signed.
        :raise RuntimeError: If there is no running event loop.
        """
        with self._lock:
            if self._state is not RequestState.PENDING:
                raise AlreadyDispatched(f"{self!r} cannot be dispatched, it is already {self._state.value}.")
            if self._signed is None:
                raise NotAuthenticated(f"{self!r} must be signed before it is dispatched.")
            loop = asyncio.get_running_loop()
            self._sequence = next(_SEQUENCE)
            self._state = RequestState.IN_FLIGHT
            self._task = loop.create_task(self._send(transport, self._signed), name=f"skybox-request-{self._sequence}")
        logger.debug(f"Dispatched {self!r}")

    async def _send(self, transport: ITransport, signed: SignedRequest) -> None:
        try:
            await transport.open()
            try:
                if self._destination is None:
                    response = await transport.request(
                        method=signed.method,
                        url=signed.url,
                        headers=signed.headers,
                        post_params=signed.post_params,
                        body=signed.body,
                        request_timeout=signed.request_timeout,
                    )
                else:
                    response = await transport.stream(
                        method=signed.method,
                        url=signed.url,
                        destination=self._destination,
                        headers=signed.headers,
                        body=signed.body,
                        request_timeout=signed.request_timeout,
                    )
            finally:
                await transport.close()
        except asyncio.CancelledError:
            self.cancel()
            raise
        except Exception as exc:
            self.on_failure(exc)
        else:
            self.on_complete(response)

    def on_complete(self, response: HTTPResponse) -> None:
        """Deliver the raw response for this request.

        The response is parsed into the result. An error status code fails the request with the corresponding
        `ServiceRejected` error, and any problem parsing the response fails it with `MalformedResponse`.

        :param response: The raw response.
        """
        if self.done:
            logger.debug(f"Ignoring response for {self!r}")
            return

        try:
            result = self._parser(response)
        except (ServiceRejected, MalformedResponse) as error:
            self._finish(RequestState.FAILED, error=error)
        except Exception as exc:
            self._finish(RequestState.FAILED, error=MalformedResponse("Could not parse response", caused_by=exc))
        else:
            self._finish(RequestState.COMPLETED, result=result)

    def on_failure(self, error: Exception) -> None:
        """Deliver a transport failure for this request.

        :param error: The error raised by the transport. Transport errors are wrapped in `NetworkFailure`.
        """
        if isinstance(error, NetworkFailure) or (
            isinstance(error, SkyboxClientException) and not isinstance(error, TransportError)
        ):
            failure = error
        else:
            failure = NetworkFailure("Request failed", caused_by=error)
        self._finish(RequestState.FAILED, error=failure)

    def cancel(self) -> bool:
        """Cancel the request.

        If the request has not reached a terminal state, it is cancelled and its done callbacks are invoked with a
        `Cancelled` error. The network operation is aborted on a best-effort basis.

        :return: True if the request was cancelled by this call, False if it had already reached a terminal state.
        """
        if not self._finish(RequestState.CANCELLED, error=Cancelled(f"{self._description} was cancelled.")):
            return False

        if (task := self._task) is not None and not task.done():
            loop = task.get_loop()
            try:
                running = asyncio.get_running_loop()
            except RuntimeError:
                running = None
            if running is loop:
                task.cancel()
            else:
                loop.call_soon_threadsafe(task.cancel)
        return True

    def _finish(self, state: RequestState, result: T | None = None, error: SkyboxClientException | None = None) -> bool:
        with self._lock:
            if self._state.terminal:
                logger.debug(f"{self!r} is already {self._state}, ignoring {state}")
                return False
            self._state = state
            self._result = result
            self._error = error
            callbacks, self._callbacks = self._callbacks, []

        if error is None:
            logger.debug(f"{self!r} completed")
        else:
            logger.debug(f"{self!r} {state}: {error}")

        for callback in callbacks:
            self._invoke(callback)
        return True

    def _invoke(self, callback: Callable[[Request[T]], Any]) -> None:
        try:
            callback(self)
        except Exception:
            logger.exception(f"Exception in done callback for {self!r}")

    def add_done_callback(self, callback: Callable[[Request[T]], Any]) -> None:
        """Register a callback to be invoked with this request when it reaches a terminal state.

        Callbacks are invoked in registration order. If the request is already done, the callback is invoked
        immediately.

        :param callback: The callback.
        """
        with self._lock:
            if not self._state.terminal:
                self._callbacks.append(callback)
                return
        self._invoke(callback)

    def result(self) -> T:
        """Get the result of the request.

        :return: The parsed result.

        :raise asyncio.InvalidStateError: If the request is not done.
        :raise SkyboxClientException: The error that the request ended with.
        """
        if not self.done:
            raise asyncio.InvalidStateError(f"{self!r} is not done.")
        if self._error is not None:
            raise self._error
        return self._result

    def exception(self) -> SkyboxClientException | None:
        """Get the error that the request ended with, or None if it succeeded.

        :raise asyncio.InvalidStateError: If the request is not done.
        """
        if not self.done:
            raise asyncio.InvalidStateError(f"{self!r} is not done.")
        return self._error

    async def wait(self) -> T:
        """Wait for the request to reach a terminal state.

        :return: The parsed result.

        :raise SkyboxClientException: The error that the request ended with.
        """
        if not self.done:
            loop = asyncio.get_running_loop()
            future = loop.create_future()

            def set_done() -> None:
                if not future.done():
                    future.set_result(None)

            self.add_done_callback(lambda _: loop.call_soon_threadsafe(set_done))
            await future
        return self.result()

    def __await__(self) -> Generator[Any, None, T]:
        return self.wait().__await__()

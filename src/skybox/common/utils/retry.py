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
import contextlib
import logging
from abc import ABC, abstractmethod
from collections.abc import AsyncIterator, Callable, Iterator

from ..exceptions import RetryError

__all__ = [
    "BackoffExponential",
    "BackoffIncremental",
    "BackoffLinear",
    "BackoffMethod",
    "Retry",
    "RetryHandler",
]

_ExcTypes = type[Exception] | tuple[type[Exception], ...]


class BackoffMethod(ABC):
    """How long to wait between attempts. Instances hold no per-operation state and can be shared."""

    def __init__(self, backoff_factor: int | float, max_delay: int | float = -1) -> None:
        """
        :param backoff_factor: Scales every delay.
        :param max_delay: Upper bound on a single delay, or a negative number for no bound.
        """
        self._factor = backoff_factor
        self._cap = max_delay

    @abstractmethod
    def _delay(self, failures: int) -> int | float: ...

    def get_backoff_time(self, attempt_number: int) -> int | float:
        """The delay in seconds after `attempt_number` failed attempts."""
        delay = self._delay(attempt_number)
        if self._cap >= 0:
            delay = min(delay, self._cap)
        return delay


class BackoffLinear(BackoffMethod):
    """The same delay every time."""

    def _delay(self, failures: int) -> int | float:
        return self._factor


class BackoffIncremental(BackoffMethod):
    def _delay(self, failures: int) -> int | float:
        return self._factor * failures


class BackoffExponential(BackoffMethod):
    def _delay(self, failures: int) -> int | float:
        return self._factor * 2**failures


class RetryHandler:
    """One attempt of a retried operation.

    An attempt that records no error is treated as a success, and ends the iteration.
    """

    def __init__(
        self, attempt_number: int, retry_on: _ExcTypes, on_failure: Callable[[RetryHandler, Exception], None]
    ) -> None:
        self._number = attempt_number
        self._retry_on = retry_on
        self._on_failure = on_failure
        self._error: Exception | None = None

    @contextlib.contextmanager
    def suppress_errors(self, excs: _ExcTypes | None = None) -> Iterator[None]:
        """Record matching errors as the failure of this attempt instead of raising them.

        :param excs: The exception types to catch, instead of the ones the `Retry` was created with.
        """
        try:
            yield
        except Exception as exc:
            if not isinstance(exc, excs or self._retry_on):
                raise
            self.set_exception(exc)

    def set_exception(self, exc: Exception) -> None:
        """Mark this attempt as failed.

        :raise RetryError: If no attempts are left.
        """
        self._error = exc
        self._on_failure(self, exc)

    @property
    def exception(self) -> Exception | None:
        return self._error

    @property
    def succeeded(self) -> bool:
        return self._error is None

    @property
    def failed(self) -> bool:
        return not self.succeeded

    @property
    def attempt_number(self) -> int:
        return self._number

    def __str__(self) -> str:
        return f"Attempt #{self._number}"


class Retry:
    """Run a block of code until it succeeds or runs out of attempts.

    The object only holds configuration, so one instance can drive any number of operations::

        retry = Retry(logger=logging.getLogger(__name__), max_attempts=3, backoff_method=BackoffLinear(1))
        async for attempt in retry:
            with attempt.suppress_errors():
                ...

    When the last attempt fails, a `RetryError` carrying every recorded error is raised.
    """

    def __init__(
        self,
        logger: logging.Logger,
        max_attempts: int = 3,
        backoff_method: BackoffMethod = BackoffExponential(backoff_factor=2),
        retry_on: _ExcTypes = Exception,
    ) -> None:
        """
        :param logger: Receives a warning for each failed attempt.
        :param max_attempts: The total number of attempts, at least one.
        :param backoff_method: The delay between attempts.
        :param retry_on: The exception types that `suppress_errors()` catches by default.
        """
        if max_attempts < 1:
            raise ValueError("max_attempts must be greater than 0")
        self._logger = logger
        self._max_attempts = max_attempts
        self._backoff = backoff_method
        self._retry_on = retry_on

    def __aiter__(self) -> AsyncIterator[RetryHandler]:
        return self._attempts()

    async def _attempts(self) -> AsyncIterator[RetryHandler]:
        errors: list[Exception] = []

        def record(attempt: RetryHandler, error: Exception) -> None:
            self._logger.warning(f"{attempt} failed: {error}")
            errors.append(error)
            if attempt.attempt_number >= self._max_attempts:
                raise RetryError("Retry failed", errors)

        for number in range(1, self._max_attempts + 1):
            if number > 1:
                delay = self._backoff.get_backoff_time(number - 1)
                self._logger.debug(f"Waiting {delay}s")
                await asyncio.sleep(delay)
            attempt = RetryHandler(number, self._retry_on, record)
            yield attempt
            if attempt.succeeded:
                return

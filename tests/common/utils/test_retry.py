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


import itertools
import logging
import unittest
from unittest import mock

from skybox.common.exceptions import RetryError
from skybox.common.utils import BackoffExponential, BackoffIncremental, BackoffLinear, Retry

logger = logging.getLogger(__name__)


class _TestException1(Exception): ...


class _TestException2(Exception): ...


class _TestException3(Exception): ...


class TestBackoffMethods(unittest.TestCase):
    def test_exponential_backoff(self) -> None:
        backoff = BackoffExponential(backoff_factor=3)
        self.assertEqual([6, 12, 24], [backoff.get_backoff_time(n) for n in range(1, 4)])

    def test_incremental_backoff(self) -> None:
        backoff = BackoffIncremental(backoff_factor=2)
        self.assertEqual([2, 4, 6], [backoff.get_backoff_time(n) for n in range(1, 4)])

    def test_linear_backoff(self) -> None:
        backoff = BackoffLinear(backoff_factor=2)
        self.assertEqual([2, 2, 2], [backoff.get_backoff_time(n) for n in range(1, 4)])

    def test_max_delay(self) -> None:
        backoff = BackoffExponential(backoff_factor=1, max_delay=4)
        self.assertEqual(2, backoff.get_backoff_time(1))
        self.assertEqual(4, backoff.get_backoff_time(10))


class TestRetry(unittest.IsolatedAsyncioTestCase):
    def setUp(self) -> None:
        self.retry = Retry(logger, max_attempts=5, backoff_method=BackoffIncremental(1))

    def test_invalid_max_attempts(self) -> None:
        with self.assertRaises(ValueError):
            Retry(logger, max_attempts=0)

    @mock.patch("asyncio.sleep", spec_set=True)
    async def test_successful_attempt(self, mock_sleep: mock.MagicMock) -> None:
        attempts = 0
        async for _ in self.retry:
            attempts += 1
        self.assertEqual(1, attempts)
        mock_sleep.assert_not_called()

    @mock.patch("asyncio.sleep", spec_set=True)
    async def test_succeeds_after_failures(self, mock_sleep: mock.MagicMock) -> None:
        errors = iter([_TestException1("Attempt 1"), _TestException1("Attempt 2")])
        async for handler in self.retry:
            with handler.suppress_errors():
                if (error := next(errors, None)) is not None:
                    raise error
        self.assertEqual(3, handler.attempt_number)
        mock_sleep.assert_has_calls([mock.call(1), mock.call(2)])

    @mock.patch("asyncio.sleep", spec_set=True)
    async def test_max_attempts(self, mock_sleep: mock.MagicMock) -> None:
        with self.assertRaises(RetryError) as cm:
            async for handler in self.retry:
                with handler.suppress_errors():
                    raise Exception("Test exception")

        self.assertEqual(5, len(cm.exception.exceptions))
        self.assertEqual(4, mock_sleep.call_count)  # 5 attempts == 4 sleeps.
        mock_sleep.assert_has_calls([mock.call(1), mock.call(2), mock.call(3), mock.call(4)])

    @mock.patch("asyncio.sleep", spec_set=True)
    async def test_retry_on(self, mock_sleep: mock.MagicMock) -> None:
        """Test that only the configured exception types are retried by default."""
        retry = Retry(logger, max_attempts=2, backoff_method=BackoffLinear(1), retry_on=_TestException1)
        with self.assertRaises(RetryError):
            async for handler in retry:
                with handler.suppress_errors():
                    raise _TestException1("Expected exception")

        with self.assertRaises(_TestException2):
            async for handler in retry:
                with handler.suppress_errors():
                    raise _TestException2("Unexpected exception")

        mock_sleep.assert_called_once_with(1)

    @mock.patch("asyncio.sleep", spec_set=True)
    async def test_suppress_specific_errors(self, mock_sleep: mock.MagicMock) -> None:
        errors = itertools.cycle([_TestException1("Expected exception 1"), _TestException2("Expected exception 2")])
        with self.assertRaises(RetryError):
            async for handler in self.retry:
                with handler.suppress_errors((_TestException1, _TestException2)):
                    raise next(errors)

        self.assertEqual(4, mock_sleep.call_count)

    @mock.patch("asyncio.sleep", spec_set=True)
    async def test_suppress_specific_error_unexpected_not_suppressed(self, mock_sleep: mock.MagicMock) -> None:
        with self.assertRaises(_TestException3):
            async for handler in self.retry:
                with handler.suppress_errors(_TestException1):
                    raise _TestException3("Unexpected exception")

        mock_sleep.assert_not_called()

    @mock.patch("asyncio.sleep", spec_set=True)
    async def test_set_exception(self, mock_sleep: mock.MagicMock) -> None:
        """Test that failures can be recorded without raising them."""
        with self.assertRaises(RetryError):
            async for handler in self.retry:
                self.assertTrue(handler.succeeded)
                error = _TestException1(str(handler))
                handler.set_exception(error)
                self.assertIs(error, handler.exception)
                self.assertTrue(handler.failed)

        self.assertEqual(4, mock_sleep.call_count)

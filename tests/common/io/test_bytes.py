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
from io import BytesIO
from unittest import mock

from parameterized import parameterized

from skybox.common.io import BytesDestination, BytesSource, IDestination, ISource

TEST_DATA = b"The quick brown fox jumps over the lazy dog"


class TestBytesDestination(unittest.IsolatedAsyncioTestCase):
    def setUp(self) -> None:
        self.buffer = BytesIO()
        self.destination = BytesDestination(self.buffer)
        self.assertIsInstance(self.destination, IDestination)

    @parameterized.expand(
        [
            ("next byte", 0, b"\xaa", b"\xaa"),
            ("skip bytes", 3, b"\xaa", b"\x00\x00\x00\xaa"),
        ]
    )
    async def test_write_chunk(self, _name: str, offset: int, data: bytes, expected_result: bytes) -> None:
        await self.destination.write_chunk(offset, data)
        self.assertEqual(expected_result, self.buffer.getvalue())
        self.assertEqual(len(expected_result), self.destination.bytes_written)

    async def test_write_chunks_out_of_order(self) -> None:
        await self.destination.write_chunk(4, b"4567")
        await self.destination.write_chunk(0, b"0123")
        self.assertEqual(b"01234567", self.buffer.getvalue())
        self.assertEqual(8, self.destination.bytes_written)


class TestBytesSource(unittest.IsolatedAsyncioTestCase):
    def setUp(self) -> None:
        self.buffer = BytesIO(TEST_DATA)
        self.source = BytesSource(self.buffer, len(TEST_DATA))
        self.assertIsInstance(self.source, ISource)

    async def test_get_size(self) -> None:
        self.assertEqual(len(TEST_DATA), await self.source.get_size())

    @parameterized.expand(
        [
            ("from start", 0, 3),
            ("from middle", 4, 5),
            ("past end", 40, 10),
        ]
    )
    async def test_read_chunk(self, _label: str, offset: int, length: int) -> None:
        self.assertEqual(TEST_DATA[offset : offset + length], await self.source.read_chunk(offset, length))

    @parameterized.expand(
        [
            ("with buffer at start", 0),
            ("with buffer at end", len(TEST_DATA)),
            ("with buffer in middle", 2),
        ]
    )
    async def test_get_size_uninitialized(self, _label: str, offset_start: int) -> None:
        self.buffer.seek(offset_start)

        # Mock the buffer to ensure that it is not being used prematurely.
        mock_buffer = mock.Mock(wraps=self.buffer)
        source = BytesSource(mock_buffer)
        mock_buffer.seek.assert_not_called()

        self.assertEqual(len(TEST_DATA), await source.get_size())
        mock_buffer.seek.assert_called_once_with(0, 2)

        # Ensure that the size is cached
        mock_buffer.seek.reset_mock()
        self.assertEqual(len(TEST_DATA), await source.get_size())
        mock_buffer.seek.assert_not_called()

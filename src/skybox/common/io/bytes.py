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


import io
from collections.abc import Iterator
from contextlib import contextmanager
from threading import Lock
from typing import BinaryIO

from skybox import logging

from .interfaces import IDestination, ISource

logger = logging.getLogger("io.bytes")

__all__ = [
    "BytesDestination",
    "BytesSource",
]


class _Buffer:
    """Serialises positioned access to a seekable binary buffer."""

    def __init__(self, backend: BinaryIO) -> None:
        self._backend = backend
        self._lock = Lock()

    @contextmanager
    def _positioned(self, offset: int) -> Iterator[BinaryIO]:
        with self._lock:
            self._backend.seek(offset)
            yield self._backend


class BytesDestination(_Buffer, IDestination):
    """Writes downloaded chunks into a binary buffer, usually an open file.

    Errors raised by the buffer propagate to the caller.
    """

    def __init__(self, backend: BinaryIO) -> None:
        super().__init__(backend)
        self._high_water = 0

    @property
    def bytes_written(self) -> int:
        """One past the furthest byte written so far."""
        return self._high_water

    async def write_chunk(self, offset: int, data: bytes) -> None:
        logger.debug(f"Writing {len(data)} bytes at offset {offset}")
        with self._positioned(offset) as buffer:
            buffer.write(data)
        self._high_water = max(self._high_water, offset + len(data))


class BytesSource(_Buffer, ISource):
    """Reads upload chunks from a binary buffer, usually an open file."""

    def __init__(self, backend: BinaryIO, size: int | None = None) -> None:
        """
        :param backend: A readable, seekable binary buffer.
        :param size: The number of bytes to upload. When omitted, the buffer is measured on the first call to
            `get_size()` and the result is remembered.
        """
        super().__init__(backend)
        self._size = size

    async def get_size(self) -> int:
        if self._size is None:
            with self._lock:
                # Every read seeks first, so the position is left at the end.
                self._size = self._backend.seek(0, io.SEEK_END)
        return self._size

    async def read_chunk(self, offset: int, length: int) -> bytes:
        logger.debug(f"Reading {length} bytes at offset {offset}")
        with self._positioned(offset) as buffer:
            return buffer.read(length)

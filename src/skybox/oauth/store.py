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

import os
import tempfile
from pathlib import Path
from threading import Lock

from pydantic import ValidationError

from skybox import logging

from .data import Credential
from .exceptions import OAuthError
from .interfaces import ICredentialStore

logger = logging.getLogger("oauth.store")

__all__ = [
    "FileCredentialStore",
    "MemoryCredentialStore",
]


class MemoryCredentialStore(ICredentialStore):
    """A credential store that keeps the credential in memory, for the lifetime of the process."""

    def __init__(self, credential: Credential | None = None) -> None:
        self._credential = credential

    def load(self) -> Credential | None:
        return self._credential

    def save(self, credential: Credential) -> None:
        self._credential = credential

    def clear(self) -> None:
        self._credential = None


class FileCredentialStore(ICredentialStore):
    """A credential store that keeps the credential in a JSON file.

    The file is replaced atomically on each save, and is only readable by the current user. A file that cannot be
    parsed is treated as if no credential was stored.
    """

    FILE_MODE = 0o600

    def __init__(self, path: str | os.PathLike) -> None:
        """
        :param path: The path of the credential file. Parent directories are created when the credential is saved.
        """
        self._path = Path(path)
        self._lock = Lock()

    @property
    def path(self) -> Path:
        return self._path

    def load(self) -> Credential | None:
        with self._lock:
            try:
                raw = self._path.read_bytes()
            except FileNotFoundError:
                return None
            except OSError:
                logger.error(f"Could not read credential file {self._path}", exc_info=True)
                return None

        try:
            return Credential.model_validate_json(raw.decode("utf-8"))
        except (UnicodeDecodeError, ValidationError):
            logger.error(f"Ignoring corrupt credential file {self._path}", exc_info=True)
            return None

    def save(self, credential: Credential) -> None:
        content = credential.model_dump_json()
        with self._lock:
            try:
                self._path.parent.mkdir(parents=True, exist_ok=True)
                fd, tmp_name = tempfile.mkstemp(prefix=f".{self._path.name}.", dir=self._path.parent)
                try:
                    os.chmod(tmp_name, self.FILE_MODE)
                    with os.fdopen(fd, "w", encoding="utf-8") as tmp_file:
                        tmp_file.write(content)
                        tmp_file.flush()
                        os.fsync(tmp_file.fileno())
                    os.replace(tmp_name, self._path)
                except BaseException:
                    Path(tmp_name).unlink(missing_ok=True)
                    raise
            except OSError as e:
                raise OAuthError(f"Could not save credential to {self._path}") from e
        logger.debug(f"Credential saved to {self._path}")

    def clear(self) -> None:
        with self._lock:
            try:
                self._path.unlink(missing_ok=True)
            except OSError as e:
                raise OAuthError(f"Could not remove credential file {self._path}") from e
        logger.debug(f"Credential file {self._path} removed")

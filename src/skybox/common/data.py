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

import enum
from collections.abc import Iterable, Iterator, Mapping, MutableMapping
from dataclasses import dataclass, field

__all__ = [
    "EmptyResponse",
    "HTTPHeaderDict",
    "HTTPResponse",
    "RequestMethod",
    "Root",
]


class RequestMethod(str, enum.Enum):
    """The HTTP verbs used by the storage API."""

    GET = "GET"
    HEAD = "HEAD"
    POST = "POST"
    PUT = "PUT"
    DELETE = "DELETE"

    def __str__(self) -> str:
        return self.value


class Root(str, enum.Enum):
    """The part of the user's storage that an application has been granted access to."""

    FULL = "dropbox"
    """The application can access every file in the user's storage."""

    APP_FOLDER = "sandbox"
    """The application can only access its own folder."""

    def __str__(self) -> str:
        return self.value


_SENSITIVE = frozenset({"Authorization", "Proxy-Authorization", "Cookie", "Set-Cookie"})
_NEVER_JOINED = "Set-Cookie"

HeaderSource = Mapping[str, str] | Iterable[tuple[str, str]]


class HTTPHeaderDict(MutableMapping[str, str]):
    """Header names are matched without regard to case and are stored in title case.

    Assigning a header that is already present appends the new value after a comma (RFC 7230 section 3.2.2), with
    the exception of `Set-Cookie`, which is replaced. Credentials are masked in the repr.
    """

    def __init__(self, seq: HeaderSource | None = None, **kwargs: str) -> None:
        self._fields: dict[str, str] = {}
        self.update(seq, **kwargs)

    def update(self, seq: HeaderSource | None = None, **kwargs: str) -> None:
        pairs = seq.items() if isinstance(seq, Mapping) else (seq or ())
        for name, value in [*pairs, *kwargs.items()]:
            self[name] = value

    def __setitem__(self, key: str, value: str) -> None:
        name = key.title()
        previous = self._fields.get(name)
        if previous is None or name == _NEVER_JOINED:
            self._fields[name] = value
        else:
            self._fields[name] = f"{previous},{value}"

    def __getitem__(self, key: str) -> str:
        return self._fields[key.title()]

    def __delitem__(self, key: str) -> None:
        del self._fields[key.title()]

    def __contains__(self, key: object) -> bool:
        return isinstance(key, str) and key.title() in self._fields

    def __iter__(self) -> Iterator[str]:
        return iter(self._fields)

    def __len__(self) -> int:
        return len(self._fields)

    def __repr__(self) -> str:
        masked = {name: "*****" if name in _SENSITIVE else value for name, value in self._fields.items()}
        return f"{type(self).__name__}({masked!r})"

    def copy(self) -> HTTPHeaderDict:
        duplicate = type(self)()
        duplicate._fields = dict(self._fields)
        return duplicate


@dataclass(frozen=True, kw_only=True)
class EmptyResponse:
    """A response whose body is not needed, such as a redirect or a `304 Not Modified`."""

    status: int
    reason: str | None = None
    headers: HTTPHeaderDict = field(default_factory=HTTPHeaderDict)

    def getheaders(self) -> HTTPHeaderDict:
        return self.headers.copy()

    def getheader(self, key: str, default: str | None = None) -> str | None:
        return self.headers.get(key, default)


@dataclass(frozen=True, kw_only=True)
class HTTPResponse(EmptyResponse):
    data: bytes
    """The response body. Empty when a successful body was written to a download destination instead."""

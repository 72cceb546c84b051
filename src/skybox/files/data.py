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
from datetime import datetime, timezone
from pathlib import PurePosixPath
from typing import Annotated, Optional

from dateutil.parser import parse
from pydantic import BaseModel, BeforeValidator, ConfigDict, field_validator, model_validator

__all__ = [
    "AccountInfo",
    "Link",
    "Metadata",
    "Quota",
    "ThumbnailFormat",
    "ThumbnailSize",
]


def _parse_timestamp(value: object) -> object:
    """Parse an RFC 2822 timestamp, such as `Tue, 19 Jul 2011 21:55:38 +0000`.

    Timestamps without a timezone are assumed to be in UTC.
    """
    if not isinstance(value, str):
        return value
    timestamp = parse(value)
    if timestamp.tzinfo is None:
        timestamp = timestamp.replace(tzinfo=timezone.utc)
    return timestamp


Timestamp = Annotated[datetime, BeforeValidator(_parse_timestamp)]


class _Model(BaseModel):
    model_config = ConfigDict(frozen=True)


class Metadata(_Model):
    """Metadata about a file or folder.

    Directory listings include the metadata of each child in `contents`.
    """

    path: str
    """The canonical path of the file or folder, relative to the root."""

    is_dir: bool
    """Whether this is a folder."""

    bytes: int
    """The size of the file in bytes. Always 0 for folders."""

    rev: Optional[str] = None
    """An identifier for the current revision of a file. Required for files."""

    modified: Optional[Timestamp] = None
    """When the file was last modified on the server. Required for files."""

    client_mtime: Optional[Timestamp] = None
    """The modification time reported by the client that uploaded the file."""

    size: Optional[str] = None
    """A human-readable description of the size, e.g. `225.4KB`."""

    hash: Optional[str] = None
    """A hash of a folder listing, which can be used to check whether the folder has changed."""

    contents: Optional[list[Metadata]] = None
    """The children of a folder, if they were requested."""

    root: Optional[str] = None
    """The root that the path is relative to."""

    icon: Optional[str] = None
    """The name of the icon used to illustrate the file type."""

    thumb_exists: bool = False
    """Whether a thumbnail can be generated for the file."""

    mime_type: Optional[str] = None
    """The MIME type of a file."""

    is_deleted: bool = False
    """Whether the file or folder has been deleted. Only included in listings that request deleted entries."""

    @model_validator(mode="after")
    def _check_file_fields(self) -> Metadata:
        if not self.is_dir:
            missing = [name for name in ("rev", "modified") if getattr(self, name) is None]
            if missing:
                raise ValueError(f"File metadata for '{self.path}' is missing {', '.join(missing)}")
        return self

    @property
    def filename(self) -> str:
        """The last component of the path."""
        return PurePosixPath(self.path).name

    @property
    def parent_path(self) -> str:
        return str(PurePosixPath(self.path).parent)


class Quota(_Model):
    """Storage quota of an account, in bytes."""

    normal: int
    """Bytes used by files that are not shared."""

    shared: int
    """Bytes used by shared folders."""

    quota: int
    """The total storage allowance."""

    @property
    def used(self) -> int:
        return self.normal + self.shared

    @property
    def total(self) -> int:
        return self.quota

    @property
    def remaining(self) -> int:
        """The storage that is still available. Never negative, even for accounts that are over quota."""
        return max(self.quota - self.used, 0)


class AccountInfo(_Model):
    """Information about the account of the authorized user."""

    uid: str
    """The user ID."""

    display_name: str
    """The name of the user."""

    quota_info: Quota
    """The storage quota of the account."""

    email: Optional[str] = None
    country: Optional[str] = None
    referral_link: Optional[str] = None

    @field_validator("uid", mode="before")
    @classmethod
    def _coerce_uid(cls, value: object) -> object:
        return str(value) if isinstance(value, int) and not isinstance(value, bool) else value

    @property
    def quota(self) -> Quota:
        return self.quota_info


class Link(_Model):
    """A link to a file or folder, for sharing or streaming."""

    url: str
    expires: Optional[Timestamp] = None
    """When the link stops working, if it expires."""


class ThumbnailSize(str, enum.Enum):
    """The bounding box of a thumbnail, in pixels."""

    XS = "xs"
    """32x32"""

    S = "s"
    """64x64"""

    M = "m"
    """128x128"""

    L = "l"
    """640x480"""

    XL = "xl"
    """1024x768"""

    def __str__(self) -> str:
        return self.value


class ThumbnailFormat(str, enum.Enum):
    JPEG = "jpeg"
    PNG = "png"

    def __str__(self) -> str:
        return self.value

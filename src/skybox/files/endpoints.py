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

"""
Skybox REST API
===============

Each operation is described by the HTTP method, the host that serves it, the resource path template, and the type
that a successful response is parsed into. Resource paths that contain `{root}` and `{path}` are addressed by a
location in the user's storage.

Metadata and file operations are served by the API host. File contents and thumbnails are served by the content host.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass
from typing import Any

from skybox.common import EmptyResponse, RequestMethod

from .data import AccountInfo, Link, Metadata

__all__ = [
    "Endpoint",
    "Host",
    "Operation",
]


class Host(str, enum.Enum):
    API = "api"
    CONTENT = "content"

    def __str__(self) -> str:
        return self.value


@dataclass(frozen=True)
class Endpoint:
    name: str
    method: RequestMethod
    host: Host
    resource_path: str
    response_type: Any
    """The type that a successful response body is parsed into. Download responses carry the metadata of the file in
    a header instead of the body."""

    @property
    def addresses_path(self) -> bool:
        """Whether the resource path is addressed by a location in the user's storage."""
        return "{path}" in self.resource_path


class Operation(enum.Enum):
    """The logical operations of the REST API."""

    GET_ACCOUNT_INFO = Endpoint("get_account_info", RequestMethod.GET, Host.API, "/account/info", AccountInfo)
    GET_QUOTA = Endpoint("get_quota", RequestMethod.GET, Host.API, "/account/info", AccountInfo)
    GET_METADATA = Endpoint("get_metadata", RequestMethod.GET, Host.API, "/metadata/{root}/{path}", Metadata)
    LIST_FOLDER = Endpoint("list_folder", RequestMethod.GET, Host.API, "/metadata/{root}/{path}", Metadata)
    LIST_REVISIONS = Endpoint("list_revisions", RequestMethod.GET, Host.API, "/revisions/{root}/{path}", list[Metadata])
    RESTORE_FILE = Endpoint("restore_file", RequestMethod.POST, Host.API, "/restore/{root}/{path}", Metadata)
    SEARCH = Endpoint("search", RequestMethod.GET, Host.API, "/search/{root}/{path}", list[Metadata])
    CREATE_SHARE_LINK = Endpoint("create_share_link", RequestMethod.POST, Host.API, "/shares/{root}/{path}", Link)
    GET_MEDIA_LINK = Endpoint("get_media_link", RequestMethod.POST, Host.API, "/media/{root}/{path}", Link)
    CREATE_FOLDER = Endpoint("create_folder", RequestMethod.POST, Host.API, "/fileops/create_folder", Metadata)
    DELETE_PATH = Endpoint("delete_path", RequestMethod.POST, Host.API, "/fileops/delete", Metadata)
    MOVE_PATH = Endpoint("move_path", RequestMethod.POST, Host.API, "/fileops/move", Metadata)
    COPY_PATH = Endpoint("copy_path", RequestMethod.POST, Host.API, "/fileops/copy", Metadata)
    UPLOAD_FILE = Endpoint("upload_file", RequestMethod.PUT, Host.CONTENT, "/files_put/{root}/{path}", Metadata)
    DOWNLOAD_FILE = Endpoint("download_file", RequestMethod.GET, Host.CONTENT, "/files/{root}/{path}", EmptyResponse)
    DOWNLOAD_THUMBNAIL = Endpoint(
        "download_thumbnail",
        RequestMethod.GET,
        Host.CONTENT,
        "/thumbnails/{root}/{path}",
        EmptyResponse,
    )

    @property
    def endpoint(self) -> Endpoint:
        return self.value

    def __str__(self) -> str:
        return self.value.name

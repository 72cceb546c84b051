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

import functools
import io
import os
import tempfile
import threading
from collections.abc import Callable, Mapping
from pathlib import Path
from types import TracebackType
from typing import Any, BinaryIO, TypeVar
from uuid import UUID

from pydantic import ValidationError

from skybox import logging
from skybox.common import APIConnector, EmptyResponse, HTTPResponse, ITransport, Request
from skybox.common.exceptions import InvalidArgument, MalformedResponse, NotAuthenticated, ServiceRejected
from skybox.common.io import BytesDestination, BytesSource, IDestination, ISource
from skybox.config import ClientConfig
from skybox.oauth import Session

from .data import AccountInfo, Link, Metadata, Quota, ThumbnailFormat, ThumbnailSize
from .endpoints import Host, Operation
from .paths import ROOT_PATH, normalize_path, validate_limit, validate_non_empty

logger = logging.getLogger("files.client")

__all__ = [
    "METADATA_HEADER",
    "RestClient",
]

T = TypeVar("T")

Callback = Callable[[Request[T]], Any]
Finalizer = Callable[[bool], None]

METADATA_HEADER = "X-Skybox-Metadata"
"""The response header that carries the metadata of a downloaded file."""

MAX_LIST_ENTRIES = 25000
MAX_SEARCH_RESULTS = 1000
MAX_REVISIONS = 1000

_FORM_HEADERS = {"Content-Type": "application/x-www-form-urlencoded"}
_UPLOAD_HEADERS = {"Content-Type": "application/octet-stream"}


def _parse_download(response: HTTPResponse) -> Metadata:
    """Get the metadata of a downloaded file from the response headers."""
    APIConnector.deserialize(response, {"200": EmptyResponse})
    if (header := response.getheader(METADATA_HEADER)) is None:
        raise MalformedResponse(f"The response does not include the {METADATA_HEADER} header")
    try:
        return Metadata.model_validate_json(header)
    except ValidationError as e:
        raise MalformedResponse(f"Invalid {METADATA_HEADER} header", caused_by=e)


def _parse_listing(response: HTTPResponse) -> Metadata | None:
    """Parse a folder listing, or return None if the folder has not changed since it was last listed."""
    result = APIConnector.deserialize(response, {"200": Metadata, "304": EmptyResponse})
    return None if isinstance(result, EmptyResponse) else result


def _parse_quota(response: HTTPResponse) -> Quota:
    return APIConnector.deserialize(response, {"200": AccountInfo}).quota_info


def _open_source(source: str | os.PathLike | BinaryIO | bytes | ISource) -> tuple[ISource, Finalizer | None]:
    """Wrap an upload source, opening it if it is a file path.

    :return: The source, and a finalizer that closes the file if it was opened here.
    """
    match source:
        case ISource():
            return source, None
        case bytes() | bytearray():
            return BytesSource(io.BytesIO(source), size=len(source)), None
        case str() | os.PathLike():
            try:
                file = open(source, "rb")
            except OSError as e:
                raise InvalidArgument(f"Cannot read '{source}'", caused_by=e) from e
            return BytesSource(file), lambda _: file.close()
        case _ if hasattr(source, "read") and hasattr(source, "seek"):
            return BytesSource(source), None
        case _:
            raise InvalidArgument(f"Cannot upload from {type(source).__name__}")


def _open_destination(
    destination: str | os.PathLike | BinaryIO | IDestination,
) -> tuple[IDestination, Finalizer | None]:
    """Wrap a download destination.

    Downloads to a file path are written to a temporary file in the same folder, which replaces the target file only if
    the download succeeds. Otherwise the temporary file is removed, so a failed download never leaves a file behind.

    :return: The destination, and a finalizer that takes whether the download succeeded.
    """
    match destination:
        case IDestination():
            return destination, None
        case str() | os.PathLike():
            target = Path(destination)
            if not target.parent.is_dir():
                raise InvalidArgument(f"Cannot download to '{target}', the parent folder does not exist")
            try:
                file = tempfile.NamedTemporaryFile(
                    mode="w+b", dir=target.parent, prefix=f".{target.name}.", suffix=".part", delete=False
                )
            except OSError as e:
                raise InvalidArgument(f"Cannot write to '{target.parent}'", caused_by=e) from e

            def finalize(succeeded: bool) -> None:
                file.close()
                if succeeded:
                    os.replace(file.name, target)
                    logger.debug(f"Downloaded {target}")
                else:
                    Path(file.name).unlink(missing_ok=True)

            return BytesDestination(file), finalize
        case _ if hasattr(destination, "write") and hasattr(destination, "seek"):
            return BytesDestination(destination), None
        case _:
            raise InvalidArgument(f"Cannot download to {type(destination).__name__}")


class RestClient:
    """The REST API of the storage service.

    Each operation validates its arguments, then signs and dispatches one request, and returns immediately. The
    returned `Request` can be awaited for the result, or a callback can be provided that is invoked with the request
    when it is done::

        metadata = await client.get_metadata("/Photos")

    Errors in the arguments and a missing credential are raised immediately. Every other error, including network
    failures, errors from the service, and invalid responses, is delivered through the request.

    If the service rejects the credential, the session is invalidated before the request's callbacks are invoked,
    unless the credential has been replaced since the request was signed. The request is not retried.

    The transport is opened for each request. Open the client (or the transport) with `async with` to keep connections
    alive between requests.
    """

    def __init__(self, session: Session, transport: ITransport, config: ClientConfig | None = None) -> None:
        """
        :param session: The session that signs requests.
        :param transport: The transport to send requests with.
        :param config: Service URLs and request settings.
        """
        self._session = session
        self._transport = transport
        self._config = config = config if config is not None else ClientConfig()
        self._connectors = {
            Host.API: APIConnector(config.api_url, transport),
            Host.CONTENT: APIConnector(config.content_url, transport),
        }
        self._lock = threading.Lock()
        self._in_flight: dict[UUID, Request] = {}

    @property
    def session(self) -> Session:
        return self._session

    @property
    def in_flight(self) -> tuple[UUID, ...]:
        """The handles of the requests that have been dispatched by this client and are not done yet."""
        with self._lock:
            return tuple(self._in_flight)

    def get_request(self, handle: UUID) -> Request | None:
        """Get an in-flight request by handle, or None if the request is done or unknown."""
        with self._lock:
            return self._in_flight.get(handle)

    def cancel(self, handle: UUID) -> bool:
        """Cancel an in-flight request.

        :param handle: The handle of the request.

        :return: True if the request was cancelled, False if it was already done or is unknown.
        """
        if (request := self.get_request(handle)) is None:
            return False
        return request.cancel()

    def cancel_all(self) -> int:
        """Cancel every in-flight request.

        :return: The number of requests that were cancelled.
        """
        with self._lock:
            requests = list(self._in_flight.values())
        return sum(1 for request in requests if request.cancel())

    async def __aenter__(self) -> RestClient:
        await self._transport.open()
        return self

    async def __aexit__(
        self, exc_type: type[Exception] | None, exc_val: Exception | None, exc_tb: TracebackType | None
    ) -> None:
        if cancelled := self.cancel_all():
            logger.debug(f"Cancelled {cancelled} in-flight requests")
        await self._transport.close()

    def _check_authenticated(self) -> None:
        if not self._session.is_authenticated:
            raise NotAuthenticated(f"The session is {self._session.state}. Authorize the application first.")

    def _on_done(self, request: Request) -> None:
        with self._lock:
            self._in_flight.pop(request.handle, None)
        error = request.exception()
        if isinstance(error, ServiceRejected) and error.is_auth_rejection and request.signed is not None:
            if self._session.invalidate_if_current(request.signed):
                logger.warning(f"The credential was rejected by the service, the session was invalidated: {error}")

    def _submit(
        self,
        operation: Operation,
        path: str | None = None,
        *,
        query_params: Mapping[str, Any] | None = None,
        post_params: Mapping[str, Any] | None = None,
        header_params: Mapping[str, Any] | None = None,
        body: object | None = None,
        destination: IDestination | None = None,
        parser: Callable[[HTTPResponse], T] | None = None,
        finalizer: Finalizer | None = None,
        callback: Callback | None = None,
    ) -> Request[T]:
        """Build, sign, register and dispatch a request for one operation.

        The finalizer is always called exactly once, with whether the request succeeded, even if the request could not
        be signed or dispatched.
        """
        endpoint = operation.endpoint
        connector = self._connectors[endpoint.host]
        if parser is None:
            parser = functools.partial(APIConnector.deserialize, response_types_map={"200": endpoint.response_type})
        try:
            path_params = None
            if endpoint.addresses_path:
                path_params = {"root": self._session.root, "path": (path or ROOT_PATH).lstrip("/")}

            request = Request(
                endpoint.method,
                connector.build_url(endpoint.resource_path, path_params, query_params),
                parser,
                description=f"{operation} {path}" if path is not None else str(operation),
                headers=connector.build_headers(header_params),
                post_params=connector.parameters_to_tuples(post_params, {}) if post_params else None,
                body=body,
                destination=destination,
                request_timeout=self._config.request_timeout,
            )
            self._session.sign_request(request)
        except BaseException:
            if finalizer is not None:
                finalizer(False)
            raise

        request.add_done_callback(self._on_done)
        if finalizer is not None:
            request.add_done_callback(lambda done: finalizer(done.succeeded))
        with self._lock:
            self._in_flight[request.handle] = request
        try:
            request.dispatch(self._transport)
        except BaseException:
            # Unregister and finalize. The caller only learns of the failure from the raised error.
            request.cancel()
            raise
        if callback is not None:
            request.add_done_callback(callback)
        return request

    def _form_params(self, **params: Any) -> dict[str, Any]:
        return {"root": self._session.root, **{key: value for key, value in params.items() if value is not None}}

    def get_account_info(self, callback: Callback | None = None) -> Request[AccountInfo]:
        """Get information about the account of the authorized user.

        :param callback: Invoked with the request when it is done.

        :return: The request, which resolves to the account info.

        :raise NotAuthenticated: If the session is not authenticated.
        """
        self._check_authenticated()
        return self._submit(Operation.GET_ACCOUNT_INFO, callback=callback)

    def get_quota(self, callback: Callback | None = None) -> Request[Quota]:
        """Get the storage quota of the authorized user.

        :param callback: Invoked with the request when it is done.

        :return: The request, which resolves to the quota.

        :raise NotAuthenticated: If the session is not authenticated.
        """
        self._check_authenticated()
        return self._submit(Operation.GET_QUOTA, parser=_parse_quota, callback=callback)

    def get_metadata(
        self,
        path: str,
        rev: str | None = None,
        include_deleted: bool = False,
        callback: Callback | None = None,
    ) -> Request[Metadata]:
        """Get the metadata of a file or folder, without listing the contents of a folder.

        :param path: The path of the file or folder.
        :param rev: Get the metadata of a specific revision of a file.
        :param include_deleted: Whether to return the metadata of a deleted file or folder instead of failing with
            `NotFoundError`.
        :param callback: Invoked with the request when it is done.

        :return: The request, which resolves to the metadata.

        :raise InvalidArgument: If the path is not well-formed.
        :raise NotAuthenticated: If the session is not authenticated.
        """
        path = normalize_path(path)
        if rev is not None:
            rev = validate_non_empty(rev, "rev")
        self._check_authenticated()
        return self._submit(
            Operation.GET_METADATA,
            path,
            query_params={"list": False, "rev": rev, "include_deleted": include_deleted or None},
            callback=callback,
        )

    def list_folder(
        self,
        path: str = ROOT_PATH,
        hash: str | None = None,
        include_deleted: bool = False,
        file_limit: int | None = None,
        callback: Callback | None = None,
    ) -> Request[Metadata | None]:
        """List the contents of a folder.

        :param path: The path of the folder. Defaults to the root folder.
        :param hash: The `hash` of a previous listing of the folder. If the folder has not changed since, the request
            resolves to None.
        :param include_deleted: Whether to list deleted children.
        :param file_limit: The maximum number of children. If the folder has more children, the request fails with
            `NotAcceptableError`.
        :param callback: Invoked with the request when it is done.

        :return: The request, which resolves to the metadata of the folder with its children in `contents`.

        :raise InvalidArgument: If the path or limit is not valid.
        :raise NotAuthenticated: If the session is not authenticated.
        """
        path = normalize_path(path)
        file_limit = validate_limit(file_limit, "file_limit", MAX_LIST_ENTRIES)
        if hash is not None:
            hash = validate_non_empty(hash, "hash")
        self._check_authenticated()
        return self._submit(
            Operation.LIST_FOLDER,
            path,
            query_params={
                "list": True,
                "hash": hash,
                "include_deleted": include_deleted or None,
                "file_limit": file_limit,
            },
            parser=_parse_listing,
            callback=callback,
        )

    def upload_file(
        self,
        path: str,
        source: str | os.PathLike | BinaryIO | bytes | ISource,
        overwrite: bool = True,
        parent_rev: str | None = None,
        callback: Callback | None = None,
    ) -> Request[Metadata]:
        """Upload a file.

        The file content is streamed from the source in chunks, so large files are never held in memory.

        :param path: The path to upload the file to.
        :param source: A local file path, a readable binary file object, bytes, or an `ISource`.
        :param overwrite: Whether to replace an existing file. If False, a conflicting file is renamed by the service.
        :param parent_rev: The revision the new content is based on. If the file has changed since, the upload is saved
            as a conflicted copy.
        :param callback: Invoked with the request when it is done.

        :return: The request, which resolves to the metadata of the uploaded file.

        :raise InvalidArgument: If the path is not valid, or the source cannot be read.
        :raise NotAuthenticated: If the session is not authenticated.
        """
        path = normalize_path(path, allow_root=False)
        if parent_rev is not None:
            parent_rev = validate_non_empty(parent_rev, "parent_rev")
        self._check_authenticated()
        body, finalizer = _open_source(source)
        return self._submit(
            Operation.UPLOAD_FILE,
            path,
            query_params={"overwrite": overwrite, "parent_rev": parent_rev},
            header_params=_UPLOAD_HEADERS,
            body=body,
            finalizer=finalizer,
            callback=callback,
        )

    def download_file(
        self,
        path: str,
        destination: str | os.PathLike | BinaryIO | IDestination,
        rev: str | None = None,
        callback: Callback | None = None,
    ) -> Request[Metadata]:
        """Download a file.

        The file content is streamed to the destination in chunks, so large files are never held in memory.

        :param path: The path of the file.
        :param destination: A local file path, a writable binary file object, or an `IDestination`. A local file is
            only created or replaced if the download succeeds.
        :param rev: Download a specific revision of the file.
        :param callback: Invoked with the request when it is done.

        :return: The request, which resolves to the metadata of the downloaded file.

        :raise InvalidArgument: If the path is not valid, or the destination cannot be written.
        :raise NotAuthenticated: If the session is not authenticated.
        """
        path = normalize_path(path, allow_root=False)
        if rev is not None:
            rev = validate_non_empty(rev, "rev")
        self._check_authenticated()
        sink, finalizer = _open_destination(destination)
        return self._submit(
            Operation.DOWNLOAD_FILE,
            path,
            query_params={"rev": rev},
            destination=sink,
            parser=_parse_download,
            finalizer=finalizer,
            callback=callback,
        )

    def download_thumbnail(
        self,
        path: str,
        destination: str | os.PathLike | BinaryIO | IDestination,
        size: ThumbnailSize | str = ThumbnailSize.S,
        format: ThumbnailFormat | str = ThumbnailFormat.JPEG,
        callback: Callback | None = None,
    ) -> Request[Metadata]:
        """Download a thumbnail of an image file.

        :param path: The path of the image file.
        :param destination: A local file path, a writable binary file object, or an `IDestination`.
        :param size: The bounding box of the thumbnail.
        :param format: The image format of the thumbnail.
        :param callback: Invoked with the request when it is done.

        :return: The request, which resolves to the metadata of the image file.

        :raise InvalidArgument: If an argument is not valid.
        :raise NotAuthenticated: If the session is not authenticated.
        """
        path = normalize_path(path, allow_root=False)
        try:
            size, format = ThumbnailSize(size), ThumbnailFormat(format)
        except ValueError as e:
            raise InvalidArgument("Invalid thumbnail size or format", caused_by=e) from e
        self._check_authenticated()
        sink, finalizer = _open_destination(destination)
        return self._submit(
            Operation.DOWNLOAD_THUMBNAIL,
            path,
            query_params={"size": size, "format": format},
            destination=sink,
            parser=_parse_download,
            finalizer=finalizer,
            callback=callback,
        )

    def create_folder(self, path: str, callback: Callback | None = None) -> Request[Metadata]:
        """Create a folder.

        :return: The request, which resolves to the metadata of the new folder.
        """
        path = normalize_path(path, allow_root=False)
        self._check_authenticated()
        return self._submit(
            Operation.CREATE_FOLDER,
            path,
            post_params=self._form_params(path=path),
            header_params=_FORM_HEADERS,
            callback=callback,
        )

    def delete_path(self, path: str, callback: Callback | None = None) -> Request[Metadata]:
        """Delete a file or folder. Folders are deleted with their contents.

        :param path: The path of the file or folder. The root folder cannot be deleted.
        :param callback: Invoked with the request when it is done.

        :return: The request, which resolves to the metadata of the deleted file or folder.

        :raise InvalidArgument: If the path is not valid.
        :raise NotAuthenticated: If the session is not authenticated.
        """
        path = normalize_path(path, allow_root=False)
        self._check_authenticated()
        return self._submit(
            Operation.DELETE_PATH,
            path,
            post_params=self._form_params(path=path),
            header_params=_FORM_HEADERS,
            callback=callback,
        )

    def _transfer(
        self, operation: Operation, from_path: str, to_path: str, callback: Callback | None
    ) -> Request[Metadata]:
        from_path = normalize_path(from_path, "from_path", allow_root=False)
        to_path = normalize_path(to_path, "to_path", allow_root=False)
        if from_path == to_path:
            raise InvalidArgument(f"'from_path' and 'to_path' must be different, got '{from_path}'")
        self._check_authenticated()
        return self._submit(
            operation,
            from_path,
            post_params=self._form_params(from_path=from_path, to_path=to_path),
            header_params=_FORM_HEADERS,
            callback=callback,
        )

    def move_path(self, from_path: str, to_path: str, callback: Callback | None = None) -> Request[Metadata]:
        """Move a file or folder.

        :param from_path: The path of the file or folder to move.
        :param to_path: The destination path, including the new name.
        :param callback: Invoked with the request when it is done.

        :return: The request, which resolves to the metadata of the moved file or folder.

        :raise InvalidArgument: If either path is not valid, or both paths are the same.
        :raise NotAuthenticated: If the session is not authenticated.
        """
        return self._transfer(Operation.MOVE_PATH, from_path, to_path, callback)

    def copy_path(self, from_path: str, to_path: str, callback: Callback | None = None) -> Request[Metadata]:
        """Copy a file or folder.

        :param from_path: The path of the file or folder to copy.
        :param to_path: The destination path, including the new name.
        :param callback: Invoked with the request when it is done.

        :return: The request, which resolves to the metadata of the copy.

        :raise InvalidArgument: If either path is not valid, or both paths are the same.
        :raise NotAuthenticated: If the session is not authenticated.
        """
        return self._transfer(Operation.COPY_PATH, from_path, to_path, callback)

    def list_revisions(
        self, path: str, rev_limit: int | None = None, callback: Callback | None = None
    ) -> Request[list[Metadata]]:
        """List the revisions of a file, newest first.

        :param path: The path of the file.
        :param rev_limit: The maximum number of revisions to list.
        :param callback: Invoked with the request when it is done.
        """
        path = normalize_path(path, allow_root=False)
        rev_limit = validate_limit(rev_limit, "rev_limit", MAX_REVISIONS)
        self._check_authenticated()
        return self._submit(Operation.LIST_REVISIONS, path, query_params={"rev_limit": rev_limit}, callback=callback)

    def restore_file(self, path: str, rev: str, callback: Callback | None = None) -> Request[Metadata]:
        """Restore a file to a previous revision.

        :param path: The path of the file.
        :param rev: The revision to restore.
        :param callback: Invoked with the request when it is done.

        :return: The request, which resolves to the metadata of the restored file.
        """
        path = normalize_path(path, allow_root=False)
        rev = validate_non_empty(rev, "rev")
        self._check_authenticated()
        return self._submit(
            Operation.RESTORE_FILE,
            path,
            post_params={"rev": rev},
            header_params=_FORM_HEADERS,
            callback=callback,
        )

    def search(
        self,
        query: str,
        path: str = ROOT_PATH,
        file_limit: int | None = None,
        include_deleted: bool = False,
        callback: Callback | None = None,
    ) -> Request[list[Metadata]]:
        """Search a folder and its subfolders for files and folders with names that contain the query.

        :param query: The text to search for.
        :param path: The folder to search. Defaults to the root folder.
        :param file_limit: The maximum number of results.
        :param include_deleted: Whether to include deleted files and folders in the results.
        :param callback: Invoked with the request when it is done.
        """
        query = validate_non_empty(query, "query")
        path = normalize_path(path)
        file_limit = validate_limit(file_limit, "file_limit", MAX_SEARCH_RESULTS)
        self._check_authenticated()
        return self._submit(
            Operation.SEARCH,
            path,
            query_params={"query": query, "file_limit": file_limit, "include_deleted": include_deleted or None},
            callback=callback,
        )

    def create_share_link(self, path: str, callback: Callback | None = None) -> Request[Link]:
        """Create a link to a file or folder that can be shared with other people."""
        path = normalize_path(path)
        self._check_authenticated()
        return self._submit(Operation.CREATE_SHARE_LINK, path, callback=callback)

    def get_media_link(self, path: str, callback: Callback | None = None) -> Request[Link]:
        """Get a short-lived link for streaming the content of a file."""
        path = normalize_path(path, allow_root=False)
        self._check_authenticated()
        return self._submit(Operation.GET_MEDIA_LINK, path, callback=callback)

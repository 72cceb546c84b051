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

import datetime
import json
import re
from collections.abc import Mapping
from enum import Enum
from inspect import isclass
from types import NoneType, TracebackType
from typing import Any, TypeVar
from urllib.parse import quote, urlencode
from uuid import UUID

from pydantic import BaseModel, TypeAdapter, ValidationError

from skybox import logging

from .data import EmptyResponse, HTTPHeaderDict, HTTPResponse, RequestMethod
from .exceptions import (
    ClientTypeError,
    GeneralizedServiceError,
    InvalidArgument,
    MalformedResponse,
    ServiceRejected,
    UnknownResponseError,
)
from .interfaces import ITransport

logger = logging.getLogger("connector")

__all__ = [
    "APIConnector",
]

T = TypeVar("T")

_DELIMITERS = {"csv": ",", "ssv": " ", "pipes": "|"}
_RE_CHARSET = re.compile(r"charset=([a-zA-Z\-\d]+)[\s;]?")
_PRIMITIVES = (str, int, float, bool)
_SERIALIZABLE = (NoneType, str, int, float, bool, bytes, list, tuple, dict, BaseModel)


class APIConnector:
    """Encodes requests for, and decodes responses from, one API host.

    The connector does not sign requests. Requests that need a credential are built here, signed by the session, and
    sent through the request pipeline. Unsigned requests, such as those that make up the authorization handshake, can be
    sent directly with `call_api`.
    """

    def __init__(
        self,
        base_url: str,
        transport: ITransport,
        additional_headers: Mapping[str, Any] | None = None,
    ) -> None:
        """
        :param base_url: The root URL of the API host, including any version prefix.
        :param transport: Sends the requests.
        :param additional_headers: Headers added to every request built by this connector.
        """
        self._root = base_url.rstrip("/")
        self._transport = transport
        self._default_headers = dict(additional_headers or {})

    @property
    def base_url(self) -> str:
        return self._root + "/"

    @property
    def transport(self) -> ITransport:
        return self._transport

    async def open(self) -> None:
        await self._transport.open()

    async def close(self) -> None:
        await self._transport.close()

    async def __aenter__(self) -> APIConnector:
        await self.open()
        return self

    async def __aexit__(
        self, exc_type: type[Exception] | None, exc_val: Exception | None, exc_tb: TracebackType | None
    ) -> None:
        await self.close()

    async def call_api(
        self,
        method: RequestMethod,
        resource_path: str,
        path_params: Mapping[str, Any] | None = None,
        query_params: Mapping[str, Any] | None = None,
        header_params: Mapping[str, Any] | None = None,
        post_params: Mapping[str, Any] | None = None,
        body: object | str | bytes | None = None,
        collection_formats: Mapping[str, str] | None = None,
        response_types_map: Mapping[str, type[T]] | None = None,
        request_timeout: int | float | tuple[int | float, int | float] | None = None,
    ) -> T:
        """Send an unsigned request and decode the response.

        The transport is held open for the duration of the call. Transport errors propagate unchanged.

        :param method: The HTTP verb.
        :param resource_path: A path template relative to the base URL, such as `/metadata/{root}/{path}`.
        :param path_params: Values for the placeholders in `resource_path`.
        :param query_params: Query string values. `None` values are left out.
        :param header_params: Headers for this request only.
        :param post_params: Form fields.
        :param body: A body that is sanitized and sent as JSON.
        :param collection_formats: How list values are joined, per parameter name.
        :param response_types_map: The type to decode the body into, keyed by status code.
        :param request_timeout: Passed to the transport.

        :return: The decoded response.

        :raise ServiceRejected: If the service responds with an error status code.
        :raise UnknownResponseError: If the status code is not an error and has no entry in `response_types_map`.
        :raise MalformedResponse: If the body cannot be decoded as the expected type.
        """
        formats = collection_formats or {}
        url = self.build_url(resource_path, path_params, query_params, formats)
        headers = self.build_headers(header_params, formats)
        form = self.parameters_to_tuples(post_params, formats) if post_params else None
        payload = self.sanitize_for_serialization(body) if body else None

        async with self:
            logger.debug(f"Making {method} request to {url}")
            response = await self._transport.request(
                method=method,
                url=url,
                headers=headers,
                post_params=form,
                body=payload,
                request_timeout=request_timeout,
            )
        return self.deserialize(response, response_types_map)

    def build_url(
        self,
        resource_path: str,
        path_params: Mapping[str, Any] | None = None,
        query_params: Mapping[str, Any] | None = None,
        collection_formats: Mapping[str, str] | None = None,
    ) -> str:
        """Fill in a path template and append the query string.

        Path values are percent-encoded with the exception of `/`, so that a file path can fill a single placeholder.
        """
        formats = collection_formats or {}
        url = f"{self._root}/{resource_path.lstrip('/')}"
        for key, value in self.parameters_to_tuples(path_params or {}, formats):
            url = url.replace("{" + key + "}", quote(str(value)))

        present = {key: value for key, value in (query_params or {}).items() if value is not None}
        if present:
            url += "?" + urlencode(self.parameters_to_tuples(present, formats))
        return url

    def build_headers(
        self, header_params: Mapping[str, Any] | None = None, collection_formats: Mapping[str, str] | None = None
    ) -> HTTPHeaderDict:
        """Merge the per-request headers over the connector's default headers.

        :raise InvalidArgument: If a header is given more than one value.
        """
        headers = HTTPHeaderDict(self._default_headers)
        overridden: set[str] = set()
        for key, value in self.parameters_to_tuples(header_params or {}, collection_formats or {}):
            if key in overridden or isinstance(value, list):
                raise InvalidArgument(f"Multiple values not supported in header '{key}'")
            # Assigning would append to the default value, so replace it instead.
            headers.pop(key, None)
            headers[key] = str(value)
            overridden.add(key)
        return headers

    @classmethod
    def sanitize_for_serialization(cls, obj: Any | None) -> Any | None:
        """Reduce a value to JSON-compatible types.

        Enums become their values, dates and datetimes become ISO 8601 strings, UUIDs become strings, and pydantic
        models become dicts of the fields that were set. Containers are converted recursively.

        :raise ClientTypeError: If the value, or something inside it, has an unsupported type.
        """
        match obj:
            case Enum():
                return cls.sanitize_for_serialization(obj.value)
            case None | str() | int() | float() | bool() | bytes():
                return obj
            case datetime.date():
                return obj.isoformat()
            case UUID():
                return str(obj)
            case list():
                return [cls.sanitize_for_serialization(item) for item in obj]
            case tuple():
                return tuple(cls.sanitize_for_serialization(item) for item in obj)
            case BaseModel():
                return cls.sanitize_for_serialization(obj.model_dump(mode="json", by_alias=True, exclude_unset=True))
            case Mapping():
                return {str(key): cls.sanitize_for_serialization(value) for key, value in obj.items()}
        raise ClientTypeError(msg=f"{type(obj)} could not be serialized.", valid_classes=_SERIALIZABLE)

    @classmethod
    def parameters_to_tuples(
        cls, params: Mapping | list[tuple[str, Any]], collection_formats: Mapping[str, str]
    ) -> list[tuple[str, Any]]:
        """Flatten parameters into `(name, value)` pairs.

        Booleans are written in lower case. A list value is joined according to its collection format, one of `csv`
        (the default), `ssv`, `pipes` or `multi`, where `multi` repeats the name for every item.
        """
        sanitized = cls.sanitize_for_serialization(params)
        pairs: list[tuple[str, Any]] = []
        for key, value in sanitized.items() if isinstance(sanitized, dict) else sanitized:
            if isinstance(value, bool):
                pairs.append((key, str(value).lower()))
            elif not isinstance(value, (list, tuple)):
                pairs.append((key, value))
            elif (fmt := collection_formats.get(key, "csv")) == "multi":
                pairs.extend((key, item) for item in value)
            else:
                pairs.append((key, _DELIMITERS.get(fmt, ",").join(value)))
        return pairs

    @classmethod
    def response_type_for(cls, status: int, response_types_map: Mapping[str, type[T]] | None) -> type[T] | type[Any]:
        """The type a response with `status` decodes into.

        Statuses missing from `response_types_map` fall back to an error type: the matching `ServiceRejected` subclass
        for 4xx and 5xx statuses, and `UnknownResponseError` otherwise.
        """
        fallback = GeneralizedServiceError.from_status_code(status)
        if fallback is None:
            fallback = ServiceRejected if 400 <= status <= 599 else UnknownResponseError
        return (response_types_map or {}).get(str(status), fallback)

    @classmethod
    def deserialize(cls, response: HTTPResponse, response_types_map: Mapping[str, type[T]] | None) -> T:
        """Decode a response into the type registered for its status code.

        :raise ServiceRejected: If the status code resolves to an error type.
        :raise MalformedResponse: If the body does not have the expected shape.
        """
        response_type = cls.response_type_for(response.status, response_types_map)
        if isclass(response_type):
            if issubclass(response_type, HTTPResponse):
                return response
            if issubclass(response_type, ServiceRejected):
                raise cls._rejection(response, response_type)
        if response_type is bytes:
            return response.data

        content = cls.decode_body(response)
        if response_type is EmptyResponse:
            if content != "":
                raise MalformedResponse(f"Unexpected content with '{response.status}' status code")
            return EmptyResponse(status=response.status, reason=response.reason, headers=response.getheaders())
        if response_type is None:
            return content
        return cls._convert(content, response_type)

    @classmethod
    def decode_body(cls, response: HTTPResponse) -> Any:
        """Decode a body as JSON where possible, and as plain text otherwise.

        :raise MalformedResponse: If the body is not valid in its declared charset.
        """
        match = _RE_CHARSET.search(response.getheader("content-type") or "")
        try:
            text = response.data.decode(match.group(1) if match else "utf-8")
        except (LookupError, UnicodeDecodeError) as e:
            raise MalformedResponse("Could not decode response body", caused_by=e)
        try:
            return json.loads(text)
        except ValueError:
            return text

    @classmethod
    def _rejection(cls, response: HTTPResponse, error_type: type[ServiceRejected]) -> ServiceRejected:
        try:
            content = cls.decode_body(response)
        except MalformedResponse:
            content = None
        return error_type(status=response.status, reason=response.reason, content=content, headers=response.headers)

    @staticmethod
    def _convert(content: Any, response_type: Any) -> Any:
        if content is None:
            raise MalformedResponse(f"Expected {response_type} but the response was empty")
        try:
            if response_type in _PRIMITIVES:
                return response_type(content)
            return TypeAdapter(response_type).validate_python(content)
        except (TypeError, ValueError, ValidationError) as e:
            raise MalformedResponse("Could not deserialize result", caused_by=e)

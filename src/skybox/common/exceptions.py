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

from collections.abc import Sequence
from typing import TYPE_CHECKING, ClassVar

if TYPE_CHECKING:
    from .data import HTTPHeaderDict

__all__ = [
    "AlreadyAuthenticated",
    "AlreadyDispatched",
    "BadRequestError",
    "Cancelled",
    "ClientTypeError",
    "ConflictError",
    "ForbiddenError",
    "GeneralizedServiceError",
    "InsufficientStorageError",
    "InvalidArgument",
    "MalformedResponse",
    "NetworkFailure",
    "NotAcceptableError",
    "NotAuthenticated",
    "NotFoundError",
    "RetryError",
    "ServiceRejected",
    "ServiceUnavailableError",
    "SkyboxClientException",
    "TooManyRequestsError",
    "TransportError",
    "UnauthorizedError",
    "UnknownResponseError",
]


class SkyboxClientException(Exception):
    """The base exception class for all Skybox client exceptions."""


class RetryError(SkyboxClientException):
    """Wraps the exceptions from multiple failed retry attempts."""

    def __init__(self, msg: str, excs: Sequence[Exception]) -> None:
        super().__init__(msg)
        self._msg = msg
        self._excs = tuple(excs)

    @property
    def message(self) -> str:
        return self._msg

    @property
    def exceptions(self) -> tuple[Exception, ...]:
        """The exceptions raised by each attempt, in order."""
        return self._excs

    def __str__(self) -> str:
        n_sub_excs = len(self._excs)
        lines = [f"{self._msg} ({n_sub_excs} sub-exception{'' if n_sub_excs == 1 else 's'})"]
        for i, exc in enumerate(self._excs):
            lines.append(f"+---------------- {i + 1} ----------------")
            lines.append(f"| {type(exc).__name__}:")
            for exc_line in str(exc).split("\n"):
                lines.append(f"| {exc_line}")
        return "\n".join(lines)


class _WrappedError(SkyboxClientException):
    """Wrapper for standard exceptions that occur while sending requests or parsing service responses."""

    def __init__(self, msg: str, caused_by: Exception | None = None):
        """
        :param msg: The exception message.
        :param caused_by: The original error.
        """
        self.caused_by = caused_by
        full_msg = msg
        if caused_by:
            full_msg = f"{msg}: {str(caused_by)}"
        super().__init__(full_msg)


class InvalidArgument(_WrappedError, ValueError):
    """Raised when a caller supplies an argument that cannot be sent to the service.

    Invalid arguments are always detected locally, before any network activity.
    """


class ClientTypeError(InvalidArgument, TypeError):
    """Raised when a value of an inappropriate type is supplied for serialization."""

    def __init__(
        self,
        msg: str,
        caused_by: Exception | None = None,
        valid_classes: tuple[type, ...] | None = None,
    ):
        """
        :param msg: The exception message.
        :param caused_by: The original error.
        :param valid_classes: The classes that the value should have been an instance of.
        """
        super().__init__(msg, caused_by)
        self.valid_classes = valid_classes


class TransportError(_WrappedError):
    """Wraps errors raised by the underlying HTTP transport."""


class NetworkFailure(_WrappedError):
    """A request could not be completed because of a transport-level failure.

    Network failures are generally worth retrying, although the SDK never retries them automatically.
    """

    retriable = True


class MalformedResponse(_WrappedError):
    """The service responded, but the response could not be parsed into the expected shape.

    This usually indicates a version mismatch between the service and the client, so it is not worth retrying.
    """

    retriable = False


class NotAuthenticated(SkyboxClientException):
    """Raised when a request is made without a valid credential."""


class AlreadyAuthenticated(SkyboxClientException):
    """Raised when authorization is started while a credential is already available."""


class AlreadyDispatched(SkyboxClientException):
    """Raised when a request is dispatched more than once."""


class Cancelled(SkyboxClientException):
    """Delivered exactly once to a request that was cancelled by the caller."""

    retriable = False


class ServiceRejected(SkyboxClientException):
    """The service responded with an error status code."""

    def __init__(self, status: int, reason: str | None, content: object | None, headers: HTTPHeaderDict | None):
        """
        :param status: HTTP status code.
        :param reason: Reason.
        :param content: Deserialized content from the response.
        :param headers: Response headers
        """
        self.status = status
        self.reason = reason
        self.content = content
        self.headers = headers

    @property
    def message(self) -> str | None:
        """The error message reported by the service, if any."""
        match self.content:
            case {"user_error": str(message)} | {"error": str(message)} | {"error_description": str(message)}:
                return message
            case {"error": dict(error)}:
                return ", ".join(f"{key}: {value}" for key, value in error.items())
            case str(message) if message:
                return message
        return self.reason

    @property
    def retriable(self) -> bool:
        """Whether the same request may succeed if it is sent again later."""
        return self.status == 429 or 500 <= self.status <= 599

    @property
    def is_auth_rejection(self) -> bool:
        """Whether the service rejected the credential that the request was signed with."""
        return self.status == 401

    def __str__(self) -> str:
        error_message = f"({self.status})"
        if reason := self.reason:
            error_message += f" {reason}"
        if (message := self.message) and message != self.reason:
            error_message += f"\n{message}"
        return error_message


class UnknownResponseError(ServiceRejected):
    """The service sent a response with a status code that the client does not expect."""


class GeneralizedServiceError(ServiceRejected):
    """Base class for service errors that are identified by status code.

    Generalized error types must subclass GeneralizedServiceError and define the class attribute `STATUS_CODE`, which
    will be used to map service error codes to the corresponding error type.
    """

    __GENERALIZED_TYPES: dict[int, type[GeneralizedServiceError]] = {}

    STATUS_CODE: ClassVar[int]

    @classmethod
    def __init_subclass__(cls, **kwargs):
        super().__init_subclass__(**kwargs)
        try:
            status_code = cls.STATUS_CODE
        except AttributeError:
            raise ValueError(f"{cls} must define STATUS_CODE.")
        if existing_cls := GeneralizedServiceError.__GENERALIZED_TYPES.get(status_code):
            raise ValueError(f"Duplicated STATUS_CODE between {cls} and {existing_cls}")
        GeneralizedServiceError.__GENERALIZED_TYPES[status_code] = cls

    @staticmethod
    def from_status_code(status_code: int) -> type[GeneralizedServiceError] | None:
        """Get a generalized error type, based on the status code.

        :param status_code: The status code of the error response.

        :return: The generalized implementation for the requested status code.
        """
        return GeneralizedServiceError.__GENERALIZED_TYPES.get(status_code, None)


class BadRequestError(GeneralizedServiceError):
    """The service cannot process the request due to a client error (400 - Bad Request)."""

    STATUS_CODE = 400


class UnauthorizedError(GeneralizedServiceError):
    """The credential is missing, expired, or revoked (401 - Unauthorized)."""

    STATUS_CODE = 401


class ForbiddenError(GeneralizedServiceError):
    """The credential does not grant access to the resource (403 - Forbidden)."""

    STATUS_CODE = 403


class NotFoundError(GeneralizedServiceError):
    """The requested file or folder does not exist (404 - Not Found)."""

    STATUS_CODE = 404


class NotAcceptableError(GeneralizedServiceError):
    """The service refused to produce the requested content, e.g. too many entries to list (406 - Not Acceptable)."""

    STATUS_CODE = 406


class ConflictError(GeneralizedServiceError):
    """The request conflicts with the current state of the resource (409 - Conflict)."""

    STATUS_CODE = 409


class TooManyRequestsError(GeneralizedServiceError):
    """The application is being rate limited (429 - Too Many Requests)."""

    STATUS_CODE = 429


class ServiceUnavailableError(GeneralizedServiceError):
    """The service is temporarily unavailable (503 - Service Unavailable)."""

    STATUS_CODE = 503


class InsufficientStorageError(GeneralizedServiceError):
    """The user is over their storage quota (507 - Insufficient Storage)."""

    STATUS_CODE = 507

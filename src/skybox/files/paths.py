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

import re

from skybox.common.exceptions import ClientTypeError, InvalidArgument

__all__ = [
    "ROOT_PATH",
    "normalize_path",
    "validate_limit",
    "validate_non_empty",
]

ROOT_PATH = "/"

MAX_COMPONENT_LENGTH = 255

_RE_CONTROL = re.compile(r"[\x00-\x1f\x7f]")


def validate_non_empty(value: str, argument: str) -> str:
    """Check that a string argument is present.

    :param value: The argument value.
    :param argument: The name of the argument, for error messages.

    :return: The value, with surrounding whitespace removed.

    :raise InvalidArgument: If the value is empty.
    """
    if not isinstance(value, str):
        raise ClientTypeError(f"'{argument}' must be a string, got {type(value).__name__}", valid_classes=(str,))
    if not (stripped := value.strip()):
        raise InvalidArgument(f"'{argument}' must not be empty")
    return stripped


def validate_limit(value: int | None, argument: str, maximum: int) -> int | None:
    """Check that an optional count is in the range `1..maximum`."""
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, int):
        raise ClientTypeError(f"'{argument}' must be an integer, got {type(value).__name__}", valid_classes=(int,))
    if not 1 <= value <= maximum:
        raise InvalidArgument(f"'{argument}' must be between 1 and {maximum}, got {value}")
    return value


def normalize_path(path: str, argument: str = "path", allow_root: bool = True) -> str:
    """Validate a path in the user's storage, and convert it to the canonical form used in requests.

    Canonical paths start with a slash and do not end with one, except for the root path (`/`). Repeated slashes are
    collapsed. Relative components (`.` and `..`) are not allowed, because the service does not resolve them.

    :param path: The path to validate.
    :param argument: The name of the argument, for error messages.
    :param allow_root: Whether the root folder is an acceptable value.

    :return: The canonical path.

    :raise InvalidArgument: If the path is empty or is not well-formed.
    """
    if not isinstance(path, str):
        raise ClientTypeError(f"'{argument}' must be a string, got {type(path).__name__}", valid_classes=(str,))
    if path == "":
        raise InvalidArgument(f"'{argument}' must not be empty")
    if _RE_CONTROL.search(path):
        raise InvalidArgument(f"'{argument}' must not contain control characters")
    if "\\" in path:
        raise InvalidArgument(f"'{argument}' must use '/' as the path separator")

    components = [component for component in path.split("/") if component]
    for component in components:
        if component in {".", ".."}:
            raise InvalidArgument(f"'{argument}' must not contain relative components, got '{path}'")
        if len(component) > MAX_COMPONENT_LENGTH:
            raise InvalidArgument(f"'{argument}' has a component longer than {MAX_COMPONENT_LENGTH} characters")
        if component != component.rstrip(" "):
            raise InvalidArgument(f"'{argument}' has a component with trailing whitespace, got '{path}'")

    if not components:
        if not allow_root:
            raise InvalidArgument(f"'{argument}' must not be the root folder")
        return ROOT_PATH
    return "/" + "/".join(components)

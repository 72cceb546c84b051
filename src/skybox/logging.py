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

"""Logging helpers for the Skybox SDK.

Every module in the SDK gets its logger from `getLogger`, so that all SDK log records are emitted beneath the
`skybox` logger namespace. Applications can configure that namespace as a whole, e.g.::

    import logging
    logging.getLogger("skybox").setLevel(logging.DEBUG)
"""

from __future__ import annotations

import logging

__all__ = ["getLogger"]

_ROOT = "skybox"

logging.getLogger(_ROOT).addHandler(logging.NullHandler())


def getLogger(name: str) -> logging.Logger:  # noqa: N802
    """Get a logger in the `skybox` namespace.

    :param name: The logger name, relative to the `skybox` namespace. Names that are already qualified are used as-is.

    :return: The logger.
    """
    if name != _ROOT and not name.startswith(_ROOT + "."):
        name = f"{_ROOT}.{name}"
    return logging.getLogger(name)

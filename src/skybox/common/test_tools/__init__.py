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

"""Skybox SDK Test Tools

The contents of this module are utilities that make it easy to test applications that use the SDK. These utilities
should only be used for unit tests.
"""

import sys
import warnings

from .consts import (
    ACCESS_TOKEN,
    API_URL,
    CLIENT_ID,
    CLIENT_SECRET,
    CONTENT_URL,
    CREDENTIAL,
    REDIRECT_URL,
    REFRESH_TOKEN,
    USER_ID,
    WEB_URL,
)
from .http import AbstractTestRequestHandler, MockResponse, TestHTTPHeaderDict, TestTransport, TestWithRestClient
from .utils import utc_datetime

if "pytest" not in sys.modules:
    # Issue a warning whenever this module is imported.
    warnings.warn(__doc__)

__all__ = [
    "ACCESS_TOKEN",
    "API_URL",
    "CLIENT_ID",
    "CLIENT_SECRET",
    "CONTENT_URL",
    "CREDENTIAL",
    "REDIRECT_URL",
    "REFRESH_TOKEN",
    "USER_ID",
    "WEB_URL",
    "AbstractTestRequestHandler",
    "MockResponse",
    "TestHTTPHeaderDict",
    "TestTransport",
    "TestWithRestClient",
    "utc_datetime",
]

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

from .connector import OAuthConnector
from .data import Credential
from .exceptions import AuthError, OAuthError
from .interfaces import ICredentialStore
from .oauth_redirect_handler import OAuthRedirectHandler
from .session import AuthorizationHandshake, Session, SessionListener, SessionState
from .store import FileCredentialStore, MemoryCredentialStore

__all__ = [
    "AuthError",
    "AuthorizationHandshake",
    "Credential",
    "FileCredentialStore",
    "ICredentialStore",
    "MemoryCredentialStore",
    "OAuthConnector",
    "OAuthError",
    "OAuthRedirectHandler",
    "Session",
    "SessionListener",
    "SessionState",
]

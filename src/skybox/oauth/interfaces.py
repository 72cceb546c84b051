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

from pure_interface import Interface

from .data import Credential

__all__ = [
    "ICredentialStore",
]


class ICredentialStore(Interface):
    """Interface for persisting the credential of a session between runs of an application.

    Credential stores are called synchronously by the session, while it holds its lock, so implementations should be
    quick and must not call back into the session.
    """

    def load(self) -> Credential | None:
        """Load the stored credential.

        :return: The stored credential, or None if no credential is stored.
        """
        ...  # pragma: no cover

    def save(self, credential: Credential) -> None:
        """Store a credential, replacing any credential that was stored before.

        :param credential: The credential to store.

        :raise OAuthError: If the credential could not be stored.
        """
        ...  # pragma: no cover

    def clear(self) -> None:
        """Remove the stored credential, if there is one."""
        ...  # pragma: no cover

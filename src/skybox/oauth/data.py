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

from datetime import datetime, timedelta, timezone
from typing import Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator

__all__ = [
    "Credential",
]


def _utcnow() -> datetime:
    """Get the current UTC time.

    :return: The current UTC time.
    """
    return datetime.now(timezone.utc)


class Credential(BaseModel):
    """A long-lived credential, issued by the OAuth server at the end of the authorization handshake.

    https://www.rfc-editor.org/rfc/rfc6749#section-5.1

    Credentials are immutable. A credential is replaced as a whole when the user authorizes again, or when it is
    refreshed.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    token_type: str = "bearer"
    """The type of the access token. Only bearer tokens are supported."""

    access_token: str = Field(repr=False)
    """The access token issued by the authorization server."""

    refresh_token: Optional[str] = Field(default=None, repr=False)
    """The refresh token, if the server issued one."""

    expires_in: Optional[int] = None
    """The lifetime in seconds of the access token, if the server reported one."""

    user_id: Optional[str] = Field(default=None, validation_alias=AliasChoices("user_id", "uid"))
    """The ID of the user who authorized the application."""

    issued_at: datetime = Field(default_factory=_utcnow)
    """The time at which the token response was received."""

    @field_validator("token_type")
    @classmethod
    def _check_token_type(cls, value: str) -> str:
        if value.lower() != "bearer":
            raise ValueError(f"Unsupported token type '{value}'")
        return "bearer"

    @field_validator("user_id", mode="before")
    @classmethod
    def _coerce_user_id(cls, value: object) -> object:
        # Some servers report the user ID as a number.
        return str(value) if isinstance(value, int) else value

    @property
    def expires_at(self) -> datetime | None:
        """The time at which the token expires, or None if the token lifetime is unknown."""
        if self.expires_in is None:
            return None
        return self.issued_at + timedelta(seconds=self.expires_in)

    @property
    def ttl(self) -> int | None:
        """The time-to-live (TTL) of this access token in seconds, or None if the token lifetime is unknown.

        If the token is expired, the TTL will be 0.
        """
        if self.expires_at is None:
            return None
        ttl = self.expires_at - _utcnow()
        return max(round(ttl.total_seconds()), 0)

    @property
    def is_expired(self) -> bool:
        """Whether this access token has expired. Always False if the token lifetime is unknown."""
        if (expiry := self.expires_at) is not None:
            return _utcnow() > expiry
        else:
            return False

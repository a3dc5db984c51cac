"""
Identity and Session Models

ExternalCredential is what the platform sign-in flow hands us.
Session is the explicit "who is signed in" value threaded through
every operation that needs the current user.
"""

from typing import Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field


class ExternalCredential(BaseModel):
    """
    A resolved assertion from the external identity provider.

    CRITICAL: subject_id may be missing or blank here; the auth gateway
    rejects such credentials with InvalidCredentialError instead of
    creating a partial user.
    """
    model_config = ConfigDict(str_strip_whitespace=True, frozen=True)

    subject_id: Optional[str] = Field(
        default=None,
        max_length=255,
        description="Stable subject identifier from the provider (e.g. 'apple:123')"
    )
    proposed_name: Optional[str] = Field(
        default=None,
        max_length=200,
        description="Display name offered by the provider, if any"
    )

    @property
    def has_subject(self) -> bool:
        return bool(self.subject_id)


class Session(BaseModel):
    """
    The signed-in user for this device.

    An empty user_id means nobody is signed in.
    """
    model_config = ConfigDict(frozen=True)

    user_id: str = ""
    display_name: str = ""

    @property
    def is_authenticated(self) -> bool:
        return bool(self.user_id)

    @property
    def user_uuid(self) -> Optional[UUID]:
        """The user id as a UUID, or None when signed out or malformed."""
        if not self.user_id:
            return None
        try:
            return UUID(self.user_id)
        except ValueError:
            return None

    @classmethod
    def anonymous(cls) -> "Session":
        return cls()

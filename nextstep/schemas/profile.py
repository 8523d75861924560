"""
Profile document models.

Field names on the wire are camelCase, matching the ``users`` collection; the
Python attributes are snake_case aliases of them.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

ROLE_STUDENT = "student"
ROLE_ADMIN = "admin"


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def parse_timestamp(value: Optional[str]) -> Optional[datetime]:
    """Parse an ISO-8601 timestamp; naive values are taken as UTC."""
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


class ExamRecord(BaseModel):
    """A single exam entry: rank plus verification state."""

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    rank: Optional[int] = None
    verified: bool = False
    date_updated: Optional[str] = Field(None, alias="dateUpdated")
    date_added: Optional[str] = Field(None, alias="dateAdded")


class Profile(BaseModel):
    """Application-level user record stored under ``users/<uid>``."""

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    uid: str
    email: Optional[str] = None
    display_name: Optional[str] = Field(None, alias="displayName")
    name: Optional[str] = None
    mobile_number: Optional[str] = Field(None, alias="mobileNumber")
    user_role: str = Field(ROLE_STUDENT, alias="userRole")
    is_active: bool = Field(True, alias="isActive")
    email_verified: Optional[bool] = Field(None, alias="emailVerified")
    exam_data: Dict[str, ExamRecord] = Field(default_factory=dict, alias="examData")
    admin_notes: Optional[str] = Field(None, alias="adminNotes")
    created_at: Optional[str] = Field(None, alias="createdAt")
    last_updated: Optional[str] = Field(None, alias="lastUpdated")
    updated_at: Optional[str] = Field(None, alias="updatedAt")
    updated_by: Optional[str] = Field(None, alias="updatedBy")
    is_paid: bool = Field(False, alias="isPaid")
    payment_expiry: Optional[str] = Field(None, alias="paymentExpiry")
    verification_code: Optional[str] = Field(None, alias="verificationCode")
    verified_at: Optional[str] = Field(None, alias="verifiedAt")
    payment_history: List[Dict[str, Any]] = Field(
        default_factory=list, alias="paymentHistory"
    )

    @classmethod
    def from_document(cls, uid: str, data: Dict[str, Any]) -> "Profile":
        """Build a profile from a stored document; the key is authoritative for ``uid``."""
        payload = dict(data)
        payload["uid"] = uid
        return cls.model_validate(payload)

    def to_document(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True, mode="json")

    def apply(self, update: "ProfileUpdate") -> "Profile":
        """Return a copy with ``update`` shallow-merged over this profile."""
        data = self.to_document()
        data.update(update.to_document())
        return Profile.from_document(self.uid, data)

    @property
    def is_admin(self) -> bool:
        return self.user_role == ROLE_ADMIN


class ProfileUpdate(BaseModel):
    """
    Partial profile change.

    Only fields that were explicitly provided are carried, so two updates can be
    merged key by key without one resetting the other's fields to defaults.
    """

    model_config = ConfigDict(populate_by_name=True, extra="forbid")

    email: Optional[str] = None
    display_name: Optional[str] = Field(None, alias="displayName")
    name: Optional[str] = None
    mobile_number: Optional[str] = Field(None, alias="mobileNumber")
    user_role: Optional[str] = Field(None, alias="userRole")
    is_active: Optional[bool] = Field(None, alias="isActive")
    email_verified: Optional[bool] = Field(None, alias="emailVerified")
    exam_data: Optional[Dict[str, ExamRecord]] = Field(None, alias="examData")
    admin_notes: Optional[str] = Field(None, alias="adminNotes")
    created_at: Optional[str] = Field(None, alias="createdAt")
    last_updated: Optional[str] = Field(None, alias="lastUpdated")
    updated_at: Optional[str] = Field(None, alias="updatedAt")
    updated_by: Optional[str] = Field(None, alias="updatedBy")
    is_paid: Optional[bool] = Field(None, alias="isPaid")
    payment_expiry: Optional[str] = Field(None, alias="paymentExpiry")
    verification_code: Optional[str] = Field(None, alias="verificationCode")
    verified_at: Optional[str] = Field(None, alias="verifiedAt")
    payment_history: Optional[List[Dict[str, Any]]] = Field(None, alias="paymentHistory")

    def to_document(self) -> Dict[str, Any]:
        # None never clears a stored field.
        return self.model_dump(
            by_alias=True, exclude_unset=True, exclude_none=True, mode="json"
        )

    def merged_with(self, newer: "ProfileUpdate") -> "ProfileUpdate":
        """Shallow merge where keys present in ``newer`` win."""
        return ProfileUpdate.model_validate({**self.to_document(), **newer.to_document()})

    def is_empty(self) -> bool:
        return not self.to_document()


def default_profile(
    uid: str,
    *,
    email: Optional[str] = None,
    display_name: Optional[str] = None,
) -> Profile:
    """Profile synthesized for a user without a stored document."""
    now = utc_now_iso()
    return Profile(
        uid=uid,
        email=email,
        display_name=display_name,
        name=display_name,
        user_role=ROLE_STUDENT,
        is_active=True,
        created_at=now,
        last_updated=now,
    )


__all__ = [
    "ExamRecord",
    "Profile",
    "ProfileUpdate",
    "ROLE_ADMIN",
    "ROLE_STUDENT",
    "default_profile",
    "parse_timestamp",
    "utc_now_iso",
]

"""Schemas for premium gating and verification-code redemption."""

from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field


class PaymentStatus(BaseModel):
    is_paid: bool = False
    payment_expiry: Optional[datetime] = None


class VerificationCode(BaseModel):
    """Document in the ``verificationCodes`` collection."""

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    code: str
    is_active: bool = Field(False, alias="isActive")
    max_uses: int = Field(1, alias="maxUses")
    used_count: int = Field(0, alias="usedCount")
    used_by: List[str] = Field(default_factory=list, alias="usedBy")
    expiry_days: int = Field(30, alias="expiryDays")
    last_used_at: Optional[str] = Field(None, alias="lastUsedAt")


__all__ = ["PaymentStatus", "VerificationCode"]

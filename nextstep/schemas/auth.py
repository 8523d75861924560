"""Schemas related to signup and login flows."""

from __future__ import annotations

from typing import Dict

from pydantic import BaseModel, Field


class SignupRequest(BaseModel):
    """Payload collected by the two-step signup form."""

    name: str = Field(..., description="Display name entered on step one.")
    email: str
    mobile_number: str = Field(..., description="Ten-digit Indian mobile number.")
    password: str
    confirm_password: str
    terms_agreed: bool = False
    exam_ranks: Dict[str, str] = Field(
        default_factory=dict,
        description="Raw rank input keyed by exam (e.g. 'JeeMain': '1520').",
    )


__all__ = ["SignupRequest"]

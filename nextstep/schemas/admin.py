"""Schemas used by the admin user-management console and dashboard."""

from __future__ import annotations

from datetime import date
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, Field

from .profile import Profile


class UserFilters(BaseModel):
    """Client-side filters applied to a loaded page of users."""

    role: str = "all"
    exam: str = "all"
    status: Literal["all", "active", "inactive", "unverified"] = "all"
    date_from: Optional[date] = None
    date_to: Optional[date] = None
    search_term: str = ""


class UserPage(BaseModel):
    """One page of users together with the cursors used to move from it."""

    users: List[Profile] = Field(default_factory=list)
    first_cursor: Optional[List[Any]] = None
    last_cursor: Optional[List[Any]] = None


class DashboardStats(BaseModel):
    total_users: int = 0
    new_signups: int = 0
    exam_distribution: Dict[str, int] = Field(default_factory=dict)


__all__ = ["DashboardStats", "UserFilters", "UserPage"]

"""Public schema exports."""

from .admin import DashboardStats, UserFilters, UserPage
from .auth import SignupRequest
from .identity import Identity
from .premium import PaymentStatus, VerificationCode
from .profile import (
    ROLE_ADMIN,
    ROLE_STUDENT,
    ExamRecord,
    Profile,
    ProfileUpdate,
    default_profile,
)

__all__ = [
    "DashboardStats",
    "ExamRecord",
    "Identity",
    "PaymentStatus",
    "Profile",
    "ProfileUpdate",
    "ROLE_ADMIN",
    "ROLE_STUDENT",
    "SignupRequest",
    "UserFilters",
    "UserPage",
    "VerificationCode",
    "default_profile",
]

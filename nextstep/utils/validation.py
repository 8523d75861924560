"""Validation helpers for signup, login and exam forms."""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Callable, Iterable, Tuple

from nextstep.core.errors import FormValidationError

_EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
_MOBILE_PATTERN = re.compile(r"^[6-9]\d{9}$")
_RANK_PATTERN = re.compile(r"^\d+$")

_PASSWORD_RULES: Tuple[Tuple[Callable[[str], bool], str], ...] = (
    (lambda pw: len(pw) >= 8, "Password must be at least 8 characters long"),
    (lambda pw: re.search(r"[A-Z]", pw) is not None, "Must contain at least one uppercase letter"),
    (lambda pw: re.search(r"[a-z]", pw) is not None, "Must contain at least one lowercase letter"),
    (lambda pw: re.search(r"[0-9]", pw) is not None, "Must contain at least one number"),
    (lambda pw: re.search(r"[!@#$%^&*]", pw) is not None, "Must contain at least one special character"),
)


@dataclass(frozen=True, slots=True)
class ValidationResult:
    is_valid: bool
    error: str = ""


def validate_email(email: str) -> ValidationResult:
    if _EMAIL_PATTERN.match(email.strip()):
        return ValidationResult(True)
    return ValidationResult(False, "Please enter a valid email address")


def validate_password(password: str) -> ValidationResult:
    """Report the first password rule that fails, in rule order."""
    for test, message in _PASSWORD_RULES:
        if not test(password):
            return ValidationResult(False, message)
    return ValidationResult(True)


def validate_name(name: str) -> ValidationResult:
    if len(name.strip()) >= 2:
        return ValidationResult(True)
    return ValidationResult(False, "Name must be at least 2 characters long")


def validate_mobile_number(number: str) -> ValidationResult:
    """Indian mobile numbers: ten digits starting with 6-9."""
    if _MOBILE_PATTERN.match(number.strip()):
        return ValidationResult(True)
    return ValidationResult(False, "Please enter a valid 10-digit mobile number")


def validate_rank(value: str, *, exam: str = "exam") -> ValidationResult:
    cleaned = value.strip()
    if _RANK_PATTERN.match(cleaned) and int(cleaned) > 0:
        return ValidationResult(True)
    return ValidationResult(False, f"Please enter a valid {exam} rank number")


def validate_form(
    checks: Iterable[Tuple[str, str, Callable[[str], ValidationResult]]],
) -> None:
    """
    Run ``(field, value, validator)`` checks in order.

    Raises :class:`FormValidationError` for the first failing field.
    """
    for field, value, validator in checks:
        result = validator(value)
        if not result.is_valid:
            raise FormValidationError(field, result.error)


__all__ = [
    "ValidationResult",
    "validate_email",
    "validate_form",
    "validate_mobile_number",
    "validate_name",
    "validate_password",
    "validate_rank",
]

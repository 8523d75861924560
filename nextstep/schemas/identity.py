"""Authenticated principal issued by the identity provider."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional


@dataclass(slots=True)
class Identity:
    """
    A signed-in user as reported by the identity provider.

    ``refresh_token`` rotates whenever the provider mints a new ID token, so the
    object is mutable and shared by reference between the session components.
    """

    uid: str
    email: Optional[str] = None
    display_name: Optional[str] = None
    email_verified: bool = False
    refresh_token: Optional[str] = None
    id_token: Optional[str] = None

    @property
    def label(self) -> str:
        """Name used in greetings and default profiles."""
        if self.display_name:
            return self.display_name
        if self.email:
            return self.email.split("@", 1)[0]
        return "User"


__all__ = ["Identity"]

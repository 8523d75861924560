"""Durable mirror of profile documents plus a write-behind pending overlay."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Optional

from pydantic import ValidationError

from nextstep.clients.local_storage import LocalStorage
from nextstep.schemas.profile import Profile, ProfileUpdate

logger = logging.getLogger(__name__)

CACHED_PROFILE_PREFIX = "user_profile_"
PENDING_PROFILE_PREFIX = "pending_profile_"


class ProfileCache:
    """
    Local profile snapshots keyed by uid.

    Snapshots are never evicted by age; ``storedAt`` is kept for debugging only.
    """

    def __init__(self, storage: LocalStorage) -> None:
        self._storage = storage

    def read_cached(self, uid: str) -> Optional[Profile]:
        record = self._storage.get_json(f"{CACHED_PROFILE_PREFIX}{uid}")
        if not record or not isinstance(record.get("profile"), dict):
            return None
        try:
            return Profile.from_document(uid, record["profile"])
        except ValidationError:
            logger.warning("Discarding unreadable cached profile for %s", uid)
            return None

    def cached_at(self, uid: str) -> Optional[datetime]:
        record = self._storage.get_json(f"{CACHED_PROFILE_PREFIX}{uid}")
        if not record or not record.get("storedAt"):
            return None
        return datetime.fromisoformat(record["storedAt"])

    def write_cached(self, uid: str, profile: Profile) -> None:
        self._storage.set_json(
            f"{CACHED_PROFILE_PREFIX}{uid}",
            {
                "profile": profile.to_document(),
                "storedAt": datetime.now(timezone.utc).isoformat(),
            },
        )

    def clear_cached(self, uid: str) -> None:
        self._storage.remove_item(f"{CACHED_PROFILE_PREFIX}{uid}")

    def read_pending(self, uid: str) -> Optional[ProfileUpdate]:
        record = self._storage.get_json(f"{PENDING_PROFILE_PREFIX}{uid}")
        if not record:
            return None
        try:
            return ProfileUpdate.model_validate(record)
        except ValidationError:
            logger.warning("Discarding unreadable pending profile for %s", uid)
            return None

    def stage_pending(self, uid: str, update: ProfileUpdate) -> ProfileUpdate:
        """Merge ``update`` over any staged changes for ``uid`` and persist the result."""
        existing = self.read_pending(uid)
        merged = existing.merged_with(update) if existing else update
        self._storage.set_json(f"{PENDING_PROFILE_PREFIX}{uid}", merged.to_document())
        logger.info("Staged pending profile changes for %s", uid)
        return merged

    def clear_pending(self, uid: str) -> None:
        self._storage.remove_item(f"{PENDING_PROFILE_PREFIX}{uid}")


__all__ = ["CACHED_PROFILE_PREFIX", "PENDING_PROFILE_PREFIX", "ProfileCache"]

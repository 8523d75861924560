"""
Reconciles the local profile cache with the remote ``users`` collection.

Every public operation resolves to a usable result: remote failures degrade to
the cached snapshot, a synthesized default profile, or a staged pending write,
and are logged rather than raised.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Dict, Optional, Set

from nextstep.clients.firestore import FirestoreClient
from nextstep.core.errors import ProviderError, StoreDeniedError, StoreError
from nextstep.schemas.identity import Identity
from nextstep.schemas.profile import Profile, ProfileUpdate, default_profile, utc_now_iso
from nextstep.services.profile_cache import ProfileCache
from nextstep.services.token_store import TokenStore
from nextstep.utils.retry import RetryConfig, retry_operation

logger = logging.getLogger(__name__)

USERS_COLLECTION = "users"
PROBE_COLLECTION = "system_test"
PROBE_DOCUMENT = "connection_test"


class ProfileSyncEngine:
    """Fetch, create and update profiles with offline fallback and pending writes."""

    def __init__(
        self,
        store: FirestoreClient,
        token_store: TokenStore,
        cache: ProfileCache,
        *,
        retry_config: Optional[RetryConfig] = None,
        fetch_dedup_wait_seconds: float = 0.5,
    ) -> None:
        self._store = store
        self._tokens = token_store
        self._cache = cache
        self._retry = retry_config or RetryConfig(attempts=3, backoff_seconds=1.0)
        self._dedup_wait = fetch_dedup_wait_seconds
        self._profiles: Dict[str, Profile] = {}
        self._fetch_in_progress: Set[str] = set()

    @property
    def cache(self) -> ProfileCache:
        return self._cache

    def get_profile(self, uid: str) -> Optional[Profile]:
        """Profile held in memory for ``uid``, if any."""
        return self._profiles.get(uid)

    async def get_user_data(self, identity: Identity) -> Profile:
        existing = self._profiles.get(identity.uid)
        if existing is not None:
            return existing
        return await self.fetch_or_create(identity)

    def reset(self) -> None:
        self._profiles.clear()

    def default_profile_for(self, identity: Identity) -> Profile:
        return default_profile(
            identity.uid, email=identity.email, display_name=identity.label
        )

    async def probe_connectivity(self, identity: Identity) -> bool:
        """
        Tell an unreachable store apart from one that merely denies access.

        Reads the user's own document first; if that read is denied, falls back
        to a write/read round-trip on the scratch collection.
        """
        token = self._tokens.get_current_token()
        try:
            await self._store.get_document(USERS_COLLECTION, identity.uid, id_token=token)
            return True
        except StoreDeniedError:
            logger.info("Direct profile read denied for %s; probing scratch collection", identity.uid)
        except StoreError as exc:
            logger.warning("Document store unreachable: %s", exc)
            return False
        except Exception:
            logger.exception("Unexpected error reading profile for %s", identity.uid)
            return False

        try:
            await self._store.set_document(
                PROBE_COLLECTION,
                PROBE_DOCUMENT,
                {"timestamp": utc_now_iso(), "test": "Connection test"},
                id_token=token,
            )
            snapshot = await self._store.get_document(
                PROBE_COLLECTION, PROBE_DOCUMENT, id_token=token
            )
        except StoreError as exc:
            logger.warning("Document store connectivity probe failed: %s", exc)
            return False
        except Exception:
            logger.exception("Unexpected error during connectivity probe")
            return False
        return snapshot is not None

    async def fetch_or_create(self, identity: Identity) -> Profile:
        """Return the user's profile from the store, creating it when absent."""
        uid = identity.uid
        if uid in self._fetch_in_progress:
            logger.info("Profile fetch already in progress for %s; waiting", uid)
            await asyncio.sleep(self._dedup_wait)
            existing = self._profiles.get(uid)
            return existing if existing is not None else self._local_fallback(identity)

        self._fetch_in_progress.add(uid)
        try:
            if not await self.probe_connectivity(identity):
                logger.warning("Document store unavailable; using local profile for %s", uid)
                return self._local_fallback(identity)

            outcome = await retry_operation(
                lambda: self._load_or_create(identity), self._retry
            )
            if outcome.success and outcome.result is not None:
                return outcome.result
            logger.error(
                "Profile fetch failed for %s after %s attempts: %s",
                uid,
                outcome.attempts,
                outcome.error,
            )
            return self._local_fallback(identity)
        finally:
            self._fetch_in_progress.discard(uid)

    async def _load_or_create(self, identity: Identity) -> Profile:
        uid = identity.uid
        token = self._tokens.get_current_token()
        try:
            data = await self._store.get_document(USERS_COLLECTION, uid, id_token=token)
        except StoreDeniedError as exc:
            logger.warning("Profile read denied for %s (%s); using local copy", uid, exc.code)
            return self._local_fallback(identity)

        if data is not None:
            profile = Profile.from_document(uid, data)
            self._remember(profile)
            logger.info("User profile loaded for %s", uid)
            return profile

        pending = self._cache.read_pending(uid)
        profile = self.default_profile_for(identity)
        if pending is not None:
            profile = profile.apply(pending)
        try:
            await self._store.set_document(
                USERS_COLLECTION, uid, profile.to_document(), id_token=token
            )
        except StoreDeniedError:
            logger.warning("Profile creation denied for %s; keeping it local", uid)
            return self._local_fallback(identity)

        if pending is not None:
            self._cache.clear_pending(uid)
        self._remember(profile)
        logger.info("Created profile document for %s", uid)
        return profile

    async def create_profile(
        self,
        identity: Identity,
        data: ProfileUpdate,
        *,
        id_token: Optional[str] = None,
    ) -> bool:
        """Write a full profile document built from defaults overlaid with ``data``."""
        uid = identity.uid
        now = utc_now_iso()
        profile = self.default_profile_for(identity).apply(data)
        profile = profile.model_copy(update={"created_at": now, "last_updated": now})
        token = id_token or await self._write_token(identity)

        outcome = await retry_operation(
            lambda: self._store.set_document(
                USERS_COLLECTION, uid, profile.to_document(), id_token=token
            ),
            self._retry,
        )
        if not outcome.success:
            logger.error("Failed to create user profile for %s: %s", uid, outcome.error)
            return False
        self._remember(profile)
        logger.info("User profile created successfully for %s", uid)
        return True

    async def update_profile(self, identity: Identity, update: ProfileUpdate) -> bool:
        """
        Apply ``update`` remotely, or stage it for later when that fails.

        The local copy always reflects the update; the return value reports
        whether the store confirmed it.
        """
        uid = identity.uid
        try:
            return await self._apply_update(identity, update)
        except Exception:
            logger.exception("Unexpected error updating profile for %s", uid)
            return self._defer_update(identity, update)

    async def _apply_update(self, identity: Identity, update: ProfileUpdate) -> bool:
        uid = identity.uid
        token = await self._write_token(identity)
        try:
            existing = await self._store.get_document(USERS_COLLECTION, uid, id_token=token)
        except StoreError as exc:
            logger.error("Could not read profile for %s before update: %s", uid, exc)
            return self._defer_update(identity, update)

        if existing is None:
            if await self.create_profile(identity, update, id_token=token):
                self._cache.clear_pending(uid)
                return True
            return self._defer_update(identity, update)

        now = utc_now_iso()
        payload = update.to_document()
        payload["lastUpdated"] = now
        try:
            await self._store.update_document(USERS_COLLECTION, uid, payload, id_token=token)
        except StoreError as exc:
            logger.error("Error updating user profile for %s: %s", uid, exc)
            return self._defer_update(identity, update)

        updated = Profile.from_document(uid, existing).apply(update)
        self._remember(updated.model_copy(update={"last_updated": now}))
        self._cache.clear_pending(uid)
        logger.info("User profile updated successfully for %s", uid)
        return True

    async def sync_pending_profile(self, identity: Identity) -> bool:
        """Flush staged changes for ``identity``; True once nothing is pending."""
        uid = identity.uid
        if self._cache.read_pending(uid) is None:
            return True

        logger.info("Syncing pending profile changes for %s", uid)
        await self.fetch_or_create(identity)
        pending = self._cache.read_pending(uid)
        if pending is None:
            return True

        synced = await self.update_profile(identity, pending)
        if not synced:
            logger.warning("Pending profile changes for %s remain unsynced", uid)
        return synced and self._cache.read_pending(uid) is None

    async def _write_token(self, identity: Identity) -> Optional[str]:
        try:
            return (await self._tokens.acquire(identity)).value
        except ProviderError as exc:
            logger.warning("Could not mint a fresh token for %s: %s", identity.uid, exc)
            return self._tokens.get_current_token()

    def _defer_update(self, identity: Identity, update: ProfileUpdate) -> bool:
        uid = identity.uid
        self._cache.stage_pending(uid, update)
        base = (
            self._profiles.get(uid)
            or self._cache.read_cached(uid)
            or self.default_profile_for(identity)
        )
        self._remember(base.apply(update))
        return False

    def _local_fallback(self, identity: Identity) -> Profile:
        uid = identity.uid
        cached = self._cache.read_cached(uid)
        if cached is not None:
            self._profiles[uid] = cached
            return cached

        profile = self.default_profile_for(identity)
        pending = self._cache.read_pending(uid)
        if pending is not None:
            profile = profile.apply(pending)
        logger.info("Using default profile for %s", uid)
        self._remember(profile)
        return profile

    def _remember(self, profile: Profile) -> None:
        self._profiles[profile.uid] = profile
        self._cache.write_cached(profile.uid, profile)


__all__ = [
    "PROBE_COLLECTION",
    "PROBE_DOCUMENT",
    "ProfileSyncEngine",
    "USERS_COLLECTION",
]

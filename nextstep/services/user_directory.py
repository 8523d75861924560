"""Lookups over the ``users`` collection."""

from __future__ import annotations

import logging
from typing import Optional

from nextstep.clients.firestore import FirestoreClient
from nextstep.core.errors import StoreError
from nextstep.schemas.identity import Identity
from nextstep.schemas.profile import Profile
from nextstep.services.profile_sync import USERS_COLLECTION, ProfileSyncEngine
from nextstep.services.token_store import TokenStore

logger = logging.getLogger(__name__)


class UserDirectory:
    def __init__(
        self,
        store: FirestoreClient,
        token_store: TokenStore,
        sync_engine: ProfileSyncEngine,
    ) -> None:
        self._store = store
        self._tokens = token_store
        self._engine = sync_engine

    async def find_user_by_email(self, email: Optional[str]) -> Optional[Profile]:
        """First profile whose ``email`` matches exactly, or None."""
        if not email or not email.strip():
            return None
        try:
            documents = await self._store.run_query(
                USERS_COLLECTION,
                filters=[("email", "==", email.strip())],
                limit=1,
                id_token=self._tokens.get_current_token(),
            )
        except StoreError as exc:
            logger.error("Error finding user by email: %s", exc)
            return None
        if not documents:
            return None
        return Profile.from_document(documents[0].id, documents[0].data)

    async def is_user_admin(self, identity: Optional[Identity]) -> bool:
        if identity is None:
            return False
        profile = await self._engine.get_user_data(identity)
        return profile.is_admin


__all__ = ["UserDirectory"]

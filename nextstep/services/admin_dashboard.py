"""Aggregate numbers and recent signups for the admin dashboard."""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import List, Optional

from nextstep.clients.firestore import FirestoreClient
from nextstep.core.errors import StoreError
from nextstep.schemas.admin import DashboardStats
from nextstep.schemas.profile import Profile
from nextstep.services.exam_service import EXAMS
from nextstep.services.notifications import LoggingNotifier, Notifier
from nextstep.services.profile_sync import USERS_COLLECTION
from nextstep.services.token_store import TokenStore

logger = logging.getLogger(__name__)

NEW_SIGNUP_WINDOW = timedelta(days=7)
RECENT_USERS_LIMIT = 5


class AdminDashboardService:
    def __init__(
        self,
        store: FirestoreClient,
        token_store: TokenStore,
        *,
        notifier: Optional[Notifier] = None,
    ) -> None:
        self._store = store
        self._tokens = token_store
        self._notifier = notifier or LoggingNotifier()

    async def user_statistics(self) -> DashboardStats:
        """Total users, signups in the last week and how many users list each exam."""
        token = self._tokens.get_current_token()
        since = (datetime.now(timezone.utc) - NEW_SIGNUP_WINDOW).isoformat()
        try:
            total = await self._store.count(USERS_COLLECTION, id_token=token)
            new_signups = await self._store.count(
                USERS_COLLECTION, filters=[("createdAt", ">=", since)], id_token=token
            )
            distribution = {}
            for exam in EXAMS:
                distribution[exam] = await self._store.count(
                    USERS_COLLECTION,
                    filters=[(f"examData.{exam}", "!=", None)],
                    id_token=token,
                )
        except StoreError as exc:
            logger.error("Error loading user statistics: %s", exc)
            self._notifier.notify("Error loading dashboard statistics", "error")
            return DashboardStats()

        return DashboardStats(
            total_users=total, new_signups=new_signups, exam_distribution=distribution
        )

    async def recent_users(self, limit: int = RECENT_USERS_LIMIT) -> List[Profile]:
        try:
            documents = await self._store.run_query(
                USERS_COLLECTION,
                order_by=[("createdAt", "desc")],
                limit=limit,
                id_token=self._tokens.get_current_token(),
            )
        except StoreError as exc:
            logger.error("Error loading recent users: %s", exc)
            return []
        return [Profile.from_document(doc.id, doc.data) for doc in documents]


__all__ = ["AdminDashboardService", "NEW_SIGNUP_WINDOW", "RECENT_USERS_LIMIT"]

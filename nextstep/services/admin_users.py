"""
Admin user-management console: paged listing, filtering and user edits.

Pages are fetched with cursors ordered by the current sort field; filters run
over the loaded page only.
"""

from __future__ import annotations

import asyncio
import csv
import io
import logging
from datetime import timezone
from typing import Any, Iterable, List, Literal, Optional, Set

from nextstep.clients.firestore import DocumentRef, FirestoreClient, StoredDocument
from nextstep.core.errors import StoreError
from nextstep.schemas.admin import UserFilters, UserPage
from nextstep.schemas.identity import Identity
from nextstep.schemas.profile import Profile, ProfileUpdate, parse_timestamp, utc_now_iso
from nextstep.services.exam_service import EXAMS
from nextstep.services.notifications import LoggingNotifier, Notifier
from nextstep.services.profile_sync import USERS_COLLECTION
from nextstep.services.token_store import TokenStore

logger = logging.getLogger(__name__)

PAGE_SIZE = 10
DEFAULT_SORT_FIELD = "createdAt"

PageDirection = Literal["first", "next", "prev"]

CSV_HEADER = ["Name", "Email", "Mobile", "Role", "Status", "Registration Date", "Exams"]


def filter_users(users: Iterable[Profile], filters: UserFilters) -> List[Profile]:
    """Apply the console filters; the date range is inclusive on both ends."""
    term = filters.search_term.strip().lower()
    matched: List[Profile] = []
    for user in users:
        if filters.role != "all" and user.user_role != filters.role:
            continue
        if filters.exam != "all" and filters.exam not in user.exam_data:
            continue
        if filters.status == "active" and user.is_active is not True:
            continue
        if filters.status == "inactive" and user.is_active is not False:
            continue
        if filters.status == "unverified" and user.email_verified is not False:
            continue

        if filters.date_from or filters.date_to:
            created = parse_timestamp(user.created_at)
            if created is None:
                continue
            created_on = created.astimezone(timezone.utc).date()
            if filters.date_from and created_on < filters.date_from:
                continue
            if filters.date_to and created_on > filters.date_to:
                continue

        if term and not (
            (user.name and term in user.name.lower())
            or (user.email and term in user.email.lower())
            or (user.mobile_number and term in user.mobile_number)
        ):
            continue
        matched.append(user)
    return matched


def _field_value(data: dict, path: str) -> Any:
    value: Any = data
    for part in path.split("."):
        if not isinstance(value, dict):
            return None
        value = value.get(part)
    return value


class AdminUserService:
    """State and operations behind the admin users table."""

    def __init__(
        self,
        store: FirestoreClient,
        token_store: TokenStore,
        *,
        notifier: Optional[Notifier] = None,
        page_size: int = PAGE_SIZE,
    ) -> None:
        self._store = store
        self._tokens = token_store
        self._notifier = notifier or LoggingNotifier()
        self.page_size = page_size
        self.current_admin: Optional[Identity] = None
        self.users: List[Profile] = []
        self.filtered_users: List[Profile] = []
        self.filters = UserFilters()
        self.total_users = 0
        self.current_page = 1
        self.selected_user_ids: Set[str] = set()
        self.sort_field = DEFAULT_SORT_FIELD
        self.sort_direction = "desc"
        self._first_cursor: Optional[List[Any]] = None
        self._last_cursor: Optional[List[Any]] = None

    async def verify_admin_status(self, uid: str) -> bool:
        try:
            data = await self._store.get_document(
                USERS_COLLECTION, uid, id_token=self._tokens.get_current_token()
            )
        except StoreError as exc:
            logger.error("Admin verification error for %s: %s", uid, exc)
            return False
        return bool(data) and data.get("userRole") == "admin"

    async def initialize(self, identity: Optional[Identity]) -> bool:
        """Gate the console on the admin role, then load the first page."""
        if identity is None or not await self.verify_admin_status(identity.uid):
            self._notifier.notify("Access denied. Admin privileges required.", "error")
            return False
        self.current_admin = identity
        await self.load_users()
        return True

    def sort_by(self, field: str) -> None:
        """Sort by ``field``; choosing the current field again flips the direction."""
        if field == self.sort_field:
            self.sort_direction = "asc" if self.sort_direction == "desc" else "desc"
        else:
            self.sort_field = field
            self.sort_direction = "asc"
        self.reset_pagination()

    def reset_pagination(self) -> None:
        self._first_cursor = None
        self._last_cursor = None
        self.current_page = 1

    async def load_users(self, direction: PageDirection = "first") -> UserPage:
        order = [(self.sort_field, self.sort_direction), ("__name__", self.sort_direction)]
        token = self._tokens.get_current_token()
        try:
            if direction == "next" and self._last_cursor is not None:
                documents = await self._store.run_query(
                    USERS_COLLECTION,
                    order_by=order,
                    start_after=self._last_cursor,
                    limit=self.page_size,
                    id_token=token,
                )
            elif direction == "prev" and self._first_cursor is not None:
                flipped = "asc" if self.sort_direction == "desc" else "desc"
                documents = await self._store.run_query(
                    USERS_COLLECTION,
                    order_by=[(self.sort_field, flipped), ("__name__", flipped)],
                    start_after=self._first_cursor,
                    limit=self.page_size,
                    id_token=token,
                )
                documents.reverse()
            else:
                direction = "first"
                documents = await self._store.run_query(
                    USERS_COLLECTION, order_by=order, limit=self.page_size, id_token=token
                )
        except StoreError as exc:
            logger.error("Error loading users: %s", exc)
            self._notifier.notify("Error loading users", "error")
            return self._page()

        if direction == "first":
            self.reset_pagination()
        if documents:
            self._first_cursor = self._cursor(documents[0])
            self._last_cursor = self._cursor(documents[-1])
            if direction == "next":
                self.current_page += 1
            elif direction == "prev":
                self.current_page = max(1, self.current_page - 1)

        self.users = [Profile.from_document(doc.id, doc.data) for doc in documents]
        self.apply_filters()
        await self.count_total_users()
        return self._page()

    def _cursor(self, document: StoredDocument) -> List[Any]:
        return [_field_value(document.data, self.sort_field), DocumentRef(document.name)]

    def _page(self) -> UserPage:
        return UserPage(
            users=list(self.users),
            first_cursor=self._first_cursor,
            last_cursor=self._last_cursor,
        )

    async def count_total_users(self) -> int:
        try:
            self.total_users = await self._store.count(
                USERS_COLLECTION, id_token=self._tokens.get_current_token()
            )
        except StoreError as exc:
            logger.error("Error counting users: %s", exc)
        return self.total_users

    def apply_filters(self, filters: Optional[UserFilters] = None) -> List[Profile]:
        if filters is not None:
            self.filters = filters
        self.filtered_users = filter_users(self.users, self.filters)
        return self.filtered_users

    def _audit_stamp(self) -> Optional[dict]:
        if self.current_admin is None:
            self._notifier.notify("Admin access required", "error")
            return None
        return {"updatedAt": utc_now_iso(), "updatedBy": self.current_admin.uid}

    async def save_user_changes(self, uid: str, update: ProfileUpdate) -> bool:
        stamp = self._audit_stamp()
        if stamp is None:
            return False
        payload = {**update.to_document(), **stamp}
        try:
            await self._store.update_document(
                USERS_COLLECTION, uid, payload, id_token=self._tokens.get_current_token()
            )
        except StoreError as exc:
            logger.error("Error updating user %s: %s", uid, exc)
            self._notifier.notify("Error updating user", "error")
            return False

        applied = ProfileUpdate.model_validate(payload)
        self.users = [user.apply(applied) if user.uid == uid else user for user in self.users]
        self.apply_filters()
        self._notifier.notify("User updated successfully", "success")
        return True

    async def delete_user(self, uid: str) -> bool:
        try:
            await self._store.delete_document(
                USERS_COLLECTION, uid, id_token=self._tokens.get_current_token()
            )
        except StoreError as exc:
            logger.error("Error deleting user %s: %s", uid, exc)
            self._notifier.notify("Error deleting user", "error")
            return False

        self.selected_user_ids.discard(uid)
        self._forget({uid})
        self._notifier.notify("User deleted successfully", "success")
        return True

    async def bulk_delete_users(self) -> bool:
        if not self.selected_user_ids:
            return False
        token = self._tokens.get_current_token()
        selected = set(self.selected_user_ids)
        results = await asyncio.gather(
            *(self._store.delete_document(USERS_COLLECTION, uid, id_token=token) for uid in selected),
            return_exceptions=True,
        )
        failures = [result for result in results if isinstance(result, Exception)]
        if failures:
            logger.error("Error bulk deleting users: %s", failures[0])
            self._notifier.notify("Error deleting users", "error")
            return False

        self.selected_user_ids.clear()
        self._forget(selected)
        self._notifier.notify(f"{len(selected)} users deleted successfully", "success")
        return True

    async def bulk_set_active(self, active: bool) -> bool:
        if not self.selected_user_ids:
            return False
        stamp = self._audit_stamp()
        if stamp is None:
            return False
        payload = {"isActive": active, **stamp}
        token = self._tokens.get_current_token()
        selected = set(self.selected_user_ids)
        results = await asyncio.gather(
            *(
                self._store.update_document(USERS_COLLECTION, uid, payload, id_token=token)
                for uid in selected
            ),
            return_exceptions=True,
        )
        verb = "activated" if active else "deactivated"
        failures = [result for result in results if isinstance(result, Exception)]
        if failures:
            logger.error("Error updating users: %s", failures[0])
            self._notifier.notify(f"Error updating users ({verb})", "error")
            return False

        applied = ProfileUpdate.model_validate(payload)
        self.users = [user.apply(applied) if user.uid in selected else user for user in self.users]
        self.apply_filters()
        self._notifier.notify(f"{len(selected)} users {verb} successfully", "success")
        return True

    async def bulk_activate_users(self) -> bool:
        return await self.bulk_set_active(True)

    async def bulk_deactivate_users(self) -> bool:
        return await self.bulk_set_active(False)

    def _forget(self, uids: Set[str]) -> None:
        self.users = [user for user in self.users if user.uid not in uids]
        self.apply_filters()

    def export_users_csv(self) -> str:
        """CSV of the loaded page, one row per user."""
        buffer = io.StringIO()
        writer = csv.writer(buffer, quoting=csv.QUOTE_ALL, lineterminator="\n")
        writer.writerow(CSV_HEADER)
        for user in self.users:
            exams = [
                f"{label} ({user.exam_data[exam].rank})"
                for exam, label in EXAMS.items()
                if exam in user.exam_data
            ]
            created = parse_timestamp(user.created_at)
            writer.writerow(
                [
                    user.name or "",
                    user.email or "",
                    user.mobile_number or "",
                    user.user_role or "student",
                    "Active" if user.is_active else "Inactive",
                    created.date().isoformat() if created else "N/A",
                    "; ".join(exams),
                ]
            )
        return buffer.getvalue()


__all__ = [
    "AdminUserService",
    "DEFAULT_SORT_FIELD",
    "PAGE_SIZE",
    "filter_users",
]

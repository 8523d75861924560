"""Exam catalogue and rank handling for the signup and profile forms."""

from __future__ import annotations

import logging
from functools import partial
from typing import Dict, Mapping, Optional

from nextstep.core.errors import FormValidationError
from nextstep.schemas.identity import Identity
from nextstep.schemas.profile import ExamRecord, Profile, ProfileUpdate, utc_now_iso
from nextstep.services.notifications import LoggingNotifier, Notifier
from nextstep.services.profile_sync import ProfileSyncEngine
from nextstep.utils.validation import validate_form, validate_rank

logger = logging.getLogger(__name__)

EXAMS: Dict[str, str] = {
    "JeeMain": "JEE Main",
    "JeeAdvanced": "JEE Advanced",
    "Mhtcet": "MHT-CET",
    "Neet": "NEET-UG",
}


def validate_exam_ranks(raw_ranks: Mapping[str, str]) -> None:
    """Raise :class:`FormValidationError` for an unknown exam or a bad rank."""
    for exam in raw_ranks:
        if exam not in EXAMS:
            raise FormValidationError("exam", f"Unknown exam: {exam}")
    validate_form(
        (f"{exam}Rank", value, partial(validate_rank, exam=EXAMS[exam]))
        for exam, value in raw_ranks.items()
    )


def parse_exam_ranks(
    raw_ranks: Mapping[str, str],
    *,
    timestamp_field: str = "dateAdded",
) -> Dict[str, ExamRecord]:
    """
    Turn raw form input into exam records.

    Blank entries are skipped. Signup stamps ``dateAdded``; later edits from the
    profile form pass ``timestamp_field="dateUpdated"``.
    """
    now = utc_now_iso()
    records: Dict[str, ExamRecord] = {}
    for exam, value in raw_ranks.items():
        cleaned = (value or "").strip()
        if not cleaned:
            continue
        records[exam] = ExamRecord.model_validate(
            {"rank": int(cleaned), "verified": False, timestamp_field: now}
        )
    return records


def exam_ranks_for_form(profile: Profile) -> Dict[str, str]:
    """Rank values to pre-fill the exam form with."""
    return {
        exam: str(record.rank)
        for exam, record in profile.exam_data.items()
        if exam in EXAMS and record.rank is not None
    }


class ExamService:
    """Update a student's exam entries through the profile sync engine."""

    def __init__(
        self,
        sync_engine: ProfileSyncEngine,
        *,
        notifier: Optional[Notifier] = None,
    ) -> None:
        self._engine = sync_engine
        self._notifier = notifier or LoggingNotifier()

    async def update_exam_data(
        self,
        identity: Optional[Identity],
        updates: Mapping[str, ExamRecord],
    ) -> bool:
        """Merge ``updates`` into the stored exam data, exam by exam."""
        if identity is None:
            self._notifier.notify("You must be logged in to update exam data", "error")
            return False

        profile = await self._engine.get_user_data(identity)
        merged = {**profile.exam_data, **updates}
        synced = await self._engine.update_profile(identity, ProfileUpdate(exam_data=merged))
        if synced:
            logger.info("Exam data updated for %s: %s", identity.uid, sorted(merged))
            self._notifier.notify("Exam information updated successfully", "success")
        else:
            logger.warning("Exam data for %s saved locally only", identity.uid)
            self._notifier.notify("Failed to update exam information", "error")
        return synced

    async def submit_exam_form(
        self,
        identity: Optional[Identity],
        raw_ranks: Mapping[str, str],
    ) -> bool:
        validate_exam_ranks(raw_ranks)
        records = parse_exam_ranks(raw_ranks, timestamp_field="dateUpdated")
        return await self.update_exam_data(identity, records)


__all__ = [
    "EXAMS",
    "ExamService",
    "exam_ranks_for_form",
    "parse_exam_ranks",
    "validate_exam_ranks",
]

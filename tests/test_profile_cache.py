from __future__ import annotations

try:
    from . import _bootstrap  # noqa: F401
except Exception:  # pragma: no cover - fallback for direct execution
    import _bootstrap  # type: ignore # noqa: F401

from nextstep.schemas.profile import ExamRecord, ProfileUpdate, default_profile
from nextstep.services.profile_cache import (
    CACHED_PROFILE_PREFIX,
    PENDING_PROFILE_PREFIX,
    ProfileCache,
)


def test_stage_pending_merges_with_later_keys_winning(local_storage) -> None:
    cache = ProfileCache(local_storage)
    first = ProfileUpdate(name="Asha", is_active=True, mobile_number="9876543210")
    second = ProfileUpdate(is_active=False, admin_notes="flagged")

    cache.stage_pending("u1", first)
    cache.stage_pending("u1", second)

    pending = cache.read_pending("u1")
    assert pending is not None
    assert pending.to_document() == {
        "name": "Asha",
        "mobileNumber": "9876543210",
        "isActive": False,
        "adminNotes": "flagged",
    }


def test_pending_records_are_per_uid(local_storage) -> None:
    cache = ProfileCache(local_storage)
    cache.stage_pending("u1", ProfileUpdate(name="One"))
    cache.stage_pending("u2", ProfileUpdate(name="Two"))

    cache.clear_pending("u1")

    assert cache.read_pending("u1") is None
    assert cache.read_pending("u2").name == "Two"
    assert local_storage.keys_with_prefix(PENDING_PROFILE_PREFIX) == [f"{PENDING_PROFILE_PREFIX}u2"]


def test_cached_snapshot_roundtrip_keeps_unknown_fields(local_storage) -> None:
    cache = ProfileCache(local_storage)
    profile = default_profile("u1", email="a@example.com", display_name="Asha")
    profile = profile.model_copy(
        update={"exam_data": {"Neet": ExamRecord(rank=120, verified=True)}}
    )
    cache.write_cached("u1", profile)
    record = local_storage.get_json(f"{CACHED_PROFILE_PREFIX}u1")
    record["profile"]["legacyField"] = "kept"
    local_storage.set_json(f"{CACHED_PROFILE_PREFIX}u1", record)

    cached = cache.read_cached("u1")

    assert cached is not None
    assert cached.exam_data["Neet"].rank == 120
    assert cached.to_document()["legacyField"] == "kept"
    assert cache.cached_at("u1") is not None


def test_corrupt_entries_read_as_missing(local_storage) -> None:
    cache = ProfileCache(local_storage)
    local_storage.set_item(f"{CACHED_PROFILE_PREFIX}u1", "{not json")
    local_storage.set_json(f"{PENDING_PROFILE_PREFIX}u1", {"unknownKey": 1})

    assert cache.read_cached("u1") is None
    assert cache.read_pending("u1") is None


def test_clear_cached_removes_snapshot(local_storage) -> None:
    cache = ProfileCache(local_storage)
    cache.write_cached("u1", default_profile("u1"))

    cache.clear_cached("u1")

    assert cache.read_cached("u1") is None

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

try:
    from . import _bootstrap  # noqa: F401
    from ._fakes import FakeAuthClient, FakeDocumentStore
except Exception:  # pragma: no cover - fallback for direct execution
    import _bootstrap  # type: ignore # noqa: F401
    from _fakes import FakeAuthClient, FakeDocumentStore  # type: ignore

from nextstep.core.errors import RedemptionError, StoreUnavailableError
from nextstep.schemas.identity import Identity
from nextstep.services.notifications import RecordingNotifier
from nextstep.services.premium import CODES_COLLECTION, PremiumService
from nextstep.services.profile_cache import ProfileCache
from nextstep.services.profile_sync import USERS_COLLECTION, ProfileSyncEngine
from nextstep.services.token_store import TokenStore
from nextstep.services.user_directory import UserDirectory
from nextstep.utils.retry import RetryConfig


@pytest.fixture
def document_store() -> FakeDocumentStore:
    store = FakeDocumentStore()
    store.documents[(USERS_COLLECTION, "u1")] = {
        "email": "asha@example.com",
        "userRole": "student",
        "isActive": True,
    }
    store.documents[(CODES_COLLECTION, "code1")] = {
        "code": "NEXT2024",
        "isActive": True,
        "maxUses": 2,
        "usedCount": 0,
        "usedBy": [],
        "expiryDays": 30,
    }
    return store


@pytest.fixture
def tokens(local_storage, session_storage) -> TokenStore:
    return TokenStore(FakeAuthClient(), local_storage, session_storage)


@pytest.fixture
def engine(document_store, tokens, local_storage) -> ProfileSyncEngine:
    return ProfileSyncEngine(
        document_store,
        tokens,
        ProfileCache(local_storage),
        retry_config=RetryConfig(attempts=1, backoff_seconds=0),
    )


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def premium(document_store, tokens, engine, local_storage, notifier) -> PremiumService:
    return PremiumService(document_store, tokens, engine, local_storage, notifier=notifier)


@pytest.fixture
def identity() -> Identity:
    return Identity(uid="u1", email="asha@example.com", refresh_token="r1")


@pytest.mark.asyncio
async def test_redeem_grants_premium(premium, document_store, identity, notifier) -> None:
    status = await premium.redeem_code(identity, " next2024 ")

    assert status.is_paid is True
    remaining = status.payment_expiry - datetime.now(timezone.utc)
    assert timedelta(days=29) < remaining <= timedelta(days=30)

    code = document_store.documents[(CODES_COLLECTION, "code1")]
    assert code["usedCount"] == 1
    assert code["usedBy"] == ["u1"]
    assert "lastUsedAt" in code

    profile = document_store.documents[(USERS_COLLECTION, "u1")]
    assert profile["isPaid"] is True
    assert profile["verificationCode"] == "NEXT2024"
    assert profile["paymentHistory"][0]["type"] == "verification_code"
    assert notifier.notices[-1][0] == "success"
    assert premium.stored_payment_status("u1").is_paid is True


@pytest.mark.asyncio
async def test_same_user_cannot_redeem_twice(premium, identity) -> None:
    await premium.redeem_code(identity, "NEXT2024")

    with pytest.raises(RedemptionError, match="already used this code"):
        await premium.redeem_code(identity, "NEXT2024")


@pytest.mark.asyncio
async def test_exhausted_code_is_rejected(premium, document_store, identity) -> None:
    document_store.documents[(CODES_COLLECTION, "code1")]["usedCount"] = 2

    with pytest.raises(RedemptionError, match="maximum number of times"):
        await premium.redeem_code(identity, "NEXT2024")


@pytest.mark.asyncio
async def test_unknown_code_is_rejected(premium, identity) -> None:
    with pytest.raises(RedemptionError, match="Invalid verification code"):
        await premium.redeem_code(identity, "WRONG")


@pytest.mark.asyncio
async def test_store_failure_surfaces_as_redemption_error(premium, document_store, identity) -> None:
    document_store.fail("query", CODES_COLLECTION, StoreUnavailableError("offline"))

    with pytest.raises(RedemptionError, match="Failed to verify code"):
        await premium.redeem_code(identity, "NEXT2024")


@pytest.mark.asyncio
async def test_malformed_code_document_is_rejected(premium, document_store, identity, notifier) -> None:
    document_store.documents[(CODES_COLLECTION, "code1")]["maxUses"] = "lots"

    with pytest.raises(RedemptionError, match="invalid"):
        await premium.redeem_code(identity, "NEXT2024")

    assert document_store.documents[(CODES_COLLECTION, "code1")]["usedCount"] == 0
    assert notifier.notices[-1][0] == "error"


@pytest.mark.asyncio
async def test_redeem_requires_identity(premium) -> None:
    with pytest.raises(RedemptionError):
        await premium.redeem_code(None, "NEXT2024")


@pytest.mark.asyncio
async def test_expired_premium_is_revoked(premium, document_store, identity) -> None:
    past = (datetime.now(timezone.utc) - timedelta(days=1)).isoformat()
    document_store.documents[(USERS_COLLECTION, "u1")].update({"isPaid": True, "paymentExpiry": past})

    assert await premium.has_premium_access(identity) is False

    assert document_store.documents[(USERS_COLLECTION, "u1")]["isPaid"] is False
    assert premium.stored_payment_status("u1").is_paid is False


@pytest.mark.asyncio
async def test_active_premium_is_kept(premium, document_store, identity) -> None:
    future = (datetime.now(timezone.utc) + timedelta(days=10)).isoformat()
    document_store.documents[(USERS_COLLECTION, "u1")].update({"isPaid": True, "paymentExpiry": future})

    status = await premium.refresh_payment_status(identity)

    assert status.is_paid is True
    assert document_store.count_calls("update", USERS_COLLECTION) == 0


@pytest.mark.asyncio
async def test_payment_status_without_identity(premium) -> None:
    status = await premium.refresh_payment_status(None)

    assert status.is_paid is False
    assert status.payment_expiry is None


@pytest.mark.asyncio
async def test_user_directory_lookup(document_store, tokens, engine, identity) -> None:
    directory = UserDirectory(document_store, tokens, engine)

    found = await directory.find_user_by_email("asha@example.com")
    assert found is not None and found.uid == "u1"
    assert await directory.find_user_by_email("  ") is None
    assert await directory.find_user_by_email("nobody@example.com") is None
    assert await directory.is_user_admin(identity) is False
    assert await directory.is_user_admin(None) is False

    document_store.fail("query", USERS_COLLECTION, StoreUnavailableError("offline"))
    assert await directory.find_user_by_email("asha@example.com") is None

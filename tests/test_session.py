from __future__ import annotations

import asyncio
from urllib.parse import parse_qs, urlsplit

import pytest

try:
    from . import _bootstrap  # noqa: F401
    from ._fakes import FakeAuthClient, FakeDocumentStore, make_token
except Exception:  # pragma: no cover - fallback for direct execution
    import _bootstrap  # type: ignore # noqa: F401
    from _fakes import FakeAuthClient, FakeDocumentStore, make_token  # type: ignore

from nextstep.core.errors import ProviderError, RedirectError, StoreUnavailableError
from nextstep.schemas.identity import Identity
from nextstep.services.identity_events import IdentityEvents
from nextstep.services.notifications import RecordingNotifier
from nextstep.services.profile_cache import ProfileCache
from nextstep.services.profile_sync import USERS_COLLECTION, ProfileSyncEngine
from nextstep.services.session import (
    ID_TOKEN_EXPIRED,
    SessionController,
    SessionState,
    append_query_params,
)
from nextstep.services.token_store import AUTH_TOKEN_KEY, REDIRECT_TOKEN_KEY, TokenStore
from nextstep.utils.retry import RetryConfig


class Harness:
    def __init__(self, local_storage, session_storage) -> None:
        self.local_storage = local_storage
        self.session_storage = session_storage
        self.auth_client = FakeAuthClient()
        self.document_store = FakeDocumentStore()
        self.tokens = TokenStore(self.auth_client, local_storage, session_storage)
        self.engine = ProfileSyncEngine(
            self.document_store,
            self.tokens,
            ProfileCache(local_storage),
            retry_config=RetryConfig(attempts=2, backoff_seconds=0),
            fetch_dedup_wait_seconds=0.01,
        )
        self.events = IdentityEvents()
        self.notifier = RecordingNotifier()
        self.visited: list[str] = []
        self.controller = SessionController(
            self.tokens,
            self.engine,
            self.events,
            notifier=self.notifier,
            navigator=self.visited.append,
        )
        self.controller.start()


@pytest.fixture
def harness(local_storage, session_storage):
    return Harness(local_storage, session_storage)


@pytest.fixture
def identity() -> Identity:
    return Identity(uid="u1", email="asha@example.com", display_name="Asha", refresh_token="r1")


@pytest.mark.asyncio
async def test_sign_in_establishes_token_and_profile(harness: Harness, identity) -> None:
    await harness.events.publish(identity)

    assert harness.controller.state is SessionState.SIGNED_IN
    assert harness.controller.current_user is identity
    assert harness.controller.user_role == "student"
    assert harness.tokens.auto_refresh_active is True
    assert harness.local_storage.get_item(AUTH_TOKEN_KEY) == harness.auth_client.minted[-1]
    assert (USERS_COLLECTION, "u1") in harness.document_store.documents


@pytest.mark.asyncio
async def test_sign_in_completes_despite_remote_failures(harness: Harness, identity) -> None:
    harness.auth_client.token_error = ProviderError("offline", code="auth/network-request-failed")
    harness.document_store.fail("get", USERS_COLLECTION, StoreUnavailableError("offline"))

    await harness.events.publish(identity)

    assert harness.controller.state is SessionState.SIGNED_IN
    assert harness.controller.current_profile is not None
    assert harness.controller.current_profile.uid == "u1"


@pytest.mark.asyncio
async def test_sign_in_completes_despite_unexpected_refresh_error(
    harness: Harness, identity, monkeypatch
) -> None:
    async def garbled(*args, **kwargs):
        raise ValueError("unreadable token response")

    monkeypatch.setattr(harness.auth_client, "get_id_token", garbled)

    await harness.events.publish(identity)

    assert harness.controller.state is SessionState.SIGNED_IN
    assert harness.controller.is_signed_in is True
    assert harness.tokens.auto_refresh_active is True


@pytest.mark.asyncio
async def test_sign_out_clears_session(harness: Harness, identity) -> None:
    await harness.events.publish(identity)
    harness.tokens.mirror_redirect_token("mirrored")

    await harness.controller.logout()

    assert harness.controller.state is SessionState.SIGNED_OUT
    assert harness.controller.current_user is None
    assert harness.controller.current_profile is None
    assert harness.tokens.auto_refresh_active is False
    assert harness.local_storage.get_item(AUTH_TOKEN_KEY) is None
    assert harness.session_storage.get_item(REDIRECT_TOKEN_KEY) is None
    assert harness.engine.get_profile("u1") is None


@pytest.mark.asyncio
async def test_sign_out_during_profile_load_wins(harness: Harness, identity) -> None:
    harness.document_store.latency = 0.02

    sign_in = asyncio.create_task(harness.events.publish(identity))
    await asyncio.sleep(0.005)
    await harness.controller.logout()
    await sign_in

    assert harness.controller.state is SessionState.SIGNED_OUT
    assert harness.tokens.auto_refresh_active is False


@pytest.mark.asyncio
async def test_secure_redirect_carries_token(harness: Harness, identity) -> None:
    await harness.events.publish(identity)

    url = await harness.controller.secure_redirect("https://nexn.example.com/app?tab=home")

    query = parse_qs(urlsplit(url).query)
    token = harness.auth_client.minted[-1]
    assert query["token"] == [token]
    assert query["source"] == ["nextstep-nexn"]
    assert query["uid"] == ["u1"]
    assert query["tab"] == ["home"]
    assert harness.session_storage.get_item(REDIRECT_TOKEN_KEY) == token
    assert harness.visited == [url]


@pytest.mark.asyncio
async def test_secure_redirect_requires_sign_in(harness: Harness) -> None:
    with pytest.raises(RedirectError):
        await harness.controller.secure_redirect("https://nexn.example.com")

    assert harness.visited == []
    assert harness.notifier.notices[-1][0] == "warning"


@pytest.mark.asyncio
async def test_secure_redirect_fails_when_token_cannot_be_minted(harness: Harness, identity) -> None:
    harness.auth_client.token_lifetime = 120
    await harness.events.publish(identity)
    harness.auth_client.token_error = ProviderError("offline", code="auth/network-request-failed")

    with pytest.raises(RedirectError):
        await harness.controller.secure_redirect("https://nexn.example.com")

    assert harness.visited == []
    assert harness.session_storage.get_item(REDIRECT_TOKEN_KEY) is None
    assert harness.notifier.notices[-1] == (
        "error",
        "Authentication error. Please try logging in again.",
    )


@pytest.mark.asyncio
async def test_expired_token_that_cannot_refresh_signs_out(harness: Harness, identity) -> None:
    harness.auth_client.token_error = ProviderError("expired", code=ID_TOKEN_EXPIRED)

    await harness.events.publish(identity)

    assert harness.controller.state is SessionState.SIGNED_OUT
    assert harness.notifier.notices[-1] == ("error", "Session expired. Please log in again.")
    assert harness.tokens.auto_refresh_active is False


@pytest.mark.asyncio
async def test_expired_token_recovered_by_refresh(harness: Harness, identity) -> None:
    await harness.events.publish(identity)
    minted = len(harness.auth_client.minted)

    survived = await harness.controller.handle_auth_error(ProviderError("expired", code=ID_TOKEN_EXPIRED))

    assert survived is True
    assert len(harness.auth_client.minted) == minted + 1
    assert harness.controller.state is SessionState.SIGNED_IN


@pytest.mark.asyncio
async def test_other_auth_errors_only_notify(harness: Harness, identity) -> None:
    await harness.events.publish(identity)

    survived = await harness.controller.handle_auth_error(
        ProviderError("nope", code="auth/user-disabled")
    )

    assert survived is False
    assert harness.notifier.notices[-1] == ("error", "This account has been disabled")
    assert harness.controller.state is SessionState.SIGNED_IN


def test_check_existing_session(harness: Harness) -> None:
    harness.local_storage.set_item(AUTH_TOKEN_KEY, make_token(60))
    assert harness.controller.check_existing_session() is False
    assert harness.local_storage.get_item(AUTH_TOKEN_KEY) is None

    harness.local_storage.set_item(AUTH_TOKEN_KEY, make_token(3600))
    assert harness.controller.check_existing_session() is True


def test_append_query_params_replaces_existing_keys() -> None:
    url = append_query_params("https://x.example.com/p?token=old&a=1", {"token": "new"})

    assert parse_qs(urlsplit(url).query) == {"a": ["1"], "token": ["new"]}

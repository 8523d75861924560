from __future__ import annotations

import json
from urllib.parse import parse_qs

import httpx
import pytest

try:
    from . import _bootstrap  # noqa: F401
except Exception:  # pragma: no cover - fallback for direct execution
    import _bootstrap  # type: ignore # noqa: F401

from nextstep.clients.firebase_auth import FirebaseAuthClient
from nextstep.core.config import FirebaseSettings
from nextstep.core.errors import NoIdentityError, ProviderError
from nextstep.schemas.identity import Identity


def _client(handler) -> FirebaseAuthClient:
    settings = FirebaseSettings(api_key="test-api-key", project_id="nextstep-test")
    return FirebaseAuthClient(settings, transport=httpx.MockTransport(handler))


def _provider_failure(message: str) -> httpx.Response:
    return httpx.Response(400, json={"error": {"code": 400, "message": message}})


@pytest.mark.asyncio
async def test_sign_in_looks_up_verification_state() -> None:
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request.url.path)
        assert request.url.params["key"] == "test-api-key"
        if request.url.path.endswith("accounts:signInWithPassword"):
            body = json.loads(request.content)
            assert body == {"email": "a@example.com", "password": "secret1", "returnSecureToken": True}
            return httpx.Response(
                200,
                json={"localId": "u1", "email": "a@example.com", "idToken": "id-1", "refreshToken": "r-1"},
            )
        return httpx.Response(200, json={"users": [{"localId": "u1", "emailVerified": True}]})

    identity = await _client(handler).sign_in_with_password("a@example.com", "secret1")

    assert identity.uid == "u1"
    assert identity.email_verified is True
    assert identity.refresh_token == "r-1"
    assert calls[-1].endswith("accounts:lookup")


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "message,code",
    [
        ("EMAIL_EXISTS", "auth/email-already-in-use"),
        ("WEAK_PASSWORD : Password should be at least 6 characters", "auth/weak-password"),
        ("INVALID_LOGIN_CREDENTIALS", "auth/invalid-credential"),
        ("TOO_MANY_ATTEMPTS_TRY_LATER : Access disabled", "auth/too-many-requests"),
        ("SOMETHING_NEW", "auth/internal-error"),
    ],
)
async def test_provider_messages_map_to_auth_codes(message, code) -> None:
    client = _client(lambda request: _provider_failure(message))

    with pytest.raises(ProviderError) as excinfo:
        await client.sign_up("a@example.com", "secret1")
    assert excinfo.value.code == code


@pytest.mark.asyncio
async def test_network_failure_maps_to_network_code() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectTimeout("timed out", request=request)

    with pytest.raises(ProviderError) as excinfo:
        await _client(handler).send_password_reset("a@example.com")
    assert excinfo.value.code == "auth/network-request-failed"


@pytest.mark.asyncio
async def test_forced_refresh_rotates_tokens() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.host == "securetoken.googleapis.com"
        form = parse_qs(request.content.decode())
        assert form == {"grant_type": ["refresh_token"], "refresh_token": ["r-1"]}
        return httpx.Response(200, json={"id_token": "id-2", "refresh_token": "r-2"})

    identity = Identity(uid="u1", refresh_token="r-1", id_token="id-1")
    token = await _client(handler).get_id_token(identity, force_refresh=True)

    assert token == "id-2"
    assert identity.id_token == "id-2"
    assert identity.refresh_token == "r-2"


@pytest.mark.asyncio
async def test_cached_token_returned_without_force() -> None:
    def handler(request: httpx.Request) -> httpx.Response:  # pragma: no cover - must not be called
        raise AssertionError("unexpected request")

    identity = Identity(uid="u1", refresh_token="r-1", id_token="id-1")

    assert await _client(handler).get_id_token(identity, force_refresh=False) == "id-1"


@pytest.mark.asyncio
async def test_token_requires_identity() -> None:
    client = _client(lambda request: httpx.Response(200, json={}))

    with pytest.raises(NoIdentityError):
        await client.get_id_token(None)
    with pytest.raises(NoIdentityError):
        await client.get_id_token(Identity(uid="u1"))


@pytest.mark.asyncio
async def test_verification_mail_uses_id_token() -> None:
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen.update(json.loads(request.content))
        return httpx.Response(200, json={"email": "a@example.com"})

    await _client(handler).send_email_verification(Identity(uid="u1", id_token="id-1"))

    assert seen == {"requestType": "VERIFY_EMAIL", "idToken": "id-1"}


@pytest.mark.asyncio
@pytest.mark.parametrize("body", ["<html>captive portal</html>", json.dumps(["unexpected"])])
async def test_unreadable_success_body_is_provider_error(body) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, text=body)

    with pytest.raises(ProviderError) as excinfo:
        await _client(handler).sign_in_with_password("a@example.com", "secret1")

    assert excinfo.value.code == "auth/internal-error"

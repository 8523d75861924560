"""
Firebase Authentication REST client.

Wraps the Identity Toolkit and Secure Token endpoints used for signup, login,
verification mail and ID token refresh.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

import httpx

from nextstep.core.config import FirebaseSettings
from nextstep.core.errors import NoIdentityError, ProviderError
from nextstep.schemas.identity import Identity

logger = logging.getLogger(__name__)

# Identity Toolkit / Secure Token error messages mapped to the site's auth codes.
_PROVIDER_ERROR_CODES: Dict[str, str] = {
    "EMAIL_EXISTS": "auth/email-already-in-use",
    "INVALID_EMAIL": "auth/invalid-email",
    "MISSING_EMAIL": "auth/invalid-email",
    "WEAK_PASSWORD": "auth/weak-password",
    "MISSING_PASSWORD": "auth/wrong-password",
    "EMAIL_NOT_FOUND": "auth/user-not-found",
    "USER_NOT_FOUND": "auth/user-not-found",
    "INVALID_PASSWORD": "auth/wrong-password",
    "INVALID_LOGIN_CREDENTIALS": "auth/invalid-credential",
    "USER_DISABLED": "auth/user-disabled",
    "TOO_MANY_ATTEMPTS_TRY_LATER": "auth/too-many-requests",
    "OPERATION_NOT_ALLOWED": "auth/operation-not-allowed",
    "PASSWORD_LOGIN_DISABLED": "auth/operation-not-allowed",
    "TOKEN_EXPIRED": "auth/id-token-expired",
    "INVALID_ID_TOKEN": "auth/id-token-expired",
    "INVALID_REFRESH_TOKEN": "auth/id-token-expired",
    "CREDENTIAL_TOO_OLD_LOGIN_AGAIN": "auth/requires-recent-login",
}


def _provider_error(response: httpx.Response) -> ProviderError:
    try:
        payload = response.json()
    except ValueError:
        payload = {}
    error = payload.get("error") if isinstance(payload, dict) else None
    raw_message = ""
    if isinstance(error, dict):
        raw_message = str(error.get("message") or "")
    elif isinstance(error, str):
        raw_message = error
    # Messages look like "WEAK_PASSWORD : Password should be at least 6 characters".
    reason = raw_message.split(" : ", 1)[0].strip()
    code = _PROVIDER_ERROR_CODES.get(reason, "auth/internal-error")
    return ProviderError(raw_message or response.text or "Identity provider error", code=code)


class FirebaseAuthClient:
    """Sign users up and in, and mint fresh ID tokens for them."""

    def __init__(
        self,
        settings: FirebaseSettings,
        *,
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._settings = settings
        self._timeout = timeout
        self._transport = transport

    async def _post(
        self,
        url: str,
        *,
        json: Optional[Dict[str, Any]] = None,
        data: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        params = {"key": self._settings.api_key}
        try:
            async with httpx.AsyncClient(
                timeout=self._timeout, transport=self._transport
            ) as client:
                response = await client.post(url, params=params, json=json, data=data)
        except httpx.HTTPError as exc:
            raise ProviderError(
                f"Identity provider unreachable: {exc}",
                code="auth/network-request-failed",
            ) from exc

        if response.status_code != httpx.codes.OK:
            raise _provider_error(response)
        try:
            payload = response.json()
        except ValueError as exc:
            raise ProviderError(
                f"Identity provider returned an unreadable response: {exc}",
                code="auth/internal-error",
            ) from exc
        if not isinstance(payload, dict):
            raise ProviderError(
                "Identity provider returned an unexpected response.",
                code="auth/internal-error",
            )
        return payload

    def _toolkit_url(self, method: str) -> str:
        return f"{self._settings.identity_toolkit_url.rstrip('/')}/accounts:{method}"

    async def sign_up(self, email: str, password: str) -> Identity:
        """Create an email/password account and return the signed-in identity."""
        payload = await self._post(
            self._toolkit_url("signUp"),
            json={"email": email, "password": password, "returnSecureToken": True},
        )
        return Identity(
            uid=payload["localId"],
            email=payload.get("email", email),
            display_name=payload.get("displayName") or None,
            email_verified=False,
            refresh_token=payload.get("refreshToken"),
            id_token=payload.get("idToken"),
        )

    async def sign_in_with_password(self, email: str, password: str) -> Identity:
        payload = await self._post(
            self._toolkit_url("signInWithPassword"),
            json={"email": email, "password": password, "returnSecureToken": True},
        )
        identity = Identity(
            uid=payload["localId"],
            email=payload.get("email", email),
            display_name=payload.get("displayName") or None,
            refresh_token=payload.get("refreshToken"),
            id_token=payload.get("idToken"),
        )
        account = await self.lookup(identity)
        identity.email_verified = bool(account.get("emailVerified"))
        return identity

    async def lookup(self, identity: Identity) -> Dict[str, Any]:
        """Return the provider's account record for ``identity``."""
        payload = await self._post(
            self._toolkit_url("lookup"), json={"idToken": self._require_id_token(identity)}
        )
        users = payload.get("users") or []
        if not users:
            raise ProviderError("Account not found.", code="auth/user-not-found")
        return users[0]

    async def get_id_token(self, identity: Optional[Identity], *, force_refresh: bool = True) -> str:
        """
        Return an ID token for ``identity``.

        With ``force_refresh`` the Secure Token endpoint always mints a new one,
        and the rotated refresh token is written back onto the identity.
        """
        if identity is None:
            raise NoIdentityError()
        if not force_refresh and identity.id_token:
            return identity.id_token
        if not identity.refresh_token:
            raise NoIdentityError("Identity has no refresh token; sign in again.")

        url = f"{self._settings.secure_token_url.rstrip('/')}/token"
        payload = await self._post(
            url,
            data={"grant_type": "refresh_token", "refresh_token": identity.refresh_token},
        )
        id_token = payload.get("id_token")
        if not id_token:
            raise ProviderError("Incomplete token payload returned from provider.")
        logger.debug("Minted fresh ID token for user %s", identity.uid)
        identity.id_token = id_token
        identity.refresh_token = payload.get("refresh_token") or identity.refresh_token
        return id_token

    async def update_display_name(self, identity: Identity, display_name: str) -> None:
        payload = await self._post(
            self._toolkit_url("update"),
            json={
                "idToken": self._require_id_token(identity),
                "displayName": display_name,
                "returnSecureToken": True,
            },
        )
        identity.display_name = payload.get("displayName", display_name)
        identity.id_token = payload.get("idToken") or identity.id_token
        identity.refresh_token = payload.get("refreshToken") or identity.refresh_token

    async def send_email_verification(self, identity: Identity) -> None:
        await self._post(
            self._toolkit_url("sendOobCode"),
            json={"requestType": "VERIFY_EMAIL", "idToken": self._require_id_token(identity)},
        )

    async def send_password_reset(self, email: str) -> None:
        await self._post(
            self._toolkit_url("sendOobCode"),
            json={"requestType": "PASSWORD_RESET", "email": email},
        )

    async def delete_account(self, identity: Identity) -> None:
        await self._post(
            self._toolkit_url("delete"), json={"idToken": self._require_id_token(identity)}
        )

    @staticmethod
    def _require_id_token(identity: Identity) -> str:
        if not identity.id_token:
            raise NoIdentityError("Identity has no ID token; sign in again.")
        return identity.id_token


__all__ = ["FirebaseAuthClient"]

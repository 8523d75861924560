"""
Bearer token lifecycle: mint, validate locally, persist and refresh on a timer.
"""

from __future__ import annotations

import asyncio
import base64
import binascii
import json
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional, Union

from nextstep.clients.firebase_auth import FirebaseAuthClient
from nextstep.clients.local_storage import LocalStorage, SessionStorage
from nextstep.core.errors import MalformedTokenError, NoIdentityError, ProviderError
from nextstep.schemas.identity import Identity
from nextstep.services.token_cipher import TokenCipherService

logger = logging.getLogger(__name__)

AUTH_TOKEN_KEY = "authToken"
REDIRECT_TOKEN_KEY = "josaa_auth_token"


@dataclass(frozen=True, slots=True)
class Token:
    """A bearer token and the expiry decoded from its ``exp`` claim."""

    value: str
    expires_at: Optional[datetime] = None


def decode_claims(token: str) -> Dict[str, Any]:
    """
    Decode a JWT payload without checking its signature.

    Raises :class:`MalformedTokenError` when the token does not have three
    segments or its payload is not a base64url-encoded JSON object.
    """
    parts = token.split(".")
    if len(parts) != 3:
        raise MalformedTokenError("Token must have three dot-separated segments.")
    segment = parts[1]
    padded = segment + "=" * (-len(segment) % 4)
    try:
        claims = json.loads(base64.urlsafe_b64decode(padded.encode("ascii")))
    except (binascii.Error, ValueError) as exc:
        raise MalformedTokenError("Token payload is not valid base64 JSON.") from exc
    if not isinstance(claims, dict):
        raise MalformedTokenError("Token payload is not a JSON object.")
    return claims


def token_expiry(token: str) -> datetime:
    claims = decode_claims(token)
    exp = claims.get("exp")
    if isinstance(exp, bool) or not isinstance(exp, (int, float)):
        raise MalformedTokenError("Token has no numeric exp claim.")
    try:
        return datetime.fromtimestamp(exp, tz=timezone.utc)
    except (OverflowError, OSError, ValueError) as exc:
        raise MalformedTokenError("Token exp claim is out of range.") from exc


class TokenStore:
    """Holds the session's bearer token and keeps it fresh."""

    def __init__(
        self,
        auth_client: FirebaseAuthClient,
        local_storage: LocalStorage,
        session_storage: SessionStorage,
        *,
        expiry_threshold_seconds: float = 5 * 60,
        refresh_interval_seconds: float = 45 * 60,
        token_cipher: Optional[TokenCipherService] = None,
    ) -> None:
        self._auth = auth_client
        self._local = local_storage
        self._session = session_storage
        self._threshold = timedelta(seconds=expiry_threshold_seconds)
        self._interval = refresh_interval_seconds
        self._cipher = token_cipher
        self._token: Optional[Token] = None
        self._last_refresh: Optional[datetime] = None
        self._refresh_task: Optional[asyncio.Task[None]] = None

    @property
    def token(self) -> Optional[Token]:
        return self._token

    @property
    def last_refresh(self) -> Optional[datetime]:
        return self._last_refresh

    @property
    def auto_refresh_active(self) -> bool:
        return self._refresh_task is not None and not self._refresh_task.done()

    def validate(self, token: Union[str, Token, None]) -> bool:
        """True while ``now < exp - threshold``; malformed input is simply invalid."""
        value = token.value if isinstance(token, Token) else token
        if not value:
            return False
        try:
            expires_at = token_expiry(value)
        except MalformedTokenError as exc:
            logger.debug("Token validation failed: %s", exc)
            return False
        now = datetime.now(timezone.utc)
        logger.debug(
            "Token validation: expires in %d minutes",
            int((expires_at - now).total_seconds() // 60),
        )
        return now < expires_at - self._threshold

    def decode_token(self, token: Optional[str]) -> Optional[Dict[str, Any]]:
        if not token:
            return None
        try:
            return decode_claims(token)
        except MalformedTokenError:
            return None

    async def acquire(self, identity: Optional[Identity]) -> Token:
        """Mint a fresh token for ``identity`` and persist it."""
        if identity is None:
            raise NoIdentityError()
        value = await self._auth.get_id_token(identity, force_refresh=True)
        try:
            expires_at: Optional[datetime] = token_expiry(value)
        except MalformedTokenError:
            logger.warning("Provider returned a token without a readable expiry")
            expires_at = None

        token = Token(value=value, expires_at=expires_at)
        self._token = token
        self._last_refresh = datetime.now(timezone.utc)
        self._persist(value)
        logger.info("Token obtained for user %s", identity.uid)
        return token

    async def refresh(self, identity: Optional[Identity]) -> Token:
        """Renew the session token; provider errors propagate to the caller."""
        return await self.acquire(identity)

    def schedule_auto_refresh(self, identity: Optional[Identity]) -> None:
        """Start the periodic refresh task, replacing any running one."""
        self.cancel_auto_refresh()
        if identity is None:
            return
        self._refresh_task = asyncio.create_task(self._auto_refresh_loop(identity))
        logger.info(
            "Token refresh scheduled every %d minutes for user %s",
            int(self._interval // 60),
            identity.uid,
        )

    async def _auto_refresh_loop(self, identity: Identity) -> None:
        while True:
            await asyncio.sleep(self._interval)
            try:
                await self.refresh(identity)
            except ProviderError as exc:
                logger.warning("Scheduled token refresh failed for %s: %s", identity.uid, exc)

    def cancel_auto_refresh(self) -> None:
        task, self._refresh_task = self._refresh_task, None
        if task is not None and not task.done():
            task.cancel()

    def clear(self) -> None:
        """Forget every trace of the session token. Safe to call repeatedly."""
        self.cancel_auto_refresh()
        self._token = None
        self._last_refresh = None
        self._local.remove_item(AUTH_TOKEN_KEY)
        self._session.remove_item(REDIRECT_TOKEN_KEY)

    def get_current_token(self) -> Optional[str]:
        """Return a valid token from memory or durable storage, discarding stale ones."""
        if self._token is not None and self.validate(self._token):
            return self._token.value

        stored = self.get_stored_token()
        if stored:
            self._token = Token(value=stored, expires_at=token_expiry(stored))
            return stored

        if self._token is not None or self._local.get_item(AUTH_TOKEN_KEY) is not None:
            logger.warning("Invalid token found, discarding it")
            self._token = None
            self._local.remove_item(AUTH_TOKEN_KEY)
        return None

    def get_stored_token(self) -> Optional[str]:
        """Return the persisted token if it is still valid."""
        raw = self._local.get_item(AUTH_TOKEN_KEY)
        if raw is None:
            return None
        value = self._reveal(raw)
        if value and self.validate(value):
            return value
        return None

    def mirror_redirect_token(self, token: str) -> None:
        self._session.set_item(REDIRECT_TOKEN_KEY, token)

    def _persist(self, value: str) -> None:
        stored = self._cipher.encrypt(value) if self._cipher else value
        self._local.set_item(AUTH_TOKEN_KEY, stored)

    def _reveal(self, raw: str) -> Optional[str]:
        if self._cipher is None:
            return raw
        try:
            return self._cipher.decrypt(raw)
        except ValueError:
            # Written before encryption was enabled.
            if raw.count(".") == 2:
                return raw
            logger.warning("Stored token could not be decrypted; ignoring it")
            return None


__all__ = [
    "AUTH_TOKEN_KEY",
    "REDIRECT_TOKEN_KEY",
    "Token",
    "TokenStore",
    "decode_claims",
    "token_expiry",
]

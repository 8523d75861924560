"""
Signup, login and password-reset flows on top of the identity provider.

Successful logins are published on :class:`IdentityEvents`; the session
controller takes it from there.
"""

from __future__ import annotations

import logging
import time
from typing import Optional

from nextstep.clients.firebase_auth import FirebaseAuthClient
from nextstep.clients.local_storage import LocalStorage
from nextstep.core.errors import FormValidationError, ProviderError
from nextstep.schemas.auth import SignupRequest
from nextstep.schemas.identity import Identity
from nextstep.schemas.profile import ROLE_STUDENT, ProfileUpdate
from nextstep.services.exam_service import parse_exam_ranks, validate_exam_ranks
from nextstep.services.identity_events import IdentityEvents
from nextstep.services.notifications import LoggingNotifier, Notifier
from nextstep.services.profile_sync import ProfileSyncEngine
from nextstep.utils.validation import (
    validate_email,
    validate_form,
    validate_mobile_number,
    validate_name,
    validate_password,
)

logger = logging.getLogger(__name__)

RATE_LIMIT_PREFIX = "rate_limited_"
TOO_MANY_REQUESTS = "auth/too-many-requests"


class AuthService:
    def __init__(
        self,
        auth_client: FirebaseAuthClient,
        local_storage: LocalStorage,
        sync_engine: ProfileSyncEngine,
        events: IdentityEvents,
        *,
        notifier: Optional[Notifier] = None,
        rate_limit_seconds: float = 30 * 60,
    ) -> None:
        self._auth = auth_client
        self._local = local_storage
        self._engine = sync_engine
        self._events = events
        self._notifier = notifier or LoggingNotifier()
        self._rate_limit_seconds = rate_limit_seconds

    async def sign_up(
        self,
        name: str,
        email: str,
        password: str,
        confirm_password: str,
    ) -> Identity:
        """Create an account, set its display name and send the verification mail."""
        validate_form(
            [
                ("name", name, validate_name),
                ("email", email, validate_email),
                ("password", password, validate_password),
            ]
        )
        if password != confirm_password:
            raise FormValidationError("confirm_password", "Passwords do not match")

        identity = await self._auth.sign_up(email.strip(), password)
        await self._auth.update_display_name(identity, name.strip())
        await self._auth.send_email_verification(identity)
        self._notifier.notify("Account created! Please verify your email.", "success")
        return identity

    async def sign_up_with_exam_data(self, request: SignupRequest) -> Identity:
        """
        Two-step signup: account, then the profile document with exam ranks.

        Display-name and verification-mail failures are tolerated. A profile
        that cannot be stored leaves the account in place with a warning. Any
        other failure after the account exists deletes the account again.
        """
        validate_form(
            [
                ("name", request.name, validate_name),
                ("email", request.email, validate_email),
                ("mobile_number", request.mobile_number, validate_mobile_number),
                ("password", request.password, validate_password),
            ]
        )
        if request.password != request.confirm_password:
            raise FormValidationError("confirm_password", "Passwords do not match")
        if not request.terms_agreed:
            raise FormValidationError("terms", "You must agree to the terms and conditions")
        validate_exam_ranks(request.exam_ranks)

        email = request.email.strip()
        identity = await self._auth.sign_up(email, request.password)
        logger.info("Auth account created with uid %s", identity.uid)

        try:
            try:
                await self._auth.update_display_name(identity, request.name.strip())
                await self._auth.send_email_verification(identity)
            except ProviderError as exc:
                logger.warning("Could not finish account setup for %s: %s", identity.uid, exc)

            exam_data = parse_exam_ranks(request.exam_ranks)
            profile_data = ProfileUpdate(
                name=request.name.strip(),
                email=email,
                mobile_number=request.mobile_number.strip(),
                user_role=ROLE_STUDENT,
                exam_data=exam_data,
            )
            stored = await self._engine.create_profile(
                identity, profile_data, id_token=identity.id_token
            )
        except Exception:
            logger.exception("Signup failed after account creation; removing %s", identity.uid)
            try:
                await self._auth.delete_account(identity)
            except ProviderError as exc:
                logger.error("Failed to clean up account %s: %s", identity.uid, exc)
            raise

        if stored:
            logger.info("Profile stored for %s with %d exam entries", identity.uid, len(exam_data))
        else:
            self._notifier.notify(
                "Account created but profile data storage failed. Some features may be limited.",
                "warning",
            )
        self._notifier.notify("Account created! Please verify your email.", "success")
        return identity

    async def login(self, email: str, password: str) -> Optional[Identity]:
        """
        Sign in with email and password.

        Returns None when the email is not verified yet; a fresh verification
        mail is sent instead of starting a session.
        """
        validate_form([("email", email, validate_email)])
        email = email.strip()
        self._check_rate_limit(email)

        try:
            identity = await self._auth.sign_in_with_password(email, password)
        except ProviderError as exc:
            if exc.code == TOO_MANY_REQUESTS:
                self._local.set_item(
                    RATE_LIMIT_PREFIX + email, str(time.time() + self._rate_limit_seconds)
                )
                logger.warning("Login for %s rate limited", email)
            raise

        if not identity.email_verified:
            await self._auth.send_email_verification(identity)
            self._notifier.notify("Please verify your email. Verification link sent.", "warning")
            return None

        await self._events.publish(identity)
        self._notifier.notify("Login successful!", "success")
        return identity

    def _check_rate_limit(self, email: str) -> None:
        key = RATE_LIMIT_PREFIX + email
        marker = self._local.get_item(key)
        if marker is None:
            return
        try:
            expires_at = float(marker)
        except ValueError:
            expires_at = 0.0
        if time.time() < expires_at:
            raise ProviderError(
                "Too many login attempts. Please try again later or reset your password.",
                code=TOO_MANY_REQUESTS,
            )
        self._local.remove_item(key)

    async def send_password_reset(self, email: str) -> None:
        validate_form([("email", email, validate_email)])
        email = email.strip()
        await self._auth.send_password_reset(email)
        self._local.remove_item(RATE_LIMIT_PREFIX + email)
        self._notifier.notify("Password reset email sent!", "success")

    async def logout(self) -> None:
        await self._events.publish(None)
        self._notifier.notify("Logged out successfully", "info")


__all__ = ["AuthService", "RATE_LIMIT_PREFIX"]

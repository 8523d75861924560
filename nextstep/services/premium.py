"""
Premium access: payment status with expiry and verification-code redemption.

Redemption re-reads the code document right before claiming it and writes the
code and the profile one after the other; the two writes are not atomic.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import Optional

from pydantic import ValidationError

from nextstep.clients.firestore import FirestoreClient
from nextstep.clients.local_storage import LocalStorage
from nextstep.core.errors import RedemptionError, StoreError
from nextstep.schemas.identity import Identity
from nextstep.schemas.premium import PaymentStatus, VerificationCode
from nextstep.schemas.profile import ProfileUpdate, parse_timestamp
from nextstep.services.notifications import LoggingNotifier, Notifier
from nextstep.services.profile_sync import ProfileSyncEngine
from nextstep.services.token_store import TokenStore

logger = logging.getLogger(__name__)

CODES_COLLECTION = "verificationCodes"
PAYMENT_STATUS_PREFIX = "user_payment_status_"


def _check_code(code: VerificationCode, uid: str) -> None:
    if not code.is_active:
        raise RedemptionError("Code is no longer active")
    if code.used_count >= code.max_uses:
        raise RedemptionError("This code has already been used the maximum number of times.")
    if uid in code.used_by:
        raise RedemptionError("You have already used this code.")


class PremiumService:
    def __init__(
        self,
        store: FirestoreClient,
        token_store: TokenStore,
        sync_engine: ProfileSyncEngine,
        local_storage: LocalStorage,
        *,
        notifier: Optional[Notifier] = None,
    ) -> None:
        self._store = store
        self._tokens = token_store
        self._engine = sync_engine
        self._local = local_storage
        self._notifier = notifier or LoggingNotifier()

    async def refresh_payment_status(self, identity: Optional[Identity]) -> PaymentStatus:
        """Read the premium flag from the profile, revoking it once expired."""
        if identity is None:
            return PaymentStatus()

        profile = await self._engine.get_user_data(identity)
        expiry = parse_timestamp(profile.payment_expiry)
        is_paid = profile.is_paid
        if is_paid and expiry is not None:
            if datetime.now(timezone.utc) > expiry:
                is_paid = False
                logger.info("Premium subscription expired for %s", identity.uid)
                await self._engine.update_profile(identity, ProfileUpdate(is_paid=False))
            else:
                logger.info("Premium active for %s until %s", identity.uid, expiry.date())

        status = PaymentStatus(is_paid=is_paid, payment_expiry=expiry)
        self._remember_status(identity.uid, status)
        return status

    async def has_premium_access(self, identity: Optional[Identity]) -> bool:
        return (await self.refresh_payment_status(identity)).is_paid

    def stored_payment_status(self, uid: str) -> Optional[PaymentStatus]:
        """Last status written locally for ``uid``, if any."""
        data = self._local.get_json(PAYMENT_STATUS_PREFIX + uid)
        if data is None:
            return None
        return PaymentStatus(
            is_paid=bool(data.get("isPaid")),
            payment_expiry=parse_timestamp(data.get("paymentExpiry")),
        )

    def _remember_status(self, uid: str, status: PaymentStatus) -> None:
        self._local.set_json(
            PAYMENT_STATUS_PREFIX + uid,
            {
                "isPaid": status.is_paid,
                "paymentExpiry": (
                    status.payment_expiry.isoformat() if status.payment_expiry else None
                ),
            },
        )

    async def redeem_code(self, identity: Optional[Identity], code: str) -> PaymentStatus:
        """
        Claim a verification code for ``identity`` and grant premium access.

        Raises :class:`RedemptionError` with a user-facing message when the code
        is unknown, inactive, exhausted, already used by this user, or the store
        cannot be reached.
        """
        if identity is None:
            self._notifier.notify("Please log in first", "warning")
            raise RedemptionError("Please log in first")

        lookup = code.strip().upper()
        if not lookup:
            raise RedemptionError("Please enter a verification code.")

        token = self._tokens.get_current_token()
        try:
            matches = await self._store.run_query(
                CODES_COLLECTION,
                filters=[("code", "==", lookup), ("isActive", "==", True)],
                limit=1,
                id_token=token,
            )
            if not matches:
                raise RedemptionError("Invalid verification code. Please check and try again.")
            code_id = matches[0].id
            _check_code(VerificationCode.model_validate(matches[0].data), identity.uid)

            fresh = await self._store.get_document(CODES_COLLECTION, code_id, id_token=token)
            if fresh is None:
                raise RedemptionError("Code no longer exists")
            current = VerificationCode.model_validate(fresh)
            _check_code(current, identity.uid)

            now = datetime.now(timezone.utc)
            expiry = now + timedelta(days=current.expiry_days)
            await self._store.update_document(
                CODES_COLLECTION,
                code_id,
                {
                    "usedCount": current.used_count + 1,
                    "usedBy": [*current.used_by, identity.uid],
                    "lastUsedAt": now,
                },
                id_token=token,
            )
        except StoreError as exc:
            logger.error("Error verifying code for %s: %s", identity.uid, exc)
            self._notifier.notify("Verification failed. Please try again.", "error")
            raise RedemptionError("Failed to verify code. Please try again.") from exc
        except ValidationError as exc:
            logger.error("Malformed verification code document for %r: %s", lookup, exc)
            self._notifier.notify("Verification failed. Please try again.", "error")
            raise RedemptionError("This verification code is invalid.") from exc

        profile = await self._engine.get_user_data(identity)
        history_entry = {
            "type": "verification_code",
            "code": lookup,
            "timestamp": now.isoformat(),
            "expiryDate": expiry.isoformat(),
        }
        synced = await self._engine.update_profile(
            identity,
            ProfileUpdate(
                is_paid=True,
                payment_expiry=expiry.isoformat(),
                verification_code=lookup,
                verified_at=now.isoformat(),
                payment_history=[*profile.payment_history, history_entry],
            ),
        )
        if not synced:
            logger.warning("Premium grant for %s saved locally; profile sync pending", identity.uid)

        status = PaymentStatus(is_paid=True, payment_expiry=expiry)
        self._remember_status(identity.uid, status)
        self._notifier.notify("Verification successful! Premium features activated.", "success")
        return status


__all__ = ["CODES_COLLECTION", "PAYMENT_STATUS_PREFIX", "PremiumService"]

"""
Top-level session state machine.

Reacts to identity-presence events by establishing (or tearing down) the
bearer token and the user's profile, and hands the session to the companion
application through :meth:`SessionController.secure_redirect`.
"""

from __future__ import annotations

import logging
import webbrowser
from enum import Enum
from typing import Any, Callable, Optional
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

from nextstep.core.errors import ProviderError, RedirectError, map_auth_error
from nextstep.schemas.identity import Identity
from nextstep.schemas.profile import Profile
from nextstep.services.identity_events import IdentityEvents
from nextstep.services.notifications import LoggingNotifier, Notifier
from nextstep.services.profile_sync import ProfileSyncEngine
from nextstep.services.token_store import TokenStore

logger = logging.getLogger(__name__)

ID_TOKEN_EXPIRED = "auth/id-token-expired"
DEFAULT_REDIRECT_SOURCE = "nextstep-nexn"

Navigator = Callable[[str], Any]


class SessionState(str, Enum):
    SIGNED_OUT = "signed_out"
    SIGNING_IN = "signing_in"
    SIGNED_IN = "signed_in"


def append_query_params(url: str, params: dict[str, str]) -> str:
    """Return ``url`` with ``params`` added to (or replacing) its query string."""
    parts = urlsplit(url)
    query = [(key, value) for key, value in parse_qsl(parts.query) if key not in params]
    query.extend(params.items())
    return urlunsplit(parts._replace(query=urlencode(query)))


class SessionController:
    """Owns the signed-in state for one process."""

    def __init__(
        self,
        token_store: TokenStore,
        sync_engine: ProfileSyncEngine,
        events: IdentityEvents,
        *,
        notifier: Optional[Notifier] = None,
        navigator: Optional[Navigator] = None,
        redirect_source: str = DEFAULT_REDIRECT_SOURCE,
    ) -> None:
        self._tokens = token_store
        self._engine = sync_engine
        self._events = events
        self._notifier = notifier or LoggingNotifier()
        self._navigator = navigator or webbrowser.open
        self._redirect_source = redirect_source
        self._state = SessionState.SIGNED_OUT
        self._identity: Optional[Identity] = None
        self._unsubscribe: Optional[Callable[[], None]] = None

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def current_user(self) -> Optional[Identity]:
        return self._identity

    @property
    def is_signed_in(self) -> bool:
        return self._state is SessionState.SIGNED_IN

    @property
    def current_profile(self) -> Optional[Profile]:
        if self._identity is None:
            return None
        return self._engine.get_profile(self._identity.uid)

    @property
    def user_role(self) -> Optional[str]:
        profile = self.current_profile
        return profile.user_role if profile is not None else None

    def start(self) -> None:
        """Begin listening for identity changes."""
        if self._unsubscribe is None:
            self._unsubscribe = self._events.subscribe(self.handle_identity_change)

    def stop(self) -> None:
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None
        self._tokens.cancel_auto_refresh()

    async def handle_identity_change(self, identity: Optional[Identity]) -> None:
        if identity is None:
            self._sign_out()
            return
        await self._sign_in(identity)

    async def _sign_in(self, identity: Identity) -> None:
        self._state = SessionState.SIGNING_IN
        self._identity = identity
        logger.info("User signed in: %s", identity.uid)

        try:
            await self._tokens.refresh(identity)
        except ProviderError as exc:
            if exc.code == ID_TOKEN_EXPIRED:
                if not await self.handle_auth_error(exc):
                    return
            else:
                logger.error("Token refresh failed while signing in %s: %s", identity.uid, exc)
        except Exception:
            logger.exception("Unexpected error refreshing token for %s", identity.uid)

        try:
            await self._engine.fetch_or_create(identity)
            await self._engine.sync_pending_profile(identity)
        except Exception:
            logger.exception("Profile setup failed for %s; continuing with local data", identity.uid)

        if self._identity is not identity:
            # Signed out while the profile was loading.
            return
        self._tokens.schedule_auto_refresh(identity)
        self._state = SessionState.SIGNED_IN

    def _sign_out(self) -> None:
        if self._identity is not None:
            logger.info("User signed out: %s", self._identity.uid)
        self._tokens.clear()
        self._engine.reset()
        self._identity = None
        self._state = SessionState.SIGNED_OUT

    async def handle_auth_error(self, error: BaseException) -> bool:
        """
        React to a provider error raised while the session is active.

        An expired token gets one refresh attempt; if that fails the user is
        signed out with a session-expired notice. Returns True when the session
        survived.
        """
        if getattr(error, "code", None) != ID_TOKEN_EXPIRED:
            self._notifier.notify(map_auth_error(error), "error")
            return False

        if self._identity is not None:
            try:
                await self._tokens.refresh(self._identity)
                return True
            except ProviderError as exc:
                logger.error("Token refresh after expiry failed: %s", exc)

        self._notifier.notify("Session expired. Please log in again.", "error")
        await self.logout()
        return False

    async def secure_redirect(self, target_url: str) -> str:
        """
        Navigate to ``target_url`` carrying the session token.

        Adds ``token``, ``source`` and ``uid`` query parameters, mirrors the
        token into session storage and returns the final URL.
        """
        identity = self._identity
        if not self.is_signed_in or identity is None:
            self._notifier.notify("Please log in first.", "warning")
            raise RedirectError("Secure redirect requires a signed-in user.")

        token = self._tokens.get_current_token()
        if token is None:
            try:
                token = (await self._tokens.refresh(identity)).value
            except ProviderError as exc:
                logger.error("Error refreshing token for redirect: %s", exc)
                self._notifier.notify(
                    "Authentication error. Please try logging in again.", "error"
                )
                raise RedirectError("Could not obtain a valid token for redirect.") from exc

        url = append_query_params(
            target_url,
            {"token": token, "source": self._redirect_source, "uid": identity.uid},
        )
        self._tokens.mirror_redirect_token(token)
        logger.info("Redirecting user %s to %s", identity.uid, target_url)
        self._navigator(url)
        return url

    def check_existing_session(self) -> bool:
        """Drop an invalid stored token at start-up; True if a valid one remains."""
        token = self._tokens.get_current_token()
        if token is None:
            logger.info("No valid stored session token")
            return False
        return True

    async def logout(self) -> None:
        await self._events.publish(None)
        if self._unsubscribe is None:
            self._sign_out()


__all__ = [
    "DEFAULT_REDIRECT_SOURCE",
    "ID_TOKEN_EXPIRED",
    "Navigator",
    "SessionController",
    "SessionState",
    "append_query_params",
]

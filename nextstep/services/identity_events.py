"""Identity-presence stream the session controller listens on."""

from __future__ import annotations

import logging
from typing import Awaitable, Callable, List, Optional

from nextstep.schemas.identity import Identity

logger = logging.getLogger(__name__)

IdentityListener = Callable[[Optional[Identity]], Awaitable[None]]


class IdentityEvents:
    """
    Publish identity-appears / identity-disappears changes to subscribers.

    ``None`` means no identity is signed in. Listeners run sequentially in
    subscription order; one failing listener does not stop the others.
    """

    def __init__(self) -> None:
        self._listeners: List[IdentityListener] = []
        self._current: Optional[Identity] = None

    @property
    def current(self) -> Optional[Identity]:
        return self._current

    def subscribe(self, listener: IdentityListener) -> Callable[[], None]:
        """Register ``listener`` and return a callable that removes it."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    async def publish(self, identity: Optional[Identity]) -> None:
        self._current = identity
        for listener in list(self._listeners):
            try:
                await listener(identity)
            except Exception:
                logger.exception("Identity listener failed")


__all__ = ["IdentityEvents", "IdentityListener"]

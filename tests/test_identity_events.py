from __future__ import annotations

import pytest

try:
    from . import _bootstrap  # noqa: F401
except Exception:  # pragma: no cover - fallback for direct execution
    import _bootstrap  # type: ignore # noqa: F401

from nextstep.schemas.identity import Identity
from nextstep.services.identity_events import IdentityEvents


@pytest.mark.asyncio
async def test_listeners_run_in_order_and_survive_failures() -> None:
    events = IdentityEvents()
    seen: list[tuple[str, object]] = []

    async def broken(identity):
        seen.append(("broken", identity))
        raise RuntimeError("listener bug")

    async def healthy(identity):
        seen.append(("healthy", identity))

    events.subscribe(broken)
    events.subscribe(healthy)
    user = Identity(uid="u1")

    await events.publish(user)
    await events.publish(None)

    assert seen == [("broken", user), ("healthy", user), ("broken", None), ("healthy", None)]
    assert events.current is None


@pytest.mark.asyncio
async def test_unsubscribe_stops_delivery() -> None:
    events = IdentityEvents()
    seen = []

    async def listener(identity):
        seen.append(identity)

    unsubscribe = events.subscribe(listener)
    unsubscribe()
    unsubscribe()
    await events.publish(Identity(uid="u1"))

    assert seen == []
    assert events.current.uid == "u1"

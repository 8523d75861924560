"""
Entrypoint for the session client: configure logging and start the session.
"""

from __future__ import annotations

from nextstep.core.config import get_settings
from nextstep.core.logging import configure_logging
from nextstep.dependencies import get_session_controller
from nextstep.services import SessionController


def create_session() -> SessionController:
    """Factory for the process-wide session controller."""
    settings = get_settings()
    configure_logging("DEBUG" if settings.debug else settings.log_level)

    controller = get_session_controller()
    controller.start()
    controller.check_existing_session()
    return controller


__all__ = ["create_session"]

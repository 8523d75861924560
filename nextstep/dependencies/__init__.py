"""Expose dependency helpers."""

from .clients import (
    get_admin_dashboard_service,
    get_admin_user_service,
    get_auth_client,
    get_auth_service,
    get_exam_service,
    get_firestore_client,
    get_identity_events,
    get_local_storage,
    get_notifier,
    get_premium_service,
    get_profile_cache,
    get_profile_sync_engine,
    get_session_controller,
    get_session_storage,
    get_token_cipher_service,
    get_token_store,
    get_user_directory,
)
from .config import get_app_settings

__all__ = [
    "get_admin_dashboard_service",
    "get_admin_user_service",
    "get_app_settings",
    "get_auth_client",
    "get_auth_service",
    "get_exam_service",
    "get_firestore_client",
    "get_identity_events",
    "get_local_storage",
    "get_notifier",
    "get_premium_service",
    "get_profile_cache",
    "get_profile_sync_engine",
    "get_session_controller",
    "get_session_storage",
    "get_token_cipher_service",
    "get_token_store",
    "get_user_directory",
]

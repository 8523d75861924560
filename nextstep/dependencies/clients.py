"""
Factory functions wiring the shared clients and services of one process.
"""

from functools import lru_cache
from typing import Optional

from nextstep.clients import FirebaseAuthClient, FirestoreClient, LocalStorage, SessionStorage
from nextstep.dependencies.config import get_app_settings
from nextstep.services import (
    AdminDashboardService,
    AdminUserService,
    AuthService,
    ExamService,
    IdentityEvents,
    LoggingNotifier,
    PremiumService,
    ProfileCache,
    ProfileSyncEngine,
    SessionController,
    TokenCipherService,
    TokenStore,
    UserDirectory,
)
from nextstep.utils.retry import RetryConfig


@lru_cache()
def get_local_storage() -> LocalStorage:
    """Provide the durable key/value store."""
    return LocalStorage(get_app_settings().session.local_storage_path)


@lru_cache()
def get_session_storage() -> SessionStorage:
    return SessionStorage()


@lru_cache()
def get_auth_client() -> FirebaseAuthClient:
    settings = get_app_settings()
    return FirebaseAuthClient(
        settings.firebase, timeout=settings.session.request_timeout_seconds
    )


@lru_cache()
def get_firestore_client() -> FirestoreClient:
    settings = get_app_settings()
    return FirestoreClient(
        settings.firebase, timeout=settings.session.request_timeout_seconds
    )


@lru_cache()
def get_token_cipher_service() -> Optional[TokenCipherService]:
    """Provide the token cipher when an encryption secret is configured."""
    secret = get_app_settings().security.token_encryption_secret
    if not secret:
        return None
    return TokenCipherService(secret=secret)


@lru_cache()
def get_notifier() -> LoggingNotifier:
    return LoggingNotifier()


@lru_cache()
def get_identity_events() -> IdentityEvents:
    return IdentityEvents()


@lru_cache()
def get_token_store() -> TokenStore:
    session = get_app_settings().session
    return TokenStore(
        get_auth_client(),
        get_local_storage(),
        get_session_storage(),
        expiry_threshold_seconds=session.token_expiry_threshold_seconds,
        refresh_interval_seconds=session.token_refresh_interval_seconds,
        token_cipher=get_token_cipher_service(),
    )


@lru_cache()
def get_profile_cache() -> ProfileCache:
    return ProfileCache(get_local_storage())


@lru_cache()
def get_profile_sync_engine() -> ProfileSyncEngine:
    session = get_app_settings().session
    return ProfileSyncEngine(
        get_firestore_client(),
        get_token_store(),
        get_profile_cache(),
        retry_config=RetryConfig(
            attempts=session.max_retries,
            backoff_seconds=session.retry_initial_delay_seconds,
        ),
        fetch_dedup_wait_seconds=session.fetch_dedup_wait_seconds,
    )


@lru_cache()
def get_session_controller() -> SessionController:
    """One session controller per process."""
    return SessionController(
        get_token_store(),
        get_profile_sync_engine(),
        get_identity_events(),
        notifier=get_notifier(),
        redirect_source=get_app_settings().session.redirect_source,
    )


@lru_cache()
def get_auth_service() -> AuthService:
    return AuthService(
        get_auth_client(),
        get_local_storage(),
        get_profile_sync_engine(),
        get_identity_events(),
        notifier=get_notifier(),
        rate_limit_seconds=get_app_settings().session.login_rate_limit_seconds,
    )


def get_exam_service() -> ExamService:
    return ExamService(get_profile_sync_engine(), notifier=get_notifier())


def get_user_directory() -> UserDirectory:
    return UserDirectory(get_firestore_client(), get_token_store(), get_profile_sync_engine())


@lru_cache()
def get_admin_user_service() -> AdminUserService:
    """Console state (page, cursors, selection) lives on this instance."""
    return AdminUserService(get_firestore_client(), get_token_store(), notifier=get_notifier())


def get_admin_dashboard_service() -> AdminDashboardService:
    return AdminDashboardService(get_firestore_client(), get_token_store(), notifier=get_notifier())


def get_premium_service() -> PremiumService:
    return PremiumService(
        get_firestore_client(),
        get_token_store(),
        get_profile_sync_engine(),
        get_local_storage(),
        notifier=get_notifier(),
    )


__all__ = [
    "get_admin_dashboard_service",
    "get_admin_user_service",
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

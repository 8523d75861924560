"""Service layer exports."""

from .admin_dashboard import AdminDashboardService
from .admin_users import AdminUserService
from .auth_service import AuthService
from .exam_service import ExamService
from .identity_events import IdentityEvents
from .notifications import LoggingNotifier, Notifier, RecordingNotifier
from .premium import PremiumService
from .profile_cache import ProfileCache
from .profile_sync import ProfileSyncEngine
from .session import SessionController, SessionState
from .token_cipher import TokenCipherService
from .token_store import Token, TokenStore
from .user_directory import UserDirectory

__all__ = [
    "AdminDashboardService",
    "AdminUserService",
    "AuthService",
    "ExamService",
    "IdentityEvents",
    "LoggingNotifier",
    "Notifier",
    "PremiumService",
    "ProfileCache",
    "ProfileSyncEngine",
    "RecordingNotifier",
    "SessionController",
    "SessionState",
    "Token",
    "TokenCipherService",
    "TokenStore",
    "UserDirectory",
]

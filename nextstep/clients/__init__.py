"""Expose constructed client wrappers."""

from .firebase_auth import FirebaseAuthClient
from .firestore import DocumentRef, FirestoreClient, StoredDocument
from .local_storage import LocalStorage, SessionStorage

__all__ = [
    "DocumentRef",
    "FirebaseAuthClient",
    "FirestoreClient",
    "LocalStorage",
    "SessionStorage",
    "StoredDocument",
]

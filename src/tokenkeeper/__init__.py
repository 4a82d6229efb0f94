"""Authenticated HTTP client with cached, self-refreshing bearer tokens."""

from .auth import AuthClient, AuthError
from .client import ApiClient, ApiError, ApiErrorType
from .config import Settings
from .interceptor import AuthInterceptor
from .refresh import CustomRefresh, EndpointRefresh, NoRefresh, RefreshError, resolve_strategy
from .session import Session, TokenPair
from .storage import FileStore, KeyringStore, MemoryStore, SecureStorage, open_store

__all__ = [
    "ApiClient",
    "ApiError",
    "ApiErrorType",
    "AuthClient",
    "AuthError",
    "AuthInterceptor",
    "Settings",
    "Session",
    "TokenPair",
    "RefreshError",
    "CustomRefresh",
    "EndpointRefresh",
    "NoRefresh",
    "resolve_strategy",
    "SecureStorage",
    "MemoryStore",
    "FileStore",
    "KeyringStore",
    "open_store",
]

from __future__ import annotations

import asyncio
from collections.abc import Mapping
from enum import Enum
from typing import Any

import httpx

from .config import Settings
from .hooks import LoggingHooks
from .interceptor import AuthInterceptor
from .refresh import RefreshFunc
from .storage import SecureStorage, open_store


class ApiErrorType(str, Enum):
    NETWORK = "network"
    TIMEOUT = "timeout"
    RESPONSE = "response"
    CANCEL = "cancel"
    UNKNOWN = "unknown"


class ApiError(RuntimeError):
    """Raised when an API call fails, classified by ApiErrorType."""

    def __init__(
        self,
        message: str,
        type: ApiErrorType,  # noqa: A002
        status_code: int | None = None,
        data: Any = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.type = type
        self.status_code = status_code
        self.data = data

    def __str__(self) -> str:
        return self.message

    @property
    def is_unauthorized(self) -> bool:
        return self.status_code == httpx.codes.UNAUTHORIZED

    @classmethod
    def from_response(cls, response: httpx.Response) -> ApiError:
        data: Any
        try:
            data = response.json()
        except ValueError:
            data = response.text or None
        return cls(
            parse_error_message(data),
            ApiErrorType.RESPONSE,
            status_code=response.status_code,
            data=data,
        )

    @classmethod
    def from_exception(cls, exc: BaseException) -> ApiError:
        """Classify a transport failure.

        ApiClient.request lets CancelledError propagate untouched; the CANCEL
        kind is for callers that catch cancellation themselves and want to
        report it alongside other failures.
        """
        if isinstance(exc, httpx.HTTPStatusError):
            return cls.from_response(exc.response)
        if isinstance(exc, httpx.TimeoutException):
            return cls(
                "Connection timeout. Please check your internet connection.",
                ApiErrorType.TIMEOUT,
            )
        if isinstance(exc, asyncio.CancelledError):
            return cls("Request was cancelled", ApiErrorType.CANCEL)
        if isinstance(exc, httpx.NetworkError):
            return cls("No internet connection", ApiErrorType.NETWORK)
        return cls(str(exc) or "An unexpected error occurred", ApiErrorType.UNKNOWN)


def parse_error_message(data: Any) -> str:
    if isinstance(data, dict):
        for key in ("message", "error", "detail"):
            value = data.get(key)
            if isinstance(value, str) and value:
                return value
    return "An error occurred"


class ApiClient:
    """Authenticated JSON API client.

    Requests go through an httpx.AsyncClient carrying the AuthInterceptor. The
    interceptor refreshes tokens through a second client that has no auth, so a
    401 from the refresh endpoint can never be intercepted itself.
    """

    def __init__(
        self,
        settings: Settings,
        storage: SecureStorage | None = None,
        *,
        refresh_func: RefreshFunc | None = None,
    ) -> None:
        self.settings = settings
        self.storage = storage or open_store(settings)
        self.hooks = LoggingHooks() if settings.debug else None
        event_hooks = self.hooks.event_hooks() if self.hooks else None
        headers = {
            "Content-Type": settings.content_type,
            "Accept": settings.accept,
            "User-Agent": settings.user_agent,
        }
        self.refresh_client = httpx.AsyncClient(
            base_url=settings.api_base,
            timeout=settings.timeout,
            headers=headers,
            event_hooks=event_hooks,
        )
        self.interceptor = AuthInterceptor(
            self.storage,
            refresh_transport=self.refresh_client,
            refresh_path=settings.refresh_path,
            refresh_func=refresh_func,
            refresh_timeout=settings.total_timeout,
        )
        self.http = httpx.AsyncClient(
            base_url=settings.api_base,
            timeout=settings.timeout,
            headers=headers,
            auth=self.interceptor,
            event_hooks=event_hooks,
        )

    async def __aenter__(self) -> ApiClient:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self.http.aclose()
        await self.refresh_client.aclose()

    async def request(
        self,
        method: str,
        path: str,
        *,
        json: Any = None,
        params: Mapping[str, Any] | None = None,
        headers: Mapping[str, str] | None = None,
    ) -> httpx.Response:
        try:
            resp = await self.http.request(method, path, json=json, params=params, headers=headers)
        except httpx.HTTPError as exc:
            if self.hooks:
                self.hooks.on_error(method, path, exc)
            raise ApiError.from_exception(exc) from exc
        if resp.is_error:
            raise ApiError.from_response(resp)
        return resp

    async def get(self, path: str, **kwargs: Any) -> httpx.Response:
        return await self.request("GET", path, **kwargs)

    async def post(self, path: str, **kwargs: Any) -> httpx.Response:
        return await self.request("POST", path, **kwargs)

    async def put(self, path: str, **kwargs: Any) -> httpx.Response:
        return await self.request("PUT", path, **kwargs)

    async def patch(self, path: str, **kwargs: Any) -> httpx.Response:
        return await self.request("PATCH", path, **kwargs)

    async def delete(self, path: str, **kwargs: Any) -> httpx.Response:
        return await self.request("DELETE", path, **kwargs)

    async def json(self, method: str, path: str, **kwargs: Any) -> Any:
        """Perform a request and return the decoded JSON body (None when empty)."""
        resp = await self.request(method, path, **kwargs)
        if not resp.content:
            return None
        return resp.json()

    # token management, delegated to the interceptor

    async def set_tokens(self, access_token: str, refresh_token: str) -> None:
        await self.interceptor.set_tokens(access_token, refresh_token)

    async def set_access_token(self, access_token: str) -> None:
        await self.interceptor.set_access_token(access_token)

    async def clear_tokens(self) -> None:
        await self.interceptor.clear_tokens()

    @property
    def access_token(self) -> str | None:
        return self.interceptor.access_token

    async def is_authenticated(self) -> bool:
        return await self.interceptor.is_authenticated()

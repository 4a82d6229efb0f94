"""Token refresh strategies.

Exactly one strategy is active per interceptor. It is chosen once, when the
interceptor is built:

* ``CustomRefresh`` wraps a caller supplied function,
* ``EndpointRefresh`` posts the refresh token to an API endpoint,
* ``NoRefresh`` is used when neither was configured and always fails.

Every strategy reports failure by raising ``RefreshError``.
"""

from __future__ import annotations

import inspect
from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass
from typing import Any

import httpx

from .session import TokenPair

RefreshResult = TokenPair | Mapping[str, Any]
RefreshFunc = Callable[[str], Awaitable[RefreshResult] | RefreshResult]


class RefreshError(RuntimeError):
    """Raised when a refresh token cannot be exchanged for new tokens."""


def _as_token_pair(result: Any) -> TokenPair:
    if isinstance(result, TokenPair):
        return result
    try:
        return TokenPair.model_validate(result)
    except ValueError as exc:
        raise RefreshError(f"Malformed refresh result: {exc}") from exc


@dataclass(frozen=True)
class EndpointRefresh:
    path: str

    async def refresh(self, refresh_token: str, transport: httpx.AsyncClient | None) -> TokenPair:
        if transport is None:
            raise RefreshError("Endpoint refresh needs a refresh transport")
        try:
            resp = await transport.post(self.path, json={"refresh_token": refresh_token})
        except httpx.HTTPError as exc:
            raise RefreshError(f"Refresh request failed: {exc!r}") from exc
        if not resp.is_success:
            raise RefreshError(f"Refresh endpoint returned HTTP {resp.status_code}")
        try:
            payload: Any = resp.json()
        except ValueError as exc:
            raise RefreshError("Refresh endpoint returned a non-JSON body") from exc
        if not isinstance(payload, dict):
            raise RefreshError("Refresh endpoint returned a non-object body")
        return _as_token_pair(payload)


@dataclass(frozen=True)
class CustomRefresh:
    func: RefreshFunc

    async def refresh(self, refresh_token: str, transport: httpx.AsyncClient | None) -> TokenPair:
        try:
            result = self.func(refresh_token)
            if inspect.isawaitable(result):
                result = await result
        except RefreshError:
            raise
        except Exception as exc:
            raise RefreshError(f"Custom refresh failed: {exc!r}") from exc
        return _as_token_pair(result)


@dataclass(frozen=True)
class NoRefresh:
    async def refresh(self, refresh_token: str, transport: httpx.AsyncClient | None) -> TokenPair:
        raise RefreshError("No refresh strategy configured")


RefreshStrategy = EndpointRefresh | CustomRefresh | NoRefresh


def resolve_strategy(
    refresh_path: str | None = None, refresh_func: RefreshFunc | None = None
) -> RefreshStrategy:
    """Pick the refresh strategy; a custom function wins over an endpoint path."""
    if refresh_func is not None:
        return CustomRefresh(refresh_func)
    if refresh_path:
        return EndpointRefresh(refresh_path)
    return NoRefresh()

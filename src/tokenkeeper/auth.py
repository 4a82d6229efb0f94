from __future__ import annotations

import httpx
from pydantic import ValidationError

from .client import parse_error_message
from .config import Settings
from .interceptor import AuthInterceptor
from .refresh import RefreshError
from .session import TokenPair


class AuthError(RuntimeError):
    """Raised when authentication fails."""


class AuthClient:
    """Username/password login against the API's login endpoint."""

    def __init__(
        self, settings: Settings, interceptor: AuthInterceptor, transport: httpx.AsyncClient
    ) -> None:
        self.settings = settings
        self.interceptor = interceptor
        # un-intercepted client: a failed login must not trigger a refresh
        self.transport = transport

    async def login(self, username: str, password: str) -> TokenPair:
        """Exchange credentials for tokens and store them in the session."""
        if not username or not password:
            raise AuthError("Username and password are required.")

        try:
            resp = await self.transport.post(
                self.settings.login_path,
                json={"username": username, "password": password},
            )
        except httpx.HTTPError as exc:
            raise AuthError(f"Login request failed: {exc}") from exc

        if resp.is_error:
            raise AuthError(f"Login failed with HTTP {resp.status_code}: {_detail(resp)}")

        try:
            tokens = TokenPair.model_validate_json(resp.content)
        except ValidationError as exc:
            raise AuthError(
                "Login response did not contain access_token and refresh_token"
            ) from exc

        await self.interceptor.set_tokens(tokens.access_token, tokens.refresh_token)
        return tokens

    async def refresh(self) -> TokenPair:
        """Force a refresh with the stored refresh token (no 401 needed)."""
        await self.interceptor.ensure_loaded()
        refresh_token = self.interceptor.refresh_token
        if not refresh_token:
            raise AuthError("No refresh token available in session.")
        try:
            tokens = await self.interceptor.refresh(refresh_token)
        except RefreshError as exc:
            await self.interceptor.clear_tokens()
            raise AuthError(str(exc)) from exc
        await self.interceptor.set_tokens(tokens.access_token, tokens.refresh_token)
        return tokens

    async def logout(self) -> None:
        await self.interceptor.clear_tokens()


def _detail(resp: httpx.Response) -> str:
    try:
        return parse_error_message(resp.json())
    except ValueError:
        return resp.text

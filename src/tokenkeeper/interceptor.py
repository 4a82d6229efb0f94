"""Bearer token injection with cached tokens and refresh-and-retry on 401.

``AuthInterceptor`` plugs into ``httpx.AsyncClient(auth=...)``. For every
request it:

1. hydrates the in-memory session from secure storage (once per process, or
   once again after the session was cleared),
2. sets ``Authorization: Bearer <access token>`` when a token is cached,
3. on a 401 response, refreshes the tokens through a separate transport and
   re-sends the request once with the new token.

When the refresh is impossible or fails, the session is cleared and the
original 401 response is returned to the caller. A 401 on the retried request
is final.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncGenerator, Generator

import httpx

from .refresh import RefreshError, RefreshFunc, RefreshStrategy, resolve_strategy
from .session import Session, TokenPair
from .storage import SecureStorage

logger = logging.getLogger(__name__)

AUTHORIZATION = "Authorization"


class AuthInterceptor(httpx.Auth):
    """Owns the session and authorizes requests sent by an AsyncClient."""

    def __init__(
        self,
        storage: SecureStorage,
        *,
        refresh_transport: httpx.AsyncClient | None = None,
        refresh_path: str | None = None,
        refresh_func: RefreshFunc | None = None,
        refresh_timeout: float | None = None,
        token_type: str = "Bearer",
    ) -> None:
        if refresh_transport is not None and isinstance(refresh_transport.auth, AuthInterceptor):
            raise ValueError("The refresh transport must not be intercepted by an AuthInterceptor")
        self.storage = storage
        self.session = Session()
        self.strategy: RefreshStrategy = resolve_strategy(refresh_path, refresh_func)
        self.refresh_transport = refresh_transport
        self.refresh_timeout = refresh_timeout
        self.token_type = token_type
        self._hydration: asyncio.Future[None] | None = None
        # bumped by set_tokens and clear_tokens; a hydration that started
        # under an older generation discards what it read
        self._generation = 0
        self._refresh_lock = asyncio.Lock()

    # -- httpx.Auth ---------------------------------------------------------

    def sync_auth_flow(
        self, request: httpx.Request
    ) -> Generator[httpx.Request, httpx.Response, None]:
        raise RuntimeError("AuthInterceptor can only be used with httpx.AsyncClient")

    async def async_auth_flow(
        self, request: httpx.Request
    ) -> AsyncGenerator[httpx.Request, httpx.Response]:
        await self.on_request(request)
        response = yield request
        if response.status_code != httpx.codes.UNAUTHORIZED:
            return
        retry = await self.on_response_error(request, response)
        if retry is not None:
            # the retried response is final, whatever its status
            yield retry

    # -- hooks --------------------------------------------------------------

    async def on_request(self, request: httpx.Request) -> httpx.Request:
        await self.ensure_loaded()
        request.headers.update(self.session.authorization_header(self.token_type))
        return request

    async def on_response_error(
        self, request: httpx.Request, response: httpx.Response
    ) -> httpx.Request | None:
        """Handle a 401: return the request to retry, or None to surface the 401."""
        sent_token = self._sent_token(request)
        async with self._refresh_lock:
            current = self.session.access_token
            if current and current != sent_token:
                logger.debug("Token already refreshed by a concurrent request, retrying")
            else:
                pair = await self._try_refresh(request)
                if pair is None:
                    return None
                current = pair.access_token
            retry = httpx.Request(
                request.method,
                request.url,
                headers=request.headers,
                stream=request.stream,
                extensions=request.extensions,
            )
            retry.headers[AUTHORIZATION] = self._header_value(current)
        logger.debug("Retrying %s %s with refreshed token", request.method, request.url)
        return retry

    async def _try_refresh(self, request: httpx.Request) -> TokenPair | None:
        refresh_token = self.session.refresh_token
        if not refresh_token:
            logger.info(
                "401 on %s %s and no refresh token; clearing session", request.method, request.url
            )
            await self.clear_tokens()
            return None
        try:
            pair = await self.refresh(refresh_token)
        except RefreshError as exc:
            logger.warning("Token refresh failed, clearing session: %s", exc)
            await self.clear_tokens()
            return None
        await self.set_tokens(pair.access_token, pair.refresh_token)
        logger.info("Access token refreshed")
        return pair

    async def refresh(self, refresh_token: str) -> TokenPair:
        """Run the configured refresh strategy once, bounded by refresh_timeout."""
        logger.debug("Refreshing tokens using %s", type(self.strategy).__name__)
        try:
            return await asyncio.wait_for(
                self.strategy.refresh(refresh_token, self.refresh_transport),
                timeout=self.refresh_timeout,
            )
        except TimeoutError as exc:
            raise RefreshError("Token refresh timed out") from exc

    # -- hydration ----------------------------------------------------------

    async def ensure_loaded(self) -> None:
        """Load tokens from storage unless the session is already initialized.

        Concurrent callers share one hydration; a failed hydration is retried
        by the next caller.
        """
        if self.session.initialized:
            return
        if self._hydration is None:
            self._hydration = asyncio.ensure_future(self._hydrate())
        hydration = self._hydration
        try:
            await asyncio.shield(hydration)
        except Exception:
            if self._hydration is hydration:
                self._hydration = None
            raise

    async def _hydrate(self) -> None:
        generation = self._generation
        access, refresh = await self.storage.get_tokens()
        if generation != self._generation or self.session.initialized:
            logger.debug("Session changed while hydrating; discarding stored tokens")
            return
        self.session.access_token = access
        self.session.refresh_token = refresh
        self.session.initialized = True
        logger.debug("Session hydrated from storage (access token: %s)", "yes" if access else "no")

    # -- mutators / accessors -----------------------------------------------

    async def set_tokens(self, access_token: str, refresh_token: str) -> None:
        self._generation += 1
        self.session.access_token = access_token
        self.session.refresh_token = refresh_token
        self.session.initialized = True
        await self.storage.save_tokens(access_token, refresh_token)

    async def set_access_token(self, access_token: str) -> None:
        self.session.access_token = access_token
        await self.storage.save_access_token(access_token)

    async def set_refresh_token(self, refresh_token: str) -> None:
        self.session.refresh_token = refresh_token
        await self.storage.save_refresh_token(refresh_token)

    async def clear_tokens(self) -> None:
        """Forget both tokens in memory and storage; the next request re-hydrates."""
        self._generation += 1
        self.session.access_token = None
        self.session.refresh_token = None
        await self.storage.delete_all_tokens()
        self._generation += 1
        self.session.initialized = False
        self._hydration = None

    @property
    def access_token(self) -> str | None:
        return self.session.access_token

    @property
    def refresh_token(self) -> str | None:
        return self.session.refresh_token

    def get_access_token(self) -> str | None:
        return self.session.access_token

    def get_refresh_token(self) -> str | None:
        return self.session.refresh_token

    async def is_authenticated(self) -> bool:
        if self.session.access_token:
            return True
        return await self.storage.has_access_token()

    # -- helpers ------------------------------------------------------------

    def _header_value(self, token: str) -> str:
        return f"{self.token_type} {token}"

    def _sent_token(self, request: httpx.Request) -> str | None:
        value = request.headers.get(AUTHORIZATION)
        prefix = f"{self.token_type} "
        if value and value.startswith(prefix):
            return value[len(prefix) :]
        return None

from __future__ import annotations

import json
import logging
from collections.abc import Mapping
from typing import Any

import httpx

logger = logging.getLogger("tokenkeeper.http")

SENSITIVE_HEADERS = frozenset({"authorization", "cookie", "set-cookie"})
SENSITIVE_FIELDS = frozenset({"access_token", "refresh_token", "id_token", "password"})
BODY_PREVIEW = 2000


def mask(value: str) -> str:
    """Keep the scheme and the last 4 characters of a credential."""
    scheme, _, secret = value.partition(" ")
    if not secret:
        scheme, secret = "", scheme
    tail = secret[-4:] if len(secret) > 8 else ""
    masked = f"***{tail}"
    return f"{scheme} {masked}" if scheme else masked


def redact(data: Any) -> Any:
    """Mask credential fields anywhere in a decoded JSON document."""
    if isinstance(data, dict):
        return {
            key: _mask_field(key, value) if key.lower() in SENSITIVE_FIELDS else redact(value)
            for key, value in data.items()
        }
    if isinstance(data, list):
        return [redact(item) for item in data]
    return data


def _mask_field(key: str, value: Any) -> Any:
    if not isinstance(value, str) or not value:
        return value
    if key.lower() == "password":
        return "***"
    return f"***{value[-4:]}" if len(value) > 8 else "***"


def format_headers(headers: Mapping[str, str]) -> str:
    lines = []
    for name, value in headers.items():
        shown = mask(value) if name.lower() in SENSITIVE_HEADERS else value
        lines.append(f"\t{name}: {shown}")
    return "\n".join(lines)


def format_body(content: bytes, content_type: str | None) -> str:
    if not content:
        return "<empty>"
    if content_type and "json" in content_type:
        try:
            data: Any = json.loads(content)
        except ValueError:
            pass
        else:
            text = json.dumps(redact(data), indent=2, ensure_ascii=False)
            return text if len(text) <= BODY_PREVIEW else text[:BODY_PREVIEW] + "..."
    if content_type and content_type.startswith("multipart/"):
        return f"<multipart body, {len(content)} bytes>"
    text = content.decode("utf-8", errors="replace")
    return text if len(text) <= BODY_PREVIEW else text[:BODY_PREVIEW] + "..."


class LoggingHooks:
    """httpx event hooks logging requests, responses and transport errors."""

    def __init__(
        self,
        *,
        log_request_headers: bool = True,
        log_response_headers: bool = True,
        log_bodies: bool = True,
        log: logging.Logger | None = None,
    ) -> None:
        self.log_request_headers = log_request_headers
        self.log_response_headers = log_response_headers
        self.log_bodies = log_bodies
        self.log = log or logger

    def event_hooks(self) -> dict[str, list[Any]]:
        return {"request": [self.on_request], "response": [self.on_response]}

    async def on_request(self, request: httpx.Request) -> None:
        if not self.log.isEnabledFor(logging.DEBUG):
            return
        parts = [f"[REQUEST] -> {request.method} {request.url}"]
        if self.log_request_headers:
            parts.append("Headers:\n" + format_headers(request.headers))
        # only in-memory bodies; streamed uploads are not consumed here
        if self.log_bodies and isinstance(request.stream, httpx.ByteStream):
            body = b"".join(request.stream)
            parts.append("Request Body:\n" + format_body(body, request.headers.get("content-type")))
        self.log.debug("\n".join(parts))

    async def on_response(self, response: httpx.Response) -> None:
        if not self.log.isEnabledFor(logging.DEBUG):
            return
        request = response.request
        label = "ERROR RESPONSE" if response.is_error else "SUCCESS RESPONSE"
        parts = [f"[{label}] -> {request.method} {request.url} ({response.status_code})"]
        if self.log_response_headers:
            parts.append("Headers:\n" + format_headers(response.headers))
        if self.log_bodies:
            await response.aread()
            parts.append(
                "Response Body:\n"
                + format_body(response.content, response.headers.get("content-type"))
            )
        self.log.debug("\n".join(parts))

    def on_error(self, method: str, url: str, exc: BaseException) -> None:
        self.log.error(
            "[ERROR] -> %s %s: %s (%s)",
            method,
            url,
            type(exc).__name__,
            exc,
        )

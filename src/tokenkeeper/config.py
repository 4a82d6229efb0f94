from __future__ import annotations

from pathlib import Path
from typing import Literal

import httpx
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):  # type: ignore[misc]
    """Client configuration loaded from environment or .env."""

    base_url: str = Field(
        default="https://api.example.com",
        description="API origin, without the version prefix.",
    )
    api_version: str = Field(default="/v1", description="Path prefix appended to base_url.")
    connect_timeout: float = Field(default=30.0, description="Connect timeout in seconds.")
    read_timeout: float = Field(default=30.0, description="Receive timeout in seconds.")
    write_timeout: float = Field(default=30.0, description="Send timeout in seconds.")
    content_type: str = Field(default="application/json")
    accept: str = Field(default="application/json")
    user_agent: str = Field(default="tokenkeeper/0.1")
    refresh_path: str | None = Field(
        default=None,
        description="Endpoint used to exchange a refresh token (e.g. '/auth/refresh'). "
        "When unset, an expired session cannot be refreshed.",
    )
    login_path: str = Field(
        default="/auth/login",
        description="Endpoint accepting username/password and returning a token pair.",
    )
    token_backend: Literal["file", "keyring"] = Field(
        default="file",
        description="Where tokens are persisted: a 0600 JSON file or the OS keyring.",
    )
    token_file: Path = Field(
        default=Path.home() / ".config" / "tokenkeeper" / "tokens.json",
        description="Token file used by the 'file' backend.",
    )
    keyring_service: str = Field(
        default="tokenkeeper",
        description="Service name used by the 'keyring' backend.",
    )
    access_token_key: str = Field(default="access_token")
    refresh_token_key: str = Field(default="refresh_token")
    debug: bool = Field(
        default=False,
        description="Log requests and responses (set via TOKENKEEPER_DEBUG=1).",
    )

    model_config = SettingsConfigDict(env_prefix="TOKENKEEPER_", env_file=".env", extra="ignore")

    @property
    def api_base(self) -> str:
        return self.base_url.rstrip("/") + self.api_version

    @property
    def timeout(self) -> httpx.Timeout:
        # pool wait shares the connect budget
        return httpx.Timeout(
            connect=self.connect_timeout,
            read=self.read_timeout,
            write=self.write_timeout,
            pool=self.connect_timeout,
        )

    @property
    def total_timeout(self) -> float:
        """Upper bound for a whole request/response exchange."""
        return self.connect_timeout + self.write_timeout + self.read_timeout

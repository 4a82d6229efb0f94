from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field


class TokenPair(BaseModel):
    """Access/refresh token pair returned by the login and refresh endpoints."""

    model_config = ConfigDict(extra="ignore")

    access_token: str = Field(min_length=1)
    refresh_token: str = Field(min_length=1)


class Session(BaseModel):
    """In-memory copy of the persisted tokens."""

    access_token: str | None = None
    refresh_token: str | None = None
    initialized: bool = False

    def authorization_header(self, token_type: str = "Bearer") -> dict[str, str]:
        """Return Authorization header for API calls, or nothing without a token."""
        if not self.access_token:
            return {}
        return {"Authorization": f"{token_type} {self.access_token}"}


"""Pydantic schema for the bearer token claims the API trusts."""

from __future__ import annotations

from pydantic import BaseModel


class TokenPayload(BaseModel):
    sub: str | None = None
    type: str | None = None
    exp: int | None = None

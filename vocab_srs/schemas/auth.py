"""Access token claims."""
from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field


class TokenPayload(BaseModel):
    """Payload data extracted from access tokens."""

    sub: str = Field(..., min_length=1, max_length=64)
    exp: datetime
    type: str

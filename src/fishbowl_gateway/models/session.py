"""
Session and upstream result models.
"""

from datetime import datetime, timedelta, timezone
from typing import Any, Literal, Optional

from pydantic import BaseModel, Field


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Session(BaseModel):
    token: str
    user_id: Optional[str] = None
    established_at: datetime = Field(default_factory=utcnow)
    expires_at: Optional[datetime] = None

    def expires_within(self, threshold: timedelta, now: datetime) -> bool:
        if self.expires_at is None:
            return False
        return self.expires_at - now <= threshold


class UpstreamResult(BaseModel):
    """Normalized decode of one upstream response."""
    status_code: Optional[int] = None  # xml status code, or HTTP status for rest
    message: Optional[str] = None
    data: Optional[Any] = None
    auth_rejected: bool = False
    protocol: Literal["xml", "rest"] = "xml"

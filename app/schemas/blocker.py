from pydantic import BaseModel, Field
from typing import Optional


class BlockedResponse(BaseModel):
    """Body returned by the IP blocker for a denied request."""

    error: str
    message: str
    code: Optional[str] = Field(
        default=None,
        description="USER_AGENT_BLOCKED, DATACENTER_BLOCKED or INVALID_REFERRER",
    )
    retryAfter: Optional[int] = Field(default=None, description="Seconds until the block lifts (429 only)")


class ErrorResponse(BaseModel):
    error: str

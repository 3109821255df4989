from pydantic import BaseModel, ConfigDict, Field
from typing import Optional, Any, List


class Sport(BaseModel):
    model_config = ConfigDict(extra="allow")

    id: str
    name: str
    slug: Optional[str] = None
    icon: Optional[str] = None


class Stream(BaseModel):
    model_config = ConfigDict(extra="allow")

    id: str
    source: str
    quality: Optional[str] = None
    url: Optional[str] = None
    type: Optional[str] = None


class Match(BaseModel):
    """A match as returned by the upstream API. Unknown fields are kept."""

    model_config = ConfigDict(extra="allow")

    id: Any = Field(..., description="Upstream match id (string or number)")
    title: Optional[str] = None
    sport: Optional[str] = None
    category: Optional[str] = None
    home_team: Optional[str] = None
    away_team: Optional[str] = None
    home_score: Optional[int] = None
    away_score: Optional[int] = None
    status: Optional[str] = None
    scheduled_time: Optional[str] = None
    poster: Optional[str] = None
    streams: Optional[List[Stream]] = None

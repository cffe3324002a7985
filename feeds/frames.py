"""
Display Feeds — frame models
Output shapes shared by both adapters: the LaMetric frame, the response
envelope, the unified error envelope and the cache-control helpers.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Optional, Union

from pydantic import BaseModel, ConfigDict, Field

ChartValue = Optional[Union[int, float]]


# ---------------------------------------------------------------------------
# Frame models
# ---------------------------------------------------------------------------


class Frame(BaseModel):
    """One renderable unit on the display.  Unset fields are not serialized."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    index:      Optional[int] = None
    text:       Optional[str] = None
    icon:       Optional[int] = None   # id from the device's icon catalog
    chart_data: Optional[list[ChartValue]] = Field(default=None, alias="chartData")


class FrameEnvelope(BaseModel):
    """Top-level body of every successful feed response."""

    frames: list[Frame]

    def render(self) -> dict:
        return self.model_dump(by_alias=True, exclude_none=True)


class ErrorEnvelope(BaseModel):
    """Body of every failed feed response, for both adapters."""

    error: str
    kind:  str   # "config" | "transport" | "parse" | "internal"


@dataclass(frozen=True)
class FeedResult:
    """What an adapter hands to the responder."""

    frames:  list[Frame]
    max_age: int   # seconds

    def envelope(self) -> FrameEnvelope:
        return FrameEnvelope(frames=self.frames)


# ---------------------------------------------------------------------------
# Cache lifetime
# ---------------------------------------------------------------------------


def cache_control(max_age: int) -> str:
    """Format the Cache-Control directive sent with every frame response."""
    return f"private, max-age={max_age}, must-revalidate"


def seconds_until_next_hour(now: datetime) -> int:
    """Whole minutes left in the current hour, expressed in seconds."""
    return (60 - now.minute) * 60

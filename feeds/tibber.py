"""
Display Feeds — Tibber Price Feed
Fetches the current and upcoming hourly electricity prices for every home on
a Tibber account and turns them into LaMetric frames.

Endpoint:  POST https://api.tibber.com/v1-beta/gql   (GraphQL)
Auth:      Bearer personal access token

Output frames (per home, homes in upstream order)
-------------------------------------------------
  1. current total price as money text, icon coloured by price level
  2. forecast sparkline: every remaining hour of today + tomorrow, in
     hundredths of the currency unit, shifted so the cheapest hour is 0

Price level → icon
------------------
  VERY_CHEAP      53297
  CHEAP           53296
  NORMAL          53229   (also used for unknown / missing levels)
  EXPENSIVE       53295
  VERY_EXPENSIVE  53294

Prices are published per hour, so responses are cacheable until the top of
the next hour.
"""

from __future__ import annotations

import math
from datetime import datetime
from typing import Optional

import httpx
from loguru import logger
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from feeds.config import TibberConfig
from feeds.errors import UpstreamError, UpstreamSchemaError
from feeds.frames import FeedResult, Frame, seconds_until_next_hour
from feeds.money import MoneyFormat

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

PRICE_QUERY = """{
  viewer {
    homes {
      currentSubscription {
        priceInfo {
          current { total level }
          today { total startsAt }
          tomorrow { total startsAt }
        }
      }
    }
  }
}"""

# Opaque ids from the device's icon catalog; keep the values as-is.
LEVEL_ICONS: dict[str, int] = {
    "VERY_CHEAP":     53297,
    "CHEAP":          53296,
    "NORMAL":         53229,
    "EXPENSIVE":      53295,
    "VERY_EXPENSIVE": 53294,
}
DEFAULT_LEVEL_ICON = LEVEL_ICONS["NORMAL"]


# ---------------------------------------------------------------------------
# Upstream schema
# ---------------------------------------------------------------------------


class CurrentPrice(BaseModel):
    total: float
    level: Optional[str] = None


class HourlyPrice(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    total:     float
    starts_at: datetime = Field(alias="startsAt")


class PriceInfo(BaseModel):
    current:  CurrentPrice
    today:    list[Optional[HourlyPrice]] = Field(default_factory=list)
    tomorrow: list[Optional[HourlyPrice]] = Field(default_factory=list)

    @field_validator("today", "tomorrow", mode="before")
    @classmethod
    def _null_is_empty(cls, value):
        # tomorrow is null until the day-ahead prices are published
        return [] if value is None else value


class Subscription(BaseModel):
    price_info: PriceInfo = Field(alias="priceInfo")


class Home(BaseModel):
    current_subscription: Subscription = Field(alias="currentSubscription")


class Viewer(BaseModel):
    homes: list[Home]


class PriceData(BaseModel):
    viewer: Viewer


class TibberPricePayload(BaseModel):
    data: PriceData


# ---------------------------------------------------------------------------
# Client
# ---------------------------------------------------------------------------


class TibberClient:
    """Single-request GraphQL client for the Tibber price query."""

    def __init__(self, config: TibberConfig, http_client: httpx.AsyncClient) -> None:
        self._config = config
        self._http = http_client

    def _headers(self) -> dict[str, str]:
        return {"Authorization": f"Bearer {self._config.access_token}"}

    async def _post(self, query: str) -> dict:
        """One GraphQL POST.  No retries: a failure fails the invocation."""
        try:
            logger.debug("Tibber POST {}", self._config.endpoint)
            resp = await self._http.post(
                self._config.endpoint, json={"query": query}, headers=self._headers()
            )
            resp.raise_for_status()
        except httpx.TimeoutException as exc:
            logger.warning("Tibber request timed out: {}", exc)
            raise UpstreamError("Tibber API timed out.") from exc
        except httpx.HTTPStatusError as exc:
            logger.warning("Tibber returned {}: {}", exc.response.status_code, exc)
            raise UpstreamError(f"Tibber API error {exc.response.status_code}.") from exc
        except httpx.RequestError as exc:
            logger.warning("Tibber unreachable: {}", exc)
            raise UpstreamError(f"Tibber API unreachable: {exc}") from exc

        try:
            body = resp.json()
        except ValueError as exc:
            raise UpstreamSchemaError(f"Tibber returned invalid JSON: {exc}") from exc

        # GraphQL reports query failures in-band with a 200 status
        errors = body.get("errors") if isinstance(body, dict) else None
        if errors:
            messages = "; ".join(str(e.get("message", e)) if isinstance(e, dict) else str(e) for e in errors)
            logger.warning("Tibber GraphQL errors: {}", messages)
            raise UpstreamError(f"Tibber GraphQL error: {messages}")
        return body

    async def fetch_prices(self) -> TibberPricePayload:
        """Run the price query and validate the response."""
        body = await self._post(PRICE_QUERY)
        try:
            return TibberPricePayload.model_validate(body)
        except ValidationError as exc:
            raise UpstreamSchemaError(f"Unexpected Tibber payload: {exc}") from exc


# ---------------------------------------------------------------------------
# Transform
# ---------------------------------------------------------------------------


def level_icon(level: Optional[str]) -> int:
    return LEVEL_ICONS.get(level or "", DEFAULT_LEVEL_ICON)


def to_hundredths(total: float) -> int:
    """Price in hundredths of the currency unit, rounded half-up."""
    return math.floor(total * 100 + 0.5)


def normalize_to_floor(values: list[int]) -> list[int]:
    """
    Shift a series so its minimum becomes 0.

    An empty series has no minimum and is returned unchanged.
    """
    if not values:
        return list(values)
    floor = min(values)
    return [v - floor for v in values]


def start_of_hour(now: datetime) -> datetime:
    return now.replace(minute=0, second=0, microsecond=0)


def _aware(ts: datetime, now: datetime) -> datetime:
    # offset-less timestamps are read in the clock's own zone
    return ts if ts.tzinfo is not None else ts.replace(tzinfo=now.tzinfo)


def forecast_series(price_info: PriceInfo, now: datetime) -> list[int]:
    """
    Remaining hourly prices from the start of the current hour onwards.

    ``now`` must be timezone-aware; upstream timestamps carry an offset.
    """
    hour_start = start_of_hour(now)
    hours = [
        h for h in price_info.today + price_info.tomorrow
        if h is not None and _aware(h.starts_at, now) >= hour_start
    ]
    return normalize_to_floor([to_hundredths(h.total) for h in hours])


def build_price_frames(
    payload: TibberPricePayload,
    now: datetime,
    money: Optional[MoneyFormat] = None,
) -> list[Frame]:
    """Two frames per home, flattened into one list."""
    money = money or MoneyFormat()
    frames: list[Frame] = []
    for home in payload.data.viewer.homes:
        info = home.current_subscription.price_info
        frames.append(Frame(text=money.format(info.current.total), icon=level_icon(info.current.level)))
        frames.append(Frame(chart_data=forecast_series(info, now)))
    return frames


async def fetch_price_feed(
    client: TibberClient,
    now: datetime,
    money: Optional[MoneyFormat] = None,
) -> FeedResult:
    payload = await client.fetch_prices()
    frames = build_price_frames(payload, now, money)
    max_age = seconds_until_next_hour(now)
    logger.info(
        "Tibber feed: {} home(s), cacheable for {}s",
        len(payload.data.viewer.homes), max_age,
    )
    return FeedResult(frames=frames, max_age=max_age)


# ---------------------------------------------------------------------------
# Smoke test  (python -m feeds.tibber)
# ---------------------------------------------------------------------------

if __name__ == "__main__":
    import asyncio
    import json
    import sys

    from feeds.config import FeedSettings

    logger.remove()
    logger.add(sys.stderr, level="DEBUG")

    async def _main() -> None:
        settings = FeedSettings.from_env()
        config = TibberConfig.from_env()
        async with httpx.AsyncClient(timeout=settings.request_timeout) as http:
            result = await fetch_price_feed(
                TibberClient(config, http), datetime.now(tz=settings.tz), config.money
            )
        logger.success("Tibber smoke test passed, max-age={}", result.max_age)
        print(json.dumps(result.envelope().render(), indent=2, ensure_ascii=False))

    asyncio.run(_main())

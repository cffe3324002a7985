"""
Display Feeds — Autarco Power Feed
Fetches live PV statistics for one Autarco site and turns them into
LaMetric frames.

Endpoint:  GET https://my.autarco.com/api/m1/site/{site}/power
Auth:      HTTP Basic (account username / password)

Upstream shape (only the fields used here)
------------------------------------------
  stats.kpis.pv_now          current PV output in W
  stats.graphs.pv_power      {inverter_id: {time_bucket: W, ...}, ...}

Output frames
-------------
  index 0      "<pv_now> W" with the "power now" icon
  index 1..n   one sparkline per inverter, the most recent 37 samples,
               oldest first, in the order the upstream lists the inverters
"""

from __future__ import annotations

from typing import Union

import httpx
from loguru import logger
from pydantic import BaseModel, ValidationError

from feeds.config import AutarcoConfig
from feeds.errors import UpstreamError, UpstreamSchemaError
from feeds.frames import ChartValue, FeedResult, Frame

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

POWER_NOW_ICON = 33038      # device icon catalog: "power now"
CHART_SAMPLES = 37          # widest sparkline the display renders
CACHE_MAX_AGE = 60          # generation changes continuously


# ---------------------------------------------------------------------------
# Upstream schema
# ---------------------------------------------------------------------------


class AutarcoKpis(BaseModel):
    pv_now: Union[int, float]


class AutarcoGraphs(BaseModel):
    pv_power: dict[str, dict[str, ChartValue]]


class AutarcoStats(BaseModel):
    kpis:   AutarcoKpis
    graphs: AutarcoGraphs


class AutarcoPowerPayload(BaseModel):
    stats: AutarcoStats


# ---------------------------------------------------------------------------
# Client
# ---------------------------------------------------------------------------


class AutarcoClient:
    """
    Single-request client for the Autarco site power endpoint.

    The ``httpx.AsyncClient`` is owned by the caller (the API lifespan or a
    test) so one connection pool serves every request in the process.
    """

    def __init__(self, config: AutarcoConfig, http_client: httpx.AsyncClient) -> None:
        self._config = config
        self._http = http_client

    async def _get(self, url: str) -> dict:
        """One authenticated GET.  No retries: a failure fails the invocation."""
        auth = httpx.BasicAuth(self._config.username, self._config.password)
        try:
            logger.debug("Autarco GET {}", url)
            resp = await self._http.get(url, auth=auth)
            resp.raise_for_status()
        except httpx.TimeoutException as exc:
            logger.warning("Autarco request timed out: {}", exc)
            raise UpstreamError("Autarco API timed out.") from exc
        except httpx.HTTPStatusError as exc:
            logger.warning("Autarco returned {}: {}", exc.response.status_code, exc)
            raise UpstreamError(f"Autarco API error {exc.response.status_code}.") from exc
        except httpx.RequestError as exc:
            logger.warning("Autarco unreachable: {}", exc)
            raise UpstreamError(f"Autarco API unreachable: {exc}") from exc

        try:
            return resp.json()
        except ValueError as exc:
            raise UpstreamSchemaError(f"Autarco returned invalid JSON: {exc}") from exc

    async def fetch_power(self) -> AutarcoPowerPayload:
        """Fetch and validate the site's power statistics."""
        body = await self._get(self._config.power_url)
        try:
            return AutarcoPowerPayload.model_validate(body)
        except ValidationError as exc:
            raise UpstreamSchemaError(f"Unexpected Autarco payload: {exc}") from exc


# ---------------------------------------------------------------------------
# Transform
# ---------------------------------------------------------------------------


def _fmt_watts(value: Union[int, float]) -> str:
    """Render a power reading the way the display expects: '450 W'."""
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    return f"{value} W"


def last_samples(series: dict[str, ChartValue], count: int = CHART_SAMPLES) -> list[ChartValue]:
    """Most recent *count* values of a time-bucketed series, oldest first."""
    values = list(series.values())
    return values[-count:] if count else []


def build_power_frames(payload: AutarcoPowerPayload) -> list[Frame]:
    """Summary frame followed by one chart frame per inverter."""
    frames = [
        Frame(index=0, text=_fmt_watts(payload.stats.kpis.pv_now), icon=POWER_NOW_ICON),
    ]
    for position, series in enumerate(payload.stats.graphs.pv_power.values(), start=1):
        frames.append(Frame(index=position, chart_data=last_samples(series)))
    return frames


async def fetch_power_feed(client: AutarcoClient) -> FeedResult:
    payload = await client.fetch_power()
    frames = build_power_frames(payload)
    logger.info(
        "Autarco feed: {} W now, {} inverter chart(s)",
        payload.stats.kpis.pv_now, len(frames) - 1,
    )
    return FeedResult(frames=frames, max_age=CACHE_MAX_AGE)


# ---------------------------------------------------------------------------
# Smoke test  (python -m feeds.autarco)
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
        async with httpx.AsyncClient(timeout=settings.request_timeout) as http:
            result = await fetch_power_feed(AutarcoClient(AutarcoConfig.from_env(), http))
        logger.success("Autarco smoke test passed, max-age={}", result.max_age)
        print(json.dumps(result.envelope().render(), indent=2))

    asyncio.run(_main())

"""
Display Feeds — FastAPI Server
Serves the Autarco power feed and the Tibber price feed as LaMetric-ready
JSON, one upstream call per request.

Run:  uvicorn api:app --port 8000
Docs: http://localhost:8000/docs
"""

from __future__ import annotations

import sys
from contextlib import asynccontextmanager
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Optional

import httpx
from fastapi import APIRouter, FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from loguru import logger
from pydantic import BaseModel

from feeds.autarco import AutarcoClient, fetch_power_feed
from feeds.config import AutarcoConfig, FeedSettings, TibberConfig
from feeds.errors import ConfigError, FeedError
from feeds.frames import ErrorEnvelope, FeedResult, FrameEnvelope, cache_control
from feeds.tibber import TibberClient, fetch_price_feed

# ---------------------------------------------------------------------------
# Response models
# ---------------------------------------------------------------------------


class HealthResponse(BaseModel):
    status:    str
    timestamp: str
    feeds:     dict[str, bool]   # feed name -> configured


# ---------------------------------------------------------------------------
# Per-feed state
# ---------------------------------------------------------------------------


@dataclass
class _FeedSlot:
    """A configured client, or the configuration error that disabled it."""
    client: Any = None
    error:  Optional[ConfigError] = None

    def require(self) -> Any:
        if self.client is None:
            raise self.error or ConfigError("Feed is not configured.")
        return self.client


def _load(name: str, config: Any, loader: Callable[[], Any]) -> tuple[Any, Optional[ConfigError]]:
    """Use the injected config, else read it from the environment."""
    if config is not None:
        return config, None
    try:
        return loader(), None
    except ConfigError as exc:
        logger.error("{} feed disabled: {}", name, exc)
        return None, exc


# ---------------------------------------------------------------------------
# Response helpers
# ---------------------------------------------------------------------------


def _frames_response(result: FeedResult) -> JSONResponse:
    return JSONResponse(
        content=result.envelope().render(),
        headers={"Cache-Control": cache_control(result.max_age)},
    )


def _error_response(exc: Exception) -> JSONResponse:
    kind = exc.kind if isinstance(exc, FeedError) else "internal"
    body = ErrorEnvelope(error=str(exc) or type(exc).__name__, kind=kind)
    return JSONResponse(status_code=500, content=body.model_dump())


_FEED_RESPONSES: dict = {
    200: {"description": "Frames for the display; Cache-Control carries the lifetime."},
    500: {"model": ErrorEnvelope, "description": "Any configuration, upstream or parse failure."},
}

# ---------------------------------------------------------------------------
# Endpoints
# ---------------------------------------------------------------------------

router = APIRouter()


@router.get("/health", response_model=HealthResponse, tags=["Meta"])
async def health(request: Request):
    """Service liveness plus which feeds are configured."""
    state = request.app.state
    return HealthResponse(
        status="ok",
        timestamp=state.clock().isoformat(),
        feeds={name: slot.client is not None for name, slot in state.feeds.items()},
    )


@router.get("/autarco", response_model=FrameEnvelope, responses=_FEED_RESPONSES, tags=["Feeds"])
async def get_autarco(request: Request):
    """
    Current PV output plus one 37-sample sparkline per inverter.

    Cacheable for 60 seconds.
    """
    try:
        client: AutarcoClient = request.app.state.feeds["autarco"].require()
        result = await fetch_power_feed(client)
    except FeedError as exc:
        logger.error("GET /autarco failed [{}]: {}", exc.kind, exc)
        return _error_response(exc)
    except Exception as exc:
        logger.exception("GET /autarco crashed")
        return _error_response(exc)

    logger.info("GET /autarco | frames={} | max-age={}", len(result.frames), result.max_age)
    return _frames_response(result)


@router.get("/tibber", response_model=FrameEnvelope, responses=_FEED_RESPONSES, tags=["Feeds"])
async def get_tibber(request: Request):
    """
    Current price with a level-coloured icon and a forecast sparkline for
    each home, cheapest remaining hour at zero.

    Cacheable until the top of the next hour.
    """
    state = request.app.state
    try:
        client: TibberClient = state.feeds["tibber"].require()
        result = await fetch_price_feed(client, state.clock(), state.money)
    except FeedError as exc:
        logger.error("GET /tibber failed [{}]: {}", exc.kind, exc)
        return _error_response(exc)
    except Exception as exc:
        logger.exception("GET /tibber crashed")
        return _error_response(exc)

    logger.info("GET /tibber | frames={} | max-age={}", len(result.frames), result.max_age)
    return _frames_response(result)


# ---------------------------------------------------------------------------
# App factory
# ---------------------------------------------------------------------------


def create_app(
    autarco: Optional[AutarcoConfig] = None,
    tibber: Optional[TibberConfig] = None,
    settings: Optional[FeedSettings] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
    clock: Optional[Callable[[], datetime]] = None,
) -> FastAPI:
    """
    Build the feed server.

    Configuration that is not injected is read from the environment when the
    app starts.  A feed whose configuration is missing stays disabled and
    answers every request with a ``config`` error; the other feed is
    unaffected.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        feed_settings = settings or FeedSettings.from_env()
        if settings is None:
            logger.remove()
            logger.add(sys.stderr, level=feed_settings.log_level)

        tz = feed_settings.tz
        app.state.clock = clock or (lambda: datetime.now(tz=tz))

        http = httpx.AsyncClient(timeout=feed_settings.request_timeout, transport=transport)
        logger.info("httpx AsyncClient initialised (timeout={}s).", feed_settings.request_timeout)

        autarco_config, autarco_error = _load("Autarco", autarco, AutarcoConfig.from_env)
        tibber_config, tibber_error = _load("Tibber", tibber, TibberConfig.from_env)

        app.state.money = tibber_config.money if tibber_config else None
        app.state.feeds = {
            "autarco": _FeedSlot(
                AutarcoClient(autarco_config, http) if autarco_config else None, autarco_error
            ),
            "tibber": _FeedSlot(
                TibberClient(tibber_config, http) if tibber_config else None, tibber_error
            ),
        }
        yield
        await http.aclose()
        logger.info("httpx AsyncClient closed.")

    app = FastAPI(
        title="Display Feeds",
        description=(
            "Polls the Autarco and Tibber APIs and reshapes their data into "
            "frames for a LaMetric-style display."
        ),
        version="0.1.0",
        lifespan=lifespan,
    )
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["GET"],
        allow_headers=["*"],
    )
    app.include_router(router)
    return app


app = create_app()

from __future__ import annotations

from datetime import datetime, timedelta
from zoneinfo import ZoneInfo

import pytest

from feeds.config import AutarcoConfig, FeedSettings, TibberConfig

AMSTERDAM = ZoneInfo("Europe/Amsterdam")


def power_payload(pv_now=450, inverters: int = 2, samples: int = 40) -> dict:
    graphs = {}
    for inv in range(inverters):
        start = datetime(2023, 5, 15, 6, 0)
        graphs[f"inverter-{inv + 1}"] = {
            (start + timedelta(minutes=15 * i)).strftime("%Y-%m-%d %H:%M:%S"): inv * 1000 + i
            for i in range(samples)
        }
    return {
        "stats": {
            "kpis": {"pv_now": pv_now, "pv_today": 12.3},
            "graphs": {"pv_power": graphs},
        }
    }


def hourly(day: str, totals: list[float]) -> list[dict]:
    return [
        {"total": total, "energy": 0.1, "tax": 0.1, "startsAt": f"{day}T{hour:02d}:00:00.000+02:00"}
        for hour, total in enumerate(totals)
    ]


def price_payload(level="NORMAL", current=0.1016, today=None, tomorrow=None, homes: int = 1) -> dict:
    today = hourly("2023-05-15", [0.2411] * 14 + [0.1016, 0.1244, 0.1722]) if today is None else today
    tomorrow = hourly("2023-05-16", [0.1646, 0.1643, 1.42]) if tomorrow is None else tomorrow
    home = {
        "currentSubscription": {
            "priceInfo": {
                "current": {"total": current, "level": level, "startsAt": "2023-05-15T14:00:00.000+02:00"},
                "today": today,
                "tomorrow": tomorrow,
            }
        }
    }
    return {"data": {"viewer": {"homes": [home] * homes}}}


@pytest.fixture
def now() -> datetime:
    return datetime(2023, 5, 15, 14, 15, 30, tzinfo=AMSTERDAM)


@pytest.fixture
def autarco_config() -> AutarcoConfig:
    return AutarcoConfig(site="site-123", username="solar", password="s3cret", api_base="https://autarco.test/api/m1")


@pytest.fixture
def tibber_config() -> TibberConfig:
    return TibberConfig(access_token="token-abc", endpoint="https://tibber.test/gql")


@pytest.fixture
def settings() -> FeedSettings:
    return FeedSettings(request_timeout=5.0, timezone="Europe/Amsterdam")

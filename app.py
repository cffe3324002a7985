"""
Display Feeds — Frame Preview
Streamlit page that runs a feed directly (no API server needed) and shows
the frames the clock would render.

Run:  streamlit run app.py
"""

from __future__ import annotations

import asyncio
import os
import sys
from datetime import datetime

import httpx
import pandas as pd
import streamlit as st
from dotenv import load_dotenv
from loguru import logger

# ---------------------------------------------------------------------------
# Bootstrap
# ---------------------------------------------------------------------------

load_dotenv()

# Direct loguru output to stderr so it doesn't bleed into Streamlit's stdout
logger.remove()
logger.add(sys.stderr, level=os.getenv("LOG_LEVEL", "INFO"))

# ---------------------------------------------------------------------------
# Page configuration (must be the first Streamlit call)
# ---------------------------------------------------------------------------

st.set_page_config(
    page_title="Display Feeds | Frame Preview",
    page_icon="⏱",
    layout="wide",
    initial_sidebar_state="expanded",
)

from feeds.autarco import AutarcoClient, fetch_power_feed  # noqa: E402
from feeds.config import AutarcoConfig, FeedSettings, TibberConfig  # noqa: E402
from feeds.errors import FeedError  # noqa: E402
from feeds.frames import FeedResult, cache_control  # noqa: E402
from feeds.tibber import TibberClient, fetch_price_feed  # noqa: E402

FEEDS = {
    "Autarco — solar power": "autarco",
    "Tibber — electricity price": "tibber",
}


# ---------------------------------------------------------------------------
# Feed runner
# ---------------------------------------------------------------------------


async def _run_feed(feed: str) -> FeedResult:
    settings = FeedSettings.from_env()
    async with httpx.AsyncClient(timeout=settings.request_timeout) as http:
        if feed == "autarco":
            return await fetch_power_feed(AutarcoClient(AutarcoConfig.from_env(), http))
        config = TibberConfig.from_env()
        return await fetch_price_feed(
            TibberClient(config, http), datetime.now(tz=settings.tz), config.money
        )


def _show_frames(result: FeedResult) -> None:
    for position, frame in enumerate(result.frames):
        label = f"Frame {frame.index if frame.index is not None else position}"
        if frame.chart_data is not None:
            st.subheader(f"{label} · chart ({len(frame.chart_data)} samples)")
            if frame.chart_data:
                st.bar_chart(pd.DataFrame({"value": frame.chart_data}))
            else:
                st.caption("Empty series.")
        else:
            st.metric(label=f"{label} · icon {frame.icon}", value=frame.text or "")


# ---------------------------------------------------------------------------
# Sidebar
# ---------------------------------------------------------------------------

with st.sidebar:
    st.title("⏱ Display Feeds")
    st.caption("Frame preview for the LaMetric clock")
    st.divider()

    choice = st.radio("Feed", list(FEEDS))
    show_json = st.toggle("Show raw JSON", value=False)

    st.divider()
    st.caption("Credentials are read from the environment / .env file.")

# ---------------------------------------------------------------------------
# Main content
# ---------------------------------------------------------------------------

st.title(choice)

if st.button("Fetch frames", type="primary"):
    feed = FEEDS[choice]
    with st.spinner(f"Calling the {feed} API…"):
        try:
            result = asyncio.run(_run_feed(feed))
        except FeedError as exc:
            st.error(f"{exc.kind} error: {exc}")
            logger.error("Preview of {} failed: {}", feed, exc)
        except Exception as exc:
            st.error(f"Request failed: {exc}")
            logger.exception("Preview fetch error")
        else:
            st.success(f"{len(result.frames)} frame(s) · Cache-Control: {cache_control(result.max_age)}")
            _show_frames(result)
            if show_json:
                st.json(result.envelope().render())

st.divider()
st.caption("Data © Autarco / Tibber")

"""
Display Feeds — configuration
Explicit configuration structures for both adapters.  Each one is built once
(at startup, or by a test) and handed to the client that needs it; nothing
below the app factory reads the environment directly.

Environment variables
---------------------
  Power feed   : SITE, USERNAME, PASSWORD, AUTARCO_API_BASE (optional)
  Price feed   : TIBBER_ACCESS_TOKEN, TIBBER_API_ENDPOINT (optional)
  Shared       : REQUEST_TIMEOUT, FEED_TIMEZONE, LOG_LEVEL (all optional)

A local ``.env`` file is honoured via python-dotenv.
"""

from __future__ import annotations

import os
from typing import Mapping, Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from dotenv import load_dotenv
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from feeds.errors import ConfigError
from feeds.money import MoneyFormat

load_dotenv()

# ---------------------------------------------------------------------------
# Defaults
# ---------------------------------------------------------------------------

AUTARCO_API_BASE = "https://my.autarco.com/api/m1"
TIBBER_API_ENDPOINT = "https://api.tibber.com/v1-beta/gql"

REQUEST_TIMEOUT = 30.0
FEED_TIMEZONE = "Europe/Amsterdam"
LOG_LEVEL = "INFO"


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _require(env: Mapping[str, str], names: dict[str, str]) -> dict[str, str]:
    """
    Collect required variables, mapping env name -> field name.

    Raises ``ConfigError`` naming every missing or blank variable at once so
    an operator can fix the deployment in a single pass.
    """
    missing = [var for var in names if not (env.get(var) or "").strip()]
    if missing:
        raise ConfigError(f"Missing required configuration: {', '.join(missing)}")
    return {field: env[var] for var, field in names.items()}


def _optional(env: Mapping[str, str], var: str, default: str) -> str:
    return (env.get(var) or "").strip() or default


def _from_fields(model: type[BaseModel], fields: dict):
    try:
        return model(**fields)
    except ValidationError as exc:
        raise ConfigError(f"Invalid {model.__name__}: {exc}") from exc


# ---------------------------------------------------------------------------
# Adapter configurations
# ---------------------------------------------------------------------------


class AutarcoConfig(BaseModel):
    """Credentials and site for the Autarco power feed."""

    model_config = ConfigDict(frozen=True)

    site:     str = Field(min_length=1)
    username: str = Field(min_length=1)
    password: str = Field(min_length=1)
    api_base: str = AUTARCO_API_BASE

    @property
    def power_url(self) -> str:
        return f"{self.api_base.rstrip('/')}/site/{self.site}/power"

    @classmethod
    def from_env(cls, env: Optional[Mapping[str, str]] = None) -> "AutarcoConfig":
        env = os.environ if env is None else env
        fields = _require(env, {"SITE": "site", "USERNAME": "username", "PASSWORD": "password"})
        fields["api_base"] = _optional(env, "AUTARCO_API_BASE", AUTARCO_API_BASE)
        return _from_fields(cls, fields)


class TibberConfig(BaseModel):
    """Access token and endpoint for the Tibber price feed."""

    model_config = ConfigDict(frozen=True)

    access_token: str = Field(min_length=1)
    endpoint:     str = TIBBER_API_ENDPOINT
    money:        MoneyFormat = MoneyFormat()

    @classmethod
    def from_env(cls, env: Optional[Mapping[str, str]] = None) -> "TibberConfig":
        env = os.environ if env is None else env
        fields = _require(env, {"TIBBER_ACCESS_TOKEN": "access_token"})
        fields["endpoint"] = _optional(env, "TIBBER_API_ENDPOINT", TIBBER_API_ENDPOINT)
        return _from_fields(cls, fields)


class FeedSettings(BaseModel):
    """Process-wide settings shared by both adapters."""

    model_config = ConfigDict(frozen=True)

    request_timeout: float = Field(default=REQUEST_TIMEOUT, gt=0)
    timezone:        str = FEED_TIMEZONE
    log_level:       str = LOG_LEVEL

    @field_validator("timezone")
    @classmethod
    def _known_timezone(cls, value: str) -> str:
        try:
            ZoneInfo(value)
        except (ZoneInfoNotFoundError, ValueError) as exc:
            raise ValueError(f"unknown timezone '{value}'") from exc
        return value

    @property
    def tz(self) -> ZoneInfo:
        return ZoneInfo(self.timezone)

    @classmethod
    def from_env(cls, env: Optional[Mapping[str, str]] = None) -> "FeedSettings":
        env = os.environ if env is None else env
        return _from_fields(cls, {
            "request_timeout": _optional(env, "REQUEST_TIMEOUT", str(REQUEST_TIMEOUT)),
            "timezone":        _optional(env, "FEED_TIMEZONE", FEED_TIMEZONE),
            "log_level":       _optional(env, "LOG_LEVEL", LOG_LEVEL).upper(),
        })

"""
Display Feeds — error taxonomy

Every failure a feed can hit maps onto one of these classes.  The ``kind``
attribute is what ends up in the ``ErrorEnvelope`` returned to the device.
"""

from __future__ import annotations


class FeedError(Exception):
    """Base class for all feed failures."""

    kind: str = "internal"


class ConfigError(FeedError):
    """Required configuration is missing or empty."""

    kind = "config"


class UpstreamError(FeedError):
    """Upstream unreachable, timed out, or answered with an error."""

    kind = "transport"


class UpstreamSchemaError(FeedError):
    """Upstream body is not JSON or lacks the fields the transform needs."""

    kind = "parse"

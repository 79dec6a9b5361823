"""
Runtime settings — tuning knobs read from the environment.

    FNR_GRACE_PERIOD        seconds between a shutdown request and SIGKILL
    FNR_DISCOVERY_TIMEOUT   seconds to wait for a discovery server to answer

Invalid values fall back to the defaults with a warning.
"""

from __future__ import annotations

import logging
import math
import os

from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)

DEFAULT_GRACE_PERIOD = 10.0
DEFAULT_DISCOVERY_TIMEOUT = 10.0


class RuntimeSettings(BaseModel):
    """Timeouts shared by every delegate and supervised process."""

    grace_period: float = Field(default=DEFAULT_GRACE_PERIOD, gt=0)
    discovery_timeout: float = Field(default=DEFAULT_DISCOVERY_TIMEOUT, gt=0)

    @classmethod
    def from_env(cls) -> RuntimeSettings:
        return cls(
            grace_period=_float_env("FNR_GRACE_PERIOD", DEFAULT_GRACE_PERIOD),
            discovery_timeout=_float_env("FNR_DISCOVERY_TIMEOUT", DEFAULT_DISCOVERY_TIMEOUT),
        )


def _float_env(name: str, default: float) -> float:
    raw = os.environ.get(name)
    if not raw:
        return default
    try:
        value = float(raw)
    except ValueError:
        logger.warning("Ignoring %s=%r: not a number", name, raw)
        return default
    if not math.isfinite(value) or value <= 0:
        logger.warning("Ignoring %s=%r: must be a positive number", name, raw)
        return default
    return value

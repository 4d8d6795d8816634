"""Billing configuration.

The installer writes a small bash-style file (``~/.claude/hooks/.stats-config``)
that the shell hooks source directly::

    BILLING_MODE="Sub"
    BILLING_ICON="💳"
    SAFETY_MARGIN="1.10"

``TRIPSTATS_BILLING_MODE`` and ``TRIPSTATS_SAFETY_MARGIN`` override the file.
"""

from __future__ import annotations

import os
import re
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from tripstats.utils.coerce import parse_optional_float
from tripstats.utils.log import get_logger

logger = get_logger()

DEFAULT_BILLING_ICON = "💳"

_ASSIGNMENT_RE = re.compile(r'^\s*(?:export\s+)?([A-Z_]+)="([^"]*)"\s*$')


class BillingMode(str, Enum):
    """How the user pays for model usage."""

    API = "API"
    SUBSCRIPTION = "Sub"

    @classmethod
    def _missing_(cls, value: object) -> Optional["BillingMode"]:
        if isinstance(value, str):
            normalized = value.strip().lower()
            if normalized in {"api", "payg", "pay-as-you-go"}:
                return cls.API
            if normalized in {"sub", "subscription", "pro", "max"}:
                return cls.SUBSCRIPTION
        return None


class BillingConfig(BaseModel):
    """Billing preferences injected into the analytics scorer."""

    model_config = ConfigDict(frozen=True)

    billing_mode: BillingMode = BillingMode.API
    billing_icon: str = DEFAULT_BILLING_ICON
    safety_margin: float = Field(default=1.0, gt=0)

    @field_validator("billing_icon")
    @classmethod
    def _non_empty_icon(cls, value: str) -> str:
        return value or DEFAULT_BILLING_ICON

    @property
    def is_subscription(self) -> bool:
        return self.billing_mode == BillingMode.SUBSCRIPTION


def default_config_path() -> Path:
    return Path.home() / ".claude" / "hooks" / ".stats-config"


def parse_stats_config(content: str) -> Dict[str, str]:
    """Extract ``KEY="value"`` assignments from a bash-style config file."""
    values: Dict[str, str] = {}
    for line in content.splitlines():
        if line.lstrip().startswith("#"):
            continue
        match = _ASSIGNMENT_RE.match(line)
        if match:
            values[match.group(1)] = match.group(2)
    return values


def _build_config(raw: Dict[str, Any]) -> BillingConfig:
    """Validate field by field so one bad value does not discard the rest."""
    fields: Dict[str, Any] = {}
    for key, value in raw.items():
        try:
            BillingConfig(**{key: value})
        except ValidationError as exc:
            logger.warning(
                "[config] Ignoring invalid billing setting",
                extra={"field": key, "value": str(value), "errors": exc.error_count()},
            )
            continue
        fields[key] = value
    return BillingConfig(**fields)


def load_billing_config(path: Optional[Path] = None) -> BillingConfig:
    """Load billing configuration, falling back to defaults on any problem."""
    config_path = path if path is not None else default_config_path()
    raw: Dict[str, Any] = {}

    try:
        values = parse_stats_config(config_path.read_text(encoding="utf-8"))
    except FileNotFoundError:
        logger.debug(
            "[config] Billing config not found; using defaults",
            extra={"path": str(config_path)},
        )
        values = {}
    except (OSError, UnicodeDecodeError) as exc:
        logger.warning(
            "Error loading billing config: %s: %s",
            type(exc).__name__,
            exc,
            extra={"path": str(config_path)},
        )
        values = {}

    if "BILLING_MODE" in values:
        raw["billing_mode"] = values["BILLING_MODE"]
    if "BILLING_ICON" in values:
        raw["billing_icon"] = values["BILLING_ICON"]
    if "SAFETY_MARGIN" in values:
        raw["safety_margin"] = parse_optional_float(values["SAFETY_MARGIN"])

    env_mode = os.getenv("TRIPSTATS_BILLING_MODE")
    if env_mode:
        raw["billing_mode"] = env_mode
    env_margin = os.getenv("TRIPSTATS_SAFETY_MARGIN")
    if env_margin:
        raw["safety_margin"] = parse_optional_float(env_margin)

    config = _build_config(raw)
    logger.debug(
        "[config] Loaded billing configuration",
        extra={
            "path": str(config_path),
            "billing_mode": config.billing_mode.value,
            "safety_margin": config.safety_margin,
        },
    )
    return config


__all__ = [
    "BillingConfig",
    "BillingMode",
    "default_config_path",
    "load_billing_config",
    "parse_stats_config",
]

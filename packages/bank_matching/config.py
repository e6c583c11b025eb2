"""Runtime settings for the matching engine.

Settings are read from environment variables (a ``.env`` file is loaded by
the CLI before this runs). Unparseable values fall back to the defaults rather
than failing startup.

Variables
---------
- ``BANK_MATCHING_BATCH_SIZE``: ids processed per read during bulk matching.
- ``BANK_MATCHING_AUTO_CONFIDENCE``: confidence stored on rule matches.
- ``BANK_MATCHING_MANUAL_CONFIDENCE``: confidence stored on manual matches.
- ``BANK_MATCHING_BOOKING_TEXT_FALLBACK``: when true, empty counterpart name
  or purpose fields are matched against the raw booking text instead.
- ``BANK_MATCHING_LOG_LEVEL``: level name for the package logger (``INFO``).
  Applied by :func:`bank_matching.logging_setup.configure_logging`.
"""

from __future__ import annotations

import os
from dataclasses import dataclass

_ENV_PREFIX = "BANK_MATCHING_"


@dataclass(frozen=True, slots=True)
class EngineSettings:
    batch_size: int = 100
    auto_confidence: float = 0.95
    manual_confidence: float = 1.0
    booking_text_fallback: bool = False
    log_level: str = "INFO"


def _env(name: str) -> str | None:
    val = os.getenv(_ENV_PREFIX + name)
    if val is None or not val.strip():
        return None
    return val.strip()


def _env_int(name: str, default: int) -> int:
    raw = _env(name)
    try:
        val = int(raw) if raw is not None else None
    except ValueError:
        val = None
    return val if val is not None and val > 0 else default


def _env_confidence(name: str, default: float) -> float:
    raw = _env(name)
    try:
        val = float(raw) if raw is not None else None
    except ValueError:
        val = None
    if val is None or not (0.0 <= val <= 1.0):
        return default
    return val


def _env_bool(name: str, default: bool) -> bool:
    raw = _env(name)
    if raw is None:
        return default
    v = raw.lower()
    if v in {"1", "true", "yes", "on"}:
        return True
    if v in {"0", "false", "no", "off"}:
        return False
    return default


_LOG_LEVELS = frozenset({"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"})


def _env_log_level(name: str, default: str) -> str:
    raw = _env(name)
    if raw is None:
        return default
    level = raw.upper()
    return level if level in _LOG_LEVELS else default


def load_settings() -> EngineSettings:
    """Build :class:`EngineSettings` from the current environment."""

    defaults = EngineSettings()
    return EngineSettings(
        batch_size=_env_int("BATCH_SIZE", defaults.batch_size),
        auto_confidence=_env_confidence("AUTO_CONFIDENCE", defaults.auto_confidence),
        manual_confidence=_env_confidence("MANUAL_CONFIDENCE", defaults.manual_confidence),
        booking_text_fallback=_env_bool("BOOKING_TEXT_FALLBACK", defaults.booking_text_fallback),
        log_level=_env_log_level("LOG_LEVEL", defaults.log_level),
    )


__all__ = ["EngineSettings", "load_settings"]

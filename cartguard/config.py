"""Runtime configuration, read from the environment (and a local .env)."""

import logging
import os
from dataclasses import dataclass, field
from decimal import Decimal
from pathlib import Path

from dotenv import load_dotenv

load_dotenv()


def _env_float(name: str, default: str) -> float:
    return float(os.getenv(name, default))


@dataclass
class Config:
    selectors_dir: Path = field(default_factory=lambda: Path(os.getenv("CARTGUARD_SELECTORS_DIR", "data/selectors")))
    # per-strategy wait in seconds; bounds resolution to (1 + fallbacks) * this
    strategy_timeout: float = field(default_factory=lambda: _env_float("CARTGUARD_STRATEGY_TIMEOUT", "2.0"))
    price_threshold: Decimal = field(default_factory=lambda: Decimal(os.getenv("CARTGUARD_PRICE_THRESHOLD", "5.00")))
    log_level: str = field(default_factory=lambda: os.getenv("CARTGUARD_LOG_LEVEL", "INFO").upper())
    user_agent: str = field(default_factory=lambda: os.getenv("CARTGUARD_USER_AGENT", "CartGuardrails/1.0"))
    http_timeout: float = field(default_factory=lambda: _env_float("CARTGUARD_HTTP_TIMEOUT", "30"))
    cookie: str = field(default_factory=lambda: os.getenv("CARTGUARD_COOKIE", ""))

    @property
    def level(self) -> int:
        level = getattr(logging, self.log_level, None)
        return level if isinstance(level, int) else logging.INFO


config = Config()

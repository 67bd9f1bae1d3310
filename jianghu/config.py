"""Engine configuration utilities."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path

from .content import DEFAULT_CONTENT_DIR


def env(name: str, default: str | None = None) -> str:
    value = os.getenv(name, default)
    if value is None:
        raise RuntimeError(f"Missing required environment variable: {name}")
    return value


@dataclass(slots=True)
class EngineConfig:
    content_dir: Path = DEFAULT_CONTENT_DIR
    default_tier: str = "common"
    default_insight: int = 10
    log_level: int = logging.INFO

    @classmethod
    def from_env(cls) -> "EngineConfig":
        content_dir = Path(env("JIANGHU_CONTENT_DIR", str(DEFAULT_CONTENT_DIR))).expanduser()
        default_tier = env("JIANGHU_DEFAULT_TIER", "common").strip() or "common"
        try:
            default_insight = int(env("JIANGHU_DEFAULT_INSIGHT", "10"))
        except ValueError:
            default_insight = 10
        default_insight = max(0, min(20, default_insight))
        level_name = env("JIANGHU_LOG_LEVEL", "INFO").strip().upper()
        log_level = logging.getLevelName(level_name)
        if not isinstance(log_level, int):
            log_level = logging.INFO

        return cls(
            content_dir=content_dir,
            default_tier=default_tier,
            default_insight=default_insight,
            log_level=log_level,
        )


__all__ = ["EngineConfig", "env"]

"""Configuration loading from environment variables."""

import logging
import os
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path

from turnaround_tracker.core.clock import parse_timestamp


@dataclass
class Config:
    db_path: Path = field(default_factory=lambda: Path.home() / ".turnaround_tracker" / "tt.db")
    simulation_date: datetime | None = None
    clock_interval: float = 60.0
    log_level: str = "WARNING"
    slack_bot_token: str | None = None
    slack_channel: str | None = None

    @classmethod
    def from_env(cls) -> "Config":
        config = cls()

        if db := os.environ.get("TT_DB_PATH"):
            config.db_path = Path(db)

        if sim := os.environ.get("TT_SIMULATION_DATE"):
            config.simulation_date = parse_timestamp(sim)

        if interval := os.environ.get("TT_CLOCK_INTERVAL"):
            config.clock_interval = float(interval)

        if level := os.environ.get("TT_LOG_LEVEL"):
            config.log_level = level.upper()

        config.slack_bot_token = os.environ.get("SLACK_BOT_TOKEN")
        config.slack_channel = os.environ.get("TT_SLACK_CHANNEL")

        return config


def get_config() -> Config:
    return Config.from_env()


def setup_logging(level: str = "WARNING"):
    """Configure root logging to stderr once per process."""
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.WARNING),
        format="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

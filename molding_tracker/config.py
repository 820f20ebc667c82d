"""Configuration management for the production tracker."""

from __future__ import annotations

import logging
import os

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


class TrackerConfig:
    """Runtime settings read from the environment."""

    def __init__(self) -> None:
        self.database_path = os.getenv("TRACKER_DB_PATH", "tracker.sqlite3")
        self.lock_timeout_seconds = float(os.getenv("TRACKER_LOCK_TIMEOUT", "5.0"))
        self.default_cycle_time_seconds = float(
            os.getenv("TRACKER_DEFAULT_CYCLE_TIME", "60")
        )
        self.log_level = os.getenv("TRACKER_LOG_LEVEL", "INFO").upper()


def configure_logging(config: TrackerConfig | None = None) -> None:
    config = config or TrackerConfig()
    logging.basicConfig(level=config.log_level, format=LOG_FORMAT)


__all__ = ["TrackerConfig", "configure_logging", "LOG_FORMAT"]

"""Runtime configuration, read from the environment (and a .env file)."""

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path

from dotenv import load_dotenv

load_dotenv()  # load environment variables from .env file

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    return int(raw) if raw else default


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    return float(raw) if raw else default


@dataclass(frozen=True)
class Settings:
    """Engine and service settings.

    Defaults mirror the dashboard's Socket.IO client: five reconnect attempts,
    one second apart.
    """

    server_url: str = "http://localhost:9001"
    auth_token: str | None = None
    reconnect_attempts: int = 5
    reconnect_delay: float = 1.0
    # seconds to coalesce bursts of structural changes before re-layout (0 = immediate)
    layout_debounce: float = 0.0
    catalog_path: Path | None = None
    log_level: str = "INFO"
    cors_origins: list[str] = field(default_factory=lambda: ["*"])

    @classmethod
    def from_env(cls) -> "Settings":
        """Build settings from FLOWVIZ_* environment variables."""
        catalog_path = os.getenv("FLOWVIZ_CATALOG_PATH")
        return cls(
            server_url=os.getenv("FLOWVIZ_SERVER_URL", "http://localhost:9001"),
            auth_token=os.getenv("FLOWVIZ_AUTH_TOKEN") or None,
            reconnect_attempts=_env_int("FLOWVIZ_RECONNECT_ATTEMPTS", 5),
            reconnect_delay=_env_float("FLOWVIZ_RECONNECT_DELAY", 1.0),
            layout_debounce=_env_float("FLOWVIZ_LAYOUT_DEBOUNCE", 0.1),
            catalog_path=Path(catalog_path) if catalog_path else None,
            log_level=os.getenv("FLOWVIZ_LOG_LEVEL", "INFO").upper(),
            # comma-separated values for multiple origins, or "*" for all (development only)
            cors_origins=os.getenv("CORS_ORIGINS", "*").split(","),
        )


def configure_logging(settings: Settings | None = None) -> None:
    """Apply the configured log level to the root logger."""
    settings = settings or Settings.from_env()
    logging.basicConfig(level=settings.log_level, format=LOG_FORMAT)
    logging.getLogger("flowviz").setLevel(settings.log_level)

import logging
import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv

DEFAULT_BACKEND_URL = "http://localhost:8787/api"


def _int_env(name: str, default: int) -> int:
    raw = os.getenv(name, "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError as err:
        raise ValueError(f"{name} must be an integer, got {raw!r}") from err


@dataclass(frozen=True)
class Settings:
    backend_url: str
    data_dir: Path
    upcoming_limit: int = 2
    chart_window: int = 5
    timeout: int = 30
    log_level: str = "INFO"

    @property
    def preferences_file(self) -> Path:
        return self.data_dir / "preferences.json"


def load_settings() -> Settings:
    load_dotenv()
    return Settings(
        backend_url=os.getenv("RACELOG_BACKEND_URL", DEFAULT_BACKEND_URL).rstrip("/"),
        data_dir=Path(os.getenv("RACELOG_DATA_DIR", "data")),
        upcoming_limit=_int_env("RACELOG_UPCOMING_LIMIT", 2),
        chart_window=_int_env("RACELOG_CHART_WINDOW", 5),
        timeout=_int_env("RACELOG_TIMEOUT", 30),
        log_level=os.getenv("RACELOG_LOG_LEVEL", "INFO").upper(),
    )


def configure_logging(settings: Settings) -> None:
    logging.basicConfig(
        level=getattr(logging, settings.log_level, logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

"""Application configuration using Pydantic Settings."""

from pathlib import Path

from pydantic import model_validator
from pydantic_settings import BaseSettings

# Resolve config: prefer system config (installed), fall back to repo .env (dev)
_PROJECT_ROOT = Path(__file__).resolve().parent.parent.parent
_SYSTEM_CONF = Path("/etc/cityweather/cityweather.conf")
_ENV_FILE = _SYSTEM_CONF if _SYSTEM_CONF.exists() else _PROJECT_ROOT / ".env"


class Settings(BaseSettings):
    """Application settings loaded from environment variables and .env file."""

    # City label shown in reports
    city: str = "Penza"

    # Database
    db_path: str = "cityweather.db"

    @model_validator(mode="after")
    def _resolve_db_path(self) -> "Settings":
        """Make db_path absolute: relative to /var/lib/cityweather if installed, else project root."""
        p = Path(self.db_path)
        if not p.is_absolute():
            if _ENV_FILE == _SYSTEM_CONF:
                self.db_path = str(Path("/var/lib/cityweather") / p)
            else:
                self.db_path = str(_PROJECT_ROOT / p)
        return self

    @property
    def database_url(self) -> str:
        return f"sqlite:///{self.db_path}"

    # Analysis defaults
    days_to_use: int = 30
    base_interval_sec: float = 600.0
    forecast_days: int = 3

    # Polling
    one_sample_per_date: bool = True
    # Async sample source for `cityweather run`, as package.module:function
    source: str = ""

    # Logging
    log_level: str = "INFO"

    model_config = {"env_prefix": "CITYWEATHER_", "env_file": str(_ENV_FILE)}


settings = Settings()

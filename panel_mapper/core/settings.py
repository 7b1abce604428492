# panel_mapper/core/settings.py
# Configuration lives in one place: Pydantic BaseSettings, env-overridable.
from __future__ import annotations
from pathlib import Path
from typing import List

from pydantic import Field, ValidationError
from pydantic_settings import BaseSettings, SettingsConfigDict
from dotenv import load_dotenv

ROOT = Path(__file__).resolve().parents[2]  # project root: panel_mapper/core -> panel_mapper -> ROOT

def _load_env_files() -> None:
    """
    Load `.env` from the project root (falling back to `.env.txt`).
    Real environment variables always win over file values.
    """
    env_candidates = [ROOT / ".env", ROOT / ".env.txt"]
    for p in env_candidates:
        if p.exists():
            load_dotenv(dotenv_path=p, override=False)
            break

_load_env_files()

class Settings(BaseSettings):
    # ---- Storage ----
    DATABASE_URL: str = Field("sqlite:///./panel_mapper.db", description="SQLAlchemy database URL")

    # ---- Logging ----
    LOG_LEVEL: str = Field("INFO", description="Root log level")

    # ---- Network-origin filtering ----
    IP_FILTER_ENABLED: bool = Field(True, description="Reject requests from origins not listed below")
    ALLOWED_IPS: List[str] = Field(
        default=["127.0.0.1", "::1", "172.30.32.2", "::ffff:127.0.0.1", "::ffff:172.30.32.2"],
        description="Exact client addresses allowed through the origin filter",
    )
    ALLOWED_IP_PREFIXES: List[str] = Field(default=["172.30.32."], description="Address prefixes allowed through")
    CORS_ORIGINS: List[str] = Field(default=["*"])

    # ---- Estimating ----
    LABOR_RATE: float = Field(75.0, description="Hourly labor rate in dollars")
    DEFAULT_WIRE_RUN_FACTOR: float = Field(1.2, description="Waste/routing multiplier for wire runs")

    # ---- Server ----
    API_HOST: str = Field("0.0.0.0")
    API_PORT: int = Field(8080)

    ROOT: Path = ROOT

    model_config = SettingsConfigDict(
        case_sensitive=True,
        extra="ignore",
    )

# Instantiate once and reuse
try:
    settings = Settings()
except ValidationError as e:
    raise RuntimeError(f"Invalid panel mapper configuration: {e}") from e

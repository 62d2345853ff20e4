"""
Billboard Rental Core - Configuration
=====================================

Reads runtime configuration from the environment (and an optional .env file).

Variables:
- APP_ENV: "development" or "production"
- DATABASE_URL: SQLAlchemy URL (default: local SQLite file)
- BOOKING_BACKEND: "sql" or "memory"
- TRANSACTION_TIMEOUT_SECONDS: upper bound for lock waits and statements
- LOG_DIR: directory for rotating log files
- CORS_ORIGINS: comma separated list of allowed origins
"""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import List

from dotenv import load_dotenv

BASE_DIR = Path(os.path.abspath(os.path.dirname(__file__)))

ENVIRONMENTS = ("development", "production")
BACKENDS = ("sql", "memory")

DEFAULT_CORS_ORIGINS = [
    "http://localhost:3000",
    "http://127.0.0.1:3000",
    "http://localhost:8000",
]


@dataclass(frozen=True)
class Settings:
    app_env: str = "development"
    database_url: str = f"sqlite:///{BASE_DIR / 'rental.db'}"
    booking_backend: str = "sql"
    transaction_timeout_seconds: float = 5.0
    log_dir: Path = BASE_DIR / "logs"
    cors_origins: List[str] = field(default_factory=lambda: list(DEFAULT_CORS_ORIGINS))

    def __post_init__(self):
        if self.app_env not in ENVIRONMENTS:
            raise ValueError(f"APP_ENV must be one of {ENVIRONMENTS}, got {self.app_env!r}")
        if self.booking_backend not in BACKENDS:
            raise ValueError(f"BOOKING_BACKEND must be one of {BACKENDS}, got {self.booking_backend!r}")
        if self.transaction_timeout_seconds <= 0:
            raise ValueError("TRANSACTION_TIMEOUT_SECONDS must be positive")

    @property
    def is_production(self) -> bool:
        return self.app_env == "production"

    @classmethod
    def from_env(cls) -> "Settings":
        """Builds settings from os.environ after loading .env (if present)."""
        load_dotenv()

        raw_timeout = os.getenv("TRANSACTION_TIMEOUT_SECONDS", "5")
        try:
            timeout = float(raw_timeout)
        except ValueError:
            raise ValueError(f"TRANSACTION_TIMEOUT_SECONDS is not a number: {raw_timeout!r}")

        raw_origins = os.getenv("CORS_ORIGINS")
        origins = (
            [o.strip() for o in raw_origins.split(",") if o.strip()]
            if raw_origins else list(DEFAULT_CORS_ORIGINS)
        )

        return cls(
            app_env=os.getenv("APP_ENV", "development").strip().lower(),
            database_url=os.getenv("DATABASE_URL", cls.database_url),
            booking_backend=os.getenv("BOOKING_BACKEND", "sql").strip().lower(),
            transaction_timeout_seconds=timeout,
            log_dir=Path(os.getenv("LOG_DIR", str(BASE_DIR / "logs"))),
            cors_origins=origins,
        )

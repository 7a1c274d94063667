"""
Application settings.
Values come from the environment (or a `.env` file) with sane defaults for
local development on SQLite.
"""

import os
from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict

DATA_DIR = os.path.join(os.path.dirname(__file__), "..", "..", "data")


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    app_env: str = "development"
    # Defaults to a SQLite file under data/db/ when not set
    database_url: str | None = None
    import_max_rows: int = 1000
    phone_digits: int = 10
    audit_log_file: str | None = None

    @property
    def resolved_database_url(self) -> str:
        if self.database_url:
            return self.database_url
        database_file = os.path.join(DATA_DIR, "db", "cableops.sqlite")
        os.makedirs(os.path.dirname(database_file), exist_ok=True)
        return f"sqlite+aiosqlite:///{database_file}"


@lru_cache
def get_settings() -> Settings:
    return Settings()

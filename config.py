from __future__ import annotations

import os
from functools import lru_cache
from typing import List, Literal

from dotenv import load_dotenv
from pydantic import BaseModel, ValidationError


class Settings(BaseModel):
    database_url: str = "mongodb://localhost:27017"
    database_name: str = "gym"
    environment: Literal["local", "staging", "production"] = "local"
    port: int = 8000
    cors_origins: List[str] = ["*"]

    @property
    def is_debug(self) -> bool:
        return self.environment == "local"


def _build_settings() -> Settings:
    # .env is only read on the first build
    load_dotenv()

    origins = os.getenv("CORS_ORIGINS", "*")
    try:
        return Settings(
            database_url=os.getenv("DATABASE_URL", "mongodb://localhost:27017"),
            database_name=os.getenv("DATABASE_NAME", "gym"),
            environment=os.getenv("ENVIRONMENT", "local"),
            port=int(os.getenv("PORT", "8000")),
            cors_origins=[o.strip() for o in origins.split(",") if o.strip()],
        )
    except (ValueError, ValidationError) as exc:
        raise RuntimeError(f"Invalid settings: {exc}") from exc


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """
    Cached accessor for application settings.

    Reads environment variables once and validates them with Pydantic.
    """

    return _build_settings()

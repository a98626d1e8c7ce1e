from __future__ import annotations

from pathlib import Path
from typing import List

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from timetable_solver import MAX_ATTEMPTS

PACKAGE_DIR = Path(__file__).resolve().parent


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="TIMETABLE_", env_file=".env", env_file_encoding="utf-8")

    environment: str = "development"
    # Comma-separated, e.g. "https://school.example,http://localhost:3000"
    cors_origins: str = "http://localhost:3000"
    max_attempts: int = MAX_ATTEMPTS
    # Shipped as package data so /app_initial_data works from a regular install.
    sample_data_path: Path = PACKAGE_DIR / "metadata" / "sample_input.json"

    @field_validator("environment")
    @classmethod
    def _normalize_environment(cls, v: str) -> str:
        v = (v or "development").strip().lower()
        if v not in {"development", "production"}:
            raise ValueError("ENVIRONMENT must be 'development' or 'production'")
        return v

    @field_validator("cors_origins")
    @classmethod
    def _normalize_origins(cls, v: str) -> str:
        # Starlette CORS expects the Origin to match exactly (no trailing slash).
        return ",".join(o.strip().rstrip("/") for o in (v or "").split(",") if o.strip())

    @field_validator("max_attempts")
    @classmethod
    def _attempts_positive(cls, v: int) -> int:
        if v <= 0:
            raise ValueError("must be a positive integer")
        return v

    @property
    def cors_origin_list(self) -> List[str]:
        return [o for o in self.cors_origins.split(",") if o]


settings = Settings()

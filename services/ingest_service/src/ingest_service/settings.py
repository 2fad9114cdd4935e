from __future__ import annotations

from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="POESIE_", extra="ignore")

    data_dir: Path = Path("data")
    user_agent: str = "poesie-ingest/0.1 (poem importer)"
    request_timeout_s: float = 30.0
    max_bytes: int = 5_000_000
    audit_actor: str = "admin"
    log_level: str = "INFO"


settings = Settings()

"""
Centralised application settings loaded from environment / .env file.
"""
from __future__ import annotations

from pathlib import Path
from functools import lru_cache

from pydantic_settings import BaseSettings
from dotenv import load_dotenv

# Load .env from project root (two levels up from this file)
_ENV_PATH = Path(__file__).resolve().parents[2] / ".env"
load_dotenv(_ENV_PATH)


class Settings(BaseSettings):
    # ── MySQL ────────────────────────────────────────────
    db_user: str = "askguard"
    db_password: str = "askguard_pw"
    db_name: str = "kitchen"
    db_host: str = "localhost"
    db_port: int = 3306
    db_time_zone: str = "Europe/London"
    db_query_timeout_ms: int = 10_000

    # ── LLM ──────────────────────────────────────────────
    llm_provider: str = "mock"  # mock | openai | anthropic
    openai_api_key: str = ""
    anthropic_api_key: str = ""
    openai_model: str = "gpt-4.1-mini"
    anthropic_model: str = "claude-3-haiku-20240307"

    # ── Tenancy ──────────────────────────────────────────
    # Unset means "no fallback": requests without a detectable or supplied
    # restaurant id are refused.  Setting it weakens isolation.
    default_tenant_id: int | None = None

    # ── Guard ────────────────────────────────────────────
    allowlist_path: str = ""  # empty → guard_config/allowlist.yml
    schema_cache_ttl_seconds: float = 300.0

    # ── App ──────────────────────────────────────────────
    api_port: int = 8000
    log_level: str = "INFO"

    @property
    def database_url(self) -> str:
        return (
            f"mysql+pymysql://{self.db_user}:{self.db_password}"
            f"@{self.db_host}:{self.db_port}/{self.db_name}"
        )

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"


@lru_cache
def get_settings() -> Settings:
    return Settings()

from __future__ import annotations

from functools import lru_cache
from pathlib import Path

from dotenv import load_dotenv
from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

load_dotenv()


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    app_name: str = "UniWiz"
    app_env: str = "development"
    log_level: str = "INFO"

    database_url: str = "sqlite:///./data/uniwiz.db"
    sql_echo: bool = False
    data_dir: Path = Path("./data")

    default_currency: str = "USD"
    default_payment_gateway: str = "stripe"
    mock_gateway_success_rate: float = 0.8

    public_jobs_limit: int = 50
    notifications_page_size: int = 20
    dashboard_recent_limit: int = 5

    @field_validator("app_env")
    @classmethod
    def validate_env(cls, value: str) -> str:
        allowed = {"development", "staging", "production", "test"}
        if value not in allowed:
            raise ValueError(f"app_env must be one of {sorted(allowed)}")
        return value

    @field_validator("mock_gateway_success_rate")
    @classmethod
    def validate_success_rate(cls, value: float) -> float:
        if value < 0 or value > 1:
            raise ValueError("mock_gateway_success_rate must be between 0 and 1")
        return value

    @field_validator("default_currency")
    @classmethod
    def validate_currency(cls, value: str) -> str:
        code = value.strip().upper()
        if len(code) != 3 or not code.isalpha():
            raise ValueError("default_currency must be a three-letter ISO code")
        return code


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()

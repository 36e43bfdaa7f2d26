from __future__ import annotations

from functools import lru_cache
from pathlib import Path

from dotenv import load_dotenv
from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

load_dotenv()


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    app_name: str = "Jobboard"
    app_env: str = "development"
    app_host: str = "127.0.0.1"
    app_port: int = 8000
    log_level: str = "INFO"
    public_base_url: str = "http://127.0.0.1:8000"
    cors_origins: str = "http://127.0.0.1:5173,http://localhost:5173"

    database_url: str = "sqlite:///./data/jobboard.db"
    data_dir: Path = Path("./data")
    connection_status_max_age_sec: int = 30

    stripe_secret_key: str = ""
    stripe_webhook_secret: str = ""
    stripe_webhook_tolerance_sec: int = 300
    stripe_employer_price_id: str = ""
    stripe_checkout_currency: str = "usd"
    stripe_checkout_unit_amount: int = 5000
    stripe_checkout_product_name: str = "Employer Subscription"
    stripe_allow_email_linkage: bool = False
    payment_retry_attempts: int = 3
    payment_retry_initial_delay_sec: float = 0.5

    zoho_client_id: str = ""
    zoho_client_secret: str = ""
    zoho_accounts_url: str = "https://accounts.zoho.com"
    zoho_api_url: str = "https://www.zohoapis.com"
    zoho_scope: str = "ZohoCRM.modules.ALL,ZohoCRM.settings.ALL"
    zoho_timeout_sec: int = 30
    zoho_batch_size: int = 100
    zoho_batch_delay_sec: float = 1.0

    @field_validator("app_env")
    @classmethod
    def validate_env(cls, value: str) -> str:
        allowed = {"development", "staging", "production", "test"}
        if value not in allowed:
            raise ValueError(f"app_env must be one of {sorted(allowed)}")
        return value

    @field_validator("zoho_batch_size", "payment_retry_attempts")
    @classmethod
    def validate_positive(cls, value: int) -> int:
        if value < 1:
            raise ValueError("value must be at least 1")
        return value

    @property
    def cors_origin_list(self) -> list[str]:
        return [origin.strip() for origin in self.cors_origins.split(",") if origin.strip()]

    @property
    def stripe_enabled(self) -> bool:
        return bool(self.stripe_secret_key)

    @property
    def zoho_enabled(self) -> bool:
        return bool(self.zoho_client_id and self.zoho_client_secret)


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()

from __future__ import annotations

from decimal import Decimal

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    environment: str = "dev"
    log_level: str = "INFO"
    base_url: str = "http://localhost:8000"
    secret_key: str = "change-me"

    database_url: str = "sqlite:///./claimflow.db"

    default_base_currency: str = "USD"
    # Line items above this normalized amount need a receipt attached.
    materiality_threshold: Decimal = Decimal("100")

    init_org_name: str = "Default Organization"
    init_admin_email: str | None = None
    init_admin_password: str | None = None
    seed_default_policy: bool = True

    access_token_exp_minutes: int = 60 * 24


settings = Settings()

from pydantic import field_validator
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    model_config = {"env_file": ".env", "env_file_encoding": "utf-8", "extra": "ignore"}

    base_currency: str = "CHF"

    @field_validator("base_currency", mode="before")
    @classmethod
    def normalize_currency(cls, v):
        if isinstance(v, str):
            return v.strip().upper()
        return v

    db_path: str = "tripbudget.db"
    debug: bool = False
    exchange_rate_url: str = "https://open.er-api.com/v6/latest"
    exchange_rate_cache_hours: int = 24
    vacation_cache_ttl_ms: int = 500
    under_budget_ratio: float = 0.8


settings = Settings()

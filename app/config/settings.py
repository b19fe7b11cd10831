import os
from functools import lru_cache
from typing import Literal

from pydantic import BaseModel

# quotes, fx and search entries share one fixed ttl
CACHE_TTL_SEC = 3600
SERVICE_NAME = "ApexView quotes backend"


class Settings(BaseModel):
    FINNHUB_API_KEY: str | None = None
    ALPHAVANTAGE_API_KEY: str | None = None
    EXCHANGERATE_API_KEY: str | None = None
    APP_ENV: str = "development"
    PORT: int = 3000
    CRYPTO_VENUE: Literal["coinbase", "binance"] = "coinbase"
    FX_MODE: Literal["direct", "cross"] = "direct"
    FX_BASE_CURRENCY: str = "USD"
    PROVIDER_TIMEOUT_SEC: float = 8.0
    RATE_LIMIT_RPM: int = 60
    TELEMETRY_RATE_LIMIT_RPM: int = 20
    CORS_ORIGINS: list[str] = ["*"]

    @classmethod
    def from_env(cls) -> "Settings":
        raw_origins = os.getenv("CORS_ORIGINS", "*")
        origins = [s.strip() for s in raw_origins.split(",") if s.strip()]
        if not origins:
            origins = ["*"]

        values = {
            "FINNHUB_API_KEY": os.getenv("FINNHUB_API_KEY") or None,
            "ALPHAVANTAGE_API_KEY": os.getenv("ALPHAVANTAGE_API_KEY") or None,
            "EXCHANGERATE_API_KEY": os.getenv("EXCHANGERATE_API_KEY") or None,
            "APP_ENV": os.getenv("APP_ENV", "development"),
            "PORT": os.getenv("PORT", "3000"),
            "CRYPTO_VENUE": os.getenv("CRYPTO_VENUE", "coinbase").strip().lower(),
            "FX_MODE": os.getenv("FX_MODE", "direct").strip().lower(),
            "FX_BASE_CURRENCY": os.getenv("FX_BASE_CURRENCY", "USD").strip().upper(),
            "PROVIDER_TIMEOUT_SEC": os.getenv("PROVIDER_TIMEOUT_SEC", "8"),
            "RATE_LIMIT_RPM": os.getenv("RATE_LIMIT_RPM", "60"),
            "TELEMETRY_RATE_LIMIT_RPM": os.getenv("TELEMETRY_RATE_LIMIT_RPM", "20"),
            "CORS_ORIGINS": origins,
        }
        return cls.model_validate(values)

    def missing_keys(self) -> list[str]:
        """Names of provider keys the configured integrations need but lack."""
        missing = []
        if not self.FINNHUB_API_KEY:
            missing.append("FINNHUB_API_KEY")
        if not self.ALPHAVANTAGE_API_KEY:
            missing.append("ALPHAVANTAGE_API_KEY")
        if self.FX_MODE == "cross" and not self.EXCHANGERATE_API_KEY:
            missing.append("EXCHANGERATE_API_KEY")
        return missing


@lru_cache
def get_settings() -> Settings:
    return Settings.from_env()

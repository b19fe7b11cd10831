from __future__ import annotations

from typing import Any, Dict, Optional

import requests

from app.errors import ProviderError
from app.integrations.finnhub import to_optional_float

PROVIDER_NAME = "exchangerate-api"


def normalize_rate_table(payload: Any, base: str) -> Dict[str, Any]:
    """latest/<base> payload -> {base, rates, last_updated}.

    Rates that are not finite positive numbers are left out of the table, so a
    currency with a broken leg looks the same as an unsupported one.
    """
    if not isinstance(payload, dict):
        raise ProviderError(PROVIDER_NAME, "payload is not an object")
    if payload.get("result") != "success":
        raise ProviderError(PROVIDER_NAME, f"result={payload.get('result')!r}")

    raw_rates = payload.get("conversion_rates")
    if not isinstance(raw_rates, dict):
        raise ProviderError(PROVIDER_NAME, "missing conversion_rates")

    rates: Dict[str, float] = {}
    for code, value in raw_rates.items():
        rate = to_optional_float(value)
        if rate is not None and rate > 0:
            rates[str(code).upper()] = rate
    rates[base] = 1.0

    return {
        "base": base,
        "rates": rates,
        "last_updated": payload.get("time_last_update_utc"),
    }


class ExchangeRateClient:
    """ExchangeRate-API client returning the full rate table against one base."""

    BASE_URL = "https://v6.exchangerate-api.com/v6"

    def __init__(
        self,
        api_key: str,
        session: Optional[Any] = None,
        base_url: Optional[str] = None,
        timeout: float = 8.0,
    ) -> None:
        if not api_key:
            raise ValueError("api_key is required")
        self.api_key = api_key
        self.session = session or requests
        self.base_url = base_url or self.BASE_URL
        self.timeout = timeout
        self.provider = PROVIDER_NAME

    def get_rate_table(self, base: str) -> Dict[str, Any]:
        try:
            response = self.session.get(
                f"{self.base_url}/{self.api_key}/latest/{base}",
                timeout=self.timeout,
            )
            response.raise_for_status()
            payload = response.json()
        except requests.RequestException as exc:
            raise ProviderError(PROVIDER_NAME, f"request failed ({type(exc).__name__})") from exc
        except ValueError as exc:
            raise ProviderError(PROVIDER_NAME, "invalid json") from exc
        return normalize_rate_table(payload, base)

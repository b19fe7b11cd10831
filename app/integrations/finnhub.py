from __future__ import annotations

import math
from typing import Any, Dict, Optional

import requests

from app.errors import ProviderError

PROVIDER_NAME = "finnhub"


def to_optional_float(value: Any) -> Optional[float]:
    """Coerce a provider field to a finite float, or None when it is not a number."""
    if value is None or isinstance(value, bool):
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    if not math.isfinite(number):
        return None
    return number


def normalize_quote(payload: Any) -> Dict[str, Optional[float]]:
    """Finnhub /quote payload -> shared quote fields."""
    if not isinstance(payload, dict):
        raise ProviderError(PROVIDER_NAME, "quote payload is not an object")
    return {
        "previous_close": to_optional_float(payload.get("pc")),
        "current": to_optional_float(payload.get("c")),
        "high": to_optional_float(payload.get("h")),
        "low": to_optional_float(payload.get("l")),
        "open": to_optional_float(payload.get("o")),
    }


class FinnhubClient:
    """Finnhub REST quote client."""

    BASE_URL = "https://finnhub.io/api/v1"

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

    def get_quote(self, provider_symbol: str) -> Dict[str, Optional[float]]:
        try:
            response = self.session.get(
                f"{self.base_url}/quote",
                params={"symbol": provider_symbol, "token": self.api_key},
                timeout=self.timeout,
            )
            response.raise_for_status()
            payload = response.json()
        except requests.RequestException as exc:
            raise ProviderError(PROVIDER_NAME, f"request failed ({type(exc).__name__})") from exc
        except ValueError as exc:
            raise ProviderError(PROVIDER_NAME, "invalid json") from exc
        return normalize_quote(payload)

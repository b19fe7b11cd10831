from __future__ import annotations

import math
from typing import Any, Dict, List, Optional

import requests

from app.errors import ProviderError

PROVIDER_NAME = "alphavantage"

# Alpha Vantage answers errors and throttling with HTTP 200 and one of these keys
_ERROR_KEYS = ("Error Message", "Note", "Information")


def _check_error_payload(payload: Any) -> Dict[str, Any]:
    if not isinstance(payload, dict):
        raise ProviderError(PROVIDER_NAME, "payload is not an object")
    for key in _ERROR_KEYS:
        if key in payload:
            raise ProviderError(PROVIDER_NAME, f"provider answered with '{key}'")
    return payload


def normalize_exchange_rate(payload: Any) -> Dict[str, Any]:
    """CURRENCY_EXCHANGE_RATE payload -> {rate, last_updated}."""
    body = _check_error_payload(payload).get("Realtime Currency Exchange Rate")
    if not isinstance(body, dict):
        raise ProviderError(PROVIDER_NAME, "missing exchange rate block")

    raw_rate = body.get("5. Exchange Rate")
    try:
        rate = float(raw_rate)
    except (TypeError, ValueError) as exc:
        raise ProviderError(PROVIDER_NAME, "exchange rate is not numeric") from exc
    if not math.isfinite(rate) or rate <= 0:
        raise ProviderError(PROVIDER_NAME, "exchange rate is not finite")

    last_updated = body.get("6. Last Refreshed")
    return {"rate": rate, "last_updated": str(last_updated) if last_updated else None}


def normalize_search_matches(payload: Any) -> List[Dict[str, Optional[str]]]:
    """SYMBOL_SEARCH payload -> list of symbol matches, dropping nameless rows."""
    matches = _check_error_payload(payload).get("bestMatches")
    if not isinstance(matches, list):
        raise ProviderError(PROVIDER_NAME, "missing bestMatches list")

    out: List[Dict[str, Optional[str]]] = []
    for row in matches:
        if not isinstance(row, dict):
            continue
        symbol = str(row.get("1. symbol") or "").strip()
        name = str(row.get("2. name") or "").strip()
        if not symbol or not name:
            continue
        out.append(
            {
                "symbol": symbol,
                "name": name,
                "region": str(row.get("4. region") or "").strip() or None,
                "currency": str(row.get("8. currency") or "").strip() or None,
            }
        )
    return out


class AlphaVantageClient:
    """Alpha Vantage client for direct FX rates and symbol search."""

    BASE_URL = "https://www.alphavantage.co/query"

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

    def _query(self, params: Dict[str, str]) -> Any:
        try:
            response = self.session.get(
                self.base_url,
                params={**params, "apikey": self.api_key},
                timeout=self.timeout,
            )
            response.raise_for_status()
            return response.json()
        except requests.RequestException as exc:
            raise ProviderError(PROVIDER_NAME, f"request failed ({type(exc).__name__})") from exc
        except ValueError as exc:
            raise ProviderError(PROVIDER_NAME, "invalid json") from exc

    def get_exchange_rate(self, from_currency: str, to_currency: str) -> Dict[str, Any]:
        payload = self._query(
            {
                "function": "CURRENCY_EXCHANGE_RATE",
                "from_currency": from_currency,
                "to_currency": to_currency,
            }
        )
        return normalize_exchange_rate(payload)

    def search_symbols(self, query: str) -> List[Dict[str, Optional[str]]]:
        payload = self._query({"function": "SYMBOL_SEARCH", "keywords": query})
        return normalize_search_matches(payload)

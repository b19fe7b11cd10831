from __future__ import annotations

import asyncio
import math
import re
from datetime import datetime, timezone
from typing import Any, Callable

from app.errors import BadRequestError, ConfigurationError, ProviderError, UpstreamError
from app.integrations import alphavantage, exchangerate
from app.schemas.fx import FxRate
from app.services.currencies import is_supported_currency
from app.services.ttl_cache import TTLCache

CURRENCY_RE = re.compile(r"^[A-Z]{3}$")

_PROVIDER_BY_MODE = {
    "direct": alphavantage.PROVIDER_NAME,
    "cross": exchangerate.PROVIDER_NAME,
}
_KEY_NAME_BY_MODE = {
    "direct": "ALPHAVANTAGE_API_KEY",
    "cross": "EXCHANGERATE_API_KEY",
}


def fx_cache_key(from_currency: str, to_currency: str) -> str:
    return f"fx:{from_currency}->{to_currency}"


def fx_table_cache_key(base: str) -> str:
    return f"fx:table:{base}"


def normalize_currency(raw: str | None, param: str) -> str:
    if raw is None or not str(raw).strip():
        raise BadRequestError("missing_currency", f"{param} query param is required")
    code = str(raw).strip().upper()
    if not CURRENCY_RE.fullmatch(code) or not is_supported_currency(code):
        raise BadRequestError("unsupported_currency", f"Unsupported currency: {code}")
    return code


def _utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class FxConverterService:
    """Pairwise FX rates, either direct from the provider or crossed through one base table.

    ``mode="direct"`` asks the provider for each pair and caches it under
    ``fx:FROM->TO``. ``mode="cross"`` caches the provider's whole table for
    ``base_currency`` and derives ``rate(base, to) / rate(base, from)``.
    """

    def __init__(
        self,
        *,
        cache: TTLCache,
        mode: str = "direct",
        rate_client: Any | None = None,
        base_currency: str = "USD",
        timeout_sec: float = 8.0,
        now_iso: Callable[[], str] | None = None,
    ) -> None:
        if mode not in _PROVIDER_BY_MODE:
            raise ValueError("mode must be one of: direct, cross")
        self.cache = cache
        self.mode = mode
        self.rate_client = rate_client
        self.base_currency = base_currency.upper()
        self.timeout_sec = timeout_sec
        self.provider_name = _PROVIDER_BY_MODE[mode]
        self.now_iso = now_iso or _utc_now_iso

    async def _call(self, fn: Callable, *args: Any) -> Any:
        try:
            return await asyncio.wait_for(asyncio.to_thread(fn, *args), timeout=self.timeout_sec)
        except asyncio.TimeoutError as exc:
            print(f"[FX][provider_timeout] provider={self.provider_name}", flush=True)
            raise UpstreamError("fx_upstream_failed", "FX provider timed out", status_code=500) from exc
        except ProviderError as exc:
            print(f"[FX][provider_error] provider={self.provider_name} error={exc.reason}", flush=True)
            raise UpstreamError("fx_upstream_failed", "Failed to fetch FX rate", status_code=500) from exc

    async def convert(self, from_param: str | None, to_param: str | None) -> FxRate:
        from_currency = normalize_currency(from_param, "from")
        to_currency = normalize_currency(to_param, "to")

        if from_currency == to_currency:
            return FxRate(
                from_currency=from_currency,
                to_currency=to_currency,
                rate=1.0,
                provider=self.provider_name,
                last_updated=self.now_iso(),
            )

        if self.rate_client is None:
            key_name = _KEY_NAME_BY_MODE[self.mode]
            raise ConfigurationError("missing_fx_provider_key", f"{key_name} is not configured on the server")

        if self.mode == "cross":
            return await self._convert_cross(from_currency, to_currency)
        return await self._convert_direct(from_currency, to_currency)

    async def _convert_direct(self, from_currency: str, to_currency: str) -> FxRate:
        key = fx_cache_key(from_currency, to_currency)
        cached = self.cache.get(key)
        if cached is not None:
            return cached.model_copy()

        result = await self._call(self.rate_client.get_exchange_rate, from_currency, to_currency)
        rate = float(result["rate"])
        if not math.isfinite(rate) or rate <= 0:
            raise UpstreamError("fx_upstream_failed", "FX provider returned a non-numeric rate", status_code=500)

        value = FxRate(
            from_currency=from_currency,
            to_currency=to_currency,
            rate=rate,
            provider=self.provider_name,
            last_updated=result.get("last_updated") or self.now_iso(),
        )
        self.cache.set(key, value)
        return value.model_copy()

    async def _convert_cross(self, from_currency: str, to_currency: str) -> FxRate:
        key = fx_table_cache_key(self.base_currency)
        table = self.cache.get(key)
        if table is None:
            table = await self._call(self.rate_client.get_rate_table, self.base_currency)
            self.cache.set(key, table)

        rates = table["rates"]
        for code in (from_currency, to_currency):
            if code not in rates:
                raise BadRequestError("unsupported_currency", f"Unsupported currency: {code}")

        rate = rates[to_currency] / rates[from_currency]
        if not math.isfinite(rate) or rate <= 0:
            raise UpstreamError("fx_upstream_failed", "FX provider returned a non-numeric rate", status_code=500)

        return FxRate(
            from_currency=from_currency,
            to_currency=to_currency,
            rate=rate,
            provider=self.provider_name,
            last_updated=table.get("last_updated") or self.now_iso(),
        )

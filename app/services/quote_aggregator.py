from __future__ import annotations

import asyncio
from concurrent.futures import ThreadPoolExecutor
from typing import Any, NamedTuple

from app.errors import BadRequestError, ConfigurationError
from app.schemas.quote import Quote, QuotesResponse
from app.services.symbols import is_valid_symbol, map_to_provider_symbol, normalize_symbol
from app.services.ttl_cache import TTLCache

MAX_SYMBOLS = 100


class FetchOutcome(NamedTuple):
    provider_symbol: str
    ok: bool
    fields: dict | None = None


def quote_cache_key(provider_symbol: str) -> str:
    return f"quote:{provider_symbol}"


def parse_symbols(param: str | None, max_symbols: int = MAX_SYMBOLS) -> tuple[list[str], list[str]]:
    """Split a comma list into (valid, invalid) symbols, deduped in request order."""
    if param is None or not str(param).strip():
        raise BadRequestError("missing_symbols", "symbols query param is required")

    unique: list[str] = []
    seen: set[str] = set()
    for part in str(param).split(","):
        symbol = normalize_symbol(part)
        if not symbol or symbol in seen:
            continue
        seen.add(symbol)
        unique.append(symbol)

    if not unique:
        raise BadRequestError("no_symbols", "No valid symbols provided")
    if len(unique) > max_symbols:
        raise BadRequestError("too_many_symbols", f"At most {max_symbols} symbols per request")

    valid = [s for s in unique if is_valid_symbol(s)]
    invalid = [s for s in unique if not is_valid_symbol(s)]
    if not valid:
        raise BadRequestError("invalid_symbols", "No valid symbols provided")
    return valid, invalid


class QuoteAggregatorService:
    """Cache-first quote batch resolver with concurrent provider fallback."""

    def __init__(
        self,
        *,
        cache: TTLCache,
        quote_client: Any | None,
        venue: str = "coinbase",
        provider_name: str = "finnhub",
        max_symbols: int = MAX_SYMBOLS,
        timeout_sec: float = 8.0,
    ) -> None:
        self.cache = cache
        self.quote_client = quote_client
        self.venue = venue
        self.provider_name = getattr(quote_client, "provider", None) or provider_name
        self.max_symbols = max_symbols
        self.timeout_sec = timeout_sec
        # one worker per symbol so a full batch never queues behind the pool
        self._executor = ThreadPoolExecutor(max_workers=max_symbols, thread_name_prefix="quote-fetch")

        self.cache_hits = 0
        self.cache_misses = 0
        self.provider_calls = 0
        self.provider_failures = 0
        self.last_batch_target = 0
        self.last_batch_invalid = 0

    async def _fetch(self, provider_symbol: str) -> FetchOutcome:
        self.provider_calls += 1
        loop = asyncio.get_running_loop()
        try:
            fields = await asyncio.wait_for(
                loop.run_in_executor(self._executor, self.quote_client.get_quote, provider_symbol),
                timeout=self.timeout_sec,
            )
            fields = dict(fields)
        except asyncio.TimeoutError:
            self.provider_failures += 1
            print(
                f"[QUOTE][provider_timeout] symbol={provider_symbol} timeout_sec={self.timeout_sec}",
                flush=True,
            )
            return FetchOutcome(provider_symbol, False)
        except Exception as exc:
            self.provider_failures += 1
            print(f"[QUOTE][provider_error] symbol={provider_symbol} error={exc}", flush=True)
            return FetchOutcome(provider_symbol, False)
        return FetchOutcome(provider_symbol, True, fields)

    async def get_quotes(self, symbols_param: str | None) -> QuotesResponse:
        valid, invalid = parse_symbols(symbols_param, self.max_symbols)
        if self.quote_client is None:
            raise ConfigurationError(
                "missing_quote_provider_key",
                "FINNHUB_API_KEY is not configured on the server",
            )

        resolved: dict[str, Quote] = {}
        misses: dict[str, list[str]] = {}
        for symbol in valid:
            provider_symbol = map_to_provider_symbol(symbol, self.venue)
            cached = self.cache.get(quote_cache_key(provider_symbol))
            if cached is not None:
                self.cache_hits += 1
                resolved[symbol] = cached.model_copy(update={"symbol": symbol})
                continue
            self.cache_misses += 1
            misses.setdefault(provider_symbol, []).append(symbol)

        outcomes = await asyncio.gather(*(self._fetch(s) for s in misses))

        for outcome in outcomes:
            aliases = misses[outcome.provider_symbol]
            if not outcome.ok:
                for symbol in aliases:
                    resolved[symbol] = Quote.placeholder(symbol, self.provider_name)
                continue
            for symbol in aliases:
                resolved[symbol] = Quote(symbol=symbol, provider=self.provider_name, **outcome.fields)
            self.cache.set(quote_cache_key(outcome.provider_symbol), resolved[aliases[0]].model_copy())

        self.last_batch_target = len(valid)
        self.last_batch_invalid = len(invalid)
        print(
            "[QUOTE][batch_resolve] "
            f"target_count={len(valid)} cache_hits={len(valid) - sum(len(a) for a in misses.values())} "
            f"provider_calls={len(misses)} failed={sum(1 for o in outcomes if not o.ok)} "
            f"invalid_count={len(invalid)}",
            flush=True,
        )

        return QuotesResponse(
            source="live",
            data={symbol: resolved[symbol] for symbol in valid},
            invalid_symbols=invalid or None,
        )

    def close(self) -> None:
        self._executor.shutdown(wait=False, cancel_futures=True)

    def metrics(self) -> dict[str, int]:
        return {
            "cache_hits": self.cache_hits,
            "cache_misses": self.cache_misses,
            "provider_calls": self.provider_calls,
            "provider_failures": self.provider_failures,
            "batch_target_count": self.last_batch_target,
            "batch_invalid_count": self.last_batch_invalid,
        }

from __future__ import annotations

import asyncio
from typing import Any

from app.errors import BadRequestError, ConfigurationError, ProviderError, UpstreamError
from app.integrations import alphavantage
from app.schemas.search import SearchResponse, SymbolMatch
from app.services.ttl_cache import TTLCache

MIN_QUERY_LEN = 1
MAX_QUERY_LEN = 20


def search_cache_key(query: str) -> str:
    return f"search:{query.upper()}"


class SymbolSearchService:
    def __init__(
        self,
        *,
        cache: TTLCache,
        search_client: Any | None,
        environment: str = "development",
        timeout_sec: float = 8.0,
    ) -> None:
        self.cache = cache
        self.search_client = search_client
        self.environment = environment
        self.timeout_sec = timeout_sec
        self.provider_name = getattr(search_client, "provider", None) or alphavantage.PROVIDER_NAME

    async def search(self, query_param: str | None) -> SearchResponse:
        if query_param is None:
            raise BadRequestError("missing_query", "query param is required")
        query = str(query_param).strip()
        if not MIN_QUERY_LEN <= len(query) <= MAX_QUERY_LEN:
            raise BadRequestError(
                "invalid_query_length",
                f"query must be {MIN_QUERY_LEN}-{MAX_QUERY_LEN} characters",
            )
        if self.search_client is None:
            raise ConfigurationError(
                "missing_search_provider_key",
                "ALPHAVANTAGE_API_KEY is not configured on the server",
            )

        key = search_cache_key(query)
        results = self.cache.get(key)
        if results is None:
            try:
                rows = await asyncio.wait_for(
                    asyncio.to_thread(self.search_client.search_symbols, query),
                    timeout=self.timeout_sec,
                )
            except asyncio.TimeoutError as exc:
                print(f"[SEARCH][provider_timeout] provider={self.provider_name}", flush=True)
                raise UpstreamError("search_upstream_failed", "Search provider timed out") from exc
            except ProviderError as exc:
                print(f"[SEARCH][provider_error] provider={self.provider_name} error={exc.reason}", flush=True)
                raise UpstreamError("search_upstream_failed", "Failed to fetch search results") from exc

            results = [SymbolMatch(**row) for row in rows if row.get("symbol") and row.get("name")]
            self.cache.set(key, results)

        return SearchResponse(
            provider=self.provider_name,
            environment=self.environment,
            query=query,
            results=[row.model_copy() for row in results],
        )

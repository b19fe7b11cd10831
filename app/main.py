from __future__ import annotations

import time
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from app.api.routes import router
from app.api.telemetry import router as telemetry_router
from app.config.settings import SERVICE_NAME, Settings, get_settings
from app.errors import ApiError
from app.integrations.alphavantage import AlphaVantageClient
from app.integrations.exchangerate import ExchangeRateClient
from app.integrations.finnhub import FinnhubClient
from app.services.fx_converter import FxConverterService
from app.services.quote_aggregator import QuoteAggregatorService
from app.services.rate_limit import FixedWindowRateLimiter, route_group
from app.services.symbol_search import SymbolSearchService
from app.services.ttl_cache import TTLCache


def configure_services(app: FastAPI, settings: Settings) -> None:
    """(Re)build the shared cache and the provider-backed services from settings."""
    timeout = settings.PROVIDER_TIMEOUT_SEC
    cache = TTLCache()

    quote_client = None
    if settings.FINNHUB_API_KEY:
        quote_client = FinnhubClient(api_key=settings.FINNHUB_API_KEY, timeout=timeout)

    av_client = None
    if settings.ALPHAVANTAGE_API_KEY:
        av_client = AlphaVantageClient(api_key=settings.ALPHAVANTAGE_API_KEY, timeout=timeout)

    rate_client = av_client
    if settings.FX_MODE == "cross":
        rate_client = None
        if settings.EXCHANGERATE_API_KEY:
            rate_client = ExchangeRateClient(api_key=settings.EXCHANGERATE_API_KEY, timeout=timeout)

    previous = getattr(app.state, "quote_aggregator", None)
    if previous is not None:
        previous.close()

    app.state.cache = cache
    app.state.quote_aggregator = QuoteAggregatorService(
        cache=cache,
        quote_client=quote_client,
        venue=settings.CRYPTO_VENUE,
        timeout_sec=timeout,
    )
    app.state.fx_converter = FxConverterService(
        cache=cache,
        mode=settings.FX_MODE,
        rate_client=rate_client,
        base_currency=settings.FX_BASE_CURRENCY,
        timeout_sec=timeout,
    )
    app.state.symbol_search = SymbolSearchService(
        cache=cache,
        search_client=av_client,
        environment=settings.APP_ENV,
        timeout_sec=timeout,
    )
    app.state.rate_limiter = FixedWindowRateLimiter(
        {"market": settings.RATE_LIMIT_RPM, "telemetry": settings.TELEMETRY_RATE_LIMIT_RPM}
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings = app.state.get_settings()
    for name in settings.missing_keys():
        print(f"[CONFIG][missing_key] name={name} dependent endpoints will answer 500", flush=True)
    print(f"[APP][start] service={SERVICE_NAME} env={settings.APP_ENV} port={settings.PORT}", flush=True)
    try:
        yield
    finally:
        app.state.quote_aggregator.close()
        print("[APP][stop]", flush=True)


app = FastAPI(title="ApexView Backend", version="0.1.0", lifespan=lifespan)
app.include_router(router)
app.include_router(telemetry_router)

app.state.get_settings = get_settings
configure_services(app, get_settings())


@app.middleware("http")
async def rate_limit_middleware(request: Request, call_next):
    group = route_group(request.url.path)
    if group is None:
        return await call_next(request)

    caller = request.client.host if request.client else "unknown"
    allowed, remaining, limit = request.app.state.rate_limiter.check(caller, group)
    if not allowed:
        return JSONResponse(
            status_code=429,
            content={"error": "rate_limited", "message": "Too many requests, retry in a minute"},
            headers={"Retry-After": "60"},
        )

    response = await call_next(request)
    if limit > 0:
        response.headers["X-RateLimit-Limit"] = str(limit)
        response.headers["X-RateLimit-Remaining"] = str(remaining)
    return response


@app.middleware("http")
async def request_log_middleware(request: Request, call_next):
    started = time.perf_counter()
    response = await call_next(request)
    duration_ms = int((time.perf_counter() - started) * 1000)
    # path only, query strings can carry user input
    print(
        f"[HTTP][request] method={request.method} path={request.url.path} "
        f"status={response.status_code} duration_ms={duration_ms}",
        flush=True,
    )
    return response


# outermost middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=get_settings().CORS_ORIGINS,
    allow_methods=["GET", "POST"],
    allow_headers=["*"],
)


@app.exception_handler(ApiError)
async def handle_api_error(request: Request, exc: ApiError):
    print(f"[HTTP][api_error] path={request.url.path} status={exc.status_code} error={exc.error}", flush=True)
    return JSONResponse(status_code=exc.status_code, content=exc.to_payload())


@app.exception_handler(RequestValidationError)
async def handle_validation_error(request: Request, exc: RequestValidationError):
    return JSONResponse(status_code=400, content={"error": "invalid_request", "message": "Invalid request parameters"})


@app.exception_handler(StarletteHTTPException)
async def handle_http_error(request: Request, exc: StarletteHTTPException):
    code = str(exc.detail).strip().lower().replace(" ", "_") or "http_error"
    return JSONResponse(status_code=exc.status_code, content={"error": code}, headers=exc.headers)


@app.exception_handler(Exception)
async def handle_unexpected_error(request: Request, exc: Exception):
    print(f"[HTTP][unhandled_error] path={request.url.path} error={type(exc).__name__}", flush=True)
    return JSONResponse(status_code=500, content={"error": "internal_error", "message": "Unexpected server error"})


def run() -> None:
    settings = get_settings()
    uvicorn.run("app.main:app", host="0.0.0.0", port=settings.PORT)


if __name__ == "__main__":
    run()

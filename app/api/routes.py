from datetime import datetime, timezone

from fastapi import APIRouter, Request

from app.config.settings import CACHE_TTL_SEC, SERVICE_NAME
from app.schemas.health import HealthStatus

router = APIRouter()


@router.get('/')
def get_health(request: Request):
    settings = request.app.state.get_settings()
    state = request.app.state
    return HealthStatus(
        service=SERVICE_NAME,
        environment=settings.APP_ENV,
        providers={
            'quotes': state.quote_aggregator.provider_name,
            'fx': state.fx_converter.provider_name,
            'search': state.symbol_search.provider_name,
        },
        cache_ttl_minutes=CACHE_TTL_SEC / 60,
        time=datetime.now(timezone.utc).isoformat(),
    ).model_dump(by_alias=True)


@router.get('/quotes')
async def get_quotes(request: Request, symbols: str | None = None):
    service = request.app.state.quote_aggregator
    result = await service.get_quotes(symbols)
    return result.to_payload()


@router.get('/fx')
async def get_fx(request: Request):
    service = request.app.state.fx_converter
    params = request.query_params
    rate = await service.convert(params.get('from'), params.get('to'))
    return rate.model_dump(by_alias=True)


@router.get('/search')
async def search_symbols(request: Request, query: str | None = None):
    service = request.app.state.symbol_search
    result = await service.search(query)
    return result.model_dump()


@router.get('/metrics')
def get_metrics(request: Request):
    state = request.app.state
    metrics = state.quote_aggregator.metrics()
    metrics['cached_keys'] = len(state.cache)
    metrics['rate_limited'] = state.rate_limiter.rejected
    return metrics

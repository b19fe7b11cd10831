from pydantic import BaseModel


class SymbolMatch(BaseModel):
    symbol: str
    name: str
    region: str | None = None
    currency: str | None = None


class SearchResponse(BaseModel):
    provider: str
    environment: str
    query: str
    results: list[SymbolMatch]

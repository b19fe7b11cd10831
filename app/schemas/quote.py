from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class Quote(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    symbol: str
    previous_close: float | None = None
    current: float | None = None
    high: float | None = None
    low: float | None = None
    open: float | None = None
    provider: str

    @classmethod
    def placeholder(cls, symbol: str, provider: str) -> "Quote":
        return cls(symbol=symbol, provider=provider)


class QuotesResponse(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    source: str = "live"
    data: dict[str, Quote]
    invalid_symbols: list[str] | None = None

    def to_payload(self) -> dict:
        payload = self.model_dump(by_alias=True)
        if self.invalid_symbols is None:
            payload.pop("invalidSymbols", None)
        return payload

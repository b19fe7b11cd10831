from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class FxRate(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    from_currency: str
    to_currency: str
    rate: float
    provider: str
    last_updated: str | None = None

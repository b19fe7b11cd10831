from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class HealthStatus(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    status: str = "ok"
    service: str
    environment: str
    providers: dict[str, str]
    cache_ttl_minutes: float
    time: str

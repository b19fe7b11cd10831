from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class TelemetryAck(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    ok: bool = True
    report_id: str
    received: int

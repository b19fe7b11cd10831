import json

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from app.schemas.telemetry import TelemetryAck
from app.services.telemetry import MAX_BODY_BYTES, status_for_error, validate_report

router = APIRouter()


def _reject(error: str) -> JSONResponse:
    return JSONResponse(status_code=status_for_error(error), content={'ok': False, 'error': error})


def _declared_length(request: Request) -> int | None:
    raw = request.headers.get('content-length')
    if raw is None or not raw.strip().isdigit():
        return None
    return int(raw)


@router.post('/telemetry')
async def post_telemetry(request: Request):
    declared = _declared_length(request)
    if declared is not None and declared > MAX_BODY_BYTES:
        return _reject('payload_too_large')

    raw = b''
    async for chunk in request.stream():
        raw += chunk
        if len(raw) > MAX_BODY_BYTES:
            return _reject('payload_too_large')

    try:
        body = json.loads(raw)
    except (json.JSONDecodeError, UnicodeDecodeError):
        body = None

    error = validate_report(body)
    if error:
        return _reject(error)

    events = body['events']
    print(
        f"[TELEMETRY][report] report_id={body['reportId']} events={len(events)} "
        f"env={body['backendEnvironment']}",
        flush=True,
    )
    return TelemetryAck(report_id=body['reportId'], received=len(events)).model_dump(by_alias=True)

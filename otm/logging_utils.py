import json
import logging
import time
import uuid
from datetime import datetime, timezone
from typing import Callable

from fastapi import Request, Response

from .metrics import inc_http_request, observe_latency_ms


logger = logging.getLogger("otm")


def setup_logging(level: str) -> None:
    logger.setLevel(level)
    if not logger.handlers:
        handler = logging.StreamHandler()
        logger.addHandler(handler)
    for handler in logger.handlers:
        handler.setLevel(level)


def iso_now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _route_path(request: Request) -> str:
    # "/message/{message_id}" rather than the raw id
    route = request.scope.get("route")
    return getattr(route, "path", request.url.path)


def _log_request(request: Request, status_code: int, start: float) -> None:
    latency_ms = (time.perf_counter() - start) * 1000.0
    path = _route_path(request)

    inc_http_request(path, status_code)
    observe_latency_ms(latency_ms)

    level = logging.ERROR if status_code >= 500 else logging.INFO
    log = {
        "ts": iso_now(),
        "level": logging.getLevelName(level).lower(),
        "request_id": request.state.request_id,
        "method": request.method,
        "path": path,
        "status": status_code,
        "latency_ms": round(latency_ms, 2),
    }
    # extra fields from handlers (e.g. result)
    if isinstance(getattr(request.state, "log_extra", None), dict):
        log.update(request.state.log_extra)

    logger.log(level, json.dumps(log))


async def logging_middleware(request: Request, call_next: Callable) -> Response:
    start = time.perf_counter()
    request.state.request_id = str(uuid.uuid4())
    request.state.log_extra = {}

    try:
        response = await call_next(request)
    except Exception:
        _log_request(request, 500, start)
        raise

    _log_request(request, response.status_code, start)
    return response

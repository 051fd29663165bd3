import asyncio
import contextlib
from contextlib import asynccontextmanager
from datetime import timedelta
from typing import Optional

from fastapi import (
    FastAPI,
    Depends,
    HTTPException,
    Path,
    Request,
    status,
)
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, PlainTextResponse
from pydantic import BaseModel, Field, create_model

from .config import Settings, settings as default_settings
from .errors import MessageNotFound, StorageError
from .logging_utils import logger, logging_middleware, setup_logging
from .metrics import inc_message_result, render_metrics
from .storage import MessageStore
from .sweeper import run_sweeper


MESSAGE_ID_PATTERN = r"^[0-9a-f]{32}$"


# ---------- Pydantic Models ----------


def message_request_model(max_length: int) -> type[BaseModel]:
    # the limit comes from the Settings the app is built with
    return create_model(
        "CreateMessageRequest",
        message=(str, Field(max_length=max_length)),
    )


class CreateMessageResponse(BaseModel):
    id: str


class MessageResponse(BaseModel):
    id: str
    message: str
    key: str  # hex
    created_at: str
    expires_at: str


class AvailableResponse(BaseModel):
    available: bool


# ---------- Helpers ----------


def get_store(request: Request) -> MessageStore:
    return request.app.state.store


def writer_address(request: Request) -> Optional[str]:
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip() or None
    real_ip = request.headers.get("x-real-ip")
    if real_ip:
        return real_ip.strip()
    if request.client is not None:
        return request.client.host
    return None


def public_errors(exc: RequestValidationError) -> list[dict]:
    return [
        {"loc": list(err.get("loc", ())), "msg": err.get("msg", ""), "type": err.get("type", "")}
        for err in exc.errors()
    ]


def log_result(request: Request, result: str) -> None:
    inc_message_result(result)
    request.state.log_extra = getattr(request.state, "log_extra", {})
    request.state.log_extra["result"] = result


# ---------- App factory ----------


def create_app(
    config: Optional[Settings] = None,
    store: Optional[MessageStore] = None,
) -> FastAPI:
    config = config or default_settings
    setup_logging(config.LOG_LEVEL)
    CreateMessageRequest = message_request_model(config.MAX_MESSAGE_LENGTH)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        owned = store is None
        app.state.store = store or MessageStore(
            config.DATABASE_URL,
            ttl=timedelta(seconds=config.MESSAGE_TTL_SECONDS),
            timeout=config.DB_TIMEOUT_SECONDS,
        )
        app.state.store.init_schema()

        sweeper = None
        if config.PURGE_INTERVAL_SECONDS > 0:
            sweeper = asyncio.create_task(
                run_sweeper(app.state.store, config.PURGE_INTERVAL_SECONDS)
            )
        logger.info("message store ready")

        yield

        if sweeper is not None:
            sweeper.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await sweeper
        if owned:
            app.state.store.close()

    app = FastAPI(title="One-Time Message", lifespan=lifespan)

    app.middleware("http")(logging_middleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.CORS_ORIGINS,
        allow_methods=["GET", "POST"],
        allow_headers=["*"],
    )

    # ---------- Exception handlers ----------

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        log_result(request, "validation_error")
        return JSONResponse(
            status_code=422,
            # raw input is left out: it may not even be encodable
            content={"detail": public_errors(exc)},
        )

    @app.exception_handler(MessageNotFound)
    async def not_found_handler(request: Request, exc: MessageNotFound):
        # normal outcome for a used or stale link, not an error
        log_result(request, "not_found")
        return JSONResponse(
            status_code=status.HTTP_404_NOT_FOUND,
            content={"detail": "Message not found"},
        )

    @app.exception_handler(StorageError)
    async def storage_exception_handler(request: Request, exc: StorageError):
        log_result(request, "storage_error")
        logger.error("storage failure on %s: %s", request.method, exc)
        return JSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            content={"detail": "storage unavailable"},
        )

    # ---------- Endpoints ----------

    @app.get("/health/live")
    def health_live():
        return {"status": "ok"}

    @app.get("/health/ready")
    def health_ready(store: MessageStore = Depends(get_store)):
        try:
            store.ping()
        except StorageError as e:
            raise HTTPException(status_code=503, detail=f"DB error: {e}")
        return {"status": "ok"}

    @app.post(
        "/message",
        response_model=CreateMessageResponse,
        status_code=status.HTTP_201_CREATED,
    )
    def create_message(
        payload: CreateMessageRequest,
        request: Request,
        store: MessageStore = Depends(get_store),
    ):
        message_id = store.create(
            payload.message,
            writer_address=writer_address(request),
            user_agent=request.headers.get("user-agent"),
        )
        log_result(request, "created")
        return CreateMessageResponse(id=message_id)

    @app.get("/message/{message_id}", response_model=MessageResponse)
    def read_message(
        request: Request,
        message_id: str = Path(pattern=MESSAGE_ID_PATTERN),
        store: MessageStore = Depends(get_store),
    ):
        consumed = store.consume(message_id)
        log_result(request, "consumed")
        return MessageResponse(
            id=consumed.id,
            message=consumed.message,
            key=consumed.key.hex(),
            created_at=consumed.created_at,
            expires_at=consumed.expires_at,
        )

    @app.get("/available/{message_id}", response_model=AvailableResponse)
    def available(
        request: Request,
        message_id: str = Path(pattern=MESSAGE_ID_PATTERN),
        store: MessageStore = Depends(get_store),
    ):
        if not store.exists(message_id):
            raise MessageNotFound(message_id)
        log_result(request, "available")
        return AvailableResponse(available=True)

    @app.get("/metrics")
    def metrics():
        return PlainTextResponse(content=render_metrics(), media_type="text/plain")

    return app


app = create_app()

import asyncio
import logging
from contextlib import asynccontextmanager, suppress

from fastapi import Depends, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles
from starlette.exceptions import HTTPException as StarletteHTTPException

from storefront_chat.config import settings
from storefront_chat.database.connection import close_mongo_connection, connect_to_mongo, mongo_db_dependency
from storefront_chat.logging_config import RequestContextMiddleware, setup_logging
from storefront_chat.routers.chat import router as chat_router
from storefront_chat.routers.socket import router as socket_router
from storefront_chat.utils.errors import ChatError
from storefront_chat.utils.notifications import get_notifier
from storefront_chat.utils.realtime_bus import get_bus, reset_bus


logger = logging.getLogger("storefront_chat.main")


@asynccontextmanager
async def lifespan(app: FastAPI):
    setup_logging(settings.LOG_LEVEL, settings.LOG_FILE or None)
    await connect_to_mongo()

    bus = await get_bus()
    subscriber = None
    listener = None
    if bus.enabled:
        notifier = await get_notifier()
        subscriber = await bus.subscribe(settings.REDIS_CHANNEL, notifier.dispatch)
        listener = asyncio.create_task(subscriber.run(), name="chat-bus-listener")
    try:
        yield
    finally:
        if subscriber is not None:
            await subscriber.cancel()
        if listener is not None:
            listener.cancel()
            with suppress(asyncio.CancelledError):
                await listener
        await reset_bus()
        await close_mongo_connection()


def _error_response(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"success": False, "message": message})


async def chat_error_handler(request: Request, exc: ChatError) -> JSONResponse:
    return _error_response(exc.status_code, exc.message)


async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = exc.errors()
    if errors:
        first = errors[0]
        location = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
        message = f"{location}: {first.get('msg')}" if location else str(first.get("msg"))
    else:
        message = "Invalid request"
    return _error_response(400, message)


async def http_error_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    return _error_response(exc.status_code, str(exc.detail))


async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return _error_response(500, "Internal server error")


def create_app() -> FastAPI:
    app = FastAPI(title="Storefront chat", lifespan=lifespan)

    app.add_middleware(RequestContextMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.allowed_origins,
        allow_origin_regex=settings.CORS_ORIGIN_REGEX or None,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
        allow_headers=["Content-Type", "Authorization", "Accept-version", "X-Requested-With", "X-Request-ID"],
        expose_headers=["X-Total-Count", "Content-Range", "X-Request-ID"],
        max_age=600,
    )

    app.add_exception_handler(ChatError, chat_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)
    app.add_exception_handler(StarletteHTTPException, http_error_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)

    app.include_router(chat_router)
    app.include_router(socket_router)
    app.mount(settings.CHAT_UPLOAD_URL_PREFIX, StaticFiles(directory=settings.CHAT_UPLOAD_DIR, check_dir=False), name="chat-uploads")

    @app.get("/health")
    async def health(db = Depends(mongo_db_dependency)):
        await db.command("ping")
        bus = await get_bus()
        return {"success": True, "status": "ok", "realtime": "redis" if bus.enabled else "local"}

    return app


app = create_app()

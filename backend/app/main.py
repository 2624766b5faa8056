from uuid import uuid4

from fastapi import FastAPI
from starlette.datastructures import MutableHeaders
from starlette.types import ASGIApp, Message, Receive, Scope, Send

from app.api.v1.router import api_router
from app.core.config import Settings, settings as default_settings
from app.core.database import Base, build_engine, build_session_factory
from app.core.logging_config import get_logger
from app.core.schema_migration import run_startup_migrations
from app.services.origin_client import HttpxOriginClient, build_http_client
import app.models  # noqa: F401


class TraceIdMiddleware:
    """Stamp each HTTP request with a trace id and echo it as ``X-Trace-Id``.

    Pure ASGI, so client disconnects still reach streamed response bodies.
    """

    def __init__(self, app: ASGIApp):
        self.app = app

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        trace_id = str(uuid4())
        scope.setdefault("state", {})["trace_id"] = trace_id

        async def send_with_trace_id(message: Message) -> None:
            if message["type"] == "http.response.start":
                MutableHeaders(scope=message)["X-Trace-Id"] = trace_id
            await send(message)

        await self.app(scope, receive, send_with_trace_id)


def create_app(settings: Settings | None = None) -> FastAPI:
    settings = settings or default_settings
    logger = get_logger("app")
    app = FastAPI(title=settings.app_name)
    app.state.settings = settings
    app.state.engine = build_engine(settings.db_url)
    app.state.session_factory = build_session_factory(app.state.engine)
    app.add_middleware(TraceIdMiddleware)

    @app.on_event("startup")
    async def on_startup():
        Base.metadata.create_all(bind=app.state.engine)
        run_startup_migrations(app.state.engine, settings.db_url)
        if getattr(app.state, "origin_client", None) is None:
            app.state.http_client = build_http_client(
                settings.export_fetch_timeout_ms / 1000, settings.origin_user_agent
            )
            app.state.origin_client = HttpxOriginClient(
                app.state.http_client, chunk_size=settings.origin_chunk_size
            )
        logger.info("%s started (db=%s)", settings.app_name, settings.db_url.split("://", 1)[0])

    @app.on_event("shutdown")
    async def on_shutdown():
        http_client = getattr(app.state, "http_client", None)
        if http_client is not None:
            await http_client.aclose()
        app.state.engine.dispose()

    @app.get("/health")
    def health():
        return {"status": "ok"}

    app.include_router(api_router)
    return app

from __future__ import annotations
import logging
import uuid as _uuid_mod
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from sqlalchemy import select

from sendcore.core.settings import get_settings
from sendcore.db import build_engine, build_session_factory, create_all
from sendcore.logging import set_log_business, set_log_provider, set_log_request, slog
from sendcore.routers.credits import router as credits_router
from sendcore.routers.otp import router as otp_router
from sendcore.routers.sender_ids import router as sender_ids_router
from sendcore.routers.sms import router as sms_router
from sendcore.services.factory import build_services

logger = logging.getLogger("sendcore")


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings = get_settings()
    engine = build_engine(settings)
    if settings.is_sqlite:
        # Local development; deployed databases are migrated with Alembic
        await create_all(engine)
    app.state.engine = engine
    app.state.session_factory = build_session_factory(engine)
    app.state.services = build_services(app.state.session_factory, settings)
    slog.info("app_started", database=engine.url.render_as_string(hide_password=True))
    try:
        yield
    finally:
        await app.state.services.orchestrator.drain()
        await engine.dispose()


app = FastAPI(title="Sendcore API", lifespan=lifespan)


# Request id + context binding middleware
@app.middleware("http")
async def request_id_and_context(request: Request, call_next):
    rid = request.headers.get("x-request-id") or str(_uuid_mod.uuid4())
    set_log_request(rid)
    services = getattr(request.app.state, "services", None)
    if services is not None and request.url.path.startswith(("/sms", "/otp")):
        set_log_provider(services.gateway.provider_name)
    try:
        response = await call_next(request)
        response.headers.setdefault("X-Request-Id", rid)
        return response
    finally:
        set_log_business(None)
        set_log_provider(None)


app.include_router(sms_router)
app.include_router(credits_router)
app.include_router(sender_ids_router)
app.include_router(otp_router)


@app.get("/health")
async def health(request: Request):
    session_factory = getattr(request.app.state, "session_factory", None)
    if session_factory is None:
        return {"ok": False, "db": False, "error": "not initialised"}
    try:
        async with session_factory() as session:
            await session.execute(select(1))
    except Exception as e:
        logger.warning("Health check DB probe failed: %s", e)
        return {"ok": False, "db": False, "error": str(e)}
    return {"ok": True, "db": True}

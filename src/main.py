"""FastAPI application entry point.

Run with: uvicorn src.main:app --reload --port 8000
"""

# ruff: noqa: E402  -- uvloop.install() must run before other imports

import uvloop

uvloop.install()

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from sqlalchemy import text

from config.settings import settings
from src.lt_balance.api.router import router as balance_router
from src.lt_common.database import engine
from src.lt_common.errors import AppError
from src.lt_common.redis_client import close_redis, get_redis
from src.lt_common.response import error_response
from src.lt_gateway.middleware.request_log import RequestLogMiddleware
from src.lt_ledger.api.router import router as ledger_router
from src.lt_settlement.api.payments_router import router as ticket_payments_router
from src.lt_settlement.api.router import router as settlement_router
from src.lt_settlement.api.router import settlement_service

logging.basicConfig(
    level=settings.LOG_LEVEL.upper(),
    format="%(asctime)s %(levelname)s %(name)s %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Startup: verify DB + Redis connections. Shutdown: drain refreshes, dispose."""
    async with engine.connect() as conn:
        await conn.execute(text("SELECT 1"))
    try:
        redis = await get_redis()
        await redis.ping()
    except Exception:
        # The cache degrades to misses, so a missing Redis is not fatal
        logger.warning("Redis unavailable at startup, balance cache disabled until it returns")
    yield
    await settlement_service.wait_for_background()
    await engine.dispose()
    await close_redis()


app = FastAPI(
    title=settings.APP_NAME,
    version="0.1.0",
    lifespan=lifespan,
)


app.add_middleware(RequestLogMiddleware)


@app.exception_handler(AppError)
async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    resp = error_response(exc.code, exc.message)
    return JSONResponse(
        status_code=exc.http_status,
        content=resp.model_dump(),
    )


app.include_router(ledger_router, prefix="/api/v1")
app.include_router(settlement_router, prefix="/api/v1")
app.include_router(ticket_payments_router, prefix="/api/v1")
app.include_router(balance_router, prefix="/api/v1")


@app.get("/health")
async def health() -> dict[str, str]:
    return {"status": "ok", "version": "0.1.0"}

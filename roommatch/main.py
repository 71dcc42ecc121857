import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from roommatch.core.errors import RoomMatchError
from roommatch.core.logging import configure_logging
from roommatch.db.session import engine
from roommatch.api.v1.admin import router as admin_router
from roommatch.api.v1.chat import router as chat_router
from roommatch.api.v1.embed import router as embed_router
from roommatch.api.v1.listings import router as listings_router
from roommatch.api.v1.match import router as match_router
from roommatch.api.v1.seekers import router as seekers_router
from roommatch.services.cache import close_pool
from roommatch.services.embedding_store import close_embedding_store

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    configure_logging()
    if engine.dialect.name == "postgresql":
        async with engine.begin() as conn:
            await conn.execute(text("CREATE EXTENSION IF NOT EXISTS vector"))
    yield
    await close_embedding_store()
    await close_pool()


app = FastAPI(
    title="RoomMatch API",
    version="0.1.0",
    description="Semantic matching of room seekers to room listings.",
    lifespan=lifespan,
)

app.include_router(match_router,    prefix="/api/v1")
app.include_router(embed_router,    prefix="/api/v1")
app.include_router(chat_router,     prefix="/api/v1")
app.include_router(seekers_router,  prefix="/api/v1")
app.include_router(listings_router, prefix="/api/v1")
app.include_router(admin_router,    prefix="/api/v1")


# ── Error translation ─────────────────────────────────────────────────────────

@app.exception_handler(RoomMatchError)
async def roommatch_error_handler(request: Request, exc: RoomMatchError):
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc)
    else:
        logger.info("%s %s → %d: %s", request.method, request.url.path, exc.status_code, exc)
    return JSONResponse(status_code=exc.status_code, content=exc.to_payload())


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    return JSONResponse(
        status_code=400,
        content={"error": "Invalid request body", "details": jsonable_errors(exc)},
    )


@app.exception_handler(SQLAlchemyError)
async def sqlalchemy_error_handler(request: Request, exc: SQLAlchemyError):
    logger.exception("Database error: %s", exc)
    return JSONResponse(
        status_code=500,
        content={"error": "Database operation failed", "details": type(exc).__name__},
    )


def jsonable_errors(exc: RequestValidationError) -> list:
    return [
        {"loc": list(err.get("loc", ())), "msg": err.get("msg", ""), "type": err.get("type", "")}
        for err in exc.errors()
    ]


@app.get("/health", tags=["meta"])
async def health_check():
    return {"status": "ok", "version": app.version}

from fastapi import FastAPI
from starlette.exceptions import HTTPException as StarletteHTTPException
from fastapi.exceptions import RequestValidationError
from fastapi.staticfiles import StaticFiles
from fastapi.middleware.cors import CORSMiddleware
from botocore.exceptions import BotoCoreError, ClientError
from pymongo.errors import PyMongoError

import structlog
import logging
import uvicorn

from core.config import settings
from core.db import ensure_indexes
from core.responses import failure, http_exception_handler, validation_exception_handler

from routes.routes import router as pages_router
from routes.registrations import router as registrations_router
from routes.admin import router as admin_router

import os


BASE_DIR = os.path.dirname(__file__)
STATIC_DIR = os.path.join(BASE_DIR, "frontend/static")

logging.basicConfig(level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO), format="%(message)s")

structlog.configure(
    processors=[
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.add_log_level,
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.JSONRenderer(),
    ],
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    wrapper_class=structlog.stdlib.BoundLogger,
    cache_logger_on_first_use=True,
)
log = structlog.get_logger(__name__)


async def storage_exception_handler(request, exc: PyMongoError):
    log.error("storage.error", path=request.url.path, error=str(exc))
    return failure(500, str(exc))


async def asset_exception_handler(request, exc: Exception):
    log.error("asset_host.error", path=request.url.path, error=str(exc))
    return failure(500, str(exc))


app = FastAPI(title="Swargandhav Registration")

app.add_middleware(
    CORSMiddleware,
    allow_origins=[origin.strip() for origin in settings.CORS_ORIGINS.split(",")],
    allow_methods=["*"],
    allow_headers=["*"],
)

app.add_exception_handler(StarletteHTTPException, http_exception_handler)
app.add_exception_handler(RequestValidationError, validation_exception_handler)
app.add_exception_handler(PyMongoError, storage_exception_handler)
app.add_exception_handler(BotoCoreError, asset_exception_handler)
app.add_exception_handler(ClientError, asset_exception_handler)


@app.exception_handler(Exception)
async def global_exception_handler(request, exc: Exception):
    log.error("request.unhandled_error", path=request.url.path, error=str(exc), exc_info=exc)
    return failure(500, str(exc))


app.mount("/static", StaticFiles(directory=STATIC_DIR), name="static")

app.include_router(pages_router)
app.include_router(registrations_router)
app.include_router(admin_router)


@app.on_event("startup")
async def create_indexes():
    """
    Garante os índices únicos antes de atender requisições.
    """
    log.info("db.startup")
    await ensure_indexes()


if __name__ == "__main__":
    uvicorn.run(app, host=settings.HOST, port=settings.PORT)

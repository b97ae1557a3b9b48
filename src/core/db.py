import structlog
from motor.motor_asyncio import AsyncIOMotorClient
from typing import Optional

from pymongo import ASCENDING
from pymongo.errors import DuplicateKeyError

from .config import settings


log = structlog.get_logger()

client = AsyncIOMotorClient(settings.MONGODB_URI, tz_aware=True)
db = client[settings.MONGODB_DB]

UNIQUE_FIELDS = (
    "registrationId",
    "phone",
    "paymentScreenshot.transactionId",
    "paymentScreenshot.filename",
)


async def ensure_indexes():
    """
    Cria os índices únicos da coleção de inscrições.

    transactionId só entra no índice quando é uma string, então inscrições
    ainda não verificadas não colidem entre si.
    """
    registrations = db.registrations
    await registrations.create_index([("registrationId", ASCENDING)], unique=True)
    await registrations.create_index([("phone", ASCENDING)], unique=True)
    await registrations.create_index(
        [("paymentScreenshot.filename", ASCENDING)],
        unique=True,
        sparse=True,
    )
    await registrations.create_index(
        [("paymentScreenshot.transactionId", ASCENDING)],
        unique=True,
        partialFilterExpression={"paymentScreenshot.transactionId": {"$type": "string"}},
    )
    await registrations.create_index([("createdAt", ASCENDING)])
    log.info("db.indexes_ready", database=settings.MONGODB_DB)


def duplicate_field(exc: DuplicateKeyError) -> Optional[str]:
    """Campo do índice único violado por um DuplicateKeyError."""
    pattern = (exc.details or {}).get("keyPattern") or {}
    if pattern:
        return next(iter(pattern))
    message = str(exc)
    for field in UNIQUE_FIELDS:
        if f"{field}_1" in message:
            return field
    return None

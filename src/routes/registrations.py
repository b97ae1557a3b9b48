import secrets
from typing import Optional

import structlog
from fastapi import APIRouter, File, Form, UploadFile
from pydantic import ValidationError
from pymongo.errors import DuplicateKeyError, PyMongoError

from core.config import settings
from core.db import db, duplicate_field
from core.responses import ApiError, ok, validation_message
from models.registration import PaymentScreenshot, Registration, serialize
from schemas.registration import (
    CheckTransactionRequest,
    Conflict,
    RegistrationCreated,
    RegistrationCreateRequest,
)
from utils.assets import StoredAsset, delete_asset, upload_payment_screenshot


log = structlog.get_logger()
router = APIRouter(prefix="/api")

PHONE_TAKEN = "Phone number already registered"
TRANSACTION_TAKEN = "Transaction ID already exists"


def generate_registration_id() -> str:
    """Prefixo + número aleatório de 6 dígitos (100000-999999)."""
    return f"{settings.REGISTRATION_ID_PREFIX}{100000 + secrets.randbelow(900000)}"


def conflict_data(doc: dict) -> dict:
    return Conflict(fullName=doc.get("fullName", ""), phone=doc.get("phone", "")).model_dump()


async def insert_registration(data: RegistrationCreateRequest, asset: StoredAsset) -> str:
    """
    Grava a inscrição como `pending`. O índice único é quem garante a unicidade do
    registrationId: numa colisão, tenta de novo com outro id.
    """
    screenshot = PaymentScreenshot(
        url=asset.url,
        originalName=asset.original_name,
        filename=asset.key,
        size=asset.size,
        type=asset.content_type,
        validationNotes="Uploaded successfully",
    )
    for attempt in range(1, settings.REGISTRATION_ID_ATTEMPTS + 1):
        registration = Registration(
            registrationId=generate_registration_id(),
            paymentScreenshot=screenshot,
            **data.model_dump(),
        )
        try:
            await db.registrations.insert_one(registration.to_document())
        except DuplicateKeyError as e:
            field = duplicate_field(e)
            if field == "registrationId":
                log.warning("registration.id_collision",
                            registration_id=registration.registrationId, attempt=attempt)
                continue
            if field == "phone":
                raise ApiError(400, PHONE_TAKEN)
            raise
        return registration.registrationId

    raise ApiError(500, "Could not allocate a unique registration ID")


@router.post("/register")
async def register(
    fullName: Optional[str] = Form(None),
    age: Optional[str] = Form(None),
    phone: Optional[str] = Form(None),
    email: Optional[str] = Form(None),
    category: Optional[str] = Form(None),
    songType: Optional[str] = Form(None),
    songTitle: Optional[str] = Form(None),
    paymentScreenshot: Optional[UploadFile] = File(None),
):
    if paymentScreenshot is None or not paymentScreenshot.filename:
        raise ApiError(400, "Payment screenshot is required")

    try:
        data = RegistrationCreateRequest(
            fullName=fullName,
            age=age,
            phone=phone,
            email=email,
            category=category,
            songType=songType,
            songTitle=songTitle,
        )
    except ValidationError as e:
        raise ApiError(400, validation_message(e.errors()))

    asset = await upload_payment_screenshot(paymentScreenshot)

    # a partir daqui o upload existe: qualquer falha remove o arquivo
    try:
        if await db.registrations.find_one({"phone": data.phone}, {"_id": 1}):
            raise ApiError(400, PHONE_TAKEN)
        registration_id = await insert_registration(data, asset)
    except ApiError as e:
        log.info("registration.rejected", phone=data.phone, reason=e.detail)
        await delete_asset(asset.key)
        raise
    except PyMongoError as e:
        log.error("registration.persist_failed", phone=data.phone, error=str(e))
        await delete_asset(asset.key)
        raise ApiError(500, str(e))
    except Exception as e:
        log.error("registration.persist_failed", phone=data.phone, error=str(e), exc_info=True)
        await delete_asset(asset.key)
        raise ApiError(500, str(e))

    log.info("registration.created", registration_id=registration_id, category=data.category)
    return ok(RegistrationCreated(registrationId=registration_id).model_dump())


@router.post("/check-transaction")
async def check_transaction(data: Optional[CheckTransactionRequest] = None):
    transaction_id = data.transactionId if data else None
    if not transaction_id:
        raise ApiError(400, "Transaction ID is required")

    existing = await db.registrations.find_one({"paymentScreenshot.transactionId": transaction_id})
    if existing:
        raise ApiError(400, TRANSACTION_TAKEN, data=conflict_data(existing))

    return ok(message="Transaction ID is available")


@router.get("/registration/{registration_id}")
async def get_registration(registration_id: str):
    doc = await db.registrations.find_one({"registrationId": registration_id})
    if not doc:
        raise ApiError(404, "Registration not found")
    return ok(serialize(doc))

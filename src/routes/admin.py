import csv
import io

import structlog
from fastapi import APIRouter, Path
from fastapi.responses import StreamingResponse
from pymongo import ReturnDocument
from pymongo.errors import DuplicateKeyError

from core.db import db, duplicate_field
from core.responses import ApiError, ok
from models.registration import serialize, utcnow
from routes.registrations import TRANSACTION_TAKEN, conflict_data
from schemas.registration import Stats, VerifyRequest


log = structlog.get_logger()
router = APIRouter(prefix="/api")

EXPORT_COLUMNS = [
    "registrationId", "fullName", "age", "phone", "email", "category", "songType",
    "songTitle", "status", "verified", "transactionId", "paymentUrl", "createdAt",
]


@router.get("/registrations")
async def list_registrations():
    cursor = db.registrations.find({}).sort("createdAt", -1)
    results = []
    async for doc in cursor:
        results.append(serialize(doc))
    return ok(results)


@router.get("/registrations/export", response_class=StreamingResponse)
async def export_registrations():
    cursor = db.registrations.find({}).sort("createdAt", -1)

    async def csv_generator():
        buf = io.StringIO()
        writer = csv.writer(buf)
        writer.writerow(EXPORT_COLUMNS)
        yield buf.getvalue()
        buf.seek(0); buf.truncate(0)

        async for doc in cursor:
            screenshot = doc.get("paymentScreenshot") or {}
            created = doc.get("createdAt")
            writer.writerow([
                doc.get("registrationId", ""),
                doc.get("fullName", ""),
                doc.get("age", ""),
                doc.get("phone", ""),
                doc.get("email") or "",
                doc.get("category", ""),
                doc.get("songType", ""),
                doc.get("songTitle", ""),
                doc.get("status", ""),
                str(screenshot.get("verified", False)),
                screenshot.get("transactionId") or "",
                screenshot.get("url", ""),
                created.isoformat() if created else "",
            ])
            yield buf.getvalue()
            buf.seek(0); buf.truncate(0)

    headers = {
        "Content-Disposition": 'attachment; filename="registrations.csv"',
        "Content-Type": "text/csv; charset=utf-8"
    }
    log.info("registrations.exported")
    return StreamingResponse(csv_generator(), headers=headers)


@router.get("/stats")
async def stats():
    total = await db.registrations.count_documents({})
    by_category = []
    async for row in db.registrations.aggregate([
        {"$group": {"_id": "$category", "count": {"$sum": 1}}},
        {"$project": {"category": "$_id", "count": 1, "_id": 0}},
    ]):
        by_category.append(row)

    return ok(Stats(totalRegistrations=total, byCategory=by_category).model_dump())


@router.patch("/registration/{registration_id}/verify")
async def verify_registration(
    data: VerifyRequest,
    registration_id: str = Path(..., title="Id da inscrição"),
):
    log.info("registration.verify_requested", registration_id=registration_id,
             verified=data.verified, status=data.status)

    reg = await db.registrations.find_one({"registrationId": registration_id})
    if not reg:
        log.info("registration.not_found", registration_id=registration_id)
        raise ApiError(404, "Registration not found")

    owner_filter = {
        "paymentScreenshot.transactionId": data.transactionId,
        "registrationId": {"$ne": registration_id},
    }

    update_fields = {}
    if data.verified and data.transactionId:
        existing = await db.registrations.find_one(owner_filter)
        if existing:
            raise ApiError(400, TRANSACTION_TAKEN, data=conflict_data(existing))
        update_fields["paymentScreenshot.transactionId"] = data.transactionId

    now = utcnow()
    update_fields.update({
        "paymentScreenshot.verified": data.verified,
        "paymentScreenshot.verifiedAt": now,
        "paymentScreenshot.verifiedBy": data.verifiedBy or "admin",
        "paymentScreenshot.validationNotes": data.validationNotes or "Payment processed",
        # rejected só por override explícito
        "status": data.status or ("approved" if data.verified else "pending"),
        "updatedAt": now,
    })

    try:
        doc = await db.registrations.find_one_and_update(
            {"registrationId": registration_id},
            {"$set": update_fields},
            return_document=ReturnDocument.AFTER,
        )
    except DuplicateKeyError as e:
        if duplicate_field(e) != "paymentScreenshot.transactionId":
            raise
        # outra verificação concorrente anexou o mesmo transactionId primeiro
        owner = await db.registrations.find_one(owner_filter)
        log.warning("registration.transaction_conflict", registration_id=registration_id,
                    transaction_id=data.transactionId)
        raise ApiError(400, TRANSACTION_TAKEN, data=conflict_data(owner) if owner else None)

    if not doc:
        raise ApiError(404, "Registration not found")

    log.info("registration.verified", registration_id=registration_id,
             status=doc.get("status"), verified_by=update_fields["paymentScreenshot.verifiedBy"])
    return ok(serialize(doc))

from pydantic import BaseModel, EmailStr, Field
from typing import Literal, Optional
from datetime import datetime, timezone

RegistrationStatus = Literal["pending", "approved", "rejected"]


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class PaymentScreenshot(BaseModel):
    url: str
    originalName: Optional[str] = None
    filename: str
    size: int
    type: str
    transactionId: Optional[str] = None
    verified: bool = False
    verifiedAt: Optional[datetime] = None
    verifiedBy: Optional[str] = None
    validationNotes: Optional[str] = None


class Registration(BaseModel):
    id: Optional[str] = Field(None, alias="_id")
    registrationId: str
    fullName: str
    age: int = Field(..., gt=0, le=150)
    phone: str
    email: Optional[EmailStr] = None
    category: str
    songType: str
    songTitle: str = ""
    paymentScreenshot: PaymentScreenshot
    status: RegistrationStatus = "pending"
    createdAt: datetime = Field(default_factory=utcnow)
    updatedAt: datetime = Field(default_factory=utcnow)

    def to_document(self) -> dict:
        # campos nulos ficam fora do documento: o índice de transactionId
        # só considera valores presentes
        return self.model_dump(exclude={"id"}, exclude_none=True)


def serialize(doc: dict) -> dict:
    """Documento do Mongo pronto para JSON, com `_id` como string."""
    out = dict(doc)
    if "_id" in out:
        out["_id"] = str(out["_id"])
    return out

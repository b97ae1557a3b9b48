from pydantic import BaseModel, EmailStr, Field, field_validator
from typing import List, Optional

from models.registration import RegistrationStatus


class RegistrationCreateRequest(BaseModel):
    fullName: str = Field(..., min_length=1)
    age: int = Field(..., gt=0, le=150)
    phone: str = Field(..., min_length=1)
    email: Optional[EmailStr] = None
    category: str = Field(..., min_length=1)
    songType: str = Field(..., min_length=1)
    songTitle: str = ""

    @field_validator("email", mode="before")
    @classmethod
    def blank_email_is_none(cls, value):
        if isinstance(value, str) and not value.strip():
            return None
        return value

    @field_validator("songTitle", mode="before")
    @classmethod
    def blank_title(cls, value):
        return value or ""


class RegistrationCreated(BaseModel):
    registrationId: str


class CheckTransactionRequest(BaseModel):
    transactionId: Optional[str] = None


class VerifyRequest(BaseModel):
    verified: bool = False
    verifiedBy: Optional[str] = None
    validationNotes: Optional[str] = None
    transactionId: Optional[str] = None
    status: Optional[RegistrationStatus] = None

    @field_validator("status", mode="before")
    @classmethod
    def blank_status_is_none(cls, value):
        if isinstance(value, str) and not value.strip():
            return None
        return value


class Conflict(BaseModel):
    fullName: str
    phone: str


class CategoryCount(BaseModel):
    category: Optional[str]
    count: int


class Stats(BaseModel):
    totalRegistrations: int
    byCategory: List[CategoryCount]

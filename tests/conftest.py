import copy
import os
import struct
import sys
import zlib
from io import BytesIO
from types import SimpleNamespace

import pytest

sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "src"))
# Set minimal environment variables required by the settings module before
# importing the application.
os.environ.setdefault("MONGODB_URI", "mongodb://localhost:27017")
os.environ.setdefault("MONGODB_DB", "swargandhav_test")
os.environ.setdefault("AWS_REGION", "us-east-1")
os.environ.setdefault("S3_BUCKET", "dummy-bucket")

from bson import ObjectId
from botocore.exceptions import ClientError
from fastapi.testclient import TestClient
from PIL import Image
from pymongo import ReturnDocument
from pymongo.errors import DuplicateKeyError

import main
import routes.admin as admin_module
import routes.registrations as registrations_module
import utils.assets as assets_module
from models.registration import PaymentScreenshot, Registration


def lookup(doc, dotted):
    value = doc
    for part in dotted.split("."):
        if not isinstance(value, dict):
            return None
        value = value.get(part)
    return value


def assign(doc, dotted, value):
    parts = dotted.split(".")
    target = doc
    for part in parts[:-1]:
        target = target.setdefault(part, {})
    target[parts[-1]] = value


class FakeCursor:
    def __init__(self, docs):
        self.docs = docs

    def sort(self, key, direction=1):
        self.docs.sort(key=lambda d: lookup(d, key), reverse=direction == -1)
        return self

    async def _iterate(self):
        for doc in self.docs:
            yield doc

    def __aiter__(self):
        return self._iterate()


class FakeCollection:
    """In-memory collection honouring the unique indexes created by core.db."""

    unique_fields = ("registrationId", "phone", "paymentScreenshot.filename")

    def __init__(self):
        self.docs = []
        self.indexes = []

    @staticmethod
    def _matches(doc, filters):
        for key, expected in filters.items():
            value = lookup(doc, key)
            if isinstance(expected, dict) and "$ne" in expected:
                if value == expected["$ne"]:
                    return False
            elif value != expected:
                return False
        return True

    def _check_unique(self, candidate, ignore=None):
        checks = [(f, lookup(candidate, f)) for f in self.unique_fields]
        tx = lookup(candidate, "paymentScreenshot.transactionId")
        if isinstance(tx, str):
            checks.append(("paymentScreenshot.transactionId", tx))
        for field, value in checks:
            if value is None:
                continue
            for other in self.docs:
                if other is not ignore and lookup(other, field) == value:
                    raise DuplicateKeyError(
                        f"E11000 duplicate key error collection: test.registrations index: {field}_1 dup key",
                        11000,
                        {"keyPattern": {field: 1}, "keyValue": {field: value}},
                    )

    async def create_index(self, keys, **kwargs):
        self.indexes.append((keys, kwargs))

    async def find_one(self, filters, projection=None):
        for doc in self.docs:
            if self._matches(doc, filters):
                return copy.deepcopy(doc)
        return None

    async def insert_one(self, doc):
        self._check_unique(doc)
        doc["_id"] = ObjectId()
        self.docs.append(copy.deepcopy(doc))
        return SimpleNamespace(inserted_id=doc["_id"])

    def find(self, filters):
        return FakeCursor([copy.deepcopy(d) for d in self.docs if self._matches(d, filters)])

    async def count_documents(self, filters):
        return sum(1 for d in self.docs if self._matches(d, filters))

    def aggregate(self, pipeline):
        field = pipeline[0]["$group"]["_id"].lstrip("$")
        counts = {}
        for doc in self.docs:
            key = lookup(doc, field)
            counts[key] = counts.get(key, 0) + 1
        return FakeCursor([{"category": k, "count": v} for k, v in counts.items()])

    async def find_one_and_update(self, filters, update, return_document=ReturnDocument.BEFORE):
        for index, doc in enumerate(self.docs):
            if not self._matches(doc, filters):
                continue
            updated = copy.deepcopy(doc)
            for key, value in update.get("$set", {}).items():
                assign(updated, key, value)
            self._check_unique(updated, ignore=doc)
            self.docs[index] = updated
            return copy.deepcopy(updated if return_document == ReturnDocument.AFTER else doc)
        return None


class FakeDB:
    def __init__(self):
        self.registrations = FakeCollection()


class FakeS3:
    def __init__(self):
        self.objects = {}
        self.deleted = []
        self.fail_delete = False

    def upload_fileobj(self, fileobj, bucket, key, ExtraArgs=None):
        self.objects[key] = {"body": fileobj.read(), "bucket": bucket, "extra": ExtraArgs}

    def delete_object(self, Bucket, Key):
        if self.fail_delete:
            raise ClientError({"Error": {"Code": "500", "Message": "boom"}}, "DeleteObject")
        self.deleted.append(Key)
        self.objects.pop(Key, None)


@pytest.fixture
def fake_db(monkeypatch):
    fake = FakeDB()
    monkeypatch.setattr(registrations_module, "db", fake)
    monkeypatch.setattr(admin_module, "db", fake)
    return fake


@pytest.fixture
def fake_s3(monkeypatch):
    fake = FakeS3()
    monkeypatch.setattr(assets_module, "s3_client", fake)
    return fake


@pytest.fixture
def client(fake_db, fake_s3):
    return TestClient(main.app)


def image_bytes(size=(40, 30), fmt="PNG", color="red"):
    buf = BytesIO()
    Image.new("RGB", size, color=color).save(buf, format=fmt)
    return buf.getvalue()


def registration_form(**overrides):
    form = {
        "fullName": "Asha Patil",
        "age": "24",
        "phone": "9876543210",
        "email": "asha@example.com",
        "category": "महिला वर्ग",
        "songType": "भावगीत",
        "songTitle": "शुक्रतारा",
    }
    form.update(overrides)
    return form


def screenshot_file(name="payment.png", content=None, content_type="image/png"):
    return {"paymentScreenshot": (name, content if content is not None else image_bytes(), content_type)}


def seed(collection, registration_id, phone, category="बाल वर्ग", created_at=None, transaction_id=None):
    """Insert a registration straight into the fake collection."""
    extra = {"createdAt": created_at, "updatedAt": created_at} if created_at else {}
    registration = Registration(
        registrationId=registration_id,
        fullName=f"Participant {registration_id}",
        age=12,
        phone=phone,
        category=category,
        songType="अभंग",
        paymentScreenshot=PaymentScreenshot(
            url=f"https://assets.example.com/{registration_id}.png",
            originalName="pay.png",
            filename=f"swargandhav_payments/{registration_id}.png",
            size=100,
            type="image/png",
            transactionId=transaction_id,
        ),
        **extra,
    )
    doc = registration.to_document()
    doc["_id"] = ObjectId()
    collection.docs.append(doc)
    return doc


def header_only_png(width, height):
    """PNG with an IHDR declaring width x height, no pixel data, then IEND."""
    def chunk(kind, data=b""):
        return struct.pack(">I", len(data)) + kind + data + struct.pack(">I", zlib.crc32(kind + data))

    ihdr = struct.pack(">IIBBBBB", width, height, 8, 2, 0, 0, 0)
    return b"\x89PNG\r\n\x1a\n" + chunk(b"IHDR", ihdr) + chunk(b"IEND")

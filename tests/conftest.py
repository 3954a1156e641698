"""
Shared pytest fixtures for BookVerse tests.

Services run against mongomock-motor, an in-memory async MongoDB, so the
conditional updates, `$inc` counters and the unique session index behave
as they do against a real server.
"""

from datetime import datetime, timedelta, timezone

import jwt
import pytest
from bson import ObjectId
from mongomock_motor import AsyncMongoMockClient

from config import Settings, settings
from dataBase import ensure_indexes
from services import (
    BroadcastHub,
    ChatService,
    EmailSender,
    KpiCounters,
    NotificationEmitter,
    TransactionService,
    UserDirectory,
)

OWNER_ID = "64a000000000000000000001"
BORROWER_ID = "64a000000000000000000002"
OTHER_ID = "64a000000000000000000003"


def create_access_token(data, expires_delta=timedelta(days=7)):
    """Issue a token the way the identity service does; the API only verifies them."""
    to_encode = dict(data)
    now = datetime.now(timezone.utc)
    to_encode.update({"exp": now + expires_delta, "iat": now})
    return jwt.encode(to_encode, settings.secret_key, algorithm=settings.jwt_algorithm)


class FakeConnection:
    """Stands in for a WebSocket: records every frame sent to it."""

    def __init__(self, fail=False):
        self.sent = []
        self.fail = fail

    async def send_json(self, data):
        if self.fail:
            raise RuntimeError("connection closed")
        self.sent.append(data)

    def events(self, name):
        return [frame["data"] for frame in self.sent if frame["event"] == name]


class RecordingEmailSender:
    def __init__(self):
        self.sent = []

    async def send(self, kind, user, payload):
        self.sent.append((kind, user.id if user else None, payload))
        return True


@pytest.fixture
async def db():
    client = AsyncMongoMockClient()
    database = client["bookverse_test"]
    await ensure_indexes(database)
    await database.users.insert_many([
        {"_id": ObjectId(OWNER_ID), "name": "Asha Owner", "communityUnit": "A-101", "email": "asha@example.com"},
        {"_id": ObjectId(BORROWER_ID), "name": "Ben Borrower", "communityUnit": "B-202", "email": "ben@example.com"},
        {"_id": ObjectId(OTHER_ID), "name": "Cara Other", "communityUnit": "C-303", "email": "cara@example.com"},
    ])
    return database


@pytest.fixture
def email_sender():
    return RecordingEmailSender()


@pytest.fixture
def transactions(db, email_sender):
    return TransactionService(
        db,
        notifier=NotificationEmitter(db),
        counters=KpiCounters(db),
        users=UserDirectory(db),
        email_sender=email_sender,
    )


@pytest.fixture
def hub():
    return BroadcastHub()


@pytest.fixture
def chat(db, hub):
    return ChatService(db, hub, UserDirectory(db))


@pytest.fixture
def quiet_email():
    return EmailSender(Settings(smtp_host=None))


@pytest.fixture
def make_book(db):
    async def _make(owner_id=OWNER_ID, **fields):
        doc = {
            "ownerId": owner_id,
            "title": "Dune",
            "author": "Frank Herbert",
            "genre": "Science Fiction",
            "language": "English",
            "borrowRequestStatus": "none",
            "isAvailable": True,
            "isGiveaway": False,
            "isPausedByOwner": False,
            "isDeactivatedByAdmin": False,
        }
        doc.update(fields)
        result = await db.books.insert_one(doc)
        return str(result.inserted_id)

    return _make

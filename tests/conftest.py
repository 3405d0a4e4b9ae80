import os

os.environ.setdefault("MONGODB_URI", "mongodb://localhost:27017/commission_test")
os.environ.setdefault("JWT_SECRET", "test-secret")

from contextlib import asynccontextmanager
from datetime import datetime

import pytest
from bson import ObjectId
from mongomock_motor import AsyncMongoMockClient

from models.user import UserRole, new_user_doc
import utils.commission_engine
import utils.marketers
import utils.promotions
import utils.withdrawals


@asynccontextmanager
async def _no_transaction(db):
    # mongomock has no session support
    yield None


@pytest.fixture(autouse=True)
def no_transactions(monkeypatch):
    for module in (
        utils.commission_engine,
        utils.marketers,
        utils.promotions,
        utils.withdrawals,
    ):
        monkeypatch.setattr(module, "transaction", _no_transaction)


@pytest.fixture
def db():
    return AsyncMongoMockClient()["commission_test"]


# ---------------------------------------------------------------------------
# Seed helpers
# ---------------------------------------------------------------------------


@pytest.fixture
def make_user(db):
    async def _make(name="user", role=UserRole.CUSTOMER.value, referrer=None, referred_at=None, **balance):
        doc = new_user_doc(
            name,
            role=role,
            referrer_id=referrer["_id"] if referrer else None,
            referred_at=referred_at,
        )
        doc["commission_balance"].update(balance)
        result = await db.users.insert_one(doc)
        doc["_id"] = result.inserted_id
        return doc

    return _make


@pytest.fixture
def make_order(db):
    async def _make(buyer, total_amount=1000.0, **fields):
        now = datetime.utcnow()
        doc = {
            "buyer_id": buyer["_id"],
            "product_id": ObjectId(),
            "total_amount": total_amount,
            "status": "pending",
            "commission_processed": False,
            "commission_released": False,
            "created_at": now,
            "updated_at": now,
        }
        doc.update(fields)
        result = await db.orders.insert_one(doc)
        doc["_id"] = result.inserted_id
        return doc

    return _make


@pytest.fixture
def balance(db):
    async def _balance(user):
        fresh = await db.users.find_one({"_id": user["_id"]})
        return fresh["commission_balance"]

    return _balance

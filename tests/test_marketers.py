"""Tests for marketer assignment and the delivery commission flow."""
from datetime import datetime, timedelta

import pytest

from models.user import UserRole
from utils.commission_engine import process_sale_commission
from utils.commission_settings import set_user_rate
from utils.errors import Conflict, NotFound
from utils.marketers import assign_order, confirm_delivery, mark_delivered, reassign_expired_orders
from utils.withdrawals import check_eligibility

NOW = datetime(2024, 6, 10, 9, 0)


@pytest.fixture
def make_marketer(db, make_user):
    async def _make(name, assigned=0):
        marketer = await make_user(name, role=UserRole.MARKETER.value)
        await db.users.update_one({"_id": marketer["_id"]}, {"$set": {"assigned_orders_count": assigned}})
        return marketer

    return _make


async def _count(db, user, field="assigned_orders_count"):
    return (await db.users.find_one({"_id": user["_id"]}))[field]


class TestAssignOrder:
    async def test_picks_least_busy(self, db, make_user, make_order, make_marketer):
        await make_marketer("busy", assigned=3)
        idle = await make_marketer("idle", assigned=1)
        order = await make_order(await make_user("buyer"))

        assigned = await assign_order(db, order["_id"], now=NOW)

        assert assigned["marketer_id"] == idle["_id"]
        assert assigned["status"] == "assigned"
        assert assigned["assignment_expires_at"] == NOW + timedelta(days=7)
        assert len(assigned["previous_marketers"]) == 1
        assert await _count(db, idle) == 2

    async def test_already_assigned(self, db, make_user, make_order, make_marketer):
        await make_marketer("m")
        order = await make_order(await make_user("buyer"))
        await assign_order(db, order["_id"], now=NOW)

        with pytest.raises(Conflict):
            await assign_order(db, order["_id"], now=NOW)

    async def test_no_marketers(self, db, make_user, make_order):
        order = await make_order(await make_user("buyer"))
        with pytest.raises(NotFound):
            await assign_order(db, order["_id"], now=NOW)


class TestDeliveryFlow:
    async def test_only_assigned_marketer_marks_delivered(self, db, make_user, make_order, make_marketer):
        await make_marketer("m")
        order = await make_order(await make_user("buyer"))
        await assign_order(db, order["_id"], now=NOW)
        other = await make_marketer("other")

        with pytest.raises(Conflict):
            await mark_delivered(db, order["_id"], other["_id"], "photo.jpg", now=NOW)

    async def test_confirm_pays_marketer_and_matures_referrals(
        self, db, make_user, make_order, make_marketer, balance
    ):
        marketer = await make_marketer("m")
        direct = await make_user("direct")
        buyer = await make_user("buyer", referrer=direct, referred_at=NOW - timedelta(days=20))
        order = await make_order(buyer, total_amount=1000.0)

        await process_sale_commission(
            db,
            {"order_id": order["_id"], "buyer_id": buyer["_id"], "amount": 1000.0},
            now=NOW,
        )
        await assign_order(db, order["_id"], now=NOW)
        await mark_delivered(db, order["_id"], marketer["_id"], "photo.jpg", now=NOW)

        result = await confirm_delivery(db, order["_id"], buyer["_id"], now=NOW + timedelta(days=1))

        assert result["marketer_commission"] == 100.0
        m = await balance(marketer)
        assert m["available"] == 100.0
        assert m["lifetime"] == 100.0
        assert m["pending"] == 0

        d = await balance(direct)
        assert d["pending"] == 0
        assert d["available"] == 50.0

        stored = await db.orders.find_one({"_id": order["_id"]})
        assert stored["status"] == "completed"
        assert stored["commission_released"] is True
        assert await _count(db, marketer) == 0
        assert await _count(db, marketer, "completed_orders_count") == 1
        assert await db.commission_transactions.count_documents({"status": "pending"}) == 0

    async def test_confirm_twice(self, db, make_user, make_order, make_marketer):
        marketer = await make_marketer("m")
        buyer = await make_user("buyer")
        order = await make_order(buyer)
        await assign_order(db, order["_id"], now=NOW)
        await mark_delivered(db, order["_id"], marketer["_id"], "photo.jpg", now=NOW)
        await confirm_delivery(db, order["_id"], buyer["_id"], now=NOW)

        with pytest.raises(NotFound):
            await confirm_delivery(db, order["_id"], buyer["_id"], now=NOW)

    async def test_sale_posted_after_confirmation_matures_immediately(
        self, db, make_user, make_order, make_marketer, balance
    ):
        marketer = await make_marketer("m")
        direct = await make_user("direct")
        buyer = await make_user("buyer", referrer=direct, referred_at=NOW - timedelta(days=20))
        order = await make_order(buyer, total_amount=1000.0)
        await assign_order(db, order["_id"], now=NOW)
        await mark_delivered(db, order["_id"], marketer["_id"], "photo.jpg", now=NOW)
        await confirm_delivery(db, order["_id"], buyer["_id"], now=NOW)

        result = await process_sale_commission(
            db,
            {"order_id": order["_id"], "buyer_id": buyer["_id"], "amount": 1000.0},
            now=NOW,
        )

        assert {t["status"] for t in result["transactions"]} == {"completed"}
        d = await balance(direct)
        assert d["pending"] == 0
        assert d["available"] == 50.0
        eligibility = await check_eligibility(db, order["_id"], direct["_id"], now=NOW)
        assert eligibility["eligible"] is True
        assert eligibility["amount"] == 50.0

    async def test_marketer_rate_override_applies(self, db, make_user, make_order, make_marketer, balance):
        marketer = await make_marketer("m")
        await set_user_rate(db, marketer["_id"], 15)
        buyer = await make_user("buyer")
        order = await make_order(buyer, total_amount=200.0)
        await assign_order(db, order["_id"], now=NOW)
        await mark_delivered(db, order["_id"], marketer["_id"], "photo.jpg", now=NOW)

        result = await confirm_delivery(db, order["_id"], buyer["_id"], now=NOW)

        assert result["marketer_commission"] == 30.0
        assert (await balance(marketer))["available"] == 30.0

    async def test_snapshotted_order_rate_beats_override(self, db, make_user, make_order, make_marketer):
        marketer = await make_marketer("m")
        await set_user_rate(db, marketer["_id"], 15)
        buyer = await make_user("buyer")
        order = await make_order(buyer, total_amount=200.0, commission_rate=20.0)
        await assign_order(db, order["_id"], now=NOW)
        await mark_delivered(db, order["_id"], marketer["_id"], "photo.jpg", now=NOW)

        result = await confirm_delivery(db, order["_id"], buyer["_id"], now=NOW)

        assert result["marketer_commission"] == 40.0

    async def test_assigned_counter_never_goes_negative(self, db, make_user, make_order, make_marketer):
        marketer = await make_marketer("m")
        buyer = await make_user("buyer")
        order = await make_order(buyer)
        await assign_order(db, order["_id"], now=NOW)
        await mark_delivered(db, order["_id"], marketer["_id"], "photo.jpg", now=NOW)
        await db.users.update_one({"_id": marketer["_id"]}, {"$set": {"assigned_orders_count": 0}})

        await confirm_delivery(db, order["_id"], buyer["_id"], now=NOW)

        assert await _count(db, marketer) == 0
        assert await _count(db, marketer, "completed_orders_count") == 1


class TestReassignment:
    async def test_expired_assignment_moves_to_other_marketer(self, db, make_user, make_order, make_marketer):
        first = await make_marketer("first")
        order = await make_order(await make_user("buyer"))
        await assign_order(db, order["_id"], now=NOW)
        second = await make_marketer("second", assigned=5)

        result = await reassign_expired_orders(db, now=NOW + timedelta(days=8))

        assert result == {"reassigned": 1, "failed": 0, "total": 1}
        stored = await db.orders.find_one({"_id": order["_id"]})
        assert stored["marketer_id"] == second["_id"]
        assert await _count(db, first) == 0
        assert await _count(db, second) == 6

    async def test_fresh_assignment_is_kept(self, db, make_user, make_order, make_marketer):
        await make_marketer("m")
        order = await make_order(await make_user("buyer"))
        await assign_order(db, order["_id"], now=NOW)

        result = await reassign_expired_orders(db, now=NOW + timedelta(days=2))

        assert result["total"] == 0

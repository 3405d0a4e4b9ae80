"""Tests for the seasonal promotion registry."""
from datetime import datetime

import pytest

from utils.errors import Conflict, NotFound, ValidationError
from utils.promotions import (
    apply_seasonal_promo,
    delete_promotion,
    get_active_promotion,
    list_promotions,
    upsert_promotion,
)

NOW = datetime(2024, 12, 10)


async def _promo(db, name="Holiday", start=(2024, 12, 1), end=(2024, 12, 31), rate=8.0, **kwargs):
    return await upsert_promotion(
        db,
        name=name,
        start_date=datetime(*start),
        end_date=datetime(*end),
        commission_rate=rate,
        now=NOW,
        **kwargs,
    )


class TestUpsertPromotion:
    async def test_insert(self, db):
        promo = await _promo(db)
        assert promo["name"] == "Holiday"
        assert await db.seasonal_promotions.count_documents({}) == 1
        assert await db.audit_logs.count_documents({"action": "SEASONAL_PROMOTION_UPSERTED"}) == 1

    async def test_overlap_with_other_name_conflicts(self, db):
        await _promo(db)
        with pytest.raises(Conflict):
            await _promo(db, name="NewYear", start=(2024, 12, 31), end=(2025, 1, 5))
        assert await db.seasonal_promotions.count_documents({}) == 1

    async def test_adjacent_ranges_do_not_overlap(self, db):
        await _promo(db)
        await _promo(db, name="NewYear", start=(2025, 1, 1), end=(2025, 1, 5))
        assert await db.seasonal_promotions.count_documents({}) == 2

    async def test_same_name_replaces(self, db):
        first = await _promo(db)
        second = await _promo(db, rate=12.0, end=(2025, 1, 2))

        assert await db.seasonal_promotions.count_documents({}) == 1
        assert second["commission_rate"] == 12.0
        assert second["created_at"] == first["created_at"]

    async def test_start_must_precede_end(self, db):
        with pytest.raises(ValidationError):
            await _promo(db, start=(2024, 12, 31), end=(2024, 12, 1))

    async def test_rate_out_of_range(self, db):
        with pytest.raises(ValidationError):
            await _promo(db, rate=150)


class TestPromotionReads:
    async def test_active_lookup(self, db):
        await _promo(db)
        active = await get_active_promotion(db, NOW)
        assert active["name"] == "Holiday"
        assert await get_active_promotion(db, datetime(2025, 2, 1)) is None

    async def test_inactive_promotion_is_ignored(self, db):
        await _promo(db, is_active=False)
        assert await get_active_promotion(db, NOW) is None

    async def test_list_sorted_by_start(self, db):
        await _promo(db, name="NewYear", start=(2025, 1, 1), end=(2025, 1, 5))
        await _promo(db)
        names = [p["name"] for p in await list_promotions(db)]
        assert names == ["Holiday", "NewYear"]

    async def test_delete(self, db):
        await _promo(db)
        await delete_promotion(db, "Holiday")
        assert await db.seasonal_promotions.count_documents({}) == 0

    async def test_delete_missing(self, db):
        with pytest.raises(NotFound):
            await delete_promotion(db, "Ghost")


class TestApplySeasonalPromo:
    async def test_raises_order_rate(self, db, make_user, make_order):
        await _promo(db, rate=15.0)
        buyer = await make_user("buyer")
        order = await make_order(buyer, commission_rate=10.0)

        updated = await apply_seasonal_promo(db, order["_id"], now=NOW)

        assert updated["is_seasonal_promo"] is True
        assert updated["commission_rate"] == 15.0

    async def test_no_active_promotion(self, db, make_user, make_order):
        buyer = await make_user("buyer")
        order = await make_order(buyer, commission_rate=10.0)
        assert await apply_seasonal_promo(db, order["_id"], now=NOW) is None

"""Tests for tiered rate lookup and money rounding."""
from utils.commission_rates import calculate_commission, get_rates, percent_of, round_money


class TestGetRates:
    def test_base_tier(self):
        assert get_rates(0) == {"direct_rate": 12, "indirect_rate": 6}

    def test_lower_bound_is_inclusive(self):
        assert get_rates(10000) == {"direct_rate": 10, "indirect_rate": 5}
        assert get_rates(9999.99)["direct_rate"] == 12

    def test_highest_tier(self):
        assert get_rates(75000) == {"direct_rate": 8, "indirect_rate": 4}

    def test_unordered_custom_tiers(self):
        tiers = [
            {"min_amount": 500, "direct_rate": 20},
            {"min_amount": 100, "direct_rate": 30, "indirect_rate": 10},
        ]
        assert get_rates(600, tiers) == {"direct_rate": 20, "indirect_rate": 10.0}
        assert get_rates(150, tiers) == {"direct_rate": 30, "indirect_rate": 10}

    def test_no_matching_tier_falls_back_to_default(self):
        tiers = [{"min_amount": 1000, "direct_rate": 20, "indirect_rate": 8}]
        assert get_rates(10, tiers) == {"direct_rate": 12, "indirect_rate": 6.0}


class TestCalculateCommission:
    def test_direct(self):
        result = calculate_commission(1000, volume=0, is_direct=True)
        assert result["amount"] == 120.0
        assert result["rate"] == 12

    def test_indirect(self):
        result = calculate_commission(1000, volume=60000, is_direct=False)
        assert result["amount"] == 40.0
        assert result["rate"] == 4


class TestRounding:
    def test_half_up(self):
        assert round_money(0.125) == 0.13
        assert round_money(2.675) == 2.68

    def test_percent_of(self):
        assert percent_of(1000, 5) == 50.0
        assert percent_of(19.99, 5) == 1.0

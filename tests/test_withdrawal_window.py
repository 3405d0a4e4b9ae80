"""Tests for the end-of-month withdrawal window."""
from datetime import datetime

from utils.withdrawal_window import compute_window, is_window_open


class TestComputeWindow:
    def test_thirty_day_month(self):
        window = compute_window(datetime(2024, 6, 15))
        assert window["available_from"] == datetime(2024, 6, 26)
        assert window["available_until"].date() == datetime(2024, 6, 30).date()
        assert window["is_active"] is False

    def test_thirty_one_day_month(self):
        window = compute_window(datetime(2024, 7, 31, 23, 59))
        assert window["available_from"] == datetime(2024, 7, 27)
        assert window["is_active"] is True

    def test_february(self):
        assert compute_window(datetime(2023, 2, 10))["available_from"] == datetime(2023, 2, 24)
        assert compute_window(datetime(2024, 2, 10))["available_from"] == datetime(2024, 2, 25)


class TestIsWindowOpen:
    def test_day_fifteen_closed(self):
        assert not is_window_open(datetime(2024, 6, 15))

    def test_first_day_opens_at_midnight(self):
        assert is_window_open(datetime(2024, 6, 26, 0, 0))
        assert not is_window_open(datetime(2024, 6, 25, 23, 59, 59))

    def test_day_twenty_seven_open(self):
        assert is_window_open(datetime(2024, 6, 27, 10, 0))

"""Tests for the injected clocks."""

from datetime import date, datetime, timedelta, timezone

from membership_kernel.domain.clock import DeterministicClock, SystemClock


class TestDeterministicClock:

    def test_default_time_is_fixed(self):
        clock = DeterministicClock()
        assert clock.now() == clock.now() == DeterministicClock.DEFAULT_TIME
        assert clock.today() == date(2025, 1, 1)

    def test_set_today_moves_to_noon(self):
        clock = DeterministicClock(datetime(2025, 6, 1, 8, 30, tzinfo=timezone.utc))
        clock.set_today(date(2026, 2, 28))
        assert clock.now() == datetime(2026, 2, 28, 12, 0, tzinfo=timezone.utc)

    def test_advance_days(self):
        clock = DeterministicClock(datetime(2025, 12, 31, 12, 0, tzinfo=timezone.utc))
        clock.advance_days(1)
        assert clock.today() == date(2026, 1, 1)


class TestSystemClock:

    def test_now_is_aware(self):
        assert SystemClock().now().tzinfo is not None

    def test_today_uses_business_timezone(self):
        ahead = timezone(timedelta(hours=14))
        clock = SystemClock(ahead)
        assert clock.now().utcoffset() == timedelta(hours=14)
        assert clock.today() == clock.now().date()

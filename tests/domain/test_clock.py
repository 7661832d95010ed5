from datetime import date, datetime, timezone

from reagent_ledger.domain.clock import DeterministicClock, SystemClock


class TestDeterministicClock:
    def test_fixed_until_advanced(self):
        clock = DeterministicClock(datetime(2026, 3, 2, 9, 0, tzinfo=timezone.utc))
        assert clock.now() == clock.now()
        assert clock.today() == date(2026, 3, 2)

    def test_advance_and_tick(self):
        start = datetime(2026, 3, 2, 23, 59, 59, tzinfo=timezone.utc)
        clock = DeterministicClock(start)
        assert clock.tick() == datetime(2026, 3, 3, 0, 0, 0, tzinfo=timezone.utc)
        clock.advance_days(2)
        assert clock.today() == date(2026, 3, 5)

    def test_set_time_resets_offset(self):
        clock = DeterministicClock()
        clock.advance(100)
        target = datetime(2030, 1, 1, tzinfo=timezone.utc)
        clock.set_time(target)
        assert clock.now() == target


class TestSystemClock:
    def test_timezone_aware(self):
        assert SystemClock().now().tzinfo is not None

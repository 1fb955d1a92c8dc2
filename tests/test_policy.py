import sys
import unittest
from datetime import datetime, timedelta, timezone
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parents[1] / "src"))

from time_archive.clock import FixedClock  # noqa: E402
from time_archive.constants import (  # noqa: E402
    UNIT_DAY,
    UNIT_HOUR,
    UNIT_MINUTE,
    UNIT_MONTH,
    UNIT_WEEK,
    UNIT_YEAR,
)
from time_archive.models import ArchiveRule  # noqa: E402
from time_archive.policy import compute_cutoff, rule_cutoff, subtract_months  # noqa: E402


def _at(*args: int) -> datetime:
    return datetime(*args, tzinfo=timezone.utc)


class PolicyTests(unittest.TestCase):
    def test_thirty_days(self) -> None:
        clock = FixedClock(_at(2025, 3, 15, 12, 0))
        self.assertEqual(compute_cutoff(clock, UNIT_DAY, 30), _at(2025, 2, 13, 12, 0))

    def test_minutes_hours_weeks(self) -> None:
        now = _at(2025, 3, 15, 12, 0)
        clock = FixedClock(now)
        self.assertEqual(compute_cutoff(clock, UNIT_MINUTE, 5), now - timedelta(minutes=5))
        self.assertEqual(compute_cutoff(clock, UNIT_HOUR, 3), now - timedelta(hours=3))
        self.assertEqual(compute_cutoff(clock, UNIT_WEEK, 2), _at(2025, 3, 1, 12, 0))

    def test_month_clamps_to_end_of_february(self) -> None:
        self.assertEqual(compute_cutoff(FixedClock(_at(2025, 3, 31)), UNIT_MONTH, 1), _at(2025, 2, 28))
        self.assertEqual(compute_cutoff(FixedClock(_at(2024, 3, 31)), UNIT_MONTH, 1), _at(2024, 2, 29))

    def test_months_cross_year_boundary(self) -> None:
        self.assertEqual(subtract_months(_at(2025, 2, 10, 8, 30), 14), _at(2023, 12, 10, 8, 30))

    def test_year_from_leap_day(self) -> None:
        self.assertEqual(compute_cutoff(FixedClock(_at(2024, 2, 29)), UNIT_YEAR, 1), _at(2023, 2, 28))
        self.assertEqual(compute_cutoff(FixedClock(_at(2025, 6, 1)), UNIT_YEAR, 2), _at(2023, 6, 1))

    def test_unknown_unit_falls_back_to_days(self) -> None:
        clock = FixedClock(_at(2025, 3, 15))
        self.assertEqual(compute_cutoff(clock, 42, 3), _at(2025, 3, 12))

    def test_rule_cutoff_uses_rule_fields(self) -> None:
        rule = ArchiveRule(id=1, tag_id=None, time_unit=UNIT_WEEK, time_amount=1)
        self.assertEqual(rule_cutoff(rule, FixedClock(_at(2025, 3, 15))), _at(2025, 3, 8))


if __name__ == "__main__":
    unittest.main()

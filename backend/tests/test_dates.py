from __future__ import annotations

import sys
import unittest
from datetime import datetime
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

from daycount.utils.dates import (
    date_key,
    iso_instant,
    next_local_midnight,
    seconds_until_next_midnight,
    validate_date_key,
)
from daycount.utils.errors import InvalidDateKey


class DateKeyTests(unittest.TestCase):
    def test_date_key_is_zero_padded(self):
        self.assertEqual(date_key(datetime(2026, 3, 7, 9, 5)), "2026-03-07")
        self.assertEqual(date_key(datetime(987, 1, 2)), "0987-01-02")

    def test_lexicographic_order_is_chronological(self):
        days = [datetime(2025, 12, 31), datetime(2026, 1, 9), datetime(2026, 1, 10), datetime(2026, 10, 1)]
        keys = [date_key(d) for d in days]
        self.assertEqual(keys, sorted(keys))

    def test_validate_date_key(self):
        self.assertEqual(validate_date_key("2026-10-19"), "2026-10-19")
        for bad in ("2026-1-9", "20261019", "2026-13-01", "2026-02-30", "", "today"):
            with self.assertRaises(InvalidDateKey):
                validate_date_key(bad)

    def test_iso_instant_has_millisecond_precision(self):
        value = iso_instant(datetime(2026, 10, 19, 14, 5, 6, 789000))
        self.assertTrue(value.endswith("+00:00"))
        self.assertIn(".", value)


class MidnightDelayTests(unittest.TestCase):
    def test_next_local_midnight(self):
        self.assertEqual(
            next_local_midnight(datetime(2026, 12, 31, 18, 30)),
            datetime(2027, 1, 1),
        )

    def test_seconds_until_next_midnight(self):
        self.assertEqual(seconds_until_next_midnight(datetime(2026, 10, 19, 23, 59, 30)), 30.0)
        self.assertEqual(seconds_until_next_midnight(datetime(2026, 10, 19, 0, 0)), 86400.0)
        self.assertEqual(
            seconds_until_next_midnight(datetime(2026, 10, 19, 23, 59, 59, 500000)),
            0.5,
        )

    def test_delay_is_never_negative(self):
        self.assertGreaterEqual(seconds_until_next_midnight(datetime(2026, 10, 19, 23, 59, 59, 999999)), 0.0)


if __name__ == "__main__":
    unittest.main()

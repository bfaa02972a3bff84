import unittest
from datetime import datetime, timedelta, timezone

from npmquality.batch.policy import UpdatePolicy
from npmquality.dates import add_years, months_between
from npmquality.models.schemas import Estimation

from fakes import NOW


def stored(created: datetime, times_updated: int, next_update: datetime | None = None) -> Estimation:
    return Estimation(
        name="pkg",
        created=created,
        last_updated=created,
        next_update=next_update or created,
        times_updated=times_updated,
        quality=0.5,
    )


def fresh() -> Estimation:
    return Estimation(name="pkg", created=NOW, last_updated=NOW, next_update=NOW, quality=0.7)


class UpdatePolicyTests(unittest.TestCase):
    def setUp(self) -> None:
        self.policy = UpdatePolicy()

    def test_new_package_is_due(self) -> None:
        self.assertTrue(self.policy.is_due(None, NOW))

    def test_due_once_next_update_passed(self) -> None:
        self.assertFalse(self.policy.is_due(stored(NOW, 0, NOW + timedelta(seconds=1)), NOW))
        self.assertTrue(self.policy.is_due(stored(NOW, 0, NOW - timedelta(seconds=1)), NOW))

    def test_first_estimation_is_kept_as_is(self) -> None:
        result = self.policy.apply(None, fresh(), NOW)
        self.assertEqual(result.times_updated, 0)
        self.assertEqual(result.next_update, NOW)

    def test_recent_package_is_checked_again_soon(self) -> None:
        created = NOW - timedelta(days=60)
        result = self.policy.apply(stored(created, 2), fresh(), NOW)
        self.assertEqual(result.created, created)
        self.assertEqual(result.times_updated, 3)
        self.assertEqual(result.last_updated, NOW)
        self.assertEqual(result.next_update, NOW)
        self.assertEqual(result.quality, 0.7)

    def test_stable_package_backs_off_a_year(self) -> None:
        created = add_years(NOW, -1) - timedelta(days=20)
        result = self.policy.apply(stored(created, 10), fresh(), NOW)
        self.assertEqual(result.times_updated, 11)
        self.assertEqual(result.next_update, add_years(NOW, 1))

    def test_frequently_updated_package_does_not_back_off(self) -> None:
        created = add_years(NOW, -1) - timedelta(days=20)
        result = self.policy.apply(stored(created, 40), fresh(), NOW)
        self.assertEqual(result.next_update, NOW)


class DatesTests(unittest.TestCase):
    def test_months_between(self) -> None:
        start = datetime(2023, 1, 31, tzinfo=timezone.utc)
        self.assertEqual(months_between(start, datetime(2023, 2, 28, tzinfo=timezone.utc)), 0)
        self.assertEqual(months_between(start, datetime(2023, 3, 31, tzinfo=timezone.utc)), 2)
        self.assertEqual(months_between(start, datetime(2024, 1, 31, tzinfo=timezone.utc)), 12)

    def test_add_years_leap_day(self) -> None:
        leap = datetime(2024, 2, 29, tzinfo=timezone.utc)
        self.assertEqual(add_years(leap, 1), datetime(2025, 2, 28, tzinfo=timezone.utc))


if __name__ == "__main__":
    unittest.main()

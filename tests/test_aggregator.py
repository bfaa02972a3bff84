import unittest

from npmquality.estimation.aggregator import aggregate, is_factor_pair
from npmquality.models.schemas import Estimation


class AggregateTests(unittest.TestCase):
    def test_no_factors_gives_zero(self) -> None:
        result = aggregate(Estimation(name="empty"))
        self.assertEqual(result.quality, 0.0)

    def test_weighted_mean(self) -> None:
        estimation = Estimation(name="pkg", downloads=(0.9, 1.0), versions=(0.5, 0.5))
        result = aggregate(estimation)
        self.assertAlmostEqual(result.quality, (0.9 + 0.25) / 1.5)

    def test_issue_factors_mean(self) -> None:
        estimation = Estimation(
            name="pkg",
            repo_total_issues=(0.8, 1.0),
            repo_open_issues=(1.0, 1.0),
            repo_long_open_issues=(1.0, 1.0),
        )
        self.assertAlmostEqual(aggregate(estimation).quality, 0.9333, places=3)

    def test_aggregating_twice_gives_same_quality(self) -> None:
        estimation = Estimation(name="pkg", downloads=(0.2, 1.0), versions=(0.6, 1.0))
        once = aggregate(estimation)
        twice = aggregate(once)
        self.assertEqual(once.quality, twice.quality)

    def test_does_not_modify_input(self) -> None:
        estimation = Estimation(name="pkg", downloads=(0.2, 1.0))
        aggregate(estimation)
        self.assertIsNone(estimation.quality)

    def test_extra_pairs_are_included(self) -> None:
        estimation = Estimation(name="pkg", downloads=(1.0, 1.0), stars=[0.0, 1.0])
        self.assertAlmostEqual(aggregate(estimation).quality, 0.5)

    def test_non_pair_extras_are_ignored(self) -> None:
        estimation = Estimation(
            name="pkg",
            downloads=(0.4, 1.0),
            triple=[0.1, 0.2, 0.3],
            label="x",
            flags=[True, False],
        )
        self.assertAlmostEqual(aggregate(estimation).quality, 0.4)

    def test_zero_weights_give_zero(self) -> None:
        estimation = Estimation(name="pkg", downloads=(0.7, 0.0))
        self.assertEqual(aggregate(estimation).quality, 0.0)


class IsFactorPairTests(unittest.TestCase):
    def test_shapes(self) -> None:
        self.assertTrue(is_factor_pair((0.5, 1)))
        self.assertTrue(is_factor_pair([1, 1]))
        self.assertFalse(is_factor_pair((0.5,)))
        self.assertFalse(is_factor_pair("ab"))
        self.assertFalse(is_factor_pair((True, 1)))
        self.assertFalse(is_factor_pair(None))


if __name__ == "__main__":
    unittest.main()

import unittest

from npmquality.errors import QuotaExhaustedError, TransientFetchError, ValidationError
from npmquality.estimation.estimator import Estimator, merge_factors
from npmquality.factors.downloads import DownloadsFactor
from npmquality.factors.issues import ContinuationResolver, IssuesFactor
from npmquality.factors.versions import VersionsFactor
from npmquality.models.results import Deferred, Final
from npmquality.models.schemas import Estimation, PendingRecord, RateBudget

from fakes import NOW, FakeGitHubSource, FakeNpmSource, issue, page

ENTRY = {
    "name": "loadtest",
    "description": "Load test scripts",
    "repository": {"type": "git", "url": "https://github.com/alexfernandez/loadtest"},
}

FIVE_ISSUES = [issue("open")] + [issue("closed") for _ in range(4)]


def build(npm=None, github=None) -> Estimator:
    npm = npm or FakeNpmSource(
        downloads=[{"downloads": 10}],
        metadata={"versions": {"1.0.0": {}, "2.0.0": {}}},
    )
    github = github or FakeGitHubSource({1: page(FIVE_ISSUES, remaining=100, reset=5000)})
    return Estimator(
        factors=[DownloadsFactor(npm), VersionsFactor(npm), IssuesFactor(github)],
        resolver=ContinuationResolver(github),
        clock=lambda: NOW,
    )


class EstimateTests(unittest.IsolatedAsyncioTestCase):
    async def test_final_estimation(self) -> None:
        result = await build().estimate(ENTRY)

        self.assertIsInstance(result, Final)
        estimation = result.estimation
        self.assertEqual(estimation.name, "loadtest")
        self.assertEqual(estimation.description, "Load test scripts")
        self.assertEqual(estimation.source, "npm")
        self.assertAlmostEqual(estimation.downloads[0], 0.9)
        self.assertEqual(estimation.versions, (0.5, 1.0))
        self.assertAlmostEqual(estimation.repo_total_issues[0], 0.8)
        self.assertAlmostEqual(estimation.quality, (0.9 + 0.5 + 0.8 + 1.0 + 1.0) / 5)
        self.assertEqual(estimation.created, NOW)
        self.assertEqual(estimation.next_update, NOW)
        self.assertEqual(result.budget.remaining_calls, 100)

    async def test_invalid_entries(self) -> None:
        for entry in (None, {}, {"name": ""}, {"description": "nameless"}):
            with self.subTest(entry=entry):
                with self.assertRaises(ValidationError) as ctx:
                    await build().estimate(entry)
                self.assertEqual(str(ctx.exception), "entry is null or has no name")
                self.assertEqual(ctx.exception.entry, entry)

    async def test_deferred_has_no_quality(self) -> None:
        github = FakeGitHubSource({1: page(FIVE_ISSUES, last_page=3, remaining=80, reset=5000)})
        result = await build(github=github).estimate(ENTRY)

        self.assertIsInstance(result, Deferred)
        self.assertIsNone(result.estimation.quality)
        self.assertIsNone(result.estimation.repo_total_issues)
        self.assertIsNotNone(result.estimation.downloads)
        self.assertEqual(len(result.continuations), 1)
        self.assertEqual(result.continuations[0].pages, (2, 3))
        self.assertEqual(result.budget.remaining_calls, 80)

    async def test_npm_failures_degrade_to_zero(self) -> None:
        npm = FakeNpmSource(error=TransientFetchError("npm", "HTTP 503"))
        result = await build(npm=npm).estimate(ENTRY)

        self.assertIsInstance(result, Final)
        self.assertEqual(result.estimation.downloads, (0.0, 1.0))
        self.assertEqual(result.estimation.versions, (0.0, 1.0))

    async def test_issue_failures_propagate(self) -> None:
        github = FakeGitHubSource({1: TransientFetchError("github", "HTTP 500")})
        with self.assertRaises(TransientFetchError):
            await build(github=github).estimate(ENTRY)

    async def test_quota_exhaustion_propagates(self) -> None:
        github = FakeGitHubSource({1: QuotaExhaustedError(RateBudget(remaining_calls=0, reset_epoch=9))})
        with self.assertRaises(QuotaExhaustedError) as ctx:
            await build(github=github).estimate(ENTRY)
        self.assertEqual(ctx.exception.reset_epoch, 9)


class ResolvePendingTests(unittest.IsolatedAsyncioTestCase):
    async def test_resolves_to_final(self) -> None:
        github = FakeGitHubSource(
            {
                1: page(FIVE_ISSUES, last_page=3, remaining=80, reset=5000),
                2: page([issue("closed")] * 5, remaining=79, reset=5000),
                3: page([issue("closed")] * 10, remaining=78, reset=5000),
            }
        )
        estimator = build(github=github)
        deferred = await estimator.estimate(ENTRY)
        record = PendingRecord(
            name="loadtest",
            entry=ENTRY,
            previous=deferred.estimation,
            continuations=deferred.continuations,
        )

        result = await estimator.resolve_pending(record)

        self.assertIsInstance(result, Final)
        self.assertAlmostEqual(result.estimation.repo_total_issues[0], 1 - 1 / 20)
        self.assertIsNotNone(result.estimation.quality)
        self.assertEqual(result.budget.remaining_calls, 78)

    async def test_nothing_to_resolve(self) -> None:
        record = PendingRecord(name="x", entry={"name": "x"})
        with self.assertRaises(ValueError):
            await build().resolve_pending(record)

    async def test_estimate_complete_resolves_inline(self) -> None:
        github = FakeGitHubSource(
            {
                1: page(FIVE_ISSUES, last_page=2, remaining=80, reset=5000),
                2: page([issue("closed")] * 5, remaining=70, reset=5000),
            }
        )
        result = await build(github=github).estimate_complete(ENTRY)
        self.assertIsInstance(result, Final)
        self.assertAlmostEqual(result.estimation.repo_total_issues[0], 0.9)
        self.assertEqual(result.budget.remaining_calls, 70)


class MergeFactorsTests(unittest.TestCase):
    def test_overlap_is_rejected(self) -> None:
        estimation = Estimation(name="x", downloads=(0.5, 1.0))
        with self.assertRaises(ValueError):
            merge_factors(estimation, {"downloads": (0.1, 1.0)})

    def test_adds_fields(self) -> None:
        merged = merge_factors(Estimation(name="x"), {"versions": (0.5, 1.0)})
        self.assertEqual(merged.versions, (0.5, 1.0))


if __name__ == "__main__":
    unittest.main()

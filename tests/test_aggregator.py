import asyncio
import unittest

from fakes import FakeProvider, no_sleep

from url_risk.aggregator import aggregate, combine_scores
from url_risk.errors import (
    FatalSourceError,
    SourceAuthError,
    TransientNetworkError,
    UpstreamRateLimitError,
    UpstreamUnavailableError,
)
from url_risk.models import ReputationQuery, SourceResult, risk_level_for

QUERY = ReputationQuery(input="http://example.com", domain="example.com")


class TestAggregate(unittest.IsolatedAsyncioTestCase):
    async def test_mean_of_two_sources(self):
        a = FakeProvider("a", score=10)
        b = FakeProvider("b", score=20)

        result = await aggregate(QUERY, [a, b], sleep=no_sleep)

        self.assertEqual(result.domain, "example.com")
        self.assertEqual(result.risk_score, 15)
        self.assertEqual(result.risk_level, "safe")
        self.assertEqual([s.source for s in result.sources], ["a", "b"])
        self.assertEqual((a.calls, b.calls), (1, 1))

    async def test_partial_failure_tolerance(self):
        flaky = FakeProvider("flaky", error_factory=lambda: TransientNetworkError("connection reset"))
        good = FakeProvider("good", score=70)

        result = await aggregate(QUERY, [flaky, good], sleep=no_sleep)

        self.assertEqual(result.risk_score, 70)
        self.assertEqual(result.risk_level, "high")
        self.assertEqual(flaky.calls, 3)

        placeholder = result.sources[0]
        self.assertEqual(placeholder.source, "flaky")
        self.assertFalse(placeholder.succeeded)
        self.assertIsNone(placeholder.risk_score)
        self.assertEqual(placeholder.error_kind, "transient")

    async def test_total_failure(self):
        a = FakeProvider("a", error_factory=lambda: TransientNetworkError("down"))
        b = FakeProvider("b", error_factory=lambda: TransientNetworkError("down"))

        with self.assertRaises(UpstreamUnavailableError) as ctx:
            await aggregate(QUERY, [a, b], sleep=no_sleep)

        self.assertEqual(set(ctx.exception.failures), {"a", "b"})
        self.assertEqual((a.calls, b.calls), (3, 3))

    async def test_rate_limit_propagates_and_is_not_retried(self):
        limited = FakeProvider("limited", error_factory=lambda: UpstreamRateLimitError(retry_after_seconds=30))
        good = FakeProvider("good", score=10)

        with self.assertRaises(UpstreamRateLimitError) as ctx:
            await aggregate(QUERY, [limited, good], sleep=no_sleep)

        self.assertEqual(limited.calls, 1)
        self.assertEqual(good.calls, 1)
        self.assertEqual(ctx.exception.source, "limited")
        self.assertEqual(ctx.exception.retry_after_seconds, 30)

    async def test_rate_limit_degrades_when_propagation_disabled(self):
        limited = FakeProvider("limited", error_factory=lambda: UpstreamRateLimitError())
        good = FakeProvider("good", score=45)

        result = await aggregate(QUERY, [limited, good], propagate_rate_limit=False, sleep=no_sleep)

        self.assertEqual(result.risk_score, 45)
        self.assertEqual(result.risk_level, "medium")
        self.assertEqual(result.sources[0].error_kind, "rate_limit")
        self.assertEqual(limited.calls, 1)

    async def test_auth_and_fatal_errors_degrade_without_retry(self):
        auth = FakeProvider("auth", error_factory=lambda: SourceAuthError("invalid key"))
        broken = FakeProvider("broken", error_factory=lambda: FatalSourceError("bad payload"))
        good = FakeProvider("good", score=90)

        result = await aggregate(QUERY, [auth, broken, good], sleep=no_sleep)

        self.assertEqual(result.risk_score, 90)
        self.assertEqual(result.risk_level, "dangerous")
        self.assertEqual((auth.calls, broken.calls), (1, 1))
        self.assertEqual(len(result.succeeded_sources), 1)

    async def test_unexpected_exception_becomes_placeholder(self):
        weird = FakeProvider("weird", error_factory=lambda: KeyError("data"))
        good = FakeProvider("good", score=25)

        result = await aggregate(QUERY, [weird, good], sleep=no_sleep)

        self.assertEqual(result.risk_level, "low")
        self.assertEqual(result.sources[0].error_kind, "fatal")

    async def test_no_providers(self):
        with self.assertRaises(UpstreamUnavailableError):
            await aggregate(QUERY, [], sleep=no_sleep)

    async def test_sources_run_concurrently(self):
        started = []
        release = asyncio.Event()

        class Blocking(FakeProvider):
            async def check_domain(self, domain):
                started.append(self.name)
                await release.wait()
                return await super().check_domain(domain)

        providers = [Blocking("a", score=10), Blocking("b", score=30)]
        task = asyncio.ensure_future(aggregate(QUERY, providers, sleep=no_sleep))
        for _ in range(10):
            await asyncio.sleep(0)
        self.assertEqual(sorted(started), ["a", "b"])

        release.set()
        result = await task
        self.assertEqual(result.risk_score, 20)


class TestScoring(unittest.TestCase):
    def test_combine_ignores_failed_sources(self):
        results = [
            SourceResult.ok("a", 40),
            SourceResult.failed("b", "down"),
            SourceResult.ok("c", 60),
        ]
        self.assertEqual(combine_scores(results), 50)

    def test_combine_requires_a_success(self):
        with self.assertRaises(ValueError):
            combine_scores([SourceResult.failed("a", "down")])

    def test_scores_are_clamped(self):
        self.assertEqual(SourceResult.ok("a", 140).risk_score, 100)
        self.assertEqual(SourceResult.ok("a", -5).risk_score, 0)

    def test_risk_bands(self):
        cases = {
            0: "safe",
            19.99: "safe",
            20: "low",
            39.9: "low",
            40: "medium",
            59.9: "medium",
            60: "high",
            79.9: "high",
            80: "dangerous",
            100: "dangerous",
        }
        for score, level in cases.items():
            self.assertEqual(risk_level_for(score), level, score)


if __name__ == "__main__":
    unittest.main()

import os
import tempfile
import threading
import unittest
from unittest.mock import patch

from fakes import FakeProvider, no_sleep

from url_risk.cache import Cache
from url_risk.config import Settings
from url_risk.errors import (
    CacheError,
    IngressRateLimitError,
    TransientNetworkError,
    UpstreamUnavailableError,
    ValidationError,
)
from url_risk.limiter import FixedWindowLimiter
from url_risk.service import ReputationService


class TestReputationService(unittest.IsolatedAsyncioTestCase):
    def setUp(self):
        self._tmp = tempfile.TemporaryDirectory()
        self.cache = Cache(f"{self._tmp.name}/cache.sqlite")
        self.a = FakeProvider("a", score=10)
        self.b = FakeProvider("b", score=20)

    def tearDown(self):
        self._tmp.cleanup()

    def _service(self, providers=None, limiter=None):
        return ReputationService(
            providers if providers is not None else [self.a, self.b],
            self.cache,
            limiter,
            sleep=no_sleep,
        )

    async def test_scenario_a(self):
        out = await self._service().check("http://example.com")
        self.assertEqual(out.result.risk_score, 15)
        self.assertEqual(out.result.risk_level, "safe")
        self.assertFalse(out.cached)
        self.assertGreaterEqual(out.latency_ms, 0)

    async def test_scenario_b_second_call_is_cached(self):
        service = self._service()

        first = await service.check("http://foo.test")
        self.assertFalse(first.cached)
        self.assertEqual((self.a.calls, self.b.calls), (1, 1))

        second = await service.check("http://foo.test")
        self.assertTrue(second.cached)
        self.assertEqual(second.result.risk_score, first.result.risk_score)
        self.assertEqual(second.result.risk_level, first.result.risk_level)
        self.assertEqual((self.a.calls, self.b.calls), (1, 1))

    async def test_cache_is_keyed_by_domain(self):
        service = self._service()
        await service.check("https://Foo.TEST/path?q=1")
        again = await service.check("http://foo.test./other")
        self.assertTrue(again.cached)
        self.assertEqual(again.result.domain, "foo.test")

    async def test_use_cache_false_bypasses_cache(self):
        service = self._service()
        await service.check("http://foo.test")
        out = await service.check("http://foo.test", use_cache=False)
        self.assertFalse(out.cached)
        self.assertEqual(self.a.calls, 2)

    async def test_validation_happens_before_any_work(self):
        service = self._service()
        for bad in ("", "not a url", "ftp://example.com/file", "example.com", "http://"):
            with self.assertRaises(ValidationError):
                await service.check(bad)
        self.assertEqual(self.a.calls, 0)

    async def test_ingress_limit_rejects_before_lookup(self):
        limiter = FixedWindowLimiter(limit=1, window_seconds=60)
        service = self._service(limiter=limiter)

        first = await service.check("http://foo.test", client_key="1.1.1.1")
        assert first.rate_limit is not None
        self.assertEqual(first.rate_limit.remaining, 0)

        with patch.object(self.cache, "get") as get:
            with self.assertRaises(IngressRateLimitError):
                await service.check("http://foo.test", client_key="1.1.1.1")
            get.assert_not_called()

        other = await service.check("http://foo.test", client_key="2.2.2.2")
        self.assertTrue(other.cached)

    async def test_cache_read_error_is_a_miss(self):
        service = self._service()
        with patch.object(self.cache, "get", side_effect=CacheError("disk I/O error")):
            out = await service.check("http://foo.test")
        self.assertFalse(out.cached)
        self.assertEqual(out.result.risk_score, 15)

    async def test_cache_write_failure_still_returns_result(self):
        odd = FakeProvider("odd", score=30, detail={"obj": object()})
        service = self._service(providers=[odd])

        out = await service.check("http://foo.test")
        self.assertEqual(out.result.risk_score, 30)

        again = await service.check("http://foo.test")
        self.assertFalse(again.cached)
        self.assertEqual(odd.calls, 2)

    async def test_aggregate_failure_is_not_cached(self):
        down = [
            FakeProvider("a", error_factory=lambda: TransientNetworkError("down")),
            FakeProvider("b", error_factory=lambda: TransientNetworkError("down")),
        ]
        service = self._service(providers=down)

        with self.assertRaises(UpstreamUnavailableError):
            await service.check("http://foo.test")
        self.assertIsNone(self.cache.get("foo.test"))

    async def test_cache_runs_off_the_event_loop(self):
        service = self._service()
        loop_thread = threading.get_ident()
        seen = []
        real_get = self.cache.get

        def get(domain):
            seen.append(threading.get_ident())
            return real_get(domain)

        with patch.object(self.cache, "get", side_effect=get):
            await service.check("http://foo.test")
        self.assertEqual(len(seen), 1)
        self.assertNotEqual(seen[0], loop_thread)

    async def test_sweep_reports_both_stores(self):
        service = self._service(limiter=FixedWindowLimiter())
        self.assertEqual(service.sweep(), {"cache": 0, "rate_limit": 0})


class TestFromSettings(unittest.IsolatedAsyncioTestCase):
    async def test_mock_providers_without_api_keys(self):
        with tempfile.TemporaryDirectory() as d:
            settings = Settings(
                cache_path=f"{d}/cache.sqlite",
                sources=["virustotal", "safebrowsing", "unknown"],
                virustotal_api_key=None,
                safebrowsing_api_key=None,
            )
            service = ReputationService.from_settings(settings)

            self.assertEqual([p.name for p in service.providers], ["virustotal", "safebrowsing"])
            self.assertTrue(all(not p.live for p in service.providers))

            first = await service.check("http://example.com")
            second = await service.check("http://example.com")
            self.assertFalse(first.cached)
            self.assertTrue(second.cached)
            self.assertEqual(first.result.risk_score, second.result.risk_score)

    async def test_unusable_cache_path_disables_caching(self):
        with tempfile.TemporaryDirectory() as d:
            blocker = os.path.join(d, "not-a-dir")
            with open(blocker, "w") as f:
                f.write("x")
            settings = Settings(
                cache_path=os.path.join(blocker, "sub", "cache.sqlite"),
                sources=["virustotal"],
                virustotal_api_key=None,
                safebrowsing_api_key=None,
            )

            with self.assertLogs("url_risk.service", level="WARNING"):
                service = ReputationService.from_settings(settings)

            self.assertIsNone(service.cache)
            first = await service.check("http://example.com")
            second = await service.check("http://example.com")
            self.assertFalse(first.cached)
            self.assertFalse(second.cached)


if __name__ == "__main__":
    unittest.main()

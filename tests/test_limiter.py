import unittest

from url_risk.errors import IngressRateLimitError
from url_risk.limiter import FixedWindowLimiter


class FakeClock:
    def __init__(self, now: float = 100.0):
        self.now = now

    def __call__(self) -> float:
        return self.now


class TestFixedWindowLimiter(unittest.TestCase):
    def setUp(self):
        self.clock = FakeClock()
        self.limiter = FixedWindowLimiter(limit=60, window_seconds=60, clock=self.clock)

    def test_boundary(self):
        for i in range(59):
            d = self.limiter.allow("1.2.3.4")
            self.assertTrue(d.allowed)
            self.assertEqual(d.remaining, 60 - (i + 1))

        d60 = self.limiter.allow("1.2.3.4")
        self.assertTrue(d60.allowed)
        self.assertEqual(d60.remaining, 0)

        d61 = self.limiter.allow("1.2.3.4")
        self.assertFalse(d61.allowed)
        self.assertEqual(d61.remaining, 0)
        self.assertEqual(d61.limit, 60)

    def test_reset_after_window(self):
        for _ in range(61):
            self.limiter.allow("c")
        self.assertFalse(self.limiter.allow("c").allowed)

        # Still inside the window at exactly reset_at.
        self.clock.now += 60
        self.assertFalse(self.limiter.allow("c").allowed)

        self.clock.now += 0.001
        d = self.limiter.allow("c")
        self.assertTrue(d.allowed)
        self.assertEqual(d.remaining, 59)

    def test_clients_are_independent(self):
        for _ in range(60):
            self.limiter.allow("a")
        self.assertFalse(self.limiter.allow("a").allowed)
        self.assertTrue(self.limiter.allow("b").allowed)

    def test_retry_after_counts_down(self):
        self.limiter.allow("c")
        self.clock.now += 15
        d = self.limiter.allow("c")
        self.assertAlmostEqual(d.retry_after_seconds, 45)
        self.assertAlmostEqual(d.reset_at, 160)

    def test_check_raises_with_backoff_data(self):
        limiter = FixedWindowLimiter(limit=1, window_seconds=30, clock=self.clock)
        limiter.check("c")
        self.clock.now += 10
        with self.assertRaises(IngressRateLimitError) as ctx:
            limiter.check("c")

        err = ctx.exception
        self.assertEqual(err.limit, 1)
        self.assertEqual(err.remaining, 0)
        self.assertAlmostEqual(err.retry_after_seconds, 20)

    def test_sweep_drops_stale_windows(self):
        self.limiter.allow("old")
        self.clock.now += 100
        self.limiter.allow("fresh")

        self.assertEqual(len(self.limiter), 2)
        self.clock.now += 21  # old window ended at 160, stale after 220
        self.assertEqual(self.limiter.sweep(), 1)
        self.assertEqual(len(self.limiter), 1)
        self.assertTrue(self.limiter.allow("old").allowed)

    def test_invalid_config(self):
        with self.assertRaises(ValueError):
            FixedWindowLimiter(limit=0)
        with self.assertRaises(ValueError):
            FixedWindowLimiter(window_seconds=0)


if __name__ == "__main__":
    unittest.main()

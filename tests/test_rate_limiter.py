import unittest
import os
import sys

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..', 'backend')))

from campus_finder.pipeline.rate_limit import RateLimiter
from helpers import FakeClock


class TestRateLimiter(unittest.TestCase):

    def setUp(self):
        self.clock = FakeClock()
        self.limiter = RateLimiter(60, 300, clock=self.clock, sleep=self.clock.sleep)

    def test_first_call_does_not_wait(self):
        self.assertEqual(self.limiter.wait(), 0.0)
        self.assertEqual(self.clock.sleeps, [])

    def test_calls_are_spaced_by_min_interval(self):
        self.limiter.wait()
        self.assertAlmostEqual(self.limiter.wait(), 1.0)
        self.assertAlmostEqual(self.limiter.wait(), 1.0)
        self.assertAlmostEqual(self.clock.now, 1002.0)

    def test_no_wait_after_idle_period(self):
        self.limiter.wait()
        self.clock.advance(10)
        self.assertEqual(self.limiter.wait(), 0.0)

    def test_trip_opens_cooldown_window(self):
        self.assertFalse(self.limiter.in_cooldown())
        self.limiter.trip()
        self.assertTrue(self.limiter.in_cooldown())
        self.assertAlmostEqual(self.limiter.cooldown_remaining(), 300.0)
        self.clock.advance(299)
        self.assertTrue(self.limiter.in_cooldown())
        self.clock.advance(1)
        self.assertFalse(self.limiter.in_cooldown())

    def test_reset_clears_state(self):
        self.limiter.wait()
        self.limiter.trip()
        self.limiter.reset()
        self.assertFalse(self.limiter.in_cooldown())
        self.assertEqual(self.limiter.wait(), 0.0)

    def test_rate_must_be_positive(self):
        with self.assertRaises(ValueError):
            RateLimiter(0)


if __name__ == '__main__':
    unittest.main()

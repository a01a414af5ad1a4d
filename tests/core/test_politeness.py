"""
礼貌延迟测试
"""
import unittest
import asyncio
import random
from unittest.mock import AsyncMock, patch

from core.politeness import MIN_DELAY_MS, compute_delay_ms, polite_sleep


class TestComputeDelay(unittest.TestCase):
    def test_fixed_delay(self):
        self.assertEqual(compute_delay_ms(1500, randomize=False), 1500)
        self.assertEqual(compute_delay_ms(0, randomize=False), 0)

    def test_jitter_within_bounds(self):
        """随机延迟落在 ±40% 内，且不低于最小值"""
        rng = random.Random(42)
        for _ in range(500):
            delay = compute_delay_ms(1000, randomize=True, rng=rng)
            self.assertGreaterEqual(delay, 600)
            self.assertLessEqual(delay, 1400)

    def test_jitter_varies(self):
        rng = random.Random(7)
        delays = {compute_delay_ms(1000, randomize=True, rng=rng) for _ in range(50)}
        self.assertGreater(len(delays), 1)

    def test_minimum_delay(self):
        rng = random.Random(1)
        for _ in range(50):
            self.assertGreaterEqual(compute_delay_ms(100, randomize=True, rng=rng), MIN_DELAY_MS)


class TestPoliteSleep(unittest.TestCase):
    @patch("core.politeness.asyncio.sleep", new_callable=AsyncMock)
    def test_sleeps_in_seconds(self, mock_sleep):
        asyncio.run(polite_sleep(1500, randomize=False))
        mock_sleep.assert_awaited_once_with(1.5)

    @patch("core.politeness.asyncio.sleep", new_callable=AsyncMock)
    def test_zero_delay_does_not_sleep(self, mock_sleep):
        asyncio.run(polite_sleep(0, randomize=False))
        mock_sleep.assert_not_awaited()


if __name__ == "__main__":
    unittest.main()

"""
ProgressStats 单元测试
"""
import unittest
from concurrent.futures import ThreadPoolExecutor

from core.stats import ProgressStats, format_bytes


class TestFormatBytes(unittest.TestCase):
    def test_units(self):
        self.assertEqual(format_bytes(512), "512 B")
        self.assertEqual(format_bytes(2048), "2.00 KB")
        self.assertEqual(format_bytes(3 * 1024 * 1024), "3.00 MB")
        self.assertEqual(format_bytes(5 * 1024 ** 3), "5.00 GB")


class TestProgressStats(unittest.TestCase):
    def setUp(self):
        self.stats = ProgressStats(url="https://example.com/", max_actions=3)

    def test_increment_and_attribute_access(self):
        self.stats.increment("images_found", 4)
        self.stats.increment("images_found")
        self.assertEqual(self.stats.images_found, 5)
        self.assertEqual(self.stats.get("images_found"), 5)

    def test_unknown_counter(self):
        with self.assertRaises(KeyError):
            self.stats.increment("nope")
        with self.assertRaises(AttributeError):
            self.stats.nope

    def test_concurrent_increments(self):
        with ThreadPoolExecutor(max_workers=8) as pool:
            list(pool.map(lambda _: self.stats.increment("bytes_downloaded", 10), range(1000)))
        self.assertEqual(self.stats.bytes_downloaded, 10000)

    def test_set_at_least(self):
        self.stats.increment("pages_crawled", 5)
        self.stats.set_at_least("pages_crawled", 3)
        self.assertEqual(self.stats.pages_crawled, 5)
        self.stats.set_at_least("pages_crawled", 8)
        self.assertEqual(self.stats.pages_crawled, 8)

    def test_recent_actions_bounded_newest_first(self):
        for i in range(5):
            self.stats.add_action(f"action {i}")
        actions = self.stats.get_actions()
        self.assertEqual(len(actions), 3)
        self.assertTrue(actions[0].endswith("action 4"))
        self.assertTrue(actions[-1].endswith("action 2"))

    def test_currently_downloading(self):
        self.stats.start_download("https://example.com/a.jpg")
        self.assertIn("https://example.com/a.jpg", self.stats.currently_downloading)
        self.stats.finish_download("https://example.com/a.jpg")
        self.assertEqual(self.stats.currently_downloading, set())

    def test_snapshot_and_summary(self):
        self.stats.increment("pages_found", 3)
        self.stats.increment("pages_crawled", 2)
        snapshot = self.stats.snapshot()
        self.assertEqual(set(snapshot), set(ProgressStats.COUNTERS))
        self.assertIn("Pages: 2/3", self.stats.summary())


if __name__ == "__main__":
    unittest.main()

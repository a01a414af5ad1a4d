"""
PageFetcher 单元测试（mock aiohttp 响应为异步上下文管理器）
"""
import unittest
import asyncio
from unittest.mock import AsyncMock, MagicMock, patch

import aiohttp

from config import CrawlerConfig
from core.exceptions import FetchError, RateLimitedError
from core.fetcher import PageFetcher


def make_response(status: int, body: bytes = b"") -> MagicMock:
    resp = MagicMock()
    resp.status = status
    resp.read = AsyncMock(return_value=body)
    resp.__aenter__ = AsyncMock(return_value=resp)
    resp.__aexit__ = AsyncMock(return_value=None)
    return resp


@patch("core.fetcher.UserAgent")
class TestPageFetcher(unittest.TestCase):
    def make_fetcher(self, *responses, renderer=None, **config):
        config.setdefault("request_delay_ms", 0)
        session = MagicMock()
        session.get.side_effect = list(responses)
        return PageFetcher(CrawlerConfig(**config), renderer=renderer, session=session), session

    def test_fetch_html_success(self, _ua):
        fetcher, session = self.make_fetcher(make_response(200, "<p>héllo</p>".encode()))
        html = asyncio.run(fetcher.fetch_html("https://example.com/"))
        self.assertEqual(html, "<p>héllo</p>")
        self.assertEqual(fetcher.stats["pages_fetched"], 1)
        session.get.assert_called_once()

    def test_rate_limited_retried_once(self, _ua):
        """429 后等待并重试一次"""
        fetcher, session = self.make_fetcher(make_response(429), make_response(200, b"ok"))
        html = asyncio.run(fetcher.fetch_html("https://example.com/"))
        self.assertEqual(html, "ok")
        self.assertEqual(session.get.call_count, 2)
        self.assertEqual(fetcher.stats["rate_limited"], 1)

    def test_rate_limited_waits_three_times_delay(self, _ua):
        """429 后等待 3 倍请求延迟"""
        fetcher, _ = self.make_fetcher(
            make_response(429), make_response(200, b"ok"), request_delay_ms=500
        )
        with patch("core.fetcher.asyncio.sleep", new_callable=AsyncMock) as mock_sleep:
            asyncio.run(fetcher.fetch_html("https://example.com/"))
        mock_sleep.assert_awaited_once_with(1.5)

    def test_no_wait_without_rate_limit(self, _ua):
        fetcher, _ = self.make_fetcher(make_response(200, b"ok"), request_delay_ms=500)
        with patch("core.fetcher.asyncio.sleep", new_callable=AsyncMock) as mock_sleep:
            asyncio.run(fetcher.fetch_html("https://example.com/"))
        mock_sleep.assert_not_awaited()

    def test_rate_limited_twice_raises(self, _ua):
        fetcher, session = self.make_fetcher(make_response(429), make_response(429), make_response(200))
        with self.assertRaises(RateLimitedError):
            asyncio.run(fetcher.fetch_html("https://example.com/"))
        self.assertEqual(session.get.call_count, 2)
        self.assertEqual(fetcher.stats["requests_failed"], 1)

    def test_http_error_not_retried(self, _ua):
        fetcher, session = self.make_fetcher(make_response(404), make_response(200))
        with self.assertRaises(FetchError) as ctx:
            asyncio.run(fetcher.fetch_html("https://example.com/missing"))
        self.assertEqual(ctx.exception.status, 404)
        self.assertEqual(session.get.call_count, 1)

    def test_network_error_wrapped(self, _ua):
        fetcher, _ = self.make_fetcher(aiohttp.ClientConnectionError("refused"))
        with self.assertRaises(FetchError):
            asyncio.run(fetcher.fetch_html("https://example.com/"))

    def test_timeout_wrapped(self, _ua):
        fetcher, _ = self.make_fetcher(asyncio.TimeoutError())
        with self.assertRaises(FetchError) as ctx:
            asyncio.run(fetcher.fetch_bytes("https://example.com/a.jpg"))
        self.assertIn("Timeout", str(ctx.exception))

    def test_fetch_bytes(self, _ua):
        fetcher, _ = self.make_fetcher(make_response(200, b"\x89PNG"))
        self.assertEqual(asyncio.run(fetcher.fetch_bytes("https://example.com/a.png")), b"\x89PNG")

    def test_fetch_uses_rendered_html(self, _ua):
        renderer = MagicMock()
        renderer.available = True
        renderer.render = AsyncMock(return_value="<html>rendered</html>")
        fetcher, _ = self.make_fetcher(make_response(200, b"<html>static</html>"), renderer=renderer)
        self.assertEqual(asyncio.run(fetcher.fetch("https://example.com/")), "<html>rendered</html>")

    def test_fetch_falls_back_to_static(self, _ua):
        renderer = MagicMock()
        renderer.available = True
        renderer.render = AsyncMock(return_value=None)
        fetcher, _ = self.make_fetcher(make_response(200, b"<html>static</html>"), renderer=renderer)
        self.assertEqual(asyncio.run(fetcher.fetch("https://example.com/")), "<html>static</html>")

    def test_stealth_headers(self, _ua):
        fetcher, _ = self.make_fetcher(stealth_mode=True)
        headers = fetcher.get_headers()
        self.assertIn("User-Agent", headers)
        self.assertEqual(headers["DNT"], "1")

    def test_plain_headers(self, _ua):
        fetcher, _ = self.make_fetcher()
        headers = fetcher.get_headers()
        self.assertIn("User-Agent", headers)
        self.assertNotIn("DNT", headers)

    def test_injected_session_not_closed(self, _ua):
        fetcher, session = self.make_fetcher()
        session.close = AsyncMock()
        asyncio.run(fetcher.close())
        session.close.assert_not_called()

    @patch("core.fetcher.aiohttp.ClientSession")
    def test_init_session_creates_and_closes(self, mock_session_cls, _ua):
        mock_session = MagicMock()
        mock_session.close = AsyncMock(return_value=None)
        mock_session_cls.return_value = mock_session

        async def run():
            fetcher = PageFetcher(CrawlerConfig())
            await fetcher.init_session()
            mock_session_cls.assert_called_once()
            await fetcher.close()
            mock_session.close.assert_awaited_once()

        asyncio.run(run())


if __name__ == "__main__":
    unittest.main()

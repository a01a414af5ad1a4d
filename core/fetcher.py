"""
页面获取模块

- HTTP GET（带超时）
- HTTP 429 时等待 3 倍基准延迟后重试一次
- 可选：用浏览器渲染结果替换静态 HTML
"""
import asyncio
import aiohttp
from typing import Dict, Optional
from loguru import logger
from tenacity import AsyncRetrying, retry_if_exception_type, stop_after_attempt, wait_fixed
from fake_useragent import UserAgent

from config import CrawlerConfig
from core.exceptions import FetchError, RateLimitedError
from core.renderer import JavaScriptRenderer

HTML_ACCEPT = "text/html,application/xhtml+xml,application/xml;q=0.9,image/webp,*/*;q=0.8"
IMAGE_ACCEPT = "image/avif,image/webp,image/apng,image/*,*/*;q=0.8"


class PageFetcher:
    """
    页面/图片获取器

    Example:
        async with PageFetcher(config.crawler) as fetcher:
            html = await fetcher.fetch("https://example.com/")
    """

    def __init__(
        self,
        crawler_config: CrawlerConfig,
        renderer: Optional[JavaScriptRenderer] = None,
        session: Optional[aiohttp.ClientSession] = None,
    ):
        self.config = crawler_config
        self.renderer = renderer
        self.session = session
        self.ua = UserAgent()
        self._owns_session = session is None
        self.stats = {
            "pages_fetched": 0,
            "requests_failed": 0,
            "rate_limited": 0,
        }

    async def __aenter__(self):
        await self.init_session()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    async def init_session(self):
        """初始化HTTP会话"""
        if self.session is None:
            timeout = aiohttp.ClientTimeout(total=self.config.request_timeout)
            self.session = aiohttp.ClientSession(timeout=timeout)
            self._owns_session = True

    async def close(self):
        """关闭会话"""
        if self.session and self._owns_session:
            await self.session.close()
        self.session = None

    def get_headers(self, accept: str = HTML_ACCEPT) -> Dict[str, str]:
        """获取请求头（stealth 模式下每次请求变化）"""
        if self.config.stealth_mode:
            user_agent = self.ua.random if self.config.rotate_user_agent else self.ua.chrome
            return {
                "User-Agent": user_agent,
                "Accept": accept,
                "Accept-Language": "en-US,en;q=0.9",
                "DNT": "1",
                "Connection": "keep-alive",
                "Upgrade-Insecure-Requests": "1",
            }
        return {
            "User-Agent": self.ua.chrome,
            "Accept": accept,
        }

    async def _get(self, url: str, accept: str) -> bytes:
        try:
            async with self.session.get(url, headers=self.get_headers(accept)) as response:
                if response.status == 429:
                    self.stats["rate_limited"] += 1
                    raise RateLimitedError(url)
                if not 200 <= response.status < 300:
                    raise FetchError(url, f"HTTP {response.status}", status=response.status)
                return await response.read()
        except FetchError:
            raise
        except asyncio.TimeoutError:
            raise FetchError(url, "Timeout")
        except aiohttp.ClientError as e:
            raise FetchError(url, f"Request error ({e})")

    async def fetch_html(self, url: str) -> str:
        """
        获取静态 HTML

        Raises:
            FetchError: 非 2xx、网络错误、超时，或 429 重试后仍失败
        """
        logger.debug(f"Fetching page: {url}")
        retrying = AsyncRetrying(
            retry=retry_if_exception_type(RateLimitedError),
            stop=stop_after_attempt(2),
            wait=wait_fixed(self.config.request_delay_ms * 3 / 1000),
            sleep=asyncio.sleep,
            before_sleep=lambda state: logger.warning("Rate limited (429). Backing off..."),
            reraise=True,
        )
        try:
            async for attempt in retrying:
                with attempt:
                    body = await self._get(url, HTML_ACCEPT)
        except FetchError as e:
            self.stats["requests_failed"] += 1
            logger.error(f"Failed to fetch {url}: {e}")
            raise

        self.stats["pages_fetched"] += 1
        return body.decode("utf-8", errors="replace")

    async def fetch(self, url: str) -> str:
        """
        获取页面 HTML；渲染器可用时优先使用渲染结果

        Args:
            url: 页面URL

        Returns:
            HTML 内容
        """
        html = await self.fetch_html(url)

        if self.renderer is not None and self.renderer.available:
            rendered = await self.renderer.render(url)
            if rendered:
                logger.debug("Using JavaScript-rendered content")
                html = rendered

        return html

    async def fetch_bytes(self, url: str, accept: str = IMAGE_ACCEPT) -> bytes:
        """获取原始字节（图片 / robots.txt / sitemap.xml）"""
        return await self._get(url, accept)

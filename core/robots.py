"""
robots.txt / sitemap.xml 解析

- allowed(url): robots.txt 是否允许（首次调用时加载一次）
- seed_urls(root_url): sitemap.xml 中同域名的 URL
"""
import asyncio
from typing import List, Optional
from urllib.parse import urlparse
from loguru import logger
from lxml import etree

from core.exceptions import FatalCrawlError
from core.fetcher import PageFetcher

SITEMAP_NS = "http://www.sitemaps.org/schemas/sitemap/0.9"
TEXT_ACCEPT = "text/plain,application/xml,text/xml,*/*;q=0.8"


def parse_robots_txt(content: str) -> List[str]:
    """
    解析 robots.txt，返回适用于 * 的 Disallow 路径

    User-agent 为 * 或包含 * 的分组视为匹配。
    """
    disallowed: List[str] = []
    matches_agent = False

    for line in content.splitlines():
        line = line.strip()
        if not line or line.startswith("#"):
            continue

        field, _, value = line.partition(":")
        field = field.strip().lower()
        value = value.strip()

        if field == "user-agent":
            matches_agent = value == "*" or "*" in value
        elif field == "disallow" and matches_agent and value:
            disallowed.append(value)

    return disallowed


def parse_sitemap(content: bytes, host: str) -> List[str]:
    """
    解析 sitemap.xml 中的 <loc>，只保留 host 相同的 URL

    先按标准命名空间查找，找不到再按无命名空间查找。
    """
    parser = etree.XMLParser(resolve_entities=False, no_network=True)
    root = etree.fromstring(content, parser=parser)
    nodes = root.xpath("//s:loc", namespaces={"s": SITEMAP_NS})
    if not nodes:
        nodes = root.xpath("//loc")

    urls = []
    for node in nodes:
        url = (node.text or "").strip()
        if not url:
            continue
        parsed = urlparse(url)
        if parsed.scheme in ("http", "https") and parsed.hostname == host:
            urls.append(url)
    return urls


class RobotsSitemapResolver:
    """
    robots.txt / sitemap 解析器

    Example:
        resolver = RobotsSitemapResolver(fetcher, "https://example.com/", respect_robots_txt=True)
        if await resolver.allowed(url):
            ...
    """

    def __init__(self, fetcher: PageFetcher, root_url: str, respect_robots_txt: bool = True):
        parsed = urlparse(root_url or "")
        if parsed.scheme not in ("http", "https") or not parsed.hostname:
            raise FatalCrawlError(f"Invalid root URL: {root_url!r}")

        self.fetcher = fetcher
        self.scheme = parsed.scheme
        self.host = parsed.hostname
        self.netloc = parsed.netloc
        self.respect_robots_txt = respect_robots_txt
        self._disallowed: Optional[List[str]] = None
        self._load_lock = asyncio.Lock()

    @property
    def disallowed_paths(self) -> List[str]:
        return list(self._disallowed or [])

    async def _load_robots(self):
        """加载 robots.txt（失败视为全部允许）"""
        async with self._load_lock:
            if self._disallowed is not None:
                return
            robots_url = f"{self.scheme}://{self.netloc}/robots.txt"
            try:
                content = await self.fetcher.fetch_bytes(robots_url, accept=TEXT_ACCEPT)
                self._disallowed = parse_robots_txt(content.decode("utf-8", errors="replace"))
                logger.debug(f"robots.txt loaded: {len(self._disallowed)} disallow rules")
            except Exception as e:
                logger.info(f"Could not load robots.txt ({e}), treating all paths as allowed")
                self._disallowed = []

    async def allowed(self, url: str) -> bool:
        """URL 是否被 robots.txt 允许"""
        if not self.respect_robots_txt:
            return True

        if self._disallowed is None:
            await self._load_robots()

        path = (urlparse(url).path or "/").lower()
        return not any(path.startswith(rule.lower()) for rule in self._disallowed)

    async def seed_urls(self, root_url: Optional[str] = None) -> List[str]:
        """从 sitemap.xml 获取种子 URL（失败返回空列表）"""
        parsed = urlparse(root_url) if root_url else None
        scheme = parsed.scheme if parsed and parsed.scheme else self.scheme
        netloc = parsed.netloc if parsed and parsed.netloc else self.netloc
        sitemap_url = f"{scheme}://{netloc}/sitemap.xml"
        try:
            content = await self.fetcher.fetch_bytes(sitemap_url, accept=TEXT_ACCEPT)
            urls = parse_sitemap(content, self.host)
            if urls:
                logger.info(f"Found {len(urls)} URLs in sitemap.xml")
            return urls
        except Exception as e:
            logger.info(f"Could not parse sitemap: {e}")
            return []

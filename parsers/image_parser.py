"""
图片URL提取器

多种策略独立提取，结果取并集：
1. <img> src / srcset
2. <picture> 内的 <source srcset> 与后备 <img>
3. 行内 style 中的 url(...)
4. 懒加载属性 data-src / data-image / data-background / data-thumbnail / data-thumb / data-lazy-src
5. <video poster>
6. 原始 HTML 正则：CSS 背景、脚本/JSON 中的图片URL字符串
"""
import re
from typing import Iterable, List, Optional, Set
from urllib.parse import urlparse
from bs4 import BeautifulSoup
from loguru import logger

from parsers.base import BaseParser
from core.crawl_queue import normalize_url

LAZY_ATTRIBUTES = (
    "data-src",
    "data-image",
    "data-background",
    "data-thumbnail",
    "data-thumb",
    "data-lazy-src",
)

CSS_URL_PATTERN = re.compile(r"""url\(\s*['"]?([^)'"]+)['"]?\s*\)""", re.IGNORECASE)
CSS_BACKGROUND_PATTERN = re.compile(
    r"""(?:background-image|background)\s*:\s*[^;{}]*?url\(\s*['"]?([^)'"]+)['"]?\s*\)""",
    re.IGNORECASE,
)
JSON_KEYS = "image|url|src|thumbnail|thumb|poster|bg|background"


class ImageExtractor(BaseParser):
    """
    图片URL提取器

    Example:
        extractor = ImageExtractor(include_gifs=False)
        candidates = extractor.extract(html, page_url)
        urls = extractor.filter_candidates(candidates)
    """

    def __init__(self, include_gifs: bool = False, url_regex_filter: Optional[str] = None):
        super().__init__(include_gifs=include_gifs)

        extensions = "|".join(sorted(self.image_extensions, key=len, reverse=True))
        self._json_pattern = re.compile(
            rf'"(?:{JSON_KEYS})"\s*:\s*"([^"]+\.(?:{extensions}))"',
            re.IGNORECASE,
        )
        self._absolute_pattern = re.compile(
            rf"""((?:https?:)?//[^\s"'<>()]+?\.(?:{extensions}))(?![a-z0-9])""",
            re.IGNORECASE,
        )

        self.url_filter = None
        try:
            self.url_filter = self._compile_pattern(url_regex_filter)
        except re.error as e:
            logger.warning(f"Invalid URL regex filter {url_regex_filter!r} ignored: {e}")

    # ------------------------------------------------------------------
    # 主入口
    # ------------------------------------------------------------------

    def extract(self, html: str, page_url: str) -> Set[str]:
        """
        提取页面中的候选图片URL

        Args:
            html: 页面HTML
            page_url: 页面URL（用于处理相对路径）

        Returns:
            去重后的绝对URL集合
        """
        soup = BeautifulSoup(html, 'lxml')
        raw: List[str] = []

        raw.extend(self._from_image_tags(soup))
        raw.extend(self._from_picture_elements(soup))
        raw.extend(self._from_inline_styles(soup))
        raw.extend(self._from_data_attributes(soup))
        raw.extend(self._from_media_posters(soup))
        raw.extend(self._from_raw_markup(html))

        candidates = set()
        for url in raw:
            if not url or url.strip().lower().startswith("data:"):
                continue
            absolute = self._to_absolute_url(url, page_url)
            if self._is_valid_image_url(absolute):
                candidates.add(absolute)

        logger.debug(f"Extracted {len(candidates)} candidates from {page_url}")
        return candidates

    def filter_candidates(self, urls: Iterable[str]) -> List[str]:
        """按 URL 正则过滤，返回排序后的列表"""
        result = []
        for url in urls:
            if self.url_filter is not None and not self.url_filter.search(url):
                continue
            result.append(url)
        return sorted(result)

    def extract_links(self, html: str, page_url: str) -> List[str]:
        """
        提取页面中的 http/https 链接（已规范化，去重保序）

        Args:
            html: 页面HTML
            page_url: 页面URL

        Returns:
            链接列表
        """
        soup = BeautifulSoup(html, 'lxml')
        links: List[str] = []
        seen: Set[str] = set()
        for anchor in soup.find_all("a", href=True):
            href = anchor["href"].strip()
            if not href or href.startswith(("#", "javascript:", "mailto:", "tel:")):
                continue
            absolute = self._to_absolute_url(href, page_url)
            parsed = urlparse(absolute)
            if parsed.scheme not in ("http", "https") or not parsed.netloc:
                continue
            normalized = normalize_url(absolute)
            if normalized not in seen:
                seen.add(normalized)
                links.append(normalized)
        return links

    # ------------------------------------------------------------------
    # 提取策略
    # ------------------------------------------------------------------

    def _from_image_tags(self, soup: BeautifulSoup) -> List[str]:
        urls = []
        for img in soup.find_all("img"):
            srcset = img.get("srcset")
            if srcset:
                urls.extend(self._parse_srcset(srcset))
            src = img.get("src")
            if src:
                urls.append(src)
        return urls

    def _from_picture_elements(self, soup: BeautifulSoup) -> List[str]:
        urls = []
        for picture in soup.find_all("picture"):
            for source in picture.find_all("source"):
                srcset = source.get("srcset")
                if srcset:
                    urls.extend(self._parse_srcset(srcset))
            img = picture.find("img")
            if img is not None and img.get("src"):
                urls.append(img["src"])
        return urls

    def _from_inline_styles(self, soup: BeautifulSoup) -> List[str]:
        urls = []
        for element in soup.find_all(style=True):
            urls.extend(CSS_URL_PATTERN.findall(element["style"]))
        return urls

    def _from_data_attributes(self, soup: BeautifulSoup) -> List[str]:
        urls = []
        for element in soup.find_all(lambda tag: any(tag.has_attr(a) for a in LAZY_ATTRIBUTES)):
            for attr in LAZY_ATTRIBUTES:
                value = element.get(attr)
                if value and self._is_likely_image_url(value):
                    urls.append(value)
        return urls

    def _from_media_posters(self, soup: BeautifulSoup) -> List[str]:
        return [video["poster"] for video in soup.find_all("video", poster=True)]

    def _from_raw_markup(self, html: str) -> List[str]:
        """正则扫描原始HTML（覆盖 <style>、脚本和 JSON 中的图片URL）"""
        urls = []
        for match in CSS_BACKGROUND_PATTERN.findall(html):
            if self._is_likely_image_url(match.strip()):
                urls.append(match.strip())
        urls.extend(match.strip() for match in self._json_pattern.findall(html))
        for match in self._absolute_pattern.findall(html):
            url = match.strip().rstrip("\"',;:")
            if self._is_likely_image_url(url):
                urls.append(url)
        return urls

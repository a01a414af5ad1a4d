"""
解析器基类模块

包含解析器的抽象基类：
- BaseParser: 解析器基类（URL 处理、图片扩展名判断）
"""
import re
from abc import ABC
from typing import List, Optional, Tuple
from urllib.parse import urljoin, urlparse

IMAGE_EXTENSIONS: Tuple[str, ...] = ("jpg", "jpeg", "png", "webp", "svg", "bmp", "ico")
GIF_EXTENSION = "gif"


class BaseParser(ABC):
    """
    解析器基类

    所有解析器的公共基类，提供：
    - 相对URL转绝对URL
    - 图片URL有效性判断
    - srcset 解析
    """

    def __init__(self, include_gifs: bool = False):
        """
        初始化解析器

        Args:
            include_gifs: 是否把 gif 视为有效图片
        """
        self.include_gifs = include_gifs

    @property
    def image_extensions(self) -> Tuple[str, ...]:
        """当前有效的图片扩展名"""
        if self.include_gifs:
            return IMAGE_EXTENSIONS + (GIF_EXTENSION,)
        return IMAGE_EXTENSIONS

    def _to_absolute_url(self, url: str, base_url: str) -> str:
        """
        相对URL转绝对URL

        Args:
            url: 原始URL（可能为相对路径或 //host/path）
            base_url: 页面URL

        Returns:
            绝对URL，无法处理时返回空字符串
        """
        url = (url or "").strip()
        if not url:
            return ""
        try:
            return urljoin(base_url, url)
        except ValueError:
            return ""

    def _has_image_extension(self, path: str) -> bool:
        """路径是否以图片扩展名结尾（忽略大小写）"""
        path = path.lower()
        return any(path.endswith(f".{ext}") for ext in self.image_extensions)

    def _is_likely_image_url(self, url: str) -> bool:
        """粗略判断：去掉查询参数后以图片扩展名结尾"""
        if not url:
            return False
        return self._has_image_extension(url.split("?")[0].split("#")[0])

    def _is_valid_image_url(self, url: str) -> bool:
        """
        验证图片URL是否有效

        - 排除 data: URI
        - scheme 必须为 http/https（无 scheme 时视为继承页面）
        - path 以图片扩展名结尾
        """
        if not url or url.lower().startswith("data:"):
            return False
        try:
            result = urlparse(url)
        except ValueError:
            return False
        if result.scheme and result.scheme.lower() not in ("http", "https"):
            return False
        return self._has_image_extension(result.path)

    @staticmethod
    def _parse_srcset(srcset: str) -> List[str]:
        """
        解析 srcset，只保留 URL

        Example:
            "a.jpg 1x, b.jpg 2x" -> ["a.jpg", "b.jpg"]
        """
        urls = []
        for entry in srcset.split(","):
            parts = entry.strip().split()
            if parts and parts[0]:
                urls.append(parts[0])
        return urls

    @staticmethod
    def _compile_pattern(pattern: Optional[str]) -> Optional["re.Pattern"]:
        if not pattern:
            return None
        return re.compile(pattern)

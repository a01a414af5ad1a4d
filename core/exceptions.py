"""
异常定义

- FatalCrawlError: 致命错误，终止整个爬取
- FetchError: 页面/图片获取失败（页面级或图片级，可跳过）
- RateLimitedError: HTTP 429 限流
"""
from typing import Optional


class SpiderError(Exception):
    """爬虫异常基类"""


class FatalCrawlError(SpiderError):
    """致命错误：缺少起始URL、解析器无法初始化等"""


class FetchError(SpiderError):
    """请求失败"""

    def __init__(self, url: str, message: str, status: Optional[int] = None):
        super().__init__(f"{message}: {url}")
        self.url = url
        self.status = status


class RateLimitedError(FetchError):
    """HTTP 429"""

    def __init__(self, url: str):
        super().__init__(url, "HTTP 429 Too Many Requests", status=429)

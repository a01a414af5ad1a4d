"""
核心模块

包含基础组件：
- fetcher: 页面/图片获取（aiohttp）
- renderer: 浏览器渲染（selenium，可选）
- robots: robots.txt 与 sitemap
- downloader: 图片下载器
- deduplicator: 图片去重器
- checkpoint: 检查点管理器（断点续传）
- crawl_queue: 广度优先页面队列
- stats: 进度统计
"""
from .exceptions import SpiderError, FatalCrawlError, FetchError, RateLimitedError
from .fetcher import PageFetcher
from .renderer import JavaScriptRenderer
from .robots import RobotsSitemapResolver
from .downloader import ImageDownloader
from .deduplicator import ImageDeduplicator
from .checkpoint import Checkpoint, CheckpointManager
from .crawl_queue import CrawlQueue, CrawlTask
from .stats import ProgressStats

__all__ = [
    'SpiderError',
    'FatalCrawlError',
    'FetchError',
    'RateLimitedError',
    'PageFetcher',
    'JavaScriptRenderer',
    'RobotsSitemapResolver',
    'ImageDownloader',
    'ImageDeduplicator',
    'Checkpoint',
    'CheckpointManager',
    'CrawlQueue',
    'CrawlTask',
    'ProgressStats',
]

"""
爬虫模块

- ImageSpider: 网页图片爬虫（单页 / 整站）
"""
from spiders.image_spider import CrawlState, ImageSpider

__all__ = [
    'CrawlState',
    'ImageSpider',
]

"""
解析器模块

包含页面解析器：
- BaseParser: 解析器基类（URL 规范化与图片URL判断）
- ImageExtractor: 图片候选与页面链接提取
"""
from parsers.base import BaseParser
from parsers.image_parser import ImageExtractor

__all__ = ['BaseParser', 'ImageExtractor']

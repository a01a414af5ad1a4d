"""
图片下载器模块

每个候选图片按固定顺序处理：
URL 认领 -> 获取并发槽 -> 延迟 -> 下载 -> 内容哈希去重 -> 大小过滤
-> 尺寸过滤 -> 计算保存路径 -> 写盘（可选格式转换） -> 释放并发槽
"""
import asyncio
import io
import os
import re
from datetime import datetime
from pathlib import Path, PurePosixPath
from typing import Iterable, List, Optional, Tuple
from urllib.parse import unquote, urlparse
from loguru import logger
from PIL import Image

from config import ScraperConfig
from core.deduplicator import ImageDeduplicator
from core.exceptions import FetchError
from core.fetcher import PageFetcher
from core.politeness import polite_sleep
from core.stats import ProgressStats

THUMBNAIL_SIZE = 200
INVALID_FILENAME_CHARS = re.compile(r'[<>:"/\\|?*\x00-\x1f]')
SAVE_FORMATS = {"jpg": "JPEG", "png": "PNG", "gif": "GIF"}


def extract_filename(url: str) -> str:
    """
    从图片URL提取文件名

    无法得到文件名时用 "image"，没有扩展名时补 ".jpg"，非法字符替换为 "_"。
    """
    try:
        name = PurePosixPath(unquote(urlparse(url).path)).name
    except ValueError:
        return "image.jpg"

    if not name or name in (".", ".."):
        name = "image"
    if not PurePosixPath(name).suffix:
        name += ".jpg"
    return INVALID_FILENAME_CHARS.sub("_", name)


def determine_output_folder(url: str, output_folder: Optional[Path] = None) -> Path:
    """
    输出根目录

    未配置时按URL生成：<域名去掉www.>_<路径slug>，无路径时 <域名>_images
    """
    if output_folder:
        return Path(output_folder)
    parsed = urlparse(url)
    domain = (parsed.hostname or "site").replace("www.", "")
    slug = parsed.path.strip("/").replace("/", "_")
    return Path(f"{domain}_{slug}" if slug else f"{domain}_images")


class ImageDownloader:
    """
    图片下载器

    并发槽（信号量）在整个爬取过程中共享，而不是每页一个。
    """

    def __init__(
        self,
        config: ScraperConfig,
        fetcher: PageFetcher,
        deduplicator: ImageDeduplicator,
        stats: ProgressStats,
        output_folder: Path,
    ):
        self.config = config
        self.image_config = config.image
        self.fetcher = fetcher
        self.deduplicator = deduplicator
        self.stats = stats
        self.output_folder = Path(output_folder)
        self.semaphore = asyncio.Semaphore(config.crawler.concurrency)
        self._filename_filter = None
        if self.image_config.filename_pattern:
            try:
                self._filename_filter = re.compile(self.image_config.filename_pattern)
            except re.error as e:
                logger.warning(f"Invalid filename pattern ignored: {e}")

    async def download_batch(self, image_urls: Iterable[str], source_page_url: str) -> List[Optional[Path]]:
        """
        下载一个页面的全部候选图片，全部完成后返回

        Args:
            image_urls: 候选图片URL（已去重）
            source_page_url: 来源页面URL

        Returns:
            每个候选的保存路径（未保存为 None）
        """
        tasks = [self.process(url, source_page_url) for url in image_urls]
        if not tasks:
            return []
        return await asyncio.gather(*tasks)

    async def process(self, image_url: str, source_page_url: str) -> Optional[Path]:
        """
        处理单个候选图片

        Returns:
            保存路径；跳过或失败时返回 None（转换失败仍写入原始数据，但返回 None）
        """
        if not self.deduplicator.claim_url(image_url):
            return None

        async with self.semaphore:
            self.stats.start_download(image_url)
            try:
                return await self._download(image_url, source_page_url)
            except Exception as e:
                logger.error(f"Failed to download {image_url}: {e}")
                self.stats.increment("images_failed")
                self.stats.add_action(f"Failed: {urlparse(image_url).hostname}")
                return None
            finally:
                self.stats.finish_download(image_url)

    async def _download(self, image_url: str, source_page_url: str) -> Optional[Path]:
        crawler = self.config.crawler
        short_name = PurePosixPath(urlparse(image_url).path).name or image_url

        if crawler.stealth_mode:
            await polite_sleep(crawler.request_delay_ms // 2, crawler.randomize_delays)

        logger.debug(f"Downloading: {image_url}")
        self.stats.add_action(f"Downloading: {short_name}")
        try:
            data = await self.fetcher.fetch_bytes(image_url)
        except FetchError as e:
            logger.error(f"Failed to download {image_url}: {e}")
            self.stats.increment("images_failed")
            self.stats.add_action(f"Failed: {short_name}")
            return None

        content_hash = self.deduplicator.hash_bytes(data)
        if not self.deduplicator.register_content(content_hash):
            return self._skip(image_url, "duplicate", "hash match")

        reason = self._check_file_size(len(data))
        if reason:
            return self._skip(image_url, reason)

        reason = self._check_dimensions(data, image_url)
        if reason:
            return self._skip(image_url, reason)

        filename = self._target_filename(image_url)
        if self._filename_filter is not None and not self._filename_filter.search(filename):
            return self._skip(image_url, "filename pattern")

        directory = self.get_output_dir(source_page_url)
        return self._save(data, directory, filename, image_url)

    def _skip(self, image_url: str, reason: str, detail: Optional[str] = None) -> None:
        logger.info(f"Skipping ({detail or reason}): {image_url}")
        self.stats.increment("images_skipped")
        self.stats.add_action(f"Skipped ({reason}): {PurePosixPath(urlparse(image_url).path).name}")
        return None

    # ------------------------------------------------------------------
    # 过滤
    # ------------------------------------------------------------------

    def _check_file_size(self, size: int) -> Optional[str]:
        """文件大小过滤，返回跳过原因"""
        max_kb = self.image_config.max_file_size_kb
        min_kb = self.image_config.min_file_size_kb
        if max_kb > 0 and size > max_kb * 1024:
            return "too large"
        if min_kb > 0 and size < min_kb * 1024:
            return "too small"
        return None

    def _check_dimensions(self, data: bytes, image_url: str) -> Optional[str]:
        """
        尺寸过滤，返回跳过原因

        解码失败时只记录警告，视为没有尺寸限制。
        """
        cfg = self.image_config
        if not cfg.has_dimension_filter:
            return None
        try:
            with Image.open(io.BytesIO(data)) as img:
                width, height = img.size
        except Exception as e:
            logger.warning(f"Failed to check dimensions of {image_url}: {e}")
            return None

        if cfg.skip_thumbnails and width < THUMBNAIL_SIZE and height < THUMBNAIL_SIZE:
            return "thumbnail"
        if cfg.min_width and width < cfg.min_width:
            return "too narrow"
        if cfg.min_height and height < cfg.min_height:
            return "too short"
        if cfg.max_width and width > cfg.max_width:
            return "too wide"
        if cfg.max_height and height > cfg.max_height:
            return "too tall"
        return None

    # ------------------------------------------------------------------
    # 保存路径
    # ------------------------------------------------------------------

    def _target_filename(self, image_url: str) -> str:
        filename = extract_filename(image_url)
        if self.image_config.convert_to:
            filename = f"{PurePosixPath(filename).stem}.{self.image_config.convert_to}"
        return filename

    def get_output_dir(self, source_page_url: str) -> Path:
        """按组织方式计算保存目录"""
        mode = self.config.output.organization
        parsed = urlparse(source_page_url)
        host = parsed.hostname or "unknown"

        if mode == "by-page":
            return self.output_folder / host
        if mode == "by-date":
            return self.output_folder / datetime.now().strftime("%Y-%m-%d")
        if mode == "mirrored":
            page_path = parsed.path.strip("/")
            parts = [INVALID_FILENAME_CHARS.sub("_", p) for p in page_path.split("/") if p not in ("", ".", "..")]
            return self.output_folder.joinpath(host, *parts)
        return self.output_folder

    @staticmethod
    def allocate_unique_path(directory: Path, filename: str) -> Tuple[Path, io.BufferedWriter]:
        """
        原子地占用一个不存在的文件名

        name.ext 已存在时依次尝试 name_1.ext、name_2.ext ...

        Returns:
            (路径, 已以独占模式打开的文件对象)
        """
        directory.mkdir(parents=True, exist_ok=True)
        stem, suffix = os.path.splitext(filename)
        counter = 0
        while True:
            candidate = directory / (filename if counter == 0 else f"{stem}_{counter}{suffix}")
            try:
                return candidate, open(candidate, "xb")
            except FileExistsError:
                counter += 1

    # ------------------------------------------------------------------
    # 写盘
    # ------------------------------------------------------------------

    def _save(self, data: bytes, directory: Path, filename: str, image_url: str) -> Optional[Path]:
        path, handle = self.allocate_unique_path(directory, filename)
        target_format = self.image_config.convert_to

        with handle:
            if not target_format:
                handle.write(data)
                converted = True
            else:
                try:
                    handle.write(self._convert(data, target_format))
                    converted = True
                except Exception as e:
                    # 转换失败：写入原始数据，但计为失败
                    logger.error(f"Conversion failed: {e}. Saving original.")
                    handle.seek(0)
                    handle.truncate()
                    handle.write(data)
                    converted = False

        if not converted:
            self.stats.increment("images_failed")
            self.stats.add_action(f"Failed: {path.name}")
            return None

        self.stats.increment("images_downloaded")
        self.stats.increment("bytes_downloaded", len(data))
        verb = "Downloaded & converted" if target_format else "Downloaded"
        logger.success(f"{verb}: {path.name} ({len(data)} bytes)")
        self.stats.add_action(f"Downloaded: {path.name}")
        return path

    def _convert(self, data: bytes, target_format: str) -> bytes:
        """转换图片格式（JPEG 使用 jpeg_quality）"""
        save_format = SAVE_FORMATS[target_format]
        with Image.open(io.BytesIO(data)) as img:
            img.load()
            # 转换RGBA到RGB（保存为JPG时）
            if save_format == "JPEG" and img.mode in ("RGBA", "LA", "P"):
                rgba = img.convert("RGBA")
                background = Image.new("RGB", rgba.size, (255, 255, 255))
                background.paste(rgba, mask=rgba.split()[-1])
                img = background
            elif save_format == "JPEG" and img.mode != "RGB":
                img = img.convert("RGB")

            output = io.BytesIO()
            save_kwargs = {}
            if save_format == "JPEG":
                save_kwargs["quality"] = self.image_config.jpeg_quality
                save_kwargs["optimize"] = True
            img.save(output, format=save_format, **save_kwargs)
            return output.getvalue()

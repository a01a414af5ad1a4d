"""
网页图片爬虫

单页模式：只处理起始页面。
整站模式：从起始页面（和 sitemap）开始广度优先爬取同域名页面，
逐页处理，每页的图片批次全部完成后才处理下一页。
"""
import asyncio
import enum
from pathlib import Path
from typing import Optional
from urllib.parse import urlparse
from loguru import logger

from config import ScraperConfig
from core.checkpoint import CheckpointManager
from core.crawl_queue import CrawlQueue, CrawlTask, normalize_url
from core.deduplicator import ImageDeduplicator
from core.downloader import ImageDownloader, determine_output_folder
from core.exceptions import FatalCrawlError, SpiderError
from core.fetcher import PageFetcher
from core.politeness import polite_sleep
from core.renderer import JavaScriptRenderer
from core.robots import RobotsSitemapResolver
from core.stats import ProgressStats
from parsers.image_parser import ImageExtractor


class CrawlState(enum.Enum):
    """爬虫状态"""
    IDLE = "idle"
    SEEDING = "seeding"
    CRAWLING = "crawling"
    COMPLETED = "completed"
    FAILED = "failed"


class ImageSpider:
    """
    网页图片爬虫

    Example:
        config = ScraperConfig(crawler={"url": "https://example.com/", "domain_mode": True})
        async with ImageSpider(config) as spider:
            await spider.run()
            print(spider.stats.summary())
    """

    def __init__(
        self,
        config: ScraperConfig,
        stats: Optional[ProgressStats] = None,
        fetcher: Optional[PageFetcher] = None,
        renderer: Optional[JavaScriptRenderer] = None,
    ):
        """
        初始化爬虫

        Args:
            config: 配置对象（运行期间不再修改）
            stats: 进度统计（外部观察者可共享同一个对象）
            fetcher: 页面获取器（测试时可注入）
            renderer: JS 渲染器（为空且配置启用时自动创建）
        """
        self.config = config
        self.url = config.crawler.url
        self.stats = stats or ProgressStats(url=self.url or "")
        self.state = CrawlState.IDLE

        if renderer is None and config.render.enabled:
            renderer = JavaScriptRenderer(config.render)
        self.renderer = renderer
        self.fetcher = fetcher or PageFetcher(config.crawler, renderer=renderer)

        self.extractor = ImageExtractor(
            include_gifs=config.image.include_animated_gifs,
            url_regex_filter=config.image.url_regex_filter,
        )
        self.deduplicator = ImageDeduplicator()
        self.queue = CrawlQueue(max_depth=config.crawler.max_depth)
        self.output_folder: Path = determine_output_folder(self.url or "", config.output.output_folder)
        self.downloader = ImageDownloader(
            config, self.fetcher, self.deduplicator, self.stats, self.output_folder
        )
        self.resolver: Optional[RobotsSitemapResolver] = None
        self.checkpoint: Optional[CheckpointManager] = None

        logger.info(f"🚀 初始化爬虫: {self.url} ({'整站' if config.crawler.domain_mode else '单页'}模式)")

    async def __aenter__(self):
        """异步上下文管理器"""
        await self.init()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        """异步上下文管理器退出"""
        await self.close()

    async def init(self):
        """初始化网络会话与渲染器"""
        logger.info("⚙️  初始化爬虫组件...")
        await self.fetcher.init_session()
        if self.renderer is not None:
            await self.renderer.initialize()

    async def close(self):
        """关闭爬虫"""
        logger.info("🔒 关闭爬虫...")
        if self.renderer is not None:
            await self.renderer.close()
        await self.fetcher.close()
        logger.info(f"📊 爬虫统计: {self.stats.summary()}")
        logger.info(f"🔄 去重统计: {self.deduplicator.get_stats()}")

    # ------------------------------------------------------------------
    # 主流程
    # ------------------------------------------------------------------

    async def run(self):
        """
        按配置执行单页或整站爬取

        Raises:
            FatalCrawlError: 缺少/无效的起始URL，或解析器无法初始化
        """
        try:
            self._validate_root_url()
            if self.config.crawler.domain_mode:
                await self.crawl_domain()
            else:
                await self.crawl_single_page()
        except FatalCrawlError as e:
            self.state = CrawlState.FAILED
            logger.error(f"❌ 致命错误: {e}")
            raise
        except Exception as e:
            self.state = CrawlState.FAILED
            logger.error(f"❌ 致命错误: {e}")
            raise FatalCrawlError(str(e)) from e

    def _validate_root_url(self):
        if not self.url:
            raise FatalCrawlError("URL is required")
        parsed = urlparse(self.url)
        if parsed.scheme not in ("http", "https") or not parsed.hostname:
            raise FatalCrawlError(f"Invalid URL: {self.url}")

    async def crawl_single_page(self):
        """单页模式：只处理一个页面，不使用检查点"""
        logger.info("📄 开始单页图片下载...")
        self.state = CrawlState.CRAWLING
        self.output_folder.mkdir(parents=True, exist_ok=True)

        self.queue.mark_visited(self.url)
        self.stats.increment("pages_found")
        self.stats.increment("pages_crawled")
        try:
            await self.process_page(self.url)
        except SpiderError as e:
            logger.warning(f"⚠️  页面处理失败 {self.url}: {e}")
            self.stats.add_action(f"Error: {urlparse(self.url).hostname}")

        self.state = CrawlState.COMPLETED
        logger.success(f"✅ 下载完成，共发现 {self.stats.images_found} 张图片")

    async def crawl_domain(self):
        """整站模式：广度优先爬取同域名页面"""
        logger.info("🌐 开始整站爬取...")
        self.state = CrawlState.SEEDING

        self.resolver = self._create_resolver()
        resumed = self._restore_checkpoint()

        self.output_folder.mkdir(parents=True, exist_ok=True)
        self._seed_root()
        if not resumed or not self.queue:
            sitemap_urls = await self.resolver.seed_urls(self.url)
            added = self.queue.extend(sitemap_urls, 0)
            self.stats.increment("pages_found", added)

        self.state = CrawlState.CRAWLING
        root_host = urlparse(self.url).hostname
        page_count = self.stats.pages_crawled

        try:
            page_count = await self._crawl_loop(page_count, root_host)
        except asyncio.CancelledError:
            # 被中断：保存进度后继续向上传播
            self.save_checkpoint()
            raise

        if self.checkpoint is not None:
            self.checkpoint.delete_checkpoint()
        self.state = CrawlState.COMPLETED
        logger.success(
            f"✅ 爬取完成：处理 {page_count} 个页面，发现 {self.stats.images_found} 张图片"
        )

    async def _crawl_loop(self, page_count: int, root_host: Optional[str]) -> int:
        """逐页处理队列，返回已处理页数"""
        crawler = self.config.crawler
        while page_count < crawler.max_pages:
            task = self.queue.pop()
            if task is None:
                break
            if not self.queue.admit(task):
                continue

            try:
                allowed = await self.resolver.allowed(task.url)
            except asyncio.CancelledError:
                self.queue.requeue(task)
                raise
            if not allowed:
                logger.info(f"🚫 robots.txt 禁止: {task.url}")
                continue

            if not self.queue.mark_visited(task.url):
                continue
            page_count += 1
            self.stats.increment("pages_crawled")

            logger.info(f"📄 爬取 [{page_count}/{crawler.max_pages}]: {task.url} (depth: {task.depth})")
            parsed = urlparse(task.url)
            self.stats.add_action(f"Crawling: {parsed.hostname}{parsed.path}")

            try:
                if crawler.stealth_mode and page_count > 1:
                    await polite_sleep(crawler.request_delay_ms, crawler.randomize_delays)
                html = await self.process_page(task.url)
                self._enqueue_links(html, task, root_host)
            except asyncio.CancelledError:
                # 本页未完成，恢复时重新处理
                self.queue.requeue(task)
                self.stats.increment("pages_crawled", -1)
                raise
            except Exception as e:
                logger.warning(f"⚠️  页面处理失败 {task.url}: {e}")
                self.stats.add_action(f"Error: {parsed.hostname}")

            if page_count % self.config.checkpoint.interval == 0:
                self.save_checkpoint()
        return page_count

    # ------------------------------------------------------------------
    # 页面处理
    # ------------------------------------------------------------------

    async def process_page(self, page_url: str) -> str:
        """
        获取页面、提取图片并下载（等待本页全部图片完成）

        Returns:
            用于提取图片的 HTML（后续用于提取链接）

        Raises:
            FetchError: 页面获取失败
        """
        html = await self.fetcher.fetch(page_url)

        candidates = self.extractor.filter_candidates(self.extractor.extract(html, page_url))
        self.stats.increment("images_found", len(candidates))
        logger.info(f"🖼️  发现 {len(candidates)} 张图片: {page_url}")
        self.stats.add_action(f"Found {len(candidates)} images")

        await self.downloader.download_batch(candidates, page_url)
        return html

    def _enqueue_links(self, html: str, task: CrawlTask, root_host: Optional[str]):
        """提取同域名链接，未访问的以 depth+1 入队"""
        added = 0
        for link in self.extractor.extract_links(html, task.url):
            if urlparse(link).hostname != root_host:
                continue
            if self.queue.push(link, task.depth + 1):
                added += 1
        if added:
            self.stats.increment("pages_found", added)
            logger.debug(f"Enqueued {added} links from {task.url}")

    # ------------------------------------------------------------------
    # 初始化 / 检查点
    # ------------------------------------------------------------------

    def _create_resolver(self) -> RobotsSitemapResolver:
        try:
            return RobotsSitemapResolver(
                self.fetcher, self.url, self.config.crawler.respect_robots_txt
            )
        except FatalCrawlError:
            raise
        except Exception as e:
            raise FatalCrawlError(f"Resolver initialization failed: {e}") from e

    def _seed_root(self):
        if normalize_url(self.url) in self.queue.visited:
            return
        if self.queue.push(self.url, 0):
            self.stats.increment("pages_found")

    def _restore_checkpoint(self) -> bool:
        """加载匹配的检查点，没有则新建。返回是否为恢复运行"""
        if not self.config.checkpoint.enabled:
            return False

        self.checkpoint = CheckpointManager(self.url, self.config.checkpoint)
        data = self.checkpoint.load_checkpoint()
        if data is None:
            self.checkpoint.create_checkpoint(self.config.options_snapshot())
            return False

        logger.info(f"♻️  从检查点恢复（创建于 {data.created_at:%Y-%m-%d %H:%M:%S}）")
        self.queue.restore(data.visited_urls, data.pending)
        self.deduplicator.restore(data.downloaded_urls, data.downloaded_hashes)
        self.stats.set_at_least("pages_crawled", data.pages_processed)
        self.stats.set_at_least("pages_found", data.pages_processed + len(data.pending))
        self.stats.set_at_least("images_found", data.images_found)
        self.stats.set_at_least("images_downloaded", data.images_downloaded)
        self.stats.set_at_least("images_failed", data.images_failed)
        self.stats.set_at_least("bytes_downloaded", data.bytes_downloaded)
        return True

    def save_checkpoint(self) -> bool:
        """写入当前进度"""
        if self.checkpoint is None:
            return False
        snapshot = self.stats.snapshot()
        return self.checkpoint.update_checkpoint(
            visited_urls=self.queue.visited.snapshot(),
            downloaded_urls=self.deduplicator.downloaded_urls.snapshot(),
            downloaded_hashes=self.deduplicator.content_hashes.snapshot(),
            pending=self.queue.pending(),
            pages_processed=snapshot["pages_crawled"],
            images_found=snapshot["images_found"],
            images_downloaded=snapshot["images_downloaded"],
            images_failed=snapshot["images_failed"],
            bytes_downloaded=snapshot["bytes_downloaded"],
        )

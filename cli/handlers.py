"""
CLI命令处理函数
"""
import asyncio
from pathlib import Path
from typing import Any, Dict
from loguru import logger
from tqdm import tqdm

from config import (
    CheckpointConfig,
    ScraperConfig,
    create_config_from_dict,
    load_config_file,
    load_config_from_env,
    save_config_file,
)
from core.checkpoint import CheckpointManager
from core.exceptions import FatalCrawlError
from core.stats import ProgressStats, format_bytes
from spiders.image_spider import ImageSpider

PROGRESS_INTERVAL = 0.5


def _set(section: Dict[str, Any], key: str, value: Any):
    """命令行参数非 None 时覆盖配置"""
    if value is not None:
        section[key] = value


def build_config(args) -> ScraperConfig:
    """
    合并配置：配置文件（或环境变量） < 命令行参数

    Args:
        args: argparse 解析结果（crawl 子命令）

    Returns:
        ScraperConfig实例
    """
    base = load_config_file(Path(args.config)) if args.config else load_config_from_env()
    data = base.model_dump()

    crawler = data["crawler"]
    crawler["url"] = args.url
    _set(crawler, "domain_mode", args.domain)
    _set(crawler, "max_pages", args.max_pages)
    _set(crawler, "max_depth", args.max_depth)
    _set(crawler, "concurrency", args.concurrency)
    _set(crawler, "request_timeout", args.timeout)
    _set(crawler, "respect_robots_txt", args.robots_txt)
    if args.stealth:
        crawler["stealth_mode"] = True
        crawler["randomize_delays"] = True
    if args.delay is not None:
        # 固定延迟：启用延迟但不随机
        crawler["stealth_mode"] = True
        crawler["randomize_delays"] = bool(args.stealth)
        crawler["request_delay_ms"] = args.delay

    image = data["image"]
    _set(image, "min_width", args.min_width)
    _set(image, "min_height", args.min_height)
    _set(image, "max_width", args.max_width)
    _set(image, "max_height", args.max_height)
    _set(image, "min_file_size_kb", args.min_size)
    _set(image, "max_file_size_kb", args.max_size)
    _set(image, "skip_thumbnails", args.skip_thumbnails)
    _set(image, "include_animated_gifs", args.include_gifs)
    _set(image, "url_regex_filter", args.url_regex)
    _set(image, "filename_pattern", args.filename_pattern)
    _set(image, "convert_to", args.convert_to)
    _set(image, "jpeg_quality", args.jpeg_quality)

    _set(data["output"], "output_folder", args.out)
    _set(data["output"], "organization", args.organize)

    _set(data["render"], "enabled", args.enable_js)
    _set(data["render"], "wait_ms", args.js_wait)

    _set(data["checkpoint"], "checkpoint_file", args.checkpoint)
    if not args.resume:
        data["checkpoint"]["enabled"] = False

    _set(data["log"], "log_file", args.log)
    if args.verbose:
        data["log"]["verbose"] = True

    return create_config_from_dict(data)


async def _watch_progress(stats: ProgressStats, bar: tqdm):
    """定期把统计刷新到进度条（只读，不影响爬取）"""
    while True:
        snapshot = stats.snapshot()
        bar.total = max(snapshot["images_found"], 1)
        bar.n = snapshot["images_downloaded"] + snapshot["images_skipped"] + snapshot["images_failed"]
        bar.set_postfix_str(
            f"pages {snapshot['pages_crawled']}/{snapshot['pages_found']} "
            f"ok {snapshot['images_downloaded']} skip {snapshot['images_skipped']} "
            f"fail {snapshot['images_failed']} {format_bytes(snapshot['bytes_downloaded'])}"
        )
        bar.refresh()
        await asyncio.sleep(PROGRESS_INTERVAL)


async def handle_crawl(args, config: ScraperConfig) -> int:
    """
    处理 crawl 子命令

    Returns:
        退出码：0 完成，1 致命错误
    """
    print(f"\n📌 命令: 爬取图片")
    print(f"URL: {config.crawler.url}")
    print(f"模式: {'整站' if config.crawler.domain_mode else '单页'}")
    if config.crawler.domain_mode:
        depth = config.crawler.max_depth
        print(f"最大页数: {config.crawler.max_pages}，最大深度: {depth if depth >= 0 else '不限制'}")
    print(f"并发数: {config.crawler.concurrency}")

    if args.save_config:
        save_config_file(config, Path(args.save_config))

    stats = ProgressStats(url=config.crawler.url or "")
    spider = ImageSpider(config, stats=stats)
    print(f"输出目录: {spider.output_folder}")

    bar = None
    watcher = None
    if args.progress:
        bar = tqdm(desc="images", unit="img", leave=False)
        watcher = asyncio.create_task(_watch_progress(stats, bar))

    try:
        async with spider:
            await spider.run()
    except FatalCrawlError as e:
        logger.error(f"❌ 爬取失败: {e}")
        print(f"\n❌ 爬取失败: {e}")
        return 1
    finally:
        if watcher is not None:
            watcher.cancel()
            await asyncio.gather(watcher, return_exceptions=True)
        if bar is not None:
            bar.close()

    print_statistics(stats)
    return 0


def print_statistics(stats: ProgressStats):
    """输出统计信息"""
    snapshot = stats.snapshot()
    print("\n" + "=" * 60)
    print("📊 爬取统计:")
    print(f"  爬取页面: {snapshot['pages_crawled']}")
    print(f"  发现图片: {snapshot['images_found']}")
    print(f"  下载成功: {snapshot['images_downloaded']}")
    print(f"  跳过: {snapshot['images_skipped']}")
    print(f"  下载失败: {snapshot['images_failed']}")
    print(f"  下载大小: {format_bytes(snapshot['bytes_downloaded'])}")
    print("=" * 60)


async def handle_checkpoint_status(args) -> int:
    """处理 checkpoint-status 子命令"""
    print(f"\n📌 命令: 查看检查点状态")
    print(f"URL: {args.url}")

    checkpoint_config = CheckpointConfig(checkpoint_file=args.checkpoint) if args.checkpoint else CheckpointConfig()
    checkpoint = CheckpointManager(args.url, checkpoint_config)

    if args.clear:
        if checkpoint.exists():
            checkpoint.delete_checkpoint()
            print("✅ 检查点已清除")
        else:
            print("ℹ️  没有找到检查点")
        return 0

    data = checkpoint.load_checkpoint()
    if data is None:
        print("ℹ️  没有找到检查点")
        print(f"   存储: {checkpoint.checkpoint_file}")
        return 0

    print("\n" + "=" * 60)
    print("📂 检查点信息:")
    print(f"  存储: {checkpoint.checkpoint_file}")
    print(f"  创建时间: {data.created_at.isoformat()}")
    print(f"  更新时间: {data.updated_at.isoformat()}")
    print(f"  已处理页面: {data.pages_processed}")
    print(f"  待处理页面: {len(data.pending)}")
    print(f"  发现图片: {data.images_found}")
    print(f"  下载成功: {data.images_downloaded}")
    print(f"  下载失败: {data.images_failed}")
    print(f"  已记录哈希: {len(data.downloaded_hashes)}")
    print(f"  下载大小: {format_bytes(data.bytes_downloaded)}")
    print("=" * 60)
    return 0

"""
网页图片爬虫 - 命令行入口

子命令:
  crawl              爬取单个页面或整站图片
  checkpoint-status  查看 / 清除检查点
"""
import asyncio
import sys
from loguru import logger

from cli.commands import create_parser
from cli.handlers import build_config, handle_checkpoint_status, handle_crawl
from config import LogConfig


def setup_logging(log_config: LogConfig):
    """
    配置日志

    控制台：INFO（verbose 时 DEBUG）；配置了日志文件时额外写入 DEBUG 文件日志
    """
    logger.remove()
    logger.add(
        sys.stderr,
        format="<green>{time:HH:mm:ss}</green> | <level>{level: <8}</level> | <level>{message}</level>",
        level="DEBUG" if log_config.verbose else log_config.log_level,
        colorize=True
    )

    if log_config.log_file:
        log_config.log_file.parent.mkdir(parents=True, exist_ok=True)
        logger.add(
            log_config.log_file,
            rotation=log_config.rotation,
            retention=log_config.retention,
            encoding="utf-8",
            level="DEBUG",
            enqueue=True
        )


async def main(argv=None) -> int:
    """主函数 - 子命令模式，返回退出码"""
    parser = create_parser()
    args = parser.parse_args(argv)

    print("\n" + "=" * 60)
    print("🕷️  网页图片爬虫")
    print("=" * 60)

    if args.command == 'crawl':
        config = build_config(args)
        setup_logging(config.log)
        return await handle_crawl(args, config)
    if args.command == 'checkpoint-status':
        setup_logging(LogConfig())
        return await handle_checkpoint_status(args)
    return 2


def run() -> int:
    """同步入口：Ctrl+C 时保留检查点并返回 130"""
    try:
        return asyncio.run(main())
    except KeyboardInterrupt:
        print("\n⚠️  已中断，检查点已保留，可重新运行以继续")
        return 130


if __name__ == "__main__":
    sys.exit(run())

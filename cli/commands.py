"""
CLI命令定义（argparse）
"""
import argparse


def create_parser() -> argparse.ArgumentParser:
    """
    创建命令行参数解析器

    Returns:
        ArgumentParser 实例
    """
    parser = argparse.ArgumentParser(
        prog='spider.py',
        description='网页图片爬虫 (子命令模式)',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog='''
示例:
  # 下载单个页面中的图片
  python spider.py crawl https://example.com/gallery

  # 整站爬取（最多 50 页，深度 2，8 个并发）
  python spider.py crawl https://example.com/ --domain --max-pages 50 --max-depth 2 --concurrency 8

  # 过滤与转换
  python spider.py crawl https://example.com/ --skip-thumbnails --min-size 20 --convert-to jpg --jpeg-quality 85

  # 使用配置文件，并把当前参数保存为配置文件
  python spider.py crawl https://example.com/ --config picspider.json
  python spider.py crawl https://example.com/ --stealth --save-config picspider.json

  # 查看 / 清除检查点
  python spider.py checkpoint-status https://example.com/
  python spider.py checkpoint-status https://example.com/ --clear
        '''
    )

    subparsers = parser.add_subparsers(dest='command', help='子命令', required=True)

    # ============================================================================
    # 子命令: crawl - 爬取图片
    # ============================================================================
    parser_crawl = subparsers.add_parser('crawl', help='爬取页面/整站图片')
    parser_crawl.add_argument('url', type=str, help='起始URL')
    parser_crawl.add_argument('--domain', action='store_true', default=None,
                              help='整站模式（默认只爬单页）')
    parser_crawl.add_argument('--config', type=str, help='JSON 配置文件')
    parser_crawl.add_argument('--save-config', type=str, help='把最终配置保存到文件')

    # 输出
    parser_crawl.add_argument('--out', type=str, help='输出目录')
    parser_crawl.add_argument('--organize', type=str, choices=['flat', 'by-page', 'by-date', 'mirrored'],
                              help='目录组织方式（默认 flat）')

    # 范围与并发
    parser_crawl.add_argument('--max-pages', type=int, help='最大页数（默认 100）')
    parser_crawl.add_argument('--max-depth', type=int, help='最大深度（-1 不限制）')
    parser_crawl.add_argument('--concurrency', type=int, help='并发下载数 1-32（默认 4）')
    parser_crawl.add_argument('--timeout', type=int, help='请求超时（秒）')

    # 礼貌策略
    parser_crawl.add_argument('--stealth', action='store_true', default=None,
                              help='随机延迟 + 请求头变化')
    parser_crawl.add_argument('--delay', type=int, help='固定请求延迟（毫秒）')
    parser_crawl.add_argument('--robots-txt', dest='robots_txt', action='store_true', default=None,
                              help='遵守 robots.txt（默认）')
    parser_crawl.add_argument('--ignore-robots-txt', dest='robots_txt', action='store_false',
                              help='忽略 robots.txt')

    # 过滤
    parser_crawl.add_argument('--min-width', type=int, help='最小宽度')
    parser_crawl.add_argument('--min-height', type=int, help='最小高度')
    parser_crawl.add_argument('--max-width', type=int, help='最大宽度')
    parser_crawl.add_argument('--max-height', type=int, help='最大高度')
    parser_crawl.add_argument('--min-size', type=int, help='最小文件大小（KB）')
    parser_crawl.add_argument('--max-size', type=int, help='最大文件大小（KB）')
    parser_crawl.add_argument('--skip-thumbnails', action='store_true', default=None,
                              help='跳过宽高均小于200px的图片')
    parser_crawl.add_argument('--include-gifs', action='store_true', default=None, help='包含 GIF')
    parser_crawl.add_argument('--url-regex', type=str, help='图片URL正则')
    parser_crawl.add_argument('--filename-pattern', type=str, help='文件名正则')

    # 转换
    parser_crawl.add_argument('--convert-to', type=str, choices=['jpg', 'png', 'gif'], help='转换格式')
    parser_crawl.add_argument('--jpeg-quality', type=int, help='JPEG 质量 1-100（默认 90）')

    # JS 渲染
    parser_crawl.add_argument('--enable-js', action='store_true', default=None, help='启用浏览器渲染')
    parser_crawl.add_argument('--js-wait', type=int, help='渲染等待时间（毫秒）')

    # 检查点与日志
    parser_crawl.add_argument('--checkpoint', type=str, help='检查点文件')
    parser_crawl.add_argument('--no-resume', dest='resume', action='store_false', default=True,
                              help='不使用检查点')
    parser_crawl.add_argument('--log', type=str, help='日志文件')
    parser_crawl.add_argument('--verbose', '-v', action='store_true', help='输出 DEBUG 日志')
    parser_crawl.add_argument('--no-progress', dest='progress', action='store_false', default=True,
                              help='不显示进度条')

    # ============================================================================
    # 子命令: checkpoint-status - 查看检查点状态
    # ============================================================================
    parser_checkpoint = subparsers.add_parser('checkpoint-status', help='查看检查点状态')
    parser_checkpoint.add_argument('url', type=str, help='起始URL（检查点的键）')
    parser_checkpoint.add_argument('--checkpoint', type=str, help='检查点文件')
    parser_checkpoint.add_argument('--clear', action='store_true', help='清除检查点')

    return parser

"""
配置管理模块 - 网页图片爬虫
统一配置管理，支持 JSON 配置文件 / 环境变量 / 命令行覆盖
"""
from pydantic import BaseModel, ConfigDict, Field
from typing import Optional, Dict, Any, Literal
import os
import json
from pathlib import Path
from dotenv import load_dotenv
from loguru import logger

load_dotenv()

# 项目根目录
BASE_DIR = Path(__file__).parent
# 每个安装一份的缓存目录（检查点等）
CACHE_DIR = Path.home() / ".cache" / "picspider"

OrganizationMode = Literal["flat", "by-page", "by-date", "mirrored"]
ConvertFormat = Literal["jpg", "png", "gif"]


class CrawlerConfig(BaseModel):
    """爬虫配置"""
    model_config = ConfigDict(frozen=True)

    # 爬取目标
    url: Optional[str] = Field(default=None, description="起始URL")
    domain_mode: bool = Field(default=False, description="整站模式（否则只爬单页）")
    max_pages: int = Field(default=100, ge=1, description="最大页数")
    max_depth: int = Field(default=-1, ge=-1, description="最大深度（-1 表示不限制）")

    # 并发控制
    concurrency: int = Field(default=4, ge=1, le=32, description="最大并发下载数")
    request_timeout: int = Field(default=30, ge=1, description="请求超时时间（秒）")
    request_delay_ms: int = Field(default=1000, ge=0, description="请求延迟基准（毫秒）")

    # 礼貌策略
    stealth_mode: bool = Field(default=False, description="启用请求延迟")
    randomize_delays: bool = Field(default=False, description="延迟随机抖动（仅 --stealth）")
    respect_robots_txt: bool = Field(default=True, description="遵守 robots.txt")

    # User-Agent配置
    rotate_user_agent: bool = Field(default=True, description="stealth 模式下是否轮换UA")


class ImageConfig(BaseModel):
    """图片配置"""
    model_config = ConfigDict(frozen=True)

    # 尺寸过滤（0 表示不限制）
    min_width: int = Field(default=0, ge=0, description="最小宽度")
    min_height: int = Field(default=0, ge=0, description="最小高度")
    max_width: int = Field(default=0, ge=0, description="最大宽度")
    max_height: int = Field(default=0, ge=0, description="最大高度")

    # 文件大小过滤（KB，0 表示不限制）
    min_file_size_kb: int = Field(default=0, ge=0, description="最小文件大小（KB）")
    max_file_size_kb: int = Field(default=0, ge=0, description="最大文件大小（KB）")

    skip_thumbnails: bool = Field(default=False, description="跳过缩略图（宽高均小于200px）")
    include_animated_gifs: bool = Field(default=False, description="包含 GIF 图片")

    # 正则过滤
    url_regex_filter: Optional[str] = Field(default=None, description="图片URL正则过滤")
    filename_pattern: Optional[str] = Field(default=None, description="文件名正则过滤")

    # 格式转换
    convert_to: Optional[ConvertFormat] = Field(default=None, description="转换格式: jpg/png/gif")
    jpeg_quality: int = Field(default=90, ge=1, le=100, description="JPEG 质量")

    @property
    def has_dimension_filter(self) -> bool:
        """是否需要解码图片检查尺寸"""
        return bool(
            self.min_width or self.min_height or self.max_width
            or self.max_height or self.skip_thumbnails
        )


class OutputConfig(BaseModel):
    """输出配置"""
    model_config = ConfigDict(frozen=True)

    output_folder: Optional[Path] = Field(default=None, description="输出目录（为空时按URL生成）")
    organization: OrganizationMode = Field(default="flat", description="目录组织方式")


class RenderConfig(BaseModel):
    """JavaScript 渲染配置"""
    model_config = ConfigDict(frozen=True)

    enabled: bool = Field(default=False, description="启用浏览器渲染")
    wait_ms: int = Field(default=3000, ge=0, description="页面加载后等待时间（毫秒）")
    page_load_timeout: int = Field(default=30, ge=1, description="页面加载超时（秒）")
    max_scrolls: int = Field(default=50, ge=0, description="懒加载滚动次数上限")


class CheckpointConfig(BaseModel):
    """检查点配置"""
    model_config = ConfigDict(frozen=True)

    enabled: bool = Field(default=True, description="启用断点续传")
    checkpoint_dir: Path = Field(default=CACHE_DIR / "checkpoints", description="检查点目录")
    checkpoint_file: Optional[Path] = Field(default=None, description="自定义检查点文件")
    interval: int = Field(default=10, ge=1, description="每处理N个页面保存一次")


class LogConfig(BaseModel):
    """日志配置"""
    model_config = ConfigDict(frozen=True)

    log_level: str = Field(default="INFO", description="日志级别")
    log_file: Optional[Path] = Field(default=None, description="日志文件（为空不写文件）")
    verbose: bool = Field(default=False, description="控制台输出 DEBUG 日志")
    rotation: str = Field(default="100 MB", description="日志轮转大小")
    retention: str = Field(default="30 days", description="日志保留时间")


class ScraperConfig(BaseModel):
    """全局配置"""
    model_config = ConfigDict(frozen=True)

    crawler: CrawlerConfig = Field(default_factory=CrawlerConfig)
    image: ImageConfig = Field(default_factory=ImageConfig)
    output: OutputConfig = Field(default_factory=OutputConfig)
    render: RenderConfig = Field(default_factory=RenderConfig)
    checkpoint: CheckpointConfig = Field(default_factory=CheckpointConfig)
    log: LogConfig = Field(default_factory=LogConfig)

    def options_snapshot(self) -> Dict[str, str]:
        """检查点中记录的关键参数"""
        return {
            "url": self.crawler.url or "",
            "max_pages": str(self.crawler.max_pages),
            "max_depth": str(self.crawler.max_depth),
            "concurrency": str(self.crawler.concurrency),
        }


# ============================================================================
# 配置文件加载 / 保存
# ============================================================================

def create_config_from_dict(data: Dict[str, Any]) -> ScraperConfig:
    """
    从字典创建配置对象

    字典按分组组织：{"crawler": {...}, "image": {...}, "output": {...}, ...}

    Args:
        data: 配置字典

    Returns:
        ScraperConfig实例
    """
    return ScraperConfig(**{key: value for key, value in data.items() if value is not None})


def load_config_file(config_file: Path) -> ScraperConfig:
    """
    加载 JSON 配置文件

    文件不存在时返回默认配置；格式错误时记录警告并返回默认配置。

    Args:
        config_file: 配置文件路径

    Returns:
        ScraperConfig实例
    """
    config_file = Path(config_file)
    if not config_file.exists():
        logger.warning(f"配置文件不存在: {config_file}，使用默认配置")
        return ScraperConfig()

    try:
        with open(config_file, 'r', encoding='utf-8') as f:
            data = json.load(f)
        config = create_config_from_dict(data)
        logger.info(f"✅ 加载配置: {config_file}")
        return config
    except Exception as e:
        logger.warning(f"⚠️  加载配置失败: {config_file} - {e}，使用默认配置")
        return ScraperConfig()


def save_config_file(config: ScraperConfig, config_file: Path) -> bool:
    """保存配置到 JSON 文件（url 不写入）"""
    try:
        data = config.model_dump(mode="json", exclude_none=True)
        data.get("crawler", {}).pop("url", None)
        config_file = Path(config_file)
        config_file.parent.mkdir(parents=True, exist_ok=True)
        with open(config_file, 'w', encoding='utf-8') as f:
            json.dump(data, f, ensure_ascii=False, indent=2)
        logger.info(f"配置已保存: {config_file}")
        return True
    except Exception as e:
        logger.error(f"保存配置失败: {e}")
        return False


def _env_bool(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).lower() == "true"


# 从环境变量加载配置
def load_config_from_env() -> ScraperConfig:
    """从环境变量加载配置"""
    config_data = {
        "crawler": {
            "max_pages": int(os.getenv("PICSPIDER_MAX_PAGES", "100")),
            "max_depth": int(os.getenv("PICSPIDER_MAX_DEPTH", "-1")),
            "concurrency": int(os.getenv("PICSPIDER_CONCURRENCY", "4")),
            "request_timeout": int(os.getenv("PICSPIDER_REQUEST_TIMEOUT", "30")),
            "request_delay_ms": int(os.getenv("PICSPIDER_DELAY_MS", "1000")),
            "respect_robots_txt": _env_bool("PICSPIDER_RESPECT_ROBOTS", "true"),
        },
        "output": {
            "output_folder": os.getenv("PICSPIDER_OUTPUT_DIR") or None,
            "organization": os.getenv("PICSPIDER_ORGANIZE", "flat"),
        },
        "render": {
            "enabled": _env_bool("PICSPIDER_ENABLE_JS"),
        },
        "log": {
            "log_level": os.getenv("LOG_LEVEL", "INFO"),
            "log_file": os.getenv("PICSPIDER_LOG_FILE") or None,
        },
    }
    return create_config_from_dict(config_data)

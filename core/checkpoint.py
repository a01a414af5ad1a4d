"""
检查点管理器（断点续传）

检查点以 JSON 文档整体读写，文件名由起始 URL 决定：
    <checkpoint_dir>/<md5(root_url)[:16]>.json
也可以指定单个检查点文件；加载时只接受 root_url 相同的检查点。
"""
from typing import Dict, Iterable, List, Optional, Tuple
from pathlib import Path
from datetime import datetime, timezone
import hashlib
import os
import tempfile
from loguru import logger
from pydantic import BaseModel, Field, ValidationError

from config import CheckpointConfig


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Checkpoint(BaseModel):
    """爬取进度快照"""
    root_url: str
    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)
    visited_urls: List[str] = Field(default_factory=list)
    downloaded_urls: List[str] = Field(default_factory=list)
    downloaded_hashes: List[str] = Field(default_factory=list)
    pending: List[Tuple[str, int]] = Field(default_factory=list, description="尚未处理的 (url, depth)")
    pages_processed: int = 0
    images_found: int = 0
    images_downloaded: int = 0
    images_failed: int = 0
    bytes_downloaded: int = 0
    options: Dict[str, str] = Field(default_factory=dict)


class CheckpointManager:
    """
    检查点管理器

    Example:
        manager = CheckpointManager(url, config.checkpoint)
        checkpoint = manager.load_checkpoint()
        if checkpoint is None:
            manager.create_checkpoint(config.options_snapshot())
    """

    def __init__(self, root_url: str, checkpoint_config: Optional[CheckpointConfig] = None):
        """
        初始化检查点管理器

        Args:
            root_url: 起始URL（检查点的键）
            checkpoint_config: 检查点配置
        """
        checkpoint_config = checkpoint_config or CheckpointConfig()
        self.root_url = root_url
        if checkpoint_config.checkpoint_file:
            self.checkpoint_file = Path(checkpoint_config.checkpoint_file)
        else:
            key = hashlib.md5(root_url.encode()).hexdigest()[:16]
            self.checkpoint_file = Path(checkpoint_config.checkpoint_dir) / f"{key}.json"
        self.current: Optional[Checkpoint] = None

    def exists(self) -> bool:
        """检查点文件是否存在"""
        return self.checkpoint_file.exists()

    def load_checkpoint(self) -> Optional[Checkpoint]:
        """
        加载检查点

        Returns:
            与 root_url 匹配的检查点；不存在、损坏或 URL 不匹配时返回 None
        """
        if not self.checkpoint_file.exists():
            return None
        try:
            checkpoint = Checkpoint.model_validate_json(
                self.checkpoint_file.read_text(encoding="utf-8")
            )
        except (OSError, ValidationError) as e:
            logger.warning(f"Failed to load checkpoint {self.checkpoint_file}: {e}")
            return None

        if checkpoint.root_url != self.root_url:
            logger.debug(f"Checkpoint belongs to {checkpoint.root_url}, ignored")
            return None

        self.current = checkpoint
        logger.info(f"Checkpoint loaded: {checkpoint.pages_processed} pages")
        return checkpoint

    def create_checkpoint(self, options: Optional[Dict[str, str]] = None) -> Checkpoint:
        """创建新检查点并写盘"""
        self.current = Checkpoint(root_url=self.root_url, options=options or {})
        self.save_checkpoint()
        return self.current

    def update_checkpoint(
        self,
        visited_urls: Iterable[str],
        downloaded_urls: Iterable[str],
        downloaded_hashes: Iterable[str],
        pending: Iterable[Tuple[str, int]],
        pages_processed: int,
        images_found: int,
        images_downloaded: int,
        images_failed: int,
        bytes_downloaded: int,
    ) -> bool:
        """用当前进度覆盖检查点并写盘"""
        if self.current is None:
            return False

        self.current = self.current.model_copy(update={
            "visited_urls": list(visited_urls),
            "downloaded_urls": list(downloaded_urls),
            "downloaded_hashes": list(downloaded_hashes),
            "pending": [(url, depth) for url, depth in pending],
            "pages_processed": pages_processed,
            "images_found": images_found,
            "images_downloaded": images_downloaded,
            "images_failed": images_failed,
            "bytes_downloaded": bytes_downloaded,
            "updated_at": _utcnow(),
        })
        return self.save_checkpoint()

    def save_checkpoint(self) -> bool:
        """整体写入（临时文件 + 替换）"""
        if self.current is None:
            return False
        tmp_path = None
        try:
            self.checkpoint_file.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_path = tempfile.mkstemp(
                dir=self.checkpoint_file.parent, prefix=".checkpoint-", suffix=".tmp"
            )
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(self.current.model_dump_json(indent=2))
            os.replace(tmp_path, self.checkpoint_file)
            logger.debug(f"Checkpoint saved: {self.current.pages_processed} pages")
            return True
        except OSError as e:
            logger.error(f"Save checkpoint failed: {e}")
            if tmp_path and os.path.exists(tmp_path):
                os.unlink(tmp_path)
            return False

    def delete_checkpoint(self) -> bool:
        """删除检查点（仅在爬取完整结束时调用）"""
        self.current = None
        try:
            if self.checkpoint_file.exists():
                self.checkpoint_file.unlink()
                logger.info(f"Checkpoint cleared: {self.checkpoint_file}")
            return True
        except OSError as e:
            logger.warning(f"Failed to delete checkpoint: {e}")
            return False

"""
图片去重模块

- ConcurrentSet: 带锁的集合，提供原子的「检查并加入」
- ImageDeduplicator: URL 预去重 + 内容哈希去重
"""
from typing import Iterable, Iterator, List, Set
from threading import Lock
import hashlib
from loguru import logger


class ConcurrentSet:
    """
    线程安全集合

    调用方只通过 add_if_absent() 完成检查与写入，不要先 in 再 add。
    """

    def __init__(self, items: Iterable[str] = ()):
        self._items: Set[str] = set(items)
        self._lock = Lock()

    def add_if_absent(self, item: str) -> bool:
        """不存在则加入，返回是否新加入"""
        with self._lock:
            if item in self._items:
                return False
            self._items.add(item)
            return True

    def discard(self, item: str):
        with self._lock:
            self._items.discard(item)

    def update(self, items: Iterable[str]):
        with self._lock:
            self._items.update(items)

    def snapshot(self) -> List[str]:
        """当前内容的有序拷贝（用于检查点）"""
        with self._lock:
            return sorted(self._items)

    def __contains__(self, item: object) -> bool:
        with self._lock:
            return item in self._items

    def __len__(self) -> int:
        with self._lock:
            return len(self._items)

    def __iter__(self) -> Iterator[str]:
        return iter(self.snapshot())


class ImageDeduplicator:
    """图片去重器"""

    def __init__(self):
        self.downloaded_urls = ConcurrentSet()  # 已认领的图片URL
        self.content_hashes = ConcurrentSet()  # 已保存内容的哈希
        self.stats = {
            "urls_checked": 0,
            "duplicate_urls": 0,
            "duplicate_contents": 0,
        }

    def claim_url(self, url: str) -> bool:
        """
        认领图片URL

        Args:
            url: 图片URL

        Returns:
            True 表示首次认领，调用方负责下载；False 表示已处理或正在处理
        """
        self.stats["urls_checked"] += 1
        if self.downloaded_urls.add_if_absent(url):
            return True
        self.stats["duplicate_urls"] += 1
        logger.debug(f"Duplicate URL skipped: {url}")
        return False

    def register_content(self, content_hash: str) -> bool:
        """
        登记内容哈希

        Returns:
            True 表示新内容；False 表示已存在相同内容
        """
        if self.content_hashes.add_if_absent(content_hash):
            return True
        self.stats["duplicate_contents"] += 1
        return False

    @staticmethod
    def hash_bytes(data: bytes) -> str:
        """计算内容哈希（SHA-256）"""
        return hashlib.sha256(data).hexdigest()

    def restore(self, urls: Iterable[str], hashes: Iterable[str]):
        """从检查点恢复去重状态"""
        self.downloaded_urls.update(urls)
        self.content_hashes.update(hashes)
        logger.info(
            f"Restored {len(self.downloaded_urls)} urls / "
            f"{len(self.content_hashes)} hashes"
        )

    def get_stats(self) -> dict:
        """获取去重统计"""
        return self.stats.copy()

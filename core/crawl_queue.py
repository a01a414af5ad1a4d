"""
爬取队列（广度优先）

- FIFO 队列保存待访问的 (url, depth)
- 已访问集合保证同一个 URL 只出队处理一次，队列集合保证同一个 URL 只在队列中出现一次
- 出队时检查深度，超过 max_depth 的任务不进入后续处理
"""
from collections import deque
from dataclasses import dataclass
from typing import Iterable, List, Optional, Tuple
from urllib.parse import urlparse, urlunparse
from loguru import logger

from core.deduplicator import ConcurrentSet


def normalize_url(url: str) -> str:
    """
    规范化页面URL：scheme + host + path + query（去掉 fragment）

    scheme 与 host 转小写，空 path 视为 "/"。
    """
    parsed = urlparse(url.strip())
    return urlunparse((
        parsed.scheme.lower(),
        parsed.netloc.lower(),
        parsed.path or "/",
        "",
        parsed.query,
        "",
    ))


@dataclass(frozen=True)
class CrawlTask:
    """待爬取页面"""
    url: str
    depth: int


class CrawlQueue:
    """
    爬取任务队列

    Example:
        queue = CrawlQueue(max_depth=2)
        queue.push("https://example.com/", 0)
        while (task := queue.pop()) is not None:
            if not queue.admit(task):
                continue
            ...
    """

    def __init__(self, max_depth: int = -1):
        """
        Args:
            max_depth: 最大深度，-1 表示不限制
        """
        self.max_depth = max_depth
        self.queue: deque = deque()
        self.visited = ConcurrentSet()
        self.queued = ConcurrentSet()  # 当前在队列中的URL
        self.stats = {
            "enqueued": 0,
            "skipped_visited": 0,
            "skipped_queued": 0,
            "skipped_depth": 0,
        }

    def __len__(self) -> int:
        return len(self.queue)

    def push(self, url: str, depth: int) -> bool:
        """入队（已访问或已在队列中的URL不入队）"""
        url = normalize_url(url)
        if url in self.visited:
            return False
        if not self.queued.add_if_absent(url):
            self.stats["skipped_queued"] += 1
            return False
        self.queue.append(CrawlTask(url, depth))
        self.stats["enqueued"] += 1
        return True

    def extend(self, urls: Iterable[str], depth: int) -> int:
        """批量入队，返回新入队数量"""
        return sum(1 for url in urls if self.push(url, depth))

    def pop(self) -> Optional[CrawlTask]:
        """出队，队列为空返回 None"""
        if not self.queue:
            return None
        task = self.queue.popleft()
        self.queued.discard(task.url)
        return task

    def depth_allowed(self, depth: int) -> bool:
        return self.max_depth < 0 or depth <= self.max_depth

    def admit(self, task: CrawlTask) -> bool:
        """
        出队后的准入检查：深度未超限且未访问过

        只检查不标记；通过 robots 检查后再调用 mark_visited()。
        """
        if not self.depth_allowed(task.depth):
            self.stats["skipped_depth"] += 1
            logger.debug(f"Depth {task.depth} exceeds limit: {task.url}")
            return False
        if task.url in self.visited:
            self.stats["skipped_visited"] += 1
            return False
        return True

    def mark_visited(self, url: str) -> bool:
        """标记已访问（原子操作），返回是否首次访问"""
        return self.visited.add_if_absent(normalize_url(url))

    def requeue(self, task: CrawlTask):
        """未处理完的任务放回队首，并取消已访问标记"""
        url = normalize_url(task.url)
        self.visited.discard(url)
        if self.queued.add_if_absent(url):
            self.queue.appendleft(task)

    def restore(self, visited: Iterable[str], pending: Iterable[Tuple[str, int]]):
        """从检查点恢复已访问集合和待处理队列"""
        self.visited.update(normalize_url(url) for url in visited)
        for url, depth in pending:
            self.push(url, depth)

    def pending(self) -> List[Tuple[str, int]]:
        """待处理任务快照（用于检查点）"""
        return [(task.url, task.depth) for task in self.queue]

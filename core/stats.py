"""
进度统计

爬虫核心只负责累加计数，外部观察者（CLI 进度条）自行读取，不反向影响爬取流程。
"""
from collections import deque
from datetime import datetime
from threading import Lock
from typing import Dict, List, Set
import time


def format_bytes(num: float) -> str:
    """字节数格式化"""
    for unit in ("B", "KB", "MB"):
        if num < 1024:
            return f"{num:.0f} {unit}" if unit == "B" else f"{num:.2f} {unit}"
        num /= 1024
    return f"{num:.2f} GB"


class ProgressStats:
    """爬取进度统计（线程安全）"""

    COUNTERS = (
        "pages_found",
        "pages_crawled",
        "images_found",
        "images_downloaded",
        "images_skipped",
        "images_failed",
        "bytes_downloaded",
    )

    def __init__(self, url: str = "", max_actions: int = 10):
        self.url = url
        self._lock = Lock()
        self._start = time.monotonic()
        self._counters: Dict[str, int] = {name: 0 for name in self.COUNTERS}
        self.currently_downloading: Set[str] = set()
        self.recent_actions: deque = deque(maxlen=max_actions)

    def increment(self, name: str, amount: int = 1):
        """累加计数"""
        if name not in self._counters:
            raise KeyError(f"unknown counter: {name}")
        with self._lock:
            self._counters[name] += amount

    def set_at_least(self, name: str, value: int):
        """恢复检查点时使用，计数只增不减"""
        with self._lock:
            self._counters[name] = max(self._counters[name], value)

    def get(self, name: str) -> int:
        with self._lock:
            return self._counters[name]

    def __getattr__(self, name: str) -> int:
        if name in ProgressStats.COUNTERS:
            return self.get(name)
        raise AttributeError(name)

    def add_action(self, action: str):
        """记录一条活动（保留最近 N 条，最新在前）"""
        with self._lock:
            self.recent_actions.appendleft(f"[{datetime.now():%H:%M:%S}] {action}")

    def start_download(self, url: str):
        with self._lock:
            self.currently_downloading.add(url)

    def finish_download(self, url: str):
        with self._lock:
            self.currently_downloading.discard(url)

    @property
    def elapsed_seconds(self) -> float:
        return time.monotonic() - self._start

    def snapshot(self) -> Dict[str, int]:
        """计数快照"""
        with self._lock:
            return dict(self._counters)

    def get_actions(self) -> List[str]:
        with self._lock:
            return list(self.recent_actions)

    def summary(self) -> str:
        """一行摘要"""
        s = self.snapshot()
        elapsed = self.elapsed_seconds
        speed = s["bytes_downloaded"] / elapsed if elapsed > 0 else 0
        hours, rest = divmod(int(elapsed), 3600)
        minutes, seconds = divmod(rest, 60)
        return (
            f"Pages: {s['pages_crawled']}/{s['pages_found']} | "
            f"Images: {s['images_downloaded']}/{s['images_found']} | "
            f"Failed: {s['images_failed']} | Skipped: {s['images_skipped']} | "
            f"Downloaded: {format_bytes(s['bytes_downloaded'])} | "
            f"Speed: {format_bytes(speed)}/s | Time: {hours:02d}:{minutes:02d}:{seconds:02d}"
        )

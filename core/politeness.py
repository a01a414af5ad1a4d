"""
礼貌延迟

stealth 模式：基准延迟附加 ±40% 的高斯抖动，最小 200ms；
--delay 模式：固定延迟。
"""
import asyncio
import math
import random
from typing import Optional

MIN_DELAY_MS = 200
JITTER_RATIO = 0.4


def compute_delay_ms(base_ms: int, randomize: bool, rng: Optional[random.Random] = None) -> int:
    """
    计算本次请求的延迟

    Args:
        base_ms: 基准延迟（毫秒）
        randomize: 是否随机抖动
        rng: 随机数生成器（测试时可注入）

    Returns:
        延迟毫秒数
    """
    if not randomize:
        return base_ms

    rng = rng or random
    variance = int(base_ms * JITTER_RATIO)
    # Box-Muller
    u1 = 1.0 - rng.random()
    u2 = rng.random()
    gaussian = math.sqrt(-2.0 * math.log(u1)) * math.cos(2.0 * math.pi * u2)
    jitter = int(gaussian * variance / 2)
    jitter = max(-variance, min(variance, jitter))
    return max(MIN_DELAY_MS, base_ms + jitter)


async def polite_sleep(base_ms: int, randomize: bool):
    """按计算出的延迟休眠"""
    delay = compute_delay_ms(base_ms, randomize)
    if delay > 0:
        await asyncio.sleep(delay / 1000)

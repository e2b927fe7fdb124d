"""
待機戦略 — タイムアウト付きポーリング

要素検索などの「見つかるまで繰り返す」処理の共通ループを提供する。
試行の間は sleep でタスクを中断し、ビジーループはしない。
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Awaitable, Callable, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_POLL_INTERVAL_MS = 100


async def poll_until(
    probe: Callable[[], Awaitable[T]],
    *,
    timeout_ms: int,
    interval_ms: int = DEFAULT_POLL_INTERVAL_MS,
    clock: Callable[[], float] = time.monotonic,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> T:
    """probe が真値を返すか、タイムアウトするまで繰り返し呼び出す。

    最初の1回は必ず実行する。timeout_ms が 0 の場合は1回だけ試行する。
    待機はデッドラインを超えないよう残り時間で切り詰める。
    タイムアウト後に実行中の probe があっても打ち切らない（1件の要求が
    論理的なタイムアウト後に完了しうる）。

    Args:
        probe: 1回分の試行。真値を返せば成功
        timeout_ms: タイムアウト（ミリ秒）
        interval_ms: 試行間隔（ミリ秒）
        clock: 経過時間の計測に使う時計（秒）
        sleep: 試行間の待機に使うコルーチン関数

    Returns:
        最後の試行結果（タイムアウト時は偽値）
    """
    deadline = clock() + max(timeout_ms, 0) / 1000.0
    attempts = 0

    while True:
        attempts += 1
        result = await probe()
        if result:
            logger.debug("ポーリング成功（%d 回目）", attempts)
            return result

        remaining = deadline - clock()
        if remaining <= 0:
            logger.debug(
                "ポーリングがタイムアウトしました（%dms, %d 回試行）",
                timeout_ms, attempts,
            )
            return result

        await sleep(min(interval_ms / 1000.0, remaining))

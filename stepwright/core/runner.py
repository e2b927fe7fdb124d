"""
ステップ実行ヘルパー — 1ステップ分の実行とエラー伝播ポリシー

どのステップをどの順で実行するかはスケジューラが決める。ここでは
渡された1ステップを running → 終端状態へ進め、例外の扱いを統一する。

  - 通常の例外（要素未検出・タイムアウト等）: ステップの失敗として記録し、送出しない
  - 致命的エラー: ステップの失敗として記録した上で再送出する（ラン全体の中断）
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, Awaitable, Callable

from ..errors import is_fatal

if TYPE_CHECKING:
    from ..browser.registry import SessionRegistry
    from .step import Step

logger = logging.getLogger(__name__)

DEFAULT_STEP_TIMEOUT_MS = 30_000

StepAction = Callable[["Step"], Awaitable[None]]


async def execute_step(
    step: Step,
    action: StepAction,
    *,
    step_timeout_ms: int = DEFAULT_STEP_TIMEOUT_MS,
) -> Step:
    """ステップを実行し、結果をステップに記録する。

    step_timeout_ms ミリ秒以内に完了しない場合はタイムアウトとして失敗させる。
    0 の場合は無制限。

    Args:
        step: 実行対象のステップ（pending 状態）
        action: ステップ本体。ステップを受け取り、ログを追記してよい
        step_timeout_ms: ステップのタイムアウト（ミリ秒）

    Returns:
        実行後のステップ（引数と同じオブジェクト）

    Raises:
        FatalError: 致命的エラーが発生した場合（ステップには失敗として記録済み）
    """
    step.start()
    try:
        if step_timeout_ms > 0:
            try:
                await asyncio.wait_for(action(step), timeout=step_timeout_ms / 1000.0)
            except asyncio.TimeoutError:
                raise TimeoutError(
                    f"Step {step.id!r} did not complete within {step_timeout_ms}ms"
                ) from None
        else:
            await action(step)
    except Exception as exc:
        if not step.is_complete():
            step.mark_failed(exc)
        if is_fatal(exc):
            logger.error("ステップ %r で致命的エラー: %s", step.id, exc)
            raise
        logger.error("ステップ %r でエラー: %s", step.id, exc)
        return step

    if step.is_complete():
        # action 内でスキップされた
        return step

    step.mark_passed()
    logger.info("ステップ %r が成功しました（%.0fms）", step.id, step.elapsed_ms or 0.0)
    return step


async def abort_run(registry: SessionRegistry) -> None:
    """ラン中断時に、開いている全ブラウザセッションを終了する。"""
    from ..browser.session import BrowserSession

    logger.warning("ランを中断します。開いているブラウザを終了します（%d 件）", len(registry))
    await BrowserSession.terminate_all(registry)

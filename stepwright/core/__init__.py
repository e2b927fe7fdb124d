# コアモジュール
# ステップの実行状態、1ステップ分の実行ヘルパー、ポーリング待機を提供

from .runner import abort_run, execute_step
from .step import Step, StepError, StepStatus
from .waits import poll_until

__all__ = [
    "Step",
    "StepError",
    "StepStatus",
    "abort_run",
    "execute_step",
    "poll_until",
]

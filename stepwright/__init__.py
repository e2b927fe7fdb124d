"""
stepwright — テストステップの実行状態とブラウザセッション管理

主な構成:
  - core: Step（状態遷移・ログ・シリアライズ）、ステップ実行ヘルパー、ポーリング待機
  - browser: BrowserSession（起動パラメータ解決・要素検索）、SessionRegistry
  - context: RunContext（ラン変数・フラグ・セッションレジストリ）
  - config: 環境変数・設定ファイル・CLI からのフラグ読み込み
  - cli: probe コマンド
"""

from __future__ import annotations

from .browser import BrowserSession, LaunchParams, SessionRegistry
from .context import RunContext
from .core import Step, StepStatus, execute_step

__version__ = "0.1.0"

__all__ = [
    "BrowserSession",
    "LaunchParams",
    "RunContext",
    "SessionRegistry",
    "Step",
    "StepStatus",
    "execute_step",
]

"""
エラー定義 — ステップ実行とブラウザセッションの例外体系

例外は「ラン全体を中断すべきか」で大きく二分される。

  - FatalError 系: 起動失敗・設定エラー。トップレベルの中断ハンドラまで伝播する
  - それ以外: 要素未検出など。呼び出し元のステップの失敗として記録される
"""

from __future__ import annotations

from typing import Optional


class BrowserTestError(Exception):
    """stepwright が送出する例外の基底クラス。"""


# ---------------------------------------------------------------------------
# 致命的エラー
# ---------------------------------------------------------------------------

class FatalError(BrowserTestError):
    """ラン全体の中断が必要なエラー。

    リトライやスキップの対象にしてはならない。
    """

    fatal = True


class BrowserLaunchError(FatalError):
    """ブラウザエンジンの起動・接続に失敗した場合のエラー。

    元の例外は __cause__ に保持される。
    """


class ConfigurationError(FatalError):
    """フラグ値や起動パラメータが不正な場合のエラー。

    接続を試みる前に送出される。黙ってデフォルト値に置き換えることはしない。
    """


# ---------------------------------------------------------------------------
# 回復可能なエラー
# ---------------------------------------------------------------------------

class ElementNotFoundError(BrowserTestError):
    """タイムアウトまでに要素が1件も見つからなかった場合のエラー。

    Attributes:
        finder: 検索に使用したファインダー文字列
        timeout_ms: 検索のタイムアウト（ミリ秒）
    """

    def __init__(self, finder: str, timeout_ms: int) -> None:
        self.finder = finder
        self.timeout_ms = timeout_ms
        super().__init__(
            f"No elements found for '{finder}' within {timeout_ms}ms"
        )


class SessionClosedError(BrowserTestError):
    """クローズ済みのセッションに対する操作、または操作中のクローズ。"""


class NavigationError(BrowserTestError):
    """遷移先 URL を解決できなかった場合のエラー。"""


class InvalidStepTransitionError(BrowserTestError, RuntimeError):
    """ステップの状態遷移として許可されていない操作。"""

    def __init__(self, current: str, target: str, step_id: Optional[object] = None) -> None:
        self.current = current
        self.target = target
        self.step_id = step_id
        super().__init__(
            f"Step {step_id!r} cannot move from '{current}' to '{target}'"
        )


def is_fatal(exc: BaseException) -> bool:
    """例外がラン全体の中断を要するかどうかを判定する。

    FatalError のサブクラスに加え、fatal 属性が真の任意の例外も致命的とみなす。
    """
    return bool(getattr(exc, "fatal", False))

"""
RunContext — ラン全体で共有される状態の問い合わせ口

スケジューラが持つ共有状態のうち、ブラウザセッションが参照するものだけを
まとめる。

  - 変数値の検索（find_var_value）: 見つからなければ None を返し、例外は送出しない
  - デバッグモードフラグ
  - CLI 形式のフラグ（フラット辞書: フラグ名 → 文字列）
  - 開いているセッションのレジストリ

変数名の '*' はワイルドカードとして扱う（"device to emulate *" は
"device to emulate iPhone 13" にマッチする）。
"""

from __future__ import annotations

import fnmatch
import logging
import re
from dataclasses import dataclass, field
from typing import Mapping, Optional

from .browser.registry import SessionRegistry

logger = logging.getLogger(__name__)


def _normalize(name: str) -> str:
    # 大文字小文字と連続空白の違いは無視する
    return re.sub(r"\s+", " ", name.strip()).lower()


@dataclass
class RunContext:
    """ラン全体の共有状態。

    Attributes:
        variables: 変数名 → 値
        flags: CLI 形式のフラグ（例: {"headless": "false", "seleniumServer": "..."}）
        is_debug: 対話デバッグモードか
        sessions: 開いているブラウザセッションのレジストリ
    """

    variables: dict[str, str] = field(default_factory=dict)
    flags: Mapping[str, str] = field(default_factory=dict)
    is_debug: bool = False
    sessions: SessionRegistry = field(default_factory=SessionRegistry)

    def find_var_value(self, name: str) -> Optional[str]:
        """変数値を検索する。

        完全一致を優先し、name に '*' を含む場合はワイルドカード検索を行う。
        ワイルドカードに複数の変数が一致した場合は先に定義されたものを返す。

        Args:
            name: 変数名（'*' を含んでよい）

        Returns:
            変数の値。見つからない場合は None
        """
        wanted = _normalize(name)
        for key, value in self.variables.items():
            if _normalize(key) == wanted:
                return value

        if "*" in wanted:
            for key, value in self.variables.items():
                if fnmatch.fnmatchcase(_normalize(key), wanted):
                    return value

        logger.debug("変数が見つかりません: %s", name)
        return None

    def set_var(self, name: str, value: str) -> None:
        """変数を設定する。"""
        self.variables[name] = value

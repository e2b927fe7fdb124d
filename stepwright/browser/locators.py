"""
ファインダー → Playwright セレクタ変換

要素検索に渡されるファインダー文字列は以下のいずれか。

  - Playwright のエンジン指定付きセレクタ（css= / xpath= / text= 等）: そのまま使う
  - XPath（"//", "(/", "./", "../" で始まる）: xpath= を付与
  - 要素記述言語（外部の ElementFinder が解釈する）: 変換結果を使う
  - 上記以外: CSS セレクタ

要素記述言語の構文解析はこのモジュールでは行わない。
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Callable, Optional

if TYPE_CHECKING:
    from playwright.async_api import Locator, Page

logger = logging.getLogger(__name__)

# ファインダー文字列を Playwright セレクタに変換する外部コンポーネント。
# 解釈できないファインダーには None を返す。
ElementFinder = Callable[[str], Optional[str]]

_ENGINE_PREFIXES = (
    "css=", "xpath=", "text=", "id=", "data-testid=",
    "internal:", "role=", "nth=", "visible=",
)
_XPATH_PREFIXES = ("//", "(/", "./", "../")

# 可視要素のみに絞り込むフィルタ
VISIBLE_FILTER = "visible=true"


def to_selector(finder: str, element_finder: Optional[ElementFinder] = None) -> str:
    """ファインダー文字列を Playwright セレクタに変換する。

    Args:
        finder: ファインダー文字列
        element_finder: 要素記述言語の変換器（省略可）

    Returns:
        Playwright セレクタ文字列

    Raises:
        ValueError: ファインダーが空の場合
    """
    text = finder.strip()
    if not text:
        raise ValueError("Finder must not be empty")

    if text.startswith(_ENGINE_PREFIXES):
        return text
    if text.startswith(_XPATH_PREFIXES):
        return f"xpath={text}"

    if element_finder is not None:
        selector = element_finder(text)
        if selector is not None:
            logger.debug("ElementFinder で変換しました: %s → %s", text, selector)
            return selector

    return f"css={text}"


def build_locator(
    page: Page,
    finder: str,
    *,
    search_entire_document: bool = False,
    element_finder: Optional[ElementFinder] = None,
) -> Locator:
    """ファインダーから Locator を生成する。

    search_entire_document が False の場合は可視要素のみを対象にする。
    """
    locator = page.locator(to_selector(finder, element_finder))
    if not search_entire_document:
        locator = locator.locator(VISIBLE_FILTER)
    return locator

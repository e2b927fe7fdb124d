"""
SessionRegistry — 開いているブラウザセッションの管理

open() で登録、close() で削除される。ラン中断時に全セッションを
まとめて終了するために使う。要素の同一性（is）で管理する。

全操作は同期的に完了するため、協調的スケジューリングの下でロックは不要。
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Iterator

if TYPE_CHECKING:
    from .session import BrowserSession

logger = logging.getLogger(__name__)


class SessionRegistry:
    """開いている BrowserSession の集合。"""

    def __init__(self) -> None:
        self._sessions: dict[int, BrowserSession] = {}

    def add(self, session: BrowserSession) -> None:
        """セッションを登録する。登録済みなら何もしない。"""
        self._sessions[id(session)] = session
        logger.debug("セッションを登録しました（登録数: %d）", len(self._sessions))

    def remove(self, session: BrowserSession) -> None:
        """セッションの登録を解除する。未登録でもエラーにしない。"""
        if self._sessions.get(id(session)) is session:
            del self._sessions[id(session)]
            logger.debug("セッションを登録解除しました（登録数: %d）", len(self._sessions))

    def snapshot(self) -> list[BrowserSession]:
        """現在の登録セッションのリストを返す。"""
        return list(self._sessions.values())

    def __contains__(self, session: object) -> bool:
        return self._sessions.get(id(session)) is session

    def __len__(self) -> int:
        return len(self._sessions)

    def __iter__(self) -> Iterator[BrowserSession]:
        return iter(self.snapshot())

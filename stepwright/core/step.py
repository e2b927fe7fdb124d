"""
Step — 単一テストステップの実行状態

ブランチ内の1つの位置に対応する実行単位。状態・タイミング・ログを保持し、
レポート用の最小限のスナップショットを生成する。

状態遷移:
  pending → running → {passed, failed, skipped}
  pending → skipped（実行せずにスキップ）

passed / failed / skipped は終端状態。遷移のタイミングはスケジューラが決める。
"""

from __future__ import annotations

import copy
import enum
import logging
import time
import traceback
from datetime import datetime
from typing import Any, Optional, Union

from pydantic import BaseModel, ConfigDict, PrivateAttr

from ..errors import InvalidStepTransitionError, is_fatal

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# 状態・エラー
# ---------------------------------------------------------------------------

class StepStatus(str, enum.Enum):
    """ステップの実行状態。常にどれか1つだけを取る。"""

    PENDING = "pending"
    RUNNING = "running"
    PASSED = "passed"
    FAILED = "failed"
    SKIPPED = "skipped"


_TERMINAL = frozenset({StepStatus.PASSED, StepStatus.FAILED, StepStatus.SKIPPED})

# 状態 → シリアライズ時のフラグ名
_STATUS_FLAGS = {
    StepStatus.RUNNING: "isRunning",
    StepStatus.PASSED: "isPassed",
    StepStatus.FAILED: "isFailed",
    StepStatus.SKIPPED: "isSkipped",
}

# 許可される遷移
_TRANSITIONS = {
    StepStatus.PENDING: frozenset({StepStatus.RUNNING, StepStatus.SKIPPED}),
    StepStatus.RUNNING: _TERMINAL,
}


class StepError(BaseModel):
    """失敗したステップの構造化エラー情報。

    Attributes:
        name: 例外クラス名
        message: エラーメッセージ
        fatal: ラン全体の中断を要するエラーか
        stack: トレースバック文字列
    """

    name: str
    message: str
    fatal: bool = False
    stack: Optional[str] = None

    @classmethod
    def from_exception(cls, exc: BaseException) -> StepError:
        """例外から StepError を生成する。"""
        stack = "".join(
            traceback.format_exception(type(exc), exc, exc.__traceback__)
        )
        return cls(
            name=type(exc).__name__,
            message=str(exc),
            fatal=is_fatal(exc),
            stack=stack or None,
        )


LogEntry = dict[str, Any]


# ---------------------------------------------------------------------------
# Step 本体
# ---------------------------------------------------------------------------

class Step(BaseModel):
    """ブランチ内の1ステップ。

    フィールドは未設定を None で表す。serialize() は None のフィールドを出力しない。

    Attributes:
        id: 対応する静的定義（StepNode）への参照。Step はこれを所有しない
        function_declaration_id: 関数呼び出しの場合、関数定義ノードへの参照
        depth: ブランチ内での関数呼び出しの深さ
        status: 実行状態
        error: 失敗時のエラー（status == failed のときのみ存在）
        log: ログエントリのリスト（追記のみ）
        elapsed_ms: 実行時間（ミリ秒）
        started_at: 実行開始日時
        ended_at: 実行終了日時
        report_template_index: レポートテンプレートのインデックス
        report_view: テンプレートタグの置換値（値は文字列のみ）
    """

    model_config = ConfigDict(validate_assignment=True)

    id: Any
    function_declaration_id: Optional[Any] = None
    depth: Optional[int] = None

    status: StepStatus = StepStatus.PENDING
    error: Optional[StepError] = None
    log: Optional[list[LogEntry]] = None

    elapsed_ms: Optional[float] = None
    started_at: Optional[datetime] = None
    ended_at: Optional[datetime] = None

    report_template_index: Optional[int] = None
    report_view: Optional[dict[str, str]] = None

    _perf_start: Optional[float] = PrivateAttr(default=None)

    # -------------------------------------------------------------------
    # 状態の参照
    # -------------------------------------------------------------------

    @property
    def is_running(self) -> bool:
        return self.status is StepStatus.RUNNING

    @property
    def is_passed(self) -> bool:
        return self.status is StepStatus.PASSED

    @property
    def is_failed(self) -> bool:
        return self.status is StepStatus.FAILED

    @property
    def is_skipped(self) -> bool:
        return self.status is StepStatus.SKIPPED

    def is_complete(self) -> bool:
        """passed / failed / skipped のいずれかであれば True。"""
        return self.status in _TERMINAL

    # -------------------------------------------------------------------
    # 状態遷移
    # -------------------------------------------------------------------

    def start(self) -> None:
        """pending → running。開始日時を記録する。"""
        self._transition(StepStatus.RUNNING)
        self.started_at = datetime.now()
        self._perf_start = time.perf_counter()

    def mark_passed(self) -> None:
        """running → passed。"""
        self._transition(StepStatus.PASSED)
        self._finish()

    def mark_failed(self, error: Union[BaseException, StepError]) -> None:
        """running → failed。エラー情報を記録する。

        Args:
            error: 発生した例外、または構造化済みの StepError
        """
        if isinstance(error, BaseException):
            error = StepError.from_exception(error)
        self._transition(StepStatus.FAILED)
        self.error = error
        self._finish()

    def mark_skipped(self) -> None:
        """pending / running → skipped。"""
        self._transition(StepStatus.SKIPPED)
        self._finish()

    def _transition(self, target: StepStatus) -> None:
        allowed = _TRANSITIONS.get(self.status, frozenset())
        if target not in allowed:
            raise InvalidStepTransitionError(
                self.status.value, target.value, step_id=self.id,
            )
        logger.debug("ステップ %r: %s → %s", self.id, self.status.value, target.value)
        self.status = target

    def _finish(self) -> None:
        self.ended_at = datetime.now()
        if self._perf_start is not None:
            self.elapsed_ms = (time.perf_counter() - self._perf_start) * 1000

    # -------------------------------------------------------------------
    # ログ・複製・シリアライズ
    # -------------------------------------------------------------------

    def append_to_log(self, entry: Union[str, LogEntry]) -> None:
        """ログにエントリを追記する。

        文字列は {"text": entry} に包んで追記し、辞書はそのまま追記する。
        どの状態でも呼び出せる。
        """
        if self.log is None:
            self.log = []
        if isinstance(entry, str):
            entry = {"text": entry}
        self.log.append(entry)

    def clone(self) -> Step:
        """ログやエラーを含め、可変な値を一切共有しない複製を返す。

        id / function_declaration_id は Step が所有しない定義ノードへの参照のため、
        参照のまま引き継ぐ。
        """
        memo = {
            id(self.id): self.id,
            id(self.function_declaration_id): self.function_declaration_id,
        }
        return copy.deepcopy(self, memo)

    def serialize(self) -> dict[str, Any]:
        """レポート用の最小限の辞書を返す。

        id は常に含め、それ以外は値が存在するフィールドのみ出力する。
        コンテナは複製して返すため、戻り値を変更しても Step には影響しない。
        """
        data: dict[str, Any] = {"id": self.id}
        if self.function_declaration_id is not None:
            data["fid"] = self.function_declaration_id
        if self.depth is not None:
            data["level"] = self.depth

        flag = _STATUS_FLAGS.get(self.status)
        if flag is not None:
            data[flag] = True

        if self.error is not None:
            data["error"] = self.error.model_dump(exclude_none=True)
        if self.log is not None:
            data["log"] = copy.deepcopy(self.log)
        if self.elapsed_ms is not None:
            data["elapsed"] = self.elapsed_ms
        if self.report_template_index is not None:
            data["reportTemplateIndex"] = self.report_template_index
        if self.report_view is not None:
            data["reportView"] = dict(self.report_view)
        return data

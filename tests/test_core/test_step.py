"""
Step のユニットテスト

テスト対象:
  - 状態遷移と is_complete() の不変条件
  - append_to_log() の文字列ラップ・辞書そのまま追記
  - clone() の独立性
  - serialize() の未設定フィールド省略
"""

from __future__ import annotations

import json

import pytest
from hypothesis import given
from hypothesis import strategies as st

from stepwright.core.step import Step, StepError, StepStatus
from stepwright.errors import (
    BrowserLaunchError,
    ElementNotFoundError,
    InvalidStepTransitionError,
)


def _apply(step: Step, operation: str) -> None:
    """操作を適用する。許可されない遷移は無視する。"""
    try:
        if operation == "start":
            step.start()
        elif operation == "pass":
            step.mark_passed()
        elif operation == "fail":
            step.mark_failed(RuntimeError("boom"))
        elif operation == "skip":
            step.mark_skipped()
        else:
            step.append_to_log(operation)
    except InvalidStepTransitionError:
        pass


# ===========================================================================
# テスト: 状態遷移
# ===========================================================================

class TestStepStateMachine:
    """Step の状態遷移テスト。"""

    def test_initial_state_is_pending(self) -> None:
        """初期状態は pending で、どのフラグも立っていないこと。"""
        step = Step(id=1)
        assert step.status is StepStatus.PENDING
        assert not (step.is_running or step.is_passed or step.is_failed or step.is_skipped)
        assert step.is_complete() is False

    def test_pass_flow(self) -> None:
        """pending → running → passed でタイミングが記録されること。"""
        step = Step(id=1)
        step.start()
        assert step.is_running
        assert step.started_at is not None
        assert step.elapsed_ms is None

        step.mark_passed()
        assert step.is_passed
        assert step.is_complete()
        assert step.ended_at is not None
        assert step.elapsed_ms is not None and step.elapsed_ms >= 0
        assert step.error is None

    def test_fail_records_error(self) -> None:
        """mark_failed() で例外が StepError として記録されること。"""
        step = Step(id=1)
        step.start()
        step.mark_failed(ElementNotFoundError(".missing", 500))

        assert step.is_failed
        assert step.error is not None
        assert step.error.name == "ElementNotFoundError"
        assert ".missing" in step.error.message
        assert step.error.fatal is False

    def test_fatal_error_is_marked(self) -> None:
        """致命的エラーは fatal=True で記録されること。"""
        step = Step(id=1)
        step.start()
        step.mark_failed(BrowserLaunchError("cannot launch"))
        assert step.error.fatal is True

    def test_fail_accepts_step_error(self) -> None:
        """構造化済みの StepError もそのまま受け付けること。"""
        step = Step(id=1)
        step.start()
        step.mark_failed(StepError(name="AssertionError", message="expected 2"))
        assert step.error.message == "expected 2"

    def test_skip_from_pending(self) -> None:
        """実行せずにスキップできること（elapsed は記録しない）。"""
        step = Step(id=1)
        step.mark_skipped()
        assert step.is_skipped
        assert step.is_complete()
        assert step.elapsed_ms is None

    def test_pass_without_start_raises(self) -> None:
        """running を経ずに passed にはできないこと。"""
        step = Step(id=1)
        with pytest.raises(InvalidStepTransitionError):
            step.mark_passed()

    def test_terminal_state_cannot_change(self) -> None:
        """終端状態から別の状態には遷移できないこと。"""
        step = Step(id=1)
        step.start()
        step.mark_passed()
        with pytest.raises(InvalidStepTransitionError):
            step.mark_failed(RuntimeError("late"))
        with pytest.raises(InvalidStepTransitionError):
            step.start()
        assert step.is_passed
        assert step.error is None

    @given(operations=st.lists(
        st.sampled_from(["start", "pass", "fail", "skip", "log"]), max_size=12,
    ))
    def test_complete_iff_exactly_one_terminal_flag(self, operations: list[str]) -> None:
        """どの操作列の後でも、完了 ⇔ 終端フラグがちょうど1つ立っていること。"""
        step = Step(id="s")
        for operation in operations:
            _apply(step, operation)
            flags = [step.is_passed, step.is_failed, step.is_skipped]
            assert sum(flags) <= 1
            assert step.is_complete() == (sum(flags) == 1)
            assert (step.error is not None) == step.is_failed


# ===========================================================================
# テスト: ログ
# ===========================================================================

class TestAppendToLog:
    """append_to_log() のテスト。"""

    def test_string_is_wrapped(self) -> None:
        """文字列は {"text": ...} に包まれること。"""
        step = Step(id=1)
        step.append_to_log("x")
        assert step.log == [{"text": "x"}]

    def test_record_is_appended_as_is(self) -> None:
        """辞書は包まずにそのまま追記されること。"""
        step = Step(id=1)
        record = {"text": "clicked", "level": "info"}
        step.append_to_log(record)
        assert step.log[-1] is record

    def test_order_is_preserved(self) -> None:
        """呼び出し順に追記されること。"""
        step = Step(id=1)
        step.append_to_log("a")
        step.start()
        step.append_to_log({"b": 1})
        step.mark_passed()
        step.append_to_log("c")
        assert step.log == [{"text": "a"}, {"b": 1}, {"text": "c"}]


# ===========================================================================
# テスト: clone
# ===========================================================================

class TestClone:
    """clone() のテスト。"""

    def _make_failed_step(self) -> Step:
        step = Step(id=7, function_declaration_id=3, depth=1, report_view={"name": "login"})
        step.append_to_log({"text": "nested", "data": {"items": [1, 2]}})
        step.start()
        step.mark_failed(RuntimeError("boom"))
        return step

    def test_clone_is_equal_but_distinct(self) -> None:
        """複製は値として等しく、別オブジェクトであること。"""
        step = self._make_failed_step()
        copy = step.clone()
        assert copy == step
        assert copy is not step
        assert copy.log is not step.log
        assert copy.error is not step.error
        assert copy.report_view is not step.report_view

    def test_mutating_clone_log_does_not_affect_original(self) -> None:
        """複製のログを変更しても元のログは変わらないこと。"""
        step = self._make_failed_step()
        copy = step.clone()
        copy.append_to_log("only in clone")
        copy.log[0]["data"]["items"].append(3)

        assert len(step.log) == 1
        assert step.log[0]["data"]["items"] == [1, 2]

    def test_definition_reference_is_shared(self) -> None:
        """定義ノードへの参照は複製せずに引き継ぐこと。"""
        node = object()
        step = Step(id=node)
        assert step.clone().id is node

    def test_clone_can_diverge(self) -> None:
        """リトライ用の複製を進めても元のステップは pending のままであること。"""
        step = Step(id=1)
        retry = step.clone()
        retry.start()
        retry.mark_passed()
        assert step.status is StepStatus.PENDING
        assert retry.is_passed


# ===========================================================================
# テスト: serialize
# ===========================================================================

class TestSerialize:
    """serialize() のテスト。"""

    def test_unset_fields_are_omitted(self) -> None:
        """未設定のフィールドはキーごと出力されないこと。"""
        data = Step(id=1).serialize()
        assert data == {"id": 1}
        assert "error" not in data
        assert "log" not in data

    def test_function_call_fields(self) -> None:
        """fid / level が出力されること。"""
        data = Step(id=1, function_declaration_id=4, depth=2).serialize()
        assert data["fid"] == 4
        assert data["level"] == 2

    def test_running_flag(self) -> None:
        """実行中は isRunning のみが出力されること。"""
        step = Step(id=1)
        step.start()
        data = step.serialize()
        assert data["isRunning"] is True
        assert "isPassed" not in data
        assert "elapsed" not in data

    def test_failed_step(self) -> None:
        """失敗したステップは isFailed / error / elapsed を含むこと。"""
        step = Step(id=1, report_template_index=0, report_view={"title": "t"})
        step.append_to_log("hello")
        step.start()
        step.mark_failed(ValueError("bad value"))

        data = step.serialize()
        assert data["isFailed"] is True
        assert "isRunning" not in data
        assert data["error"]["name"] == "ValueError"
        assert data["error"]["message"] == "bad value"
        assert data["log"] == [{"text": "hello"}]
        assert data["elapsed"] >= 0
        assert data["reportTemplateIndex"] == 0
        assert data["reportView"] == {"title": "t"}

    def test_snapshot_is_independent(self) -> None:
        """スナップショットを変更してもステップに影響しないこと。"""
        step = Step(id=1, report_view={"a": "b"})
        step.append_to_log("x")
        data = step.serialize()
        data["log"].append({"text": "y"})
        data["log"][0]["text"] = "changed"
        data["reportView"]["a"] = "changed"

        assert step.log == [{"text": "x"}]
        assert step.report_view == {"a": "b"}

    def test_json_serializable(self) -> None:
        """JSON に変換できること。"""
        step = Step(id="branch-1/step-3")
        step.start()
        step.mark_passed()
        assert json.loads(json.dumps(step.serialize()))["isPassed"] is True

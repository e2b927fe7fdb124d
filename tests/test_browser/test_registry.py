"""
SessionRegistry のユニットテスト
"""

from __future__ import annotations

from stepwright.browser.registry import SessionRegistry


class _Session:
    """同値比較されても同一性で区別されることを確かめるためのダミー。"""

    def __eq__(self, other):
        return True

    __hash__ = object.__hash__


class TestSessionRegistry:
    """SessionRegistry のテスト。"""

    def test_empty(self):
        registry = SessionRegistry()
        assert len(registry) == 0
        assert list(registry) == []

    def test_add_is_idempotent(self):
        registry = SessionRegistry()
        session = _Session()
        registry.add(session)
        registry.add(session)
        assert len(registry) == 1
        assert session in registry

    def test_identity_not_equality(self):
        registry = SessionRegistry()
        first, second = _Session(), _Session()
        registry.add(first)
        assert second not in registry
        registry.remove(second)
        assert first in registry

    def test_remove_missing_is_noop(self):
        registry = SessionRegistry()
        registry.remove(_Session())
        assert len(registry) == 0

    def test_iteration_is_snapshot(self):
        """反復中に削除しても安全であること。"""
        registry = SessionRegistry()
        sessions = [_Session() for _ in range(3)]
        for session in sessions:
            registry.add(session)
        for session in registry:
            registry.remove(session)
        assert len(registry) == 0

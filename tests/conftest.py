"""
テスト共通フィクスチャ

全テストモジュールで共有するフィクスチャを提供する。
Playwright はモックで代替し、実際のブラウザは起動しない。
"""

from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock

import pytest

from stepwright.browser.registry import SessionRegistry
from stepwright.context import RunContext


# ---------------------------------------------------------------------------
# 疑似時計
# ---------------------------------------------------------------------------

class FakeClock:
    """sleep() で時刻が進む疑似時計。

    clock として呼び出すと現在時刻（秒）を返し、sleep() は実際には待たずに
    時刻だけを進める。
    """

    def __init__(self) -> None:
        self.now = 0.0
        self.sleeps: list[float] = []

    def __call__(self) -> float:
        return self.now

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


# ---------------------------------------------------------------------------
# pytest フィクスチャ
# ---------------------------------------------------------------------------

@pytest.fixture
def fake_clock() -> FakeClock:
    """疑似時計を提供する。"""
    return FakeClock()


@pytest.fixture
def registry() -> SessionRegistry:
    """空の SessionRegistry を提供する。"""
    return SessionRegistry()


@pytest.fixture
def run_context(registry: SessionRegistry) -> RunContext:
    """変数・フラグなしの RunContext を提供する。"""
    return RunContext(sessions=registry)


@pytest.fixture
def mock_playwright() -> AsyncMock:
    """async_playwright().start() が返すモック Playwright。

    chromium / firefox / webkit の launch() / connect() は同じモック Browser を返す。
    devices には "Pixel 5" のみ登録されている。
    """
    pw = AsyncMock()
    browser = AsyncMock()
    context = AsyncMock()
    page = MagicMock()
    page.url = "about:blank"

    for engine in (pw.chromium, pw.firefox, pw.webkit):
        engine.launch.return_value = browser
        engine.connect.return_value = browser
    browser.new_context.return_value = context
    context.new_page.return_value = page
    pw.devices = {
        "Pixel 5": {
            "user_agent": "Mozilla/5.0 (Linux; Android 11; Pixel 5)",
            "viewport": {"width": 393, "height": 727},
            "device_scale_factor": 2.75,
            "is_mobile": True,
            "has_touch": True,
            "default_browser_type": "chromium",
        },
    }
    return pw

"""
ファインダー → セレクタ変換のユニットテスト
"""

from __future__ import annotations

from unittest.mock import MagicMock

import pytest

from stepwright.browser.locators import VISIBLE_FILTER, build_locator, to_selector


class TestToSelector:
    """to_selector のテスト。"""

    def test_plain_css(self):
        assert to_selector("button.submit") == "css=button.submit"

    @pytest.mark.parametrize("finder", [
        "//div[@id='main']", "(//a)[2]", "./span", "../li",
    ])
    def test_xpath(self, finder):
        assert to_selector(finder) == f"xpath={finder}"

    @pytest.mark.parametrize("finder", ["css=#id", "xpath=//a", "text=Login"])
    def test_engine_prefix_passes_through(self, finder):
        assert to_selector(finder) == finder

    def test_element_finder_is_used(self):
        element_finder = MagicMock(return_value="internal:role=button[name=\"Login\"i]")
        assert to_selector("'Login' button", element_finder).startswith("internal:role=")
        element_finder.assert_called_once_with("'Login' button")

    def test_element_finder_declines(self):
        """変換器が None を返した場合は CSS として扱うこと。"""
        assert to_selector("#main", lambda finder: None) == "css=#main"

    def test_empty_finder(self):
        with pytest.raises(ValueError):
            to_selector("   ")


class TestBuildLocator:
    """build_locator のテスト。"""

    def test_visible_only_by_default(self):
        page = MagicMock()
        build_locator(page, ".item")
        page.locator.assert_called_once_with("css=.item")
        page.locator.return_value.locator.assert_called_once_with(VISIBLE_FILTER)

    def test_entire_document(self):
        page = MagicMock()
        locator = build_locator(page, ".item", search_entire_document=True)
        assert locator is page.locator.return_value
        page.locator.return_value.locator.assert_not_called()

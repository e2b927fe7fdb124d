"""
BrowserSession — ブラウザセッションの管理と要素検索

Playwright ブラウザの起動・終了・状態管理に加え、ページ遷移と
タイムアウト付きの要素検索を提供する。

主な機能:
  - open(): 起動パラメータを解決してブラウザを起動（またはリモート接続）
  - navigate(): 相対 URL・スキーム省略 URL を解決してページ遷移
  - find_elements() / find_element(): 見つかるまでポーリングする要素検索
  - close() / terminate_all(): 個別・一括の終了

開いているセッションは SessionRegistry に登録され、close() で登録解除される。
起動失敗は BrowserLaunchError（致命的エラー）として送出する。
"""

from __future__ import annotations

import asyncio
import enum
import logging
import re
import time
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Awaitable, Callable, Optional
from urllib.parse import urljoin, urlsplit

from ..core.waits import DEFAULT_POLL_INTERVAL_MS, poll_until
from ..errors import (
    BrowserLaunchError,
    ConfigurationError,
    ElementNotFoundError,
    NavigationError,
    SessionClosedError,
)
from .capabilities import (
    CapabilityBuilder,
    Capabilities,
    LaunchParams,
    builder_for,
    resolve_capabilities,
)
from .locators import ElementFinder, build_locator
from .registry import SessionRegistry

if TYPE_CHECKING:
    from playwright.async_api import Browser, BrowserContext, Locator, Page

    from ..context import RunContext

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# セッション状態
# ---------------------------------------------------------------------------

class SessionState(enum.Enum):
    """ブラウザセッションの状態。"""

    IDLE = "idle"
    LAUNCHING = "launching"
    ACTIVE = "active"
    CLOSING = "closing"
    CLOSED = "closed"


@dataclass
class _Connection:
    """1つのセッションが所有する Playwright のリソース一式。"""

    playwright: Any
    browser: Browser
    context: BrowserContext
    page: Page

    async def close(self) -> None:
        try:
            await self.browser.close()
        finally:
            await self.playwright.stop()


# ---------------------------------------------------------------------------
# URL 解決
# ---------------------------------------------------------------------------

_ABSOLUTE_URL = re.compile(r"^[a-zA-Z][a-zA-Z0-9+.\-]*://")
_OPAQUE_SCHEMES = ("about:", "data:", "javascript:", "blob:")
_RELATIVE_PREFIXES = ("/", "./", "../", "?", "#")


def resolve_url(url: str, current_url: Optional[str] = None) -> str:
    """遷移先 URL を絶対 URL に解決する。

    - スキーム付き URL はそのまま
    - "/", "./", "../", "?", "#" で始まる URL は現在のページ URL を基準に解決
    - それ以外（"example.com/path" 等）は http:// を補う

    Args:
        url: 遷移先 URL
        current_url: 現在のページ URL

    Returns:
        絶対 URL

    Raises:
        NavigationError: URL が空、または基準となる http(s) ページがない相対 URL の場合
    """
    target = url.strip()
    if not target:
        raise NavigationError("URL must not be empty")

    if _ABSOLUTE_URL.match(target) or target.lower().startswith(_OPAQUE_SCHEMES):
        return target

    if target.startswith(_RELATIVE_PREFIXES):
        base_scheme = urlsplit(current_url or "").scheme.lower()
        if base_scheme not in ("http", "https", "file"):
            raise NavigationError(
                f"Cannot resolve relative URL {target!r} without a current page "
                f"(current: {current_url!r})"
            )
        return urljoin(current_url, target)

    return f"http://{target}"


# ---------------------------------------------------------------------------
# BrowserSession 本体
# ---------------------------------------------------------------------------

class BrowserSession:
    """1つのブラウザ接続を所有するセッション。

    使用例::

        session = BrowserSession(run_context)
        await session.open(LaunchParams(name="chromium"))
        await session.navigate("example.com")
        button = await session.find_element("button.submit", timeout_ms=5000)
        await session.close()
    """

    def __init__(
        self,
        context: RunContext,
        registry: Optional[SessionRegistry] = None,
        *,
        poll_interval_ms: int = DEFAULT_POLL_INTERVAL_MS,
        element_finder: Optional[ElementFinder] = None,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        """BrowserSession を初期化する。

        Args:
            context: ラン変数・フラグの問い合わせ先
            registry: 登録先レジストリ（省略時は context.sessions）
            poll_interval_ms: 要素検索のポーリング間隔（ミリ秒）
            element_finder: 要素記述言語の変換器
            clock: ポーリングの経過時間計測に使う時計
            sleep: ポーリングの待機に使うコルーチン関数
        """
        self._context = context
        self._registry = registry if registry is not None else context.sessions
        self._poll_interval_ms = poll_interval_ms
        self._element_finder = element_finder
        self._clock = clock
        self._sleep = sleep

        self._state: SessionState = SessionState.IDLE
        self._connection: Optional[_Connection] = None
        self._capabilities: Optional[Capabilities] = None
        # open() / close() のたびに進める。起動中に close() されたかの判定に使う
        self._generation = 0

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def is_open(self) -> bool:
        return self._connection is not None

    @property
    def registry(self) -> SessionRegistry:
        return self._registry

    @property
    def capabilities(self) -> Optional[Capabilities]:
        """最後の open() で解決した起動パラメータ。"""
        return self._capabilities

    @property
    def page(self) -> Optional[Page]:
        """現在の Page。接続がなければ None。"""
        if self._connection is None:
            return None
        return self._connection.page

    # -------------------------------------------------------------------
    # 起動・終了
    # -------------------------------------------------------------------

    async def open(self, params: LaunchParams) -> Capabilities:
        """起動パラメータを解決し、ブラウザを起動する。

        設定エラーは接続を試みる前に送出する。接続の確立に失敗した場合は
        BrowserLaunchError（致命的エラー）として送出する。
        成功したらレジストリに登録する。

        Args:
            params: 明示パラメータ

        Returns:
            解決済みの Capabilities

        Raises:
            RuntimeError: 既に開いている場合
            ConfigurationError: パラメータ・フラグが不正な場合
            BrowserLaunchError: ブラウザの起動・接続に失敗した場合
        """
        if self._connection is not None or self._state is SessionState.LAUNCHING:
            raise RuntimeError(
                "Session is already open. Call close() before opening it again."
            )

        capabilities = resolve_capabilities(params, self._context)
        builder = builder_for(capabilities)

        self._generation += 1
        generation = self._generation
        self._state = SessionState.LAUNCHING
        logger.info(
            "ブラウザを起動しています... (browser=%s, headless=%s, server=%s)",
            capabilities.browser_name, capabilities.headless, capabilities.server_url,
        )

        try:
            connection = await self._connect(builder)
        except ConfigurationError:
            self._reset_after_failed_launch(generation)
            raise
        except Exception as exc:
            self._reset_after_failed_launch(generation)
            logger.exception("ブラウザの起動に失敗しました")
            raise BrowserLaunchError(
                f"Failed to launch browser '{capabilities.browser_name}': {exc}"
            ) from exc

        if generation != self._generation:
            # 起動待ちの間に close()（と再 open()）された
            await connection.close()
            raise SessionClosedError("Session was closed while launching")

        self._connection = connection
        self._capabilities = capabilities
        self._state = SessionState.ACTIVE
        self._registry.add(self)
        logger.info("ブラウザを起動しました")
        return capabilities

    async def _connect(self, builder: CapabilityBuilder) -> _Connection:
        from playwright.async_api import async_playwright

        pw = await async_playwright().start()
        try:
            # 端末名などの設定エラーはブラウザ起動前に検出する
            context_options = builder.context_options(pw.devices)
            browser_type = getattr(pw, builder.engine)
            server_url = builder.capabilities.server_url
            if server_url:
                logger.info("リモートのブラウザサーバーに接続します: %s", server_url)
                browser = await browser_type.connect(server_url)
            else:
                browser = await browser_type.launch(**builder.launch_options())

            try:
                context = await browser.new_context(**context_options)
                page = await context.new_page()
            except BaseException:
                await browser.close()
                raise
        except BaseException:
            await pw.stop()
            raise

        return _Connection(playwright=pw, browser=browser, context=context, page=page)

    def _reset_after_failed_launch(self, generation: int) -> None:
        # 後から始まった起動の状態は上書きしない
        if generation == self._generation:
            self._state = SessionState.IDLE

    async def close(self) -> None:
        """ブラウザを終了し、レジストリから登録解除する。

        接続がなくても呼び出せる。終了処理中のエラーはログに記録して握りつぶす。
        """
        connection = self._connection
        self._connection = None
        self._generation += 1
        self._registry.remove(self)

        if connection is None:
            self._state = SessionState.CLOSED
            return

        self._state = SessionState.CLOSING
        logger.info("ブラウザを終了しています...")
        try:
            await connection.close()
        except Exception:
            logger.exception("ブラウザの終了中にエラーが発生しました")
        finally:
            self._state = SessionState.CLOSED
            logger.info("ブラウザを終了しました")

    @staticmethod
    async def terminate_all(registry: SessionRegistry) -> None:
        """レジストリに登録された全セッションを終了する。

        レジストリが空でも、既に閉じたセッションが含まれていても例外は送出しない。
        """
        sessions = registry.snapshot()
        if not sessions:
            return

        logger.info("全ブラウザセッションを終了します（%d 件）", len(sessions))
        for session in sessions:
            try:
                await session.close()
            except Exception:
                logger.exception("セッションの終了に失敗しました")
            # close() が失敗してもレジストリには残さない
            registry.remove(session)

    # -------------------------------------------------------------------
    # ページ遷移
    # -------------------------------------------------------------------

    async def navigate(self, url: str) -> str:
        """指定 URL へ遷移し、DOMContentLoaded まで待機する。

        Args:
            url: 絶対 URL、相対 URL、またはスキーム省略 URL

        Returns:
            実際に遷移した絶対 URL

        Raises:
            NavigationError: URL を解決できない場合
            SessionClosedError: セッションが開いていない、または遷移中に閉じられた場合
        """
        page = self._require_page()
        target = resolve_url(url, page.url)
        logger.info("navigate: %s", target)

        try:
            await page.goto(target)
            await page.wait_for_load_state("domcontentloaded")
        except Exception as exc:
            if self._connection is None:
                raise SessionClosedError(
                    f"Session was closed while navigating to {target}"
                ) from exc
            raise
        return target

    # -------------------------------------------------------------------
    # 要素検索
    # -------------------------------------------------------------------

    async def find_elements(
        self,
        finder: str,
        timeout_ms: int = 0,
        no_error: bool = False,
        search_entire_document: bool = False,
    ) -> list[Locator]:
        """ファインダーに一致する全要素を返す。

        1件も見つからない場合、少なくとも1件見つかるか timeout_ms が経過するまで
        再試行する（0 の場合は1回だけ試行）。デフォルトでは可視要素のみを対象とする。

        Args:
            finder: CSS セレクタ、XPath、または要素記述言語の文字列
            timeout_ms: 再試行を続ける時間（ミリ秒）
            no_error: True の場合、見つからなければ空リストを返す
            search_entire_document: True の場合、非表示要素も対象にする

        Returns:
            一致した要素の Locator リスト

        Raises:
            ElementNotFoundError: 見つからず、no_error が False の場合
            SessionClosedError: セッションが開いていない、または検索中に閉じられた場合
        """
        page = self._require_page()
        locator = build_locator(
            page, finder,
            search_entire_document=search_entire_document,
            element_finder=self._element_finder,
        )

        async def attempt() -> list[Locator]:
            if self._connection is None:
                raise SessionClosedError("Session was closed during element lookup")
            try:
                count = await locator.count()
            except Exception as exc:
                if self._connection is None:
                    raise SessionClosedError(
                        "Session was closed during element lookup"
                    ) from exc
                raise
            return [locator.nth(i) for i in range(count)]

        elements = await poll_until(
            attempt,
            timeout_ms=timeout_ms,
            interval_ms=self._poll_interval_ms,
            clock=self._clock,
            sleep=self._sleep,
        )
        if elements:
            logger.debug("要素が見つかりました: %s（%d 件）", finder, len(elements))
            return elements

        if no_error:
            return []
        raise ElementNotFoundError(finder, timeout_ms)

    async def find_element(
        self,
        finder: str,
        timeout_ms: int = 0,
        no_error: bool = False,
        search_entire_document: bool = False,
    ) -> Optional[Locator]:
        """find_elements() と同じ条件で最初の要素を返す。

        見つからず no_error が True の場合は None を返す。
        """
        elements = await self.find_elements(
            finder, timeout_ms, no_error, search_entire_document,
        )
        return elements[0] if elements else None

    def _require_page(self) -> Page:
        page = self.page
        if page is None:
            raise SessionClosedError("Browser session is not open")
        return page

"""
Capabilities — ブラウザ起動パラメータの解決

open() に渡された明示パラメータから、最終的な起動パラメータを決定する。
フィールドごとに以下の優先順位で最初に見つかった値を採用する。

  1. 明示パラメータ
  2. ラン変数（"browser width" / "browser height" / "device to emulate *"）
  3. CLI 形式のフラグ（headless / seleniumServer）
  4. デフォルト値（headless はデバッグモードでなければ True）

解決済みの Capabilities は、エンジン系統ごとの CapabilityBuilder が
Playwright の起動オプション・コンテキストオプションへ変換する。
系統が対応していない項目は何もしない。
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Mapping, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError
from pydantic.alias_generators import to_camel

from ..errors import ConfigurationError

if TYPE_CHECKING:
    from ..context import RunContext

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# 変数名・フラグ名
# ---------------------------------------------------------------------------

BROWSER_WIDTH_VAR = "browser width"
BROWSER_HEIGHT_VAR = "browser height"
DEVICE_EMULATION_VAR = "device to emulate *"

HEADLESS_FLAG = "headless"
SERVER_URL_FLAG = "seleniumServer"


# ---------------------------------------------------------------------------
# パラメータ・解決結果
# ---------------------------------------------------------------------------

@dataclass
class LaunchParams:
    """open() に渡す明示パラメータ。None は「未指定」を表す。

    Attributes:
        name: ブラウザ名（chrome / chromium / firefox / safari / webkit / MicrosoftEdge 等）
        version: ブラウザのバージョン
        platform: プラットフォーム（linux / mac / windows 等）
        width: 初期ウィンドウ幅（px）
        height: 初期ウィンドウ高さ（px）
        device_emulation: エミュレートするモバイル端末名（Chromium 系のみ）
        headless: ヘッドレスで起動するか
        server_url: リモートのブラウザサーバー URL
    """

    name: Optional[str] = None
    version: Optional[str] = None
    platform: Optional[str] = None
    width: Optional[int] = None
    height: Optional[int] = None
    device_emulation: Optional[str] = None
    headless: Optional[bool] = None
    server_url: Optional[str] = None


class _WireModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, frozen=True,
    )


class WindowSize(_WireModel):
    width: int = Field(..., gt=0)
    height: int = Field(..., gt=0)


class MobileEmulation(_WireModel):
    device_name: str


class Capabilities(_WireModel):
    """解決済みの起動パラメータ。

    as_dict() はエンジンへ送る camelCase 形式を返す（未設定項目は含まない）。
    """

    browser_name: str
    version: Optional[str] = None
    platform: Optional[str] = None
    window_size: Optional[WindowSize] = None
    mobile_emulation: Optional[MobileEmulation] = None
    headless: bool = True
    server_url: Optional[str] = None

    def as_dict(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)


# ---------------------------------------------------------------------------
# 解決処理
# ---------------------------------------------------------------------------

def parse_headless_flag(value: Optional[str]) -> bool:
    """headless フラグの値を bool に変換する。

    "true"、空文字、値なし（None）は True、"false" は False。

    Raises:
        ConfigurationError: それ以外の値の場合
    """
    if value is None or value in ("true", ""):
        return True
    if value == "false":
        return False
    raise ConfigurationError(
        f"Invalid headless flag value: {value!r}. Must be true or false."
    )


# 先頭の整数部分のみを読む（"1200px" → 1200）
_LEADING_INT = re.compile(r"^\s*([+-]?\d+)")


def _int_var(context: RunContext, name: str) -> Optional[int]:
    raw = context.find_var_value(name)
    if raw is None:
        return None
    match = _LEADING_INT.match(str(raw))
    if match is None:
        logger.warning("変数 {%s} の値が整数ではありません: %s", name, raw)
        return None
    return int(match.group(1))


def resolve_capabilities(params: LaunchParams, context: RunContext) -> Capabilities:
    """明示パラメータ・ラン変数・フラグ・デフォルト値から Capabilities を決定する。

    幅と高さは両方が正の値に解決できた場合のみ適用する（片方だけ、または 0 なら無視）。
    headless は明示指定がなければフラグを参照し、フラグが不正値なら接続前に失敗させる。

    Args:
        params: 明示パラメータ
        context: ラン変数とフラグの問い合わせ先

    Returns:
        解決済みの Capabilities

    Raises:
        ConfigurationError: ブラウザ名の欠落・不明、フラグ値やサイズが不正な場合
    """
    if not params.name:
        raise ConfigurationError("Browser name is required")
    # 未対応のブラウザ名はここで弾く
    _family(params.name)

    flags = context.flags

    # 幅・高さ（0 は未指定と同じ扱い）
    width = params.width or _int_var(context, BROWSER_WIDTH_VAR)
    height = params.height or _int_var(context, BROWSER_HEIGHT_VAR)
    window_size = None
    if width and height:
        try:
            window_size = WindowSize(width=width, height=height)
        except ValidationError as exc:
            raise ConfigurationError(
                f"Invalid browser size: {width}x{height}"
            ) from exc
    elif width or height:
        logger.debug("幅と高さの片方のみ指定されているためサイズは適用しません")

    # モバイル端末エミュレーション
    device = params.device_emulation or context.find_var_value(DEVICE_EMULATION_VAR)
    mobile_emulation = MobileEmulation(device_name=device) if device else None

    # ヘッドレス
    if params.headless is not None:
        headless = params.headless
    elif HEADLESS_FLAG in flags:
        headless = parse_headless_flag(flags[HEADLESS_FLAG])
    else:
        headless = not context.is_debug

    # リモートサーバー
    server_url = params.server_url or flags.get(SERVER_URL_FLAG) or None

    capabilities = Capabilities(
        browser_name=params.name,
        version=params.version,
        platform=params.platform,
        window_size=window_size,
        mobile_emulation=mobile_emulation,
        headless=headless,
        server_url=server_url,
    )
    logger.info("起動パラメータを解決しました: %s", capabilities.as_dict())
    return capabilities


# ---------------------------------------------------------------------------
# エンジン系統ごとのビルダー
# ---------------------------------------------------------------------------

class CapabilityBuilder:
    """Capabilities を Playwright のオプションへ変換する基底クラス。

    engine は playwright オブジェクト上の BrowserType 属性名。
    ビューポートとヘッドレスは全系統共通。端末エミュレーションなど
    系統依存の項目はサブクラスが上書きしない限り何もしない。
    """

    engine: str = ""

    def __init__(self, capabilities: Capabilities, channel: Optional[str] = None) -> None:
        self.capabilities = capabilities
        self.channel = channel

    def launch_options(self) -> dict[str, Any]:
        """BrowserType.launch() に渡すオプション。"""
        options: dict[str, Any] = {"headless": self.capabilities.headless}
        if self.channel is not None:
            options["channel"] = self.channel
        return options

    def context_options(self, devices: Mapping[str, Mapping[str, Any]]) -> dict[str, Any]:
        """Browser.new_context() に渡すオプション。

        端末エミュレーションを先に適用し、明示サイズがあればビューポートを上書きする。

        Args:
            devices: Playwright の端末記述子（playwright.devices）
        """
        options = self.emulation_options(devices)
        size = self.capabilities.window_size
        if size is not None:
            options["viewport"] = {"width": size.width, "height": size.height}
        return options

    def emulation_options(self, devices: Mapping[str, Mapping[str, Any]]) -> dict[str, Any]:
        return {}


class ChromiumCapabilities(CapabilityBuilder):
    """Chromium 系（chromium / chrome / msedge）。端末エミュレーションに対応する。"""

    engine = "chromium"

    def emulation_options(self, devices: Mapping[str, Mapping[str, Any]]) -> dict[str, Any]:
        emulation = self.capabilities.mobile_emulation
        if emulation is None:
            return {}
        try:
            descriptor = devices[emulation.device_name]
        except KeyError:
            raise ConfigurationError(
                f"Unknown device to emulate: {emulation.device_name!r}"
            ) from None
        options = dict(descriptor)
        options.pop("default_browser_type", None)
        return options


class FirefoxCapabilities(CapabilityBuilder):
    engine = "firefox"


class WebKitCapabilities(CapabilityBuilder):
    engine = "webkit"


# ブラウザ名（小文字） → (ビルダー, チャンネル)
_FAMILIES: dict[str, tuple[type[CapabilityBuilder], Optional[str]]] = {
    "chromium": (ChromiumCapabilities, None),
    "chrome": (ChromiumCapabilities, "chrome"),
    "googlechrome": (ChromiumCapabilities, "chrome"),
    "msedge": (ChromiumCapabilities, "msedge"),
    "microsoftedge": (ChromiumCapabilities, "msedge"),
    "edge": (ChromiumCapabilities, "msedge"),
    "firefox": (FirefoxCapabilities, None),
    "webkit": (WebKitCapabilities, None),
    "safari": (WebKitCapabilities, None),
}


def _family(browser_name: str) -> tuple[type[CapabilityBuilder], Optional[str]]:
    key = browser_name.replace(" ", "").lower()
    try:
        return _FAMILIES[key]
    except KeyError:
        raise ConfigurationError(f"Unsupported browser: {browser_name!r}") from None


def builder_for(capabilities: Capabilities) -> CapabilityBuilder:
    """Capabilities のブラウザ名に対応するビルダーを返す。"""
    builder_cls, channel = _family(capabilities.browser_name)
    return builder_cls(capabilities, channel=channel)

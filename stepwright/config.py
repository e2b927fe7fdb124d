"""
実行設定 — 環境変数・設定ファイル・CLI 引数からのフラグ読み込み

ブラウザセッションは CLI 形式のフラット辞書（フラグ名 → 文字列）を参照する。
CLI 引数 > 設定ファイル > 環境変数 の優先順位でフラグを構築する。

環境変数一覧:
  BRT_HEADLESS        : headless フラグ（true/false）
  BRT_SELENIUM_SERVER : リモートのブラウザサーバー URL
  BRT_DEBUG           : 対話デバッグモード（true/false, デフォルト: false）
  BRT_POLL_INTERVAL   : 要素検索のポーリング間隔（ミリ秒, デフォルト: 100）

設定ファイル（YAML）:
  flags:
    headless: "false"
    seleniumServer: ws://localhost:3000/
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Mapping, Optional

from ruamel.yaml import YAML
from ruamel.yaml.error import YAMLError

from .browser.capabilities import HEADLESS_FLAG, SERVER_URL_FLAG
from .core.runner import DEFAULT_STEP_TIMEOUT_MS
from .core.waits import DEFAULT_POLL_INTERVAL_MS
from .errors import ConfigurationError

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# 環境変数キー定数
# ---------------------------------------------------------------------------

_ENV_HEADLESS = "BRT_HEADLESS"
_ENV_SELENIUM_SERVER = "BRT_SELENIUM_SERVER"
_ENV_DEBUG = "BRT_DEBUG"
_ENV_POLL_INTERVAL = "BRT_POLL_INTERVAL"

_ENV_FLAGS = {
    _ENV_HEADLESS: HEADLESS_FLAG,
    _ENV_SELENIUM_SERVER: SERVER_URL_FLAG,
}


# ---------------------------------------------------------------------------
# 設定データクラス
# ---------------------------------------------------------------------------

@dataclass
class RunConfig:
    """ランの実行時設定。

    Attributes:
        flags: CLI 形式のフラグ
        debug: 対話デバッグモード（headless のデフォルトが False になる）
        poll_interval_ms: 要素検索のポーリング間隔（ミリ秒）
        step_timeout_ms: 各ステップのタイムアウト（ミリ秒）。0 で無制限
    """

    flags: dict[str, str] = field(default_factory=dict)
    debug: bool = False
    poll_interval_ms: int = DEFAULT_POLL_INTERVAL_MS
    step_timeout_ms: int = DEFAULT_STEP_TIMEOUT_MS


def parse_bool(value: str) -> bool:
    """文字列を bool に変換する。

    Args:
        value: "true", "1", "yes" → True、それ以外 → False
    """
    return value.strip().lower() in ("true", "1", "yes")


# ---------------------------------------------------------------------------
# 読み込み
# ---------------------------------------------------------------------------

def load_flags_from_env(environ: Optional[Mapping[str, str]] = None) -> dict[str, str]:
    """環境変数からフラグを読み込む。設定されていない変数は含めない。"""
    environ = os.environ if environ is None else environ
    return {
        flag: environ[key]
        for key, flag in _ENV_FLAGS.items()
        if key in environ
    }


def load_flags_from_file(path: Path) -> dict[str, str]:
    """YAML 設定ファイルの flags セクションを読み込む。

    ファイルが存在しない場合は空の辞書を返す。値は文字列に変換する
    （YAML の true/false は "true"/"false" になる）。

    Raises:
        ConfigurationError: YAML として不正、または flags がマッピングでない場合
    """
    if not path.exists():
        logger.debug("設定ファイルがありません: %s", path)
        return {}

    yaml = YAML(typ="safe")
    try:
        data = yaml.load(path.read_text(encoding="utf-8")) or {}
    except YAMLError as exc:
        raise ConfigurationError(f"Invalid config file {path}: {exc}") from exc

    flags = data.get("flags", {}) if isinstance(data, dict) else None
    if flags is None:
        flags = {}
    if not isinstance(flags, dict):
        raise ConfigurationError(f"'flags' in {path} must be a mapping")

    return {str(k): _flag_str(v) for k, v in flags.items()}


def _flag_str(value: object) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def merge_flags(*layers: Mapping[str, str]) -> dict[str, str]:
    """フラグ辞書をマージする。後に渡したものが優先される。"""
    merged: dict[str, str] = {}
    for layer in layers:
        merged.update(layer)
    return merged


def load_config(
    config_file: Optional[Path] = None,
    cli_flags: Optional[Mapping[str, str]] = None,
    environ: Optional[Mapping[str, str]] = None,
) -> RunConfig:
    """環境変数・設定ファイル・CLI 引数から RunConfig を構築する。"""
    environ = os.environ if environ is None else environ
    config = RunConfig()

    file_flags = load_flags_from_file(config_file) if config_file is not None else {}
    config.flags = merge_flags(
        load_flags_from_env(environ), file_flags, cli_flags or {},
    )

    if _ENV_DEBUG in environ:
        config.debug = parse_bool(environ[_ENV_DEBUG])

    if _ENV_POLL_INTERVAL in environ:
        try:
            config.poll_interval_ms = int(environ[_ENV_POLL_INTERVAL])
        except ValueError:
            logger.warning(
                "%s の値が不正です: %s", _ENV_POLL_INTERVAL, environ[_ENV_POLL_INTERVAL],
            )

    logger.info("設定を読み込みました: %s", config)
    return config

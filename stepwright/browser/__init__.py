# ブラウザモジュール
# 起動パラメータの解決、セッション管理、要素検索、セッションレジストリを提供

from .capabilities import Capabilities, LaunchParams, resolve_capabilities
from .registry import SessionRegistry
from .session import BrowserSession, SessionState, resolve_url

__all__ = [
    "BrowserSession",
    "Capabilities",
    "LaunchParams",
    "SessionRegistry",
    "SessionState",
    "resolve_capabilities",
    "resolve_url",
]

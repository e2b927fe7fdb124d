"""
CLI エントリポイント — Typer ベースのコマンドラインインターフェース

stepwright コマンドとして以下のサブコマンドを提供する:
  - probe: ブラウザを開いて URL へ遷移し、ファインダーに一致する要素を数える

probe は1つのステップとして実行され、結果のステップを JSON で出力する。
"""

from __future__ import annotations

import asyncio
import json
import logging
from pathlib import Path
from typing import Optional

import typer

from .browser.capabilities import HEADLESS_FLAG, SERVER_URL_FLAG, LaunchParams
from .browser.session import BrowserSession
from .config import load_config
from .context import RunContext
from .core.runner import abort_run, execute_step
from .core.step import Step
from .errors import FatalError

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Typer アプリ定義
# ---------------------------------------------------------------------------

app = typer.Typer(
    help="stepwright — テストステップ実行とブラウザセッションのツール",
    no_args_is_help=True,
)


@app.callback()
def main(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="詳細ログを出力する"),
) -> None:
    """ログ出力を設定する。"""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s - %(message)s",
    )


# ---------------------------------------------------------------------------
# probe コマンド
# ---------------------------------------------------------------------------

@app.command()
def probe(
    url: str = typer.Argument(..., help="遷移先 URL（スキーム省略時は http://）"),
    finder: Optional[str] = typer.Option(
        None, "--finder", "-f", help="検索する要素（CSS / XPath）",
    ),
    browser: str = typer.Option("chromium", "--browser", "-b", help="ブラウザ名"),
    timeout: int = typer.Option(0, "--timeout", "-t", help="要素検索のタイムアウト（ミリ秒）"),
    width: Optional[int] = typer.Option(None, "--width", help="ウィンドウ幅"),
    height: Optional[int] = typer.Option(None, "--height", help="ウィンドウ高さ"),
    device: Optional[str] = typer.Option(None, "--device", help="エミュレートする端末名"),
    headless: Optional[bool] = typer.Option(
        None, "--headless/--headed", help="ヘッドレスで起動するか（省略時はフラグ・デバッグモードで決定）",
    ),
    server: Optional[str] = typer.Option(None, "--server", help="リモートのブラウザサーバー URL"),
    all_nodes: bool = typer.Option(
        False, "--all-nodes", help="非表示要素も検索対象にする",
    ),
    config_file: Optional[Path] = typer.Option(
        None, "--config", "-c", help="設定ファイル（YAML）",
    ),
    debug: bool = typer.Option(False, "--debug", help="対話デバッグモード"),
) -> None:
    """ブラウザで URL を開き、要素を検索した結果のステップを JSON で出力する。"""
    cli_flags: dict[str, str] = {}
    if headless is not None:
        cli_flags[HEADLESS_FLAG] = "true" if headless else "false"
    if server:
        cli_flags[SERVER_URL_FLAG] = server

    try:
        config = load_config(config_file, cli_flags)
    except FatalError as exc:
        typer.echo(f"エラー: {exc}", err=True)
        raise typer.Exit(code=2)

    context = RunContext(flags=config.flags, is_debug=debug or config.debug)
    params = LaunchParams(
        name=browser, width=width, height=height, device_emulation=device,
    )
    step = Step(id="probe")

    async def action(step: Step) -> None:
        session = BrowserSession(context, poll_interval_ms=config.poll_interval_ms)
        await session.open(params)
        try:
            target = await session.navigate(url)
            step.append_to_log(f"navigated to {target}")
            if finder:
                elements = await session.find_elements(
                    finder, timeout_ms=timeout, search_entire_document=all_nodes,
                )
                step.append_to_log({"finder": finder, "count": len(elements)})
        finally:
            await session.close()

    async def run() -> Step:
        try:
            return await execute_step(step, action, step_timeout_ms=config.step_timeout_ms)
        except FatalError:
            await abort_run(context.sessions)
            raise

    try:
        asyncio.run(run())
    except FatalError as exc:
        typer.echo(json.dumps(step.serialize(), ensure_ascii=False, indent=2, default=str))
        typer.echo(f"致命的エラー: {exc}", err=True)
        raise typer.Exit(code=2)

    typer.echo(json.dumps(step.serialize(), ensure_ascii=False, indent=2, default=str))
    if step.is_failed:
        raise typer.Exit(code=1)

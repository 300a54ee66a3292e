"""kigae CLI エントリポイント。"""

from __future__ import annotations

import asyncio
import datetime as dt
import sys
import threading
from typing import NoReturn

import typer
from rich.console import Console
from rich.table import Table

from kigae.auth_watcher import AuthWatcher
from kigae.config import KigaeConfig, load_config
from kigae.errors import AuthTimeoutError, KigaeError, ResourceBusyError
from kigae.events import tail_events
from kigae.launcher import launch_app
from kigae.logging_setup import setup_logging
from kigae.manager import ProfileManager
from kigae.profile_store import format_size
from kigae.session_reader import AuthSession
from kigae.token_vault import Keychain, TokenVault
from kigae.workspaces import find_workspace, list_workspaces

APP_HELP = "👘 kigae: 1アカウントしか持てないデスクトップアプリのプロファイルを着替える"

app = typer.Typer(add_completion=False, help=APP_HELP)
token_app = typer.Typer(add_completion=False, help="refresh token の保存/削除")
app.add_typer(token_app, name="token")
console = Console()


def _config() -> KigaeConfig:
    try:
        cfg = load_config()
    except KigaeError as e:
        _fail(str(e))
    setup_logging(cfg)
    return cfg


def _manager(cfg: KigaeConfig | None = None) -> ProfileManager:
    return ProfileManager(cfg or _config())


def _vault(cfg: KigaeConfig) -> TokenVault:
    return TokenVault(cfg.tokens_path, Keychain())


def _fail(message: str) -> NoReturn:
    console.print(f"❌ {message}", style="red")
    raise typer.Exit(code=1)


def _fmt_date(ts: float) -> str:
    return dt.datetime.fromtimestamp(ts).strftime("%Y-%m-%d")


def _wait_for_sign_in(mgr: ProfileManager) -> AuthSession:
    cfg = mgr.cfg
    watcher = AuthWatcher(
        cfg.state_db,
        poll_interval=cfg.watch.poll_interval,
        timeout=cfg.watch.timeout,
        fs_events=cfg.watch.fs_events,
        on_manual_miss=lambda: console.print(
            f"  ⚠️  No sign-in detected yet. Sign in to {cfg.app.name} and press Enter again.",
            style="yellow",
        ),
    )

    # Enter で手動チェック
    def _stdin_reader() -> None:
        for _line in sys.stdin:
            watcher.check_now()

    threading.Thread(target=_stdin_reader, daemon=True).start()
    console.print(
        f"  ⏳ Waiting for sign-in... (press Enter to check now, timeout {cfg.watch.timeout:g}s)",
        style="dim",
    )
    return asyncio.run(watcher.watch())


@app.command()
def add(
    yes: bool = typer.Option(False, "--yes", "-y", help="確認なしで保存する"),
    launch: bool = typer.Option(True, "--launch/--no-launch", help="サインイン待ちの前にアプリを起動"),
) -> None:
    """サインイン済みのアプリ状態を新しいプロファイルとして保存する。"""
    mgr = _manager()
    cfg = mgr.cfg
    session = mgr.current_session()

    if session is not None:
        console.print(f"Found existing sign-in: {session.email}", style="green")
        existing = mgr.store.get_by_identity(session.email)
        if existing is not None and not yes:
            console.print(
                f"A profile for {session.email} already exists. To add a different account, "
                f"sign out in {cfg.app.name}, sign in with the other account and run this again.",
                style="dim",
            )
            if not typer.confirm("Replace the existing profile with fresh data?", default=False):
                raise typer.Exit(code=0)
        elif existing is None and not yes:
            if not typer.confirm(f"Add {session.email} as a new profile?", default=True):
                console.print(
                    f"Sign out in {cfg.app.name}, sign in with the other account and run this again.",
                    style="dim",
                )
                raise typer.Exit(code=0)
    else:
        console.print(f"No {cfg.app.name} sign-in found. Sign in inside the app; kigae will capture it.")
        if launch:
            try:
                launch_app(cfg)
            except OSError as e:
                console.print(f"  ⚠️  Could not launch {cfg.app.name}: {e}", style="yellow")
        try:
            session = _wait_for_sign_in(mgr)
        except AuthTimeoutError as e:
            _fail(f"{e}. Run `kigae add` again after signing in.")
        console.print(f"  ✅ Sign-in detected: {session.email}", style="green")

    try:
        profile = mgr.add(session)
    except ResourceBusyError as e:
        _fail(str(e))
    except (KigaeError, OSError, ValueError) as e:
        _fail(f"Failed to add account: {e}")

    console.print(f"\n👘 Saved {profile.identity} -> {profile.path} (active)", style="bold green")


@app.command("list")
def list_profiles() -> None:
    """プロファイル一覧（アクティブ・token の保存先・サイズ）。"""
    mgr = _manager()
    vault = _vault(mgr.cfg)
    profiles = mgr.profiles()
    if not profiles:
        console.print("(no profiles) add one with: kigae add")
        return

    table = Table(show_edge=False, header_style="bold")
    table.add_column("")
    table.add_column("Identity")
    table.add_column("Token")
    table.add_column("Size", justify="right")
    table.add_column("Created")
    for p in profiles:
        marker = "●" if mgr.pointer.is_active(p.path) else ""
        if vault.is_backed_by_keychain(p.identity):
            token = "🔐 keychain"
        elif vault.has(p.identity):
            token = "file"
        else:
            token = "-"
        table.add_row(marker, p.identity, token, format_size(mgr.store.size(p)), _fmt_date(p.created_at))
    console.print(table)


@app.command()
def current() -> None:
    """アクティブなプロファイルとアプリのサインイン状態を表示する。"""
    mgr = _manager()
    active = mgr.pointer.active_name()
    session = mgr.current_session()
    console.print(f"active profile: {active or '(none)'}")
    console.print(f"{mgr.cfg.app.name} signed in as: {session.email if session else '(nobody)'}")
    if active is None and mgr.profiles():
        console.print("No active profile recorded. Pick one with: kigae switch", style="yellow")


@app.command()
def switch(
    identity: str = typer.Argument("", help="切り替え先（空なら一覧から選ぶ）"),
    workspace: str = typer.Option("", "--workspace", "-w", help="起動後に開くワークスペース名"),
    launch: bool = typer.Option(True, "--launch/--no-launch", help="切替後にアプリを起動"),
    yes: bool = typer.Option(False, "--yes", "-y", help="起動中のアプリを確認なしで閉じる"),
) -> None:
    """別のプロファイルに切り替える（アプリのデータディレクトリを丸ごと置き換える）。"""
    mgr = _manager()
    cfg = mgr.cfg
    profiles = mgr.profiles()
    if not profiles:
        _fail("No profiles. Add one with: kigae add")

    if not identity:
        for i, p in enumerate(profiles, start=1):
            mark = " (active)" if mgr.pointer.is_active(p.path) else ""
            console.print(f"  {i}. {p.identity}{mark}")
        choice = typer.prompt("Switch to", type=int)
        if not 1 <= choice <= len(profiles):
            _fail("invalid choice")
        identity = profiles[choice - 1].identity

    if not yes and mgr.guard.is_running():
        if not typer.confirm(f"{cfg.app.name} is running. Close it to continue?", default=True):
            _fail(f"Close {cfg.app.name} manually and try again.")

    try:
        result = mgr.switch(identity)
    except (KigaeError, OSError) as e:
        _fail(str(e))

    if not result.changed:
        console.print(f"{result.profile.identity} is already active.", style="dim")
        return

    console.print(f"👘 Switched to {result.profile.identity}", style="bold green")
    if not launch:
        return

    target = result.previous_workspace
    if workspace:
        found = find_workspace(workspace, mgr.live_data_dir)
        if found is not None:
            target = found.folder_path
        else:
            console.print(f"Workspace '{workspace}' not found; reopening the previous one.", style="yellow")
    try:
        launch_app(cfg, target)
    except OSError as e:
        console.print(f"⚠️  Failed to launch {cfg.app.name}: {e}", style="yellow")


@app.command()
def remove(
    identity: str = typer.Argument(..., help="削除するプロファイル"),
    yes: bool = typer.Option(False, "--yes", "-y", help="確認しない"),
    forget_token: bool = typer.Option(False, "--forget-token", help="保存済み token も消す"),
) -> None:
    """プロファイルを削除する。"""
    mgr = _manager()
    try:
        profile = mgr.get(identity)
    except KigaeError as e:
        _fail(str(e))

    if not yes:
        size = format_size(mgr.store.size(profile))
        msg = f"Remove {profile.identity}? This frees {size}."
        if mgr.pointer.is_active(profile.path):
            msg += " ⚠️  This is the active profile."
        if not typer.confirm(msg, default=False):
            raise typer.Exit(code=0)

    try:
        new_active = mgr.remove(identity)
    except (KigaeError, OSError) as e:
        _fail(f"Failed to remove profile: {e}")

    if forget_token:
        _vault(mgr.cfg).delete(profile.identity)
    console.print(f"✅ Removed {profile.identity}", style="green")
    if new_active is not None:
        console.print(f"active profile: {new_active.identity}")


@app.command()
def history(
    lines: int = typer.Option(20, "--lines", "-n", help="表示する行数"),
) -> None:
    """events.log の末尾（add / switch / remove の履歴）。"""
    cfg = _config()
    entries = tail_events(cfg.event_log_path, lines)
    if not entries:
        console.print("(no history)")
        return
    for line in entries:
        console.print(line, markup=False, highlight=False)


@app.command()
def workspaces() -> None:
    """アプリのワークスペース履歴（新しい順）。"""
    mgr = _manager()
    found = list_workspaces(mgr.live_data_dir)
    if not found:
        console.print("(no workspaces)")
        return
    for w in found:
        console.print(f"- {w.folder_name}  [dim]{w.folder_path}[/dim]")


@token_app.command("set")
def token_set(
    identity: str = typer.Argument(..., help="アカウント"),
    insecure_file: bool = typer.Option(
        False, "--file", help="keychain ではなく tokens.json に平文で保存"
    ),
) -> None:
    """refresh token を保存する。"""
    cfg = _config()
    secret = typer.prompt("Refresh token", hide_input=True)
    vault = _vault(cfg)
    vault.save(identity, secret, prefer_insecure_file=insecure_file)
    where = "keychain" if vault.is_backed_by_keychain(identity) else str(cfg.tokens_path)
    console.print(f"✅ token saved for {identity} ({where})", style="green")


@token_app.command("delete")
def token_delete(identity: str = typer.Argument(..., help="アカウント")) -> None:
    """refresh token を削除する。"""
    cfg = _config()
    _vault(cfg).delete(identity)
    console.print(f"✅ token deleted for {identity}", style="green")

from __future__ import annotations

import json
import sqlite3
from contextlib import closing
from pathlib import Path
from typing import Callable

import pytest

from kigae.config import AppConfig, KigaeConfig, SwitchConfig
from kigae.process_guard import ProcessGuard


class FakeGuard(ProcessGuard):
    """実プロセスを見ない ProcessGuard。running の列で is_running の戻り値を順に返す。"""

    def __init__(self, running: list[bool] | bool = False, quit_ok: bool = True) -> None:
        super().__init__(["fakeapp"])
        self._running = running
        self.quit_ok = quit_ok
        self.checks = 0
        self.quit_calls = 0
        self.kill_calls = 0

    def is_running(self) -> bool:
        self.checks += 1
        if isinstance(self._running, bool):
            return self._running
        if not self._running:
            return False
        if len(self._running) == 1:
            return self._running[0]
        return self._running.pop(0)

    def request_quit(self, *, force: bool = False) -> bool:
        if force:
            self.kill_calls += 1
        else:
            self.quit_calls += 1
        return self.quit_ok


def _write_items(db_path: Path, items: dict[str, object]) -> None:
    db_path.parent.mkdir(parents=True, exist_ok=True)
    with closing(sqlite3.connect(db_path)) as conn:
        conn.execute("CREATE TABLE IF NOT EXISTS ItemTable (key TEXT PRIMARY KEY, value TEXT)")
        for k, v in items.items():
            value = v if isinstance(v, str) else json.dumps(v)
            conn.execute("INSERT OR REPLACE INTO ItemTable (key, value) VALUES (?, ?)", (k, value))
        conn.commit()


@pytest.fixture()
def write_state_db() -> Callable[[Path, dict[str, object]], None]:
    """state.vscdb 互換の SQLite を作る（key -> JSON）。"""
    return _write_items


@pytest.fixture()
def live_dir(tmp_path: Path) -> Path:
    """サインイン済みアプリのデータディレクトリっぽいもの。"""
    d = tmp_path / "live"
    (d / "User" / "globalStorage").mkdir(parents=True)
    (d / "User" / "settings.json").write_text('{"editor.fontSize": 13}', encoding="utf-8")
    (d / "Cache").mkdir()
    (d / "Cache" / "blob").write_bytes(b"x" * 100)
    (d / "Local Storage").mkdir()
    (d / "Local Storage" / "leveldb.log").write_text("data", encoding="utf-8")
    return d


@pytest.fixture()
def cfg(tmp_path: Path, live_dir: Path) -> KigaeConfig:
    return KigaeConfig(
        base_dir=tmp_path / "home",
        app=AppConfig(name="FakeApp", data_dir=live_dir, process_names=["fakeapp"]),
        switch=SwitchConfig(quit_attempts=3, quit_interval=0.0),
    )


@pytest.fixture()
def fake_guard() -> FakeGuard:
    return FakeGuard(running=False)

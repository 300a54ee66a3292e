"""events.log: 人間が読む操作履歴。

`[YYYY-mm-dd HH:MM:SS] message` を1行ずつ追記する。
メールアドレス（identity）は書くが、トークン類は絶対に書かない。
"""

from __future__ import annotations

import time
from pathlib import Path


def append_event(event_log_path: Path | None, msg: str) -> None:
    if event_log_path is None:
        return
    event_log_path.parent.mkdir(parents=True, exist_ok=True)
    ts = time.strftime("%Y-%m-%d %H:%M:%S")
    with event_log_path.open("a", encoding="utf-8") as f:
        f.write(f"[{ts}] {msg}\n")


def tail_events(event_log_path: Path, n: int = 20) -> list[str]:
    if not event_log_path.exists():
        return []
    lines = event_log_path.read_text(encoding="utf-8").splitlines()
    return lines[-n:]

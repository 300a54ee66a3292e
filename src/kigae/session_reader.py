"""アプリの状態DB（state.vscdb）からサインイン情報を読む。

state.vscdb は SQLite の `ItemTable(key TEXT, value TEXT)` で、value は JSON 文字列。

読むキー:
- `antigravityAuthStatus`: 専用キー（1セッション、`{"email", "name", "apiKey", ...}`）
- `%authentication.sessions%` / `%google.auth%` / `%auth.sessions%`:
  汎用の複数セッション（`[{"id", "account": {"label", "id"}}]`）
- `history.recentlyOpenedPathsList`: 最近開いたワークスペース

注意:
- アプリ起動中はファイルがロックされていることがある。頻繁にポーリングされるので
  どんな失敗でも例外にせず「セッションなし」を返す。
- apiKey そのものは保持しない（先頭20文字を session_id として使うだけ）。
"""

from __future__ import annotations

import json
import logging
import sqlite3
from contextlib import closing
from dataclasses import dataclass
from pathlib import Path

logger = logging.getLogger(__name__)

DEDICATED_AUTH_KEY = "antigravityAuthStatus"
RECENTLY_OPENED_KEY = "history.recentlyOpenedPathsList"

_SESSIONS_QUERY = """
    SELECT key, value FROM ItemTable
    WHERE key = ?
       OR key LIKE '%authentication.sessions%'
       OR key LIKE '%google.auth%'
       OR key LIKE '%auth.sessions%'
"""


@dataclass(frozen=True)
class AuthSession:
    email: str
    account_id: str
    session_id: str
    name: str | None = None


def _connect_readonly(db_path: Path) -> sqlite3.Connection:
    # mode=ro: 存在しないファイルを作らない
    return sqlite3.connect(f"{db_path.resolve().as_uri()}?mode=ro", uri=True, timeout=0.5)


def _parse_dedicated(value: str) -> AuthSession | None:
    try:
        raw = json.loads(value)
    except (TypeError, json.JSONDecodeError):
        return None
    if not isinstance(raw, dict) or not raw.get("email"):
        return None
    email = str(raw["email"])
    api_key = str(raw.get("apiKey") or "")
    name = raw.get("name")
    return AuthSession(
        email=email,
        account_id=email,
        session_id=api_key[:20] or "antigravity",
        name=str(name) if name else None,
    )


def _session_from_item(item: object) -> AuthSession | None:
    if not isinstance(item, dict):
        return None
    account = item.get("account")
    if not isinstance(account, dict):
        return None
    label = account.get("label")
    account_id = account.get("id")
    if not label or not account_id:
        return None
    return AuthSession(
        email=str(label),
        account_id=str(account_id),
        session_id=str(item.get("id") or "unknown"),
    )


def parse_generic_sessions(value: str) -> list[AuthSession]:
    try:
        raw = json.loads(value)
    except (TypeError, json.JSONDecodeError):
        return []
    items = raw if isinstance(raw, list) else [raw]
    sessions = []
    for item in items:
        s = _session_from_item(item)
        if s is not None:
            sessions.append(s)
    return sessions


def read_sessions(db_path: Path) -> list[AuthSession]:
    """サインイン情報を全部読む。専用キーのものを先頭にする。"""
    if not db_path.is_file():
        return []
    try:
        with closing(_connect_readonly(db_path)) as conn:
            rows = conn.execute(_SESSIONS_QUERY, (DEDICATED_AUTH_KEY,)).fetchall()
    except sqlite3.Error as e:
        logger.debug("state db unreadable (%s): %s", db_path, e)
        return []

    dedicated: list[AuthSession] = []
    generic: list[AuthSession] = []
    for key, value in rows:
        if key == DEDICATED_AUTH_KEY:
            s = _parse_dedicated(value)
            if s is not None:
                dedicated.append(s)
        else:
            generic.extend(parse_generic_sessions(value))
    return dedicated + generic


def first_session(db_path: Path) -> AuthSession | None:
    sessions = read_sessions(db_path)
    return sessions[0] if sessions else None


def _strip_file_uri(uri: str) -> str:
    return uri[len("file://"):] if uri.startswith("file://") else uri


def read_recent_workspace(db_path: Path) -> str | None:
    """最後に開いていたフォルダ（またはファイル）のパス。"""
    if not db_path.is_file():
        return None
    try:
        with closing(_connect_readonly(db_path)) as conn:
            row = conn.execute(
                "SELECT value FROM ItemTable WHERE key = ?", (RECENTLY_OPENED_KEY,)
            ).fetchone()
    except sqlite3.Error as e:
        logger.debug("state db unreadable (%s): %s", db_path, e)
        return None
    if row is None:
        return None

    try:
        data = json.loads(row[0])
    except (TypeError, json.JSONDecodeError):
        return None
    entries = data.get("entries") if isinstance(data, dict) else None
    if not isinstance(entries, list) or not entries or not isinstance(entries[0], dict):
        return None
    uri = entries[0].get("folderUri") or entries[0].get("fileUri")
    return _strip_file_uri(str(uri)) if uri else None

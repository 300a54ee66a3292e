"""session_reader のテスト。"""

import sqlite3
from contextlib import closing
from pathlib import Path

from kigae.session_reader import (
    AuthSession,
    first_session,
    parse_generic_sessions,
    read_recent_workspace,
    read_sessions,
)


def test_missing_db_returns_empty(tmp_path: Path) -> None:
    db = tmp_path / "nope" / "state.vscdb"
    assert read_sessions(db) == []
    assert first_session(db) is None
    # 読み取り専用で開くのでファイルを作らない
    assert not db.exists()


def test_not_a_database_returns_empty(tmp_path: Path) -> None:
    db = tmp_path / "state.vscdb"
    db.write_bytes(b"this is not sqlite at all" * 10)
    assert read_sessions(db) == []


def test_missing_table_returns_empty(tmp_path: Path) -> None:
    db = tmp_path / "state.vscdb"
    with closing(sqlite3.connect(db)) as conn:
        conn.execute("CREATE TABLE Other (x TEXT)")
        conn.commit()
    assert read_sessions(db) == []


def test_dedicated_key(tmp_path: Path, write_state_db) -> None:
    db = tmp_path / "state.vscdb"
    write_state_db(
        db,
        {"antigravityAuthStatus": {"email": "alice@example.com", "name": "Alice", "apiKey": "k" * 40}},
    )
    s = first_session(db)
    assert s == AuthSession(
        email="alice@example.com",
        account_id="alice@example.com",
        session_id="k" * 20,
        name="Alice",
    )


def test_dedicated_key_without_email_is_ignored(tmp_path: Path, write_state_db) -> None:
    db = tmp_path / "state.vscdb"
    write_state_db(db, {"antigravityAuthStatus": {"name": "nobody"}})
    assert read_sessions(db) == []


def test_generic_sessions(tmp_path: Path, write_state_db) -> None:
    db = tmp_path / "state.vscdb"
    write_state_db(
        db,
        {
            "secret://github.authentication.sessions": [
                {"id": "s1", "account": {"label": "bob@example.com", "id": "123"}},
                {"id": "s2", "account": {"label": "", "id": "456"}},
            ],
        },
    )
    sessions = read_sessions(db)
    assert [s.email for s in sessions] == ["bob@example.com"]
    assert sessions[0].account_id == "123"
    assert sessions[0].session_id == "s1"


def test_dedicated_key_takes_precedence(tmp_path: Path, write_state_db) -> None:
    db = tmp_path / "state.vscdb"
    write_state_db(
        db,
        {
            "a.auth.sessions": [{"id": "s1", "account": {"label": "bob@example.com", "id": "1"}}],
            "antigravityAuthStatus": {"email": "alice@example.com"},
        },
    )
    assert first_session(db).email == "alice@example.com"


def test_parse_generic_sessions_single_object_and_garbage() -> None:
    one = parse_generic_sessions('{"id": "x", "account": {"label": "c@example.com", "id": "9"}}')
    assert [s.email for s in one] == ["c@example.com"]
    assert parse_generic_sessions("not json") == []
    assert parse_generic_sessions("[1, 2, null]") == []


def test_read_recent_workspace(tmp_path: Path, write_state_db) -> None:
    db = tmp_path / "state.vscdb"
    write_state_db(
        db,
        {
            "history.recentlyOpenedPathsList": {
                "entries": [
                    {"folderUri": "file:///home/me/proj"},
                    {"fileUri": "file:///home/me/other.txt"},
                ]
            }
        },
    )
    assert read_recent_workspace(db) == "/home/me/proj"


def test_read_recent_workspace_absent(tmp_path: Path, write_state_db) -> None:
    db = tmp_path / "state.vscdb"
    assert read_recent_workspace(db) is None
    write_state_db(db, {"history.recentlyOpenedPathsList": {"entries": []}})
    assert read_recent_workspace(db) is None


def test_read_recent_workspace_malformed_entries(tmp_path: Path, write_state_db) -> None:
    db = tmp_path / "state.vscdb"
    write_state_db(db, {"history.recentlyOpenedPathsList": {"entries": {"a": 1}}})
    assert read_recent_workspace(db) is None
    write_state_db(db, {"history.recentlyOpenedPathsList": {"entries": ["file:///x"]}})
    assert read_recent_workspace(db) is None
    write_state_db(db, {"history.recentlyOpenedPathsList": "not json"})
    assert read_recent_workspace(db) is None

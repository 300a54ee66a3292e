"""CLI のテスト（KIGAE_HOME と config.toml で tmp に閉じ込める）。"""

from pathlib import Path

import pytest
from conftest import FakeGuard
from typer.testing import CliRunner

from kigae import cli
from kigae.config import load_config
from kigae.manager import ProfileManager
from kigae.session_reader import AuthSession

runner = CliRunner()


@pytest.fixture()
def home(tmp_path: Path, live_dir: Path, monkeypatch) -> Path:
    home = tmp_path / "home"
    home.mkdir()
    (home / "config.toml").write_text(
        "[app]\n"
        'name = "FakeApp"\n'
        f'data_dir = "{live_dir.as_posix()}"\n'
        'process_names = ["fakeapp"]\n'
        "\n[switch]\nquit_attempts = 2\nquit_interval = 0.0\n",
        encoding="utf-8",
    )
    monkeypatch.setenv("KIGAE_HOME", str(home))
    monkeypatch.setattr(cli, "setup_logging", lambda cfg: home / "logs" / "kigae.log")
    monkeypatch.setattr("kigae.manager.guard_from_config", lambda cfg: FakeGuard(running=False))
    monkeypatch.setattr(cli, "Keychain", lambda: None)
    return home


def _seed(home: Path, live_dir: Path) -> ProfileManager:
    mgr = ProfileManager(load_config(home), guard=FakeGuard())
    (live_dir / "who.txt").write_text("bob", encoding="utf-8")
    mgr.add(AuthSession("bob@example.com", "b", "sid"))
    (live_dir / "who.txt").write_text("alice", encoding="utf-8")
    mgr.add(AuthSession("alice@example.com", "a", "sid"))
    return mgr


def test_list_empty(home) -> None:
    result = runner.invoke(cli.app, ["list"])
    assert result.exit_code == 0
    assert "no profiles" in result.output


def test_list_and_current(home, live_dir) -> None:
    _seed(home, live_dir)

    result = runner.invoke(cli.app, ["list"])
    assert result.exit_code == 0
    assert "alice@example.com" in result.output
    assert "bob@example.com" in result.output

    result = runner.invoke(cli.app, ["current"])
    assert result.exit_code == 0
    assert "active profile: alice@example.com" in result.output


def test_switch(home, live_dir) -> None:
    _seed(home, live_dir)

    result = runner.invoke(cli.app, ["switch", "bob@example.com", "--yes", "--no-launch"])
    assert result.exit_code == 0, result.output
    assert "Switched to bob@example.com" in result.output
    assert (live_dir / "who.txt").read_text(encoding="utf-8") == "bob"

    result = runner.invoke(cli.app, ["switch", "bob@example.com", "--yes", "--no-launch"])
    assert result.exit_code == 0
    assert "already active" in result.output


def test_switch_unknown(home, live_dir) -> None:
    _seed(home, live_dir)
    result = runner.invoke(cli.app, ["switch", "carol@example.com", "--yes", "--no-launch"])
    assert result.exit_code == 1
    assert "profile not found" in result.output


def test_switch_app_will_not_quit(home, live_dir, monkeypatch) -> None:
    _seed(home, live_dir)
    monkeypatch.setattr("kigae.manager.guard_from_config", lambda cfg: FakeGuard(running=True))

    result = runner.invoke(cli.app, ["switch", "bob@example.com", "--yes", "--no-launch"])
    assert result.exit_code == 1
    assert (live_dir / "who.txt").read_text(encoding="utf-8") == "alice"


def test_remove_active(home, live_dir) -> None:
    _seed(home, live_dir)

    result = runner.invoke(cli.app, ["remove", "alice@example.com", "--yes"])
    assert result.exit_code == 0, result.output
    assert "Removed alice@example.com" in result.output
    assert "active profile: bob@example.com" in result.output


def test_add_existing_sign_in(home, live_dir, write_state_db) -> None:
    write_state_db(
        live_dir / "User" / "globalStorage" / "state.vscdb",
        {"antigravityAuthStatus": {"email": "new@example.com", "name": "New", "apiKey": "k" * 30}},
    )
    result = runner.invoke(cli.app, ["add", "--yes", "--no-launch"])
    assert result.exit_code == 0, result.output
    assert (home / "profiles" / "new@example.com").is_dir()
    assert (home / "active").is_symlink()


def test_token_set_and_delete(home) -> None:
    result = runner.invoke(cli.app, ["token", "set", "a@example.com"], input="rt-secret\n")
    assert result.exit_code == 0, result.output
    assert "rt-secret" not in result.output
    assert "rt-secret" in (home / "tokens.json").read_text(encoding="utf-8")

    result = runner.invoke(cli.app, ["token", "delete", "a@example.com"])
    assert result.exit_code == 0
    assert "a@example.com" not in (home / "tokens.json").read_text(encoding="utf-8")


def test_bad_config(home) -> None:
    (home / "config.toml").write_text("[app\n", encoding="utf-8")
    result = runner.invoke(cli.app, ["list"])
    assert result.exit_code == 1
    assert "❌" in result.output


def test_history(home, live_dir) -> None:
    result = runner.invoke(cli.app, ["history"])
    assert result.exit_code == 0
    assert "no history" in result.output

    _seed(home, live_dir)
    runner.invoke(cli.app, ["switch", "bob@example.com", "--yes", "--no-launch"])

    result = runner.invoke(cli.app, ["history", "-n", "2"])
    assert result.exit_code == 0
    lines = [line for line in result.output.splitlines() if line.strip()]
    assert len(lines) == 2
    assert lines[0].endswith("add: alice@example.com")
    assert lines[1].endswith("switch: bob@example.com")


def test_current_without_pointer(home, live_dir) -> None:
    _seed(home, live_dir)
    (home / "active").unlink()

    result = runner.invoke(cli.app, ["current"])
    assert result.exit_code == 0
    assert "active profile: (none)" in result.output
    assert "kigae switch" in result.output


def test_add_reserved_identity_fails_cleanly(home, live_dir, write_state_db) -> None:
    write_state_db(
        live_dir / "User" / "globalStorage" / "state.vscdb",
        {"antigravityAuthStatus": {"email": "pending_session"}},
    )
    result = runner.invoke(cli.app, ["add", "--yes", "--no-launch"])
    assert result.exit_code == 1
    assert not (home / "profiles" / "pending_session").exists()

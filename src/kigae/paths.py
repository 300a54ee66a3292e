"""既知のパスの解決（副作用なし）。

- ベースディレクトリ: `~/.kigae`（環境変数 `KIGAE_HOME` で上書き可）
- プロファイル置き場: `<base>/profiles/<sanitized identity>`
- アクティブポインタ: `<base>/active`（シンボリックリンク）
- アプリ本体のデータディレクトリ: OSごとの既定位置

注意:
- このモジュールは"パスの計算"のみ行い、ディレクトリを作らない。
"""

from __future__ import annotations

import os
import sys
from pathlib import Path

PROFILES_DIR_NAME = "profiles"
PENDING_DIR_NAME = "pending_session"
ACTIVE_LINK_NAME = "active"
STATE_DB_RELPATH = Path("User") / "globalStorage" / "state.vscdb"
WORKSPACE_STORAGE_RELPATH = Path("User") / "workspaceStorage"


def base_dir() -> Path:
    override = os.environ.get("KIGAE_HOME", "")
    if override:
        return Path(override).expanduser()
    return Path.home() / ".kigae"


def profiles_dir(base: Path) -> Path:
    return base / PROFILES_DIR_NAME


def pending_dir(base: Path) -> Path:
    return profiles_dir(base) / PENDING_DIR_NAME


def active_link_path(base: Path) -> Path:
    return base / ACTIVE_LINK_NAME


def default_app_data_dir(app_name: str, platform: str | None = None) -> Path:
    """アプリのデータディレクトリ（OS既定）を返す。"""
    platform = platform or sys.platform
    home = Path.home()
    if platform == "darwin":
        return home / "Library" / "Application Support" / app_name
    if platform.startswith("win"):
        appdata = os.environ.get("APPDATA", "")
        root = Path(appdata) if appdata else home / "AppData" / "Roaming"
        return root / app_name
    # linux / その他 unix
    xdg = os.environ.get("XDG_CONFIG_HOME", "")
    root = Path(xdg) if xdg else home / ".config"
    return root / app_name


def state_db_path(data_dir: Path) -> Path:
    return data_dir / STATE_DB_RELPATH


def workspace_storage_path(data_dir: Path) -> Path:
    return data_dir / WORKSPACE_STORAGE_RELPATH

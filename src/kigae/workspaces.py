"""ワークスペース履歴（`User/workspaceStorage/*/workspace.json`）。

切替後にどのフォルダを開き直すか選ぶために使う。
"""

from __future__ import annotations

import json
import os
from dataclasses import dataclass
from pathlib import Path
from urllib.parse import unquote

from kigae import paths


@dataclass
class Workspace:
    hash: str
    folder_path: str
    folder_name: str
    last_modified: float


def parse_workspace_json(workspace_dir: Path) -> str | None:
    p = workspace_dir / "workspace.json"
    if not p.is_file():
        return None
    try:
        data = json.loads(p.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError):
        return None
    folder = data.get("folder") if isinstance(data, dict) else None
    if not folder:
        return None
    folder = str(folder)
    # file:///Users/me/My%20Project -> /Users/me/My Project
    return unquote(folder[len("file://"):]) if folder.startswith("file://") else folder


def list_workspaces(data_dir: Path) -> list[Workspace]:
    """まだ存在するフォルダだけ、新しい順に返す。"""
    storage = paths.workspace_storage_path(data_dir)
    if not storage.is_dir():
        return []

    found: list[Workspace] = []
    for entry in os.scandir(storage):
        if not entry.is_dir(follow_symlinks=False):
            continue
        folder = parse_workspace_json(Path(entry.path))
        if not folder or not Path(folder).exists():
            continue
        found.append(
            Workspace(
                hash=entry.name,
                folder_path=folder,
                folder_name=Path(folder).name or folder,
                last_modified=entry.stat().st_mtime,
            )
        )
    found.sort(key=lambda w: w.last_modified, reverse=True)
    return found


def find_workspace(name: str, data_dir: Path) -> Workspace | None:
    """フォルダ名で探す。完全一致（大文字小文字無視）→ 部分一致の順。"""
    workspaces = list_workspaces(data_dir)
    needle = name.lower()
    for w in workspaces:
        if w.folder_name.lower() == needle:
            return w
    for w in workspaces:
        if needle in w.folder_name.lower():
            return w
    return None

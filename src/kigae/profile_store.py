"""プロファイル（アプリのデータディレクトリのスナップショット）の保管庫。

レイアウト:
- `<base>/profiles/<sanitized identity>/` が1プロファイル
- `<base>/profiles/pending_session/` はキャプチャ中の作業場所（一覧には出さない）

設計:
- プロファイルのディレクトリを作る/消すのはこのモジュールだけ
- アクティブポインタ（symlink）には触らない。付け替えは呼び出し側の責務
- メタデータは保存しない。作成/更新時刻はディレクトリの stat から取る
"""

from __future__ import annotations

import logging
import os
import re
import shutil
from dataclasses import dataclass
from pathlib import Path

from kigae import paths
from kigae.sync import copy_tree, purge_transient_state, remove_tree, tree_size

logger = logging.getLogger(__name__)

_UNSAFE_CHARS = re.compile(r"[^a-zA-Z0-9@._-]")


@dataclass
class Profile:
    identity: str
    path: Path
    display_name: str = ""
    created_at: float = 0.0
    updated_at: float = 0.0

    def __post_init__(self) -> None:
        if not self.display_name:
            self.display_name = self.identity


def sanitize_identity(identity: str) -> str:
    """identity をディレクトリ名に使える形にする。"""
    identity = identity.strip()
    if not identity:
        raise ValueError("identity is required")
    name = _UNSAFE_CHARS.sub("_", identity)
    # "." / ".." / 隠しディレクトリにしない
    if name.startswith("."):
        name = "_" + name[1:]
    if name == paths.PENDING_DIR_NAME:
        raise ValueError(f"reserved identity: {identity}")
    return name


def format_size(n: int) -> str:
    if n < 1024:
        return f"{n} B"
    if n < 1024**2:
        return f"{n / 1024:.1f} KB"
    if n < 1024**3:
        return f"{n / 1024**2:.1f} MB"
    return f"{n / 1024**3:.1f} GB"


def _birth_time(st: os.stat_result) -> float:
    # st_birthtime は macOS/BSD（と新しめの Windows）にしか無い
    return float(getattr(st, "st_birthtime", st.st_ctime))


class ProfileStore:
    def __init__(self, root: Path) -> None:
        self.root = root

    @property
    def pending_path(self) -> Path:
        return self.root / paths.PENDING_DIR_NAME

    def ensure_root(self) -> None:
        self.root.mkdir(parents=True, exist_ok=True)

    def _profile_at(self, path: Path) -> Profile:
        st = path.stat()
        return Profile(
            identity=path.name,
            path=path.absolute(),
            created_at=_birth_time(st),
            updated_at=st.st_mtime,
        )

    def list(self) -> list[Profile]:
        """全プロファイル。順序は保証しない（表示側でソートすること）。"""
        if not self.root.is_dir():
            return []
        profiles: list[Profile] = []
        for entry in os.scandir(self.root):
            if entry.name == paths.PENDING_DIR_NAME:
                continue
            if not entry.is_dir(follow_symlinks=False):
                continue
            profiles.append(self._profile_at(Path(entry.path)))
        return profiles

    def get_by_identity(self, identity: str) -> Profile | None:
        # 記録される identity はディレクトリ名（= sanitize 後）
        try:
            name = sanitize_identity(identity)
        except ValueError:
            return None
        for p in self.list():
            if p.identity == name:
                return p
        return None

    def path_for(self, identity: str) -> Path:
        path = (self.root / sanitize_identity(identity)).absolute()
        if path.parent != self.root.absolute():
            raise ValueError(f"identity escapes the profile store: {identity!r}")
        return path

    def capture(self, identity: str, live_data_dir: Path) -> Profile:
        """live_data_dir を丸ごと複製して identity のプロファイルにする。

        まず pending_session に複製・掃除してから、既存の同名プロファイルを消して
        rename で差し替える。途中で失敗しても既存プロファイルは壊れない。
        """
        final_path = self.path_for(identity)
        self.ensure_root()

        pending = self.pending_path
        try:
            copy_tree(live_data_dir, pending)
            removed = purge_transient_state(pending)
            if removed:
                logger.info("purged from capture of %s: %s", identity, ", ".join(removed))
            remove_tree(final_path)
            os.replace(pending, final_path)
        except BaseException:
            shutil.rmtree(pending, ignore_errors=True)
            raise

        logger.info("captured profile %s at %s", identity, final_path)
        profile = self._profile_at(final_path)
        profile.display_name = identity
        return profile

    def remove(self, profile: Profile) -> None:
        """プロファイルのディレクトリを削除する。アクティブポインタは触らない。"""
        if profile.path.parent.resolve() != self.root.resolve():
            raise ValueError(f"not a profile of this store: {profile.path}")
        remove_tree(profile.path)
        logger.info("removed profile %s", profile.identity)

    def size(self, profile: Profile) -> int:
        return tree_size(profile.path)

"""add / switch / remove の手順をまとめる。

フロー:
- add:    (AuthWatcher で検出済みの) session → ProfileStore.capture → ActivePointer.set_active
- switch: ensure_stopped（終了要求 + 確認ループ）→ copy_tree(profile → live) → set_active
- remove: ProfileStore.remove → アクティブだったら残りの先頭へ付け替え / なければ clear

順序の保証:
- ライブディレクトリを消し始めるのは、アプリ停止を確認した後だけ
- ポインタ更新は、ライブディレクトリの置き換えが成功した後だけ
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Callable

from kigae.active_pointer import ActivePointer
from kigae.config import KigaeConfig
from kigae.errors import ProfileNotFoundError
from kigae.events import append_event
from kigae.process_guard import ProcessGuard, ensure_stopped, guard_from_config
from kigae.profile_store import Profile, ProfileStore
from kigae.session_reader import AuthSession, first_session, read_recent_workspace
from kigae.sync import copy_tree

logger = logging.getLogger(__name__)


@dataclass
class SwitchResult:
    profile: Profile
    changed: bool  # False: すでにアクティブだった
    quit_requested: bool = False
    previous_workspace: str | None = None


class ProfileManager:
    def __init__(
        self,
        cfg: KigaeConfig,
        *,
        guard: ProcessGuard | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.cfg = cfg
        self.store = ProfileStore(cfg.profiles_dir)
        self.pointer = ActivePointer(cfg.active_link)
        self.guard = guard or guard_from_config(cfg)
        self.sleep = sleep

    @property
    def live_data_dir(self) -> Path:
        return self.cfg.live_data_dir

    def _event(self, msg: str) -> None:
        append_event(self.cfg.event_log_path, msg)

    def current_session(self) -> AuthSession | None:
        return first_session(self.cfg.state_db)

    def profiles(self) -> list[Profile]:
        return sorted(self.store.list(), key=lambda p: p.identity.lower())

    def active_profile(self) -> Profile | None:
        for p in self.store.list():
            if self.pointer.is_active(p.path):
                return p
        return None

    def get(self, identity: str) -> Profile:
        profile = self.store.get_by_identity(identity)
        if profile is None:
            raise ProfileNotFoundError(identity)
        return profile

    def add(self, session: AuthSession) -> Profile:
        """サインイン済みのライブディレクトリをプロファイルとして保存し、アクティブにする。"""
        profile = self.store.capture(session.email, self.live_data_dir)
        if session.name:
            profile.display_name = session.name
        self.pointer.set_active(profile.path)
        self._event(f"add: {profile.identity}")
        return profile

    def switch(self, identity: str) -> SwitchResult:
        profile = self.get(identity)
        if self.pointer.is_active(profile.path):
            return SwitchResult(profile=profile, changed=False)

        # アプリを閉じる前に、開いていたワークスペースを控えておく
        workspace = read_recent_workspace(self.cfg.state_db)

        quit_requested = ensure_stopped(
            self.guard,
            app_name=self.cfg.app.name,
            attempts=self.cfg.switch.quit_attempts,
            interval=self.cfg.switch.quit_interval,
            sleep=self.sleep,
        )

        try:
            copy_tree(profile.path, self.live_data_dir)
        except Exception as e:
            self._event(f"switch failed: {profile.identity} ({type(e).__name__})")
            raise
        self.pointer.set_active(profile.path)
        self._event(f"switch: {profile.identity}")
        return SwitchResult(
            profile=profile,
            changed=True,
            quit_requested=quit_requested,
            previous_workspace=workspace,
        )

    def remove(self, identity: str) -> Profile | None:
        """プロファイルを削除する。

        Returns:
            削除後のアクティブプロファイル（無ければ None）。
        """
        profile = self.get(identity)
        was_active = self.pointer.is_active(profile.path)
        self.store.remove(profile)
        self._event(f"remove: {profile.identity}")

        if not was_active:
            return self.active_profile()

        remaining = self.profiles()
        if not remaining:
            self.pointer.clear()
            self._event("active: (none)")
            return None

        # ポインタだけ付け替える。ライブディレクトリは触らない
        new_active = remaining[0]
        self.pointer.set_active(new_active.path)
        self._event(f"active: {new_active.identity}")
        return new_active

"""新しいサインインの検出。

状態: IDLE → WAITING → DETECTED | TIMED_OUT

WAITING 中は次の経路が競争し、最初に条件を満たしたものが勝つ:
- ポーリング: poll_interval ごとに state.vscdb を読む。
  watchdog で state.vscdb の変更を拾えたら、次のtickを待たずにすぐ読む
- 手動: check_now()（CLI で Enter）で即座に読む。別スレッドから呼んでよい

判定（両経路共通）: セッションがあり、かつ watch 開始時のセッション（baseline）と
メールアドレスが違う（baseline が無いならセッションがあるだけでよい）。
baseline が無いと「もともとサインイン済み」を新規サインインと誤検出する。

全体は timeout で打ち切り、AuthTimeoutError を投げる。自動リトライはしない。
"""

from __future__ import annotations

import asyncio
import enum
import logging
from pathlib import Path
from typing import Callable

from watchdog.events import FileSystemEvent, FileSystemEventHandler
from watchdog.observers import Observer

from kigae.errors import AuthTimeoutError
from kigae.session_reader import AuthSession, first_session

logger = logging.getLogger(__name__)


class WatchState(enum.Enum):
    IDLE = "idle"
    WAITING = "waiting"
    DETECTED = "detected"
    TIMED_OUT = "timed_out"


class _StateDbChanged(FileSystemEventHandler):
    def __init__(self, db_name: str, notify: Callable[[], None]) -> None:
        self.db_name = db_name
        self.notify = notify

    def on_any_event(self, event: FileSystemEvent) -> None:
        # state.vscdb-wal / -journal の更新も対象
        src = str(getattr(event, "dest_path", "") or event.src_path)
        if Path(src).name.startswith(self.db_name):
            self.notify()


class AuthWatcher:
    def __init__(
        self,
        state_db: Path,
        *,
        poll_interval: float = 2.0,
        timeout: float = 300.0,
        fs_events: bool = False,
        read_session: Callable[[Path], AuthSession | None] = first_session,
        on_manual_miss: Callable[[], None] | None = None,
    ) -> None:
        self.state_db = state_db
        self.poll_interval = poll_interval
        self.timeout = timeout
        self.fs_events = fs_events
        self.read_session = read_session
        self.on_manual_miss = on_manual_miss

        self.state = WatchState.IDLE
        self.baseline: AuthSession | None = None
        self.detected: AuthSession | None = None

        self._loop: asyncio.AbstractEventLoop | None = None
        self._manual: asyncio.Event | None = None
        self._changed: asyncio.Event | None = None

    def is_new_session(self, session: AuthSession | None) -> bool:
        if session is None:
            return False
        return self.baseline is None or session.email != self.baseline.email

    def check(self) -> AuthSession | None:
        session = self.read_session(self.state_db)
        return session if self.is_new_session(session) else None

    def check_now(self) -> None:
        """手動チェックを要求する（スレッドセーフ）。"""
        loop, manual = self._loop, self._manual
        if loop is None or manual is None or loop.is_closed():
            logger.debug("check_now ignored: watcher is not waiting")
            return
        loop.call_soon_threadsafe(manual.set)

    def _notify_changed(self) -> None:
        loop, changed = self._loop, self._changed
        if loop is None or changed is None or loop.is_closed():
            return
        loop.call_soon_threadsafe(changed.set)

    async def _poll(self, changed: asyncio.Event) -> AuthSession:
        while True:
            try:
                await asyncio.wait_for(changed.wait(), timeout=self.poll_interval)
            except asyncio.TimeoutError:
                pass
            changed.clear()
            session = self.check()
            if session is not None:
                logger.info("sign-in detected by poll: %s", session.email)
                return session

    async def _manual_checks(self, manual: asyncio.Event) -> AuthSession:
        while True:
            await manual.wait()
            manual.clear()
            session = self.check()
            if session is not None:
                logger.info("sign-in detected by manual check: %s", session.email)
                return session
            if self.on_manual_miss is not None:
                self.on_manual_miss()

    def _start_observer(self) -> Observer | None:  # type: ignore[valid-type]
        if not self.fs_events:
            return None
        watch_dir = self.state_db.parent
        if not watch_dir.is_dir():
            return None
        try:
            observer = Observer()
            observer.schedule(
                _StateDbChanged(self.state_db.name, self._notify_changed),
                str(watch_dir),
                recursive=False,
            )
            observer.start()
        except OSError as e:
            # inotify 上限など。ポーリングだけで続行
            logger.warning("file watching unavailable (%s); polling only", e)
            return None
        return observer

    async def watch(self) -> AuthSession:
        self._loop = asyncio.get_running_loop()
        manual = self._manual = asyncio.Event()
        changed = self._changed = asyncio.Event()
        self.baseline = self.read_session(self.state_db)
        self.detected = None
        self.state = WatchState.WAITING
        logger.info(
            "watching %s (baseline=%s, timeout=%ss)",
            self.state_db,
            self.baseline.email if self.baseline else None,
            self.timeout,
        )

        observer = self._start_observer()
        tasks = [
            asyncio.ensure_future(self._poll(changed)),
            asyncio.ensure_future(self._manual_checks(manual)),
        ]
        try:
            done, _pending = await asyncio.wait(
                tasks, timeout=self.timeout, return_when=asyncio.FIRST_COMPLETED
            )
        finally:
            for t in tasks:
                t.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            if observer is not None:
                observer.stop()
                observer.join(timeout=2)
            self._loop = None
            self._manual = None
            self._changed = None

        if not done:
            self.state = WatchState.TIMED_OUT
            logger.info("no sign-in detected within %ss", self.timeout)
            raise AuthTimeoutError(self.timeout)

        session = done.pop().result()
        self.state = WatchState.DETECTED
        self.detected = session
        return session

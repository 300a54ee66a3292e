"""対象アプリの起動状態チェックと終了要求（psutil）。

プロセス名の完全一致（大文字小文字と Windows の `.exe` は無視）で探す。
コマンドライン全体では照合しない。エディタで "antigravity" という名前のファイルを
開いているだけのプロセスを巻き込まないため。

is_running() は例外を投げない。列挙に失敗したとき（psutil.AccessDenied など）は
`fail_closed` に従う:
- False（既定）: 「起動していない」とみなす。使えなくなるよりは進める
- True: 「起動中」とみなす。ライブディレクトリを掴まれたまま置き換える危険を避ける
"""

from __future__ import annotations

import logging
import time
from typing import Callable, Iterable, Iterator

import psutil

from kigae.config import KigaeConfig
from kigae.errors import AppStillRunningError

logger = logging.getLogger(__name__)

ProcessIter = Callable[[list[str]], Iterable[psutil.Process]]


def _normalize(name: str) -> str:
    name = name.strip().lower()
    return name[: -len(".exe")] if name.endswith(".exe") else name


class ProcessGuard:
    def __init__(
        self,
        process_names: list[str],
        *,
        fail_closed: bool = False,
        process_iter: ProcessIter = psutil.process_iter,
    ) -> None:
        if not process_names:
            raise ValueError("process_names is required")
        self.process_names = list(process_names)
        self.fail_closed = fail_closed
        self._process_iter = process_iter
        self._wanted = {_normalize(n) for n in process_names}

    def find(self) -> Iterator[psutil.Process]:
        """名前が一致するプロセス。列挙自体の失敗は psutil.Error のまま投げる。"""
        for proc in self._process_iter(["name"]):
            # AccessDenied の個別プロセスは info["name"] が None になる
            name = proc.info.get("name") or ""
            if _normalize(name) in self._wanted:
                yield proc

    def is_running(self) -> bool:
        try:
            return any(True for _ in self.find())
        except psutil.Error as e:
            logger.warning(
                "process check failed (%s: %s); assuming %s",
                type(e).__name__,
                e,
                "running" if self.fail_closed else "not running",
            )
            return self.fail_closed

    def request_quit(self, *, force: bool = False) -> bool:
        """終了を要求する（force なら kill）。シグナルを送れたかを返す（終了したかではない）。"""
        try:
            procs = list(self.find())
        except psutil.Error as e:
            logger.warning("quit request failed: %s", e)
            return False

        ok = True
        for proc in procs:
            try:
                if force:
                    proc.kill()
                else:
                    proc.terminate()
            except psutil.NoSuchProcess:
                continue
            except psutil.Error as e:
                logger.info("could not signal pid %s: %s", proc.pid, type(e).__name__)
                ok = False
        return ok


def guard_from_config(cfg: KigaeConfig) -> ProcessGuard:
    return ProcessGuard(cfg.app.process_names, fail_closed=cfg.switch.strict_process_check)


def ensure_stopped(
    guard: ProcessGuard,
    *,
    app_name: str,
    attempts: int = 30,
    interval: float = 1.0,
    sleep: Callable[[float], None] = time.sleep,
) -> bool:
    """アプリが止まっていることを保証する。

    起動中なら終了要求を出し、interval 秒ごとに最大 attempts 回確認する。
    半分待っても残っていれば一度だけ kill する。それでも止まらなければ AppStillRunningError。

    Returns:
        終了要求を出したなら True（もともと止まっていれば False）。
    """
    if not guard.is_running():
        return False

    logger.info("%s is running; requesting quit", app_name)
    if not guard.request_quit():
        logger.info("quit request did not reach every process; waiting for %s anyway", app_name)

    force_at = attempts // 2
    for i in range(attempts):
        if i == force_at and i > 0:
            logger.info("%s did not exit; killing", app_name)
            guard.request_quit(force=True)
        sleep(interval)
        if not guard.is_running():
            logger.info("%s exited", app_name)
            return True

    raise AppStillRunningError(app_name, attempts)

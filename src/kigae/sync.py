"""ディレクトリツリーの丸ごとコピー（置き換え）と掃除。

- copy_tree: destination を消してから source を複製する（マージしない）
- ソケット / FIFO / デバイスファイルは複製できないので黙って飛ばす
- シンボリックリンクはリンクのまま複製する
- destination がアプリにロックされていて消せない場合は ResourceBusyError
"""

from __future__ import annotations

import errno
import logging
import os
import shutil
import stat
from pathlib import Path

from kigae.errors import ResourceBusyError

logger = logging.getLogger(__name__)

# キャプチャ後に消すキャッシュ類（サイズ削減のため）
TRANSIENT_DIRS = (
    "Cache",
    "CachedData",
    "logs",
    "Crashpad",
    "GPUCache",
    "blob_storage",
    "Code Cache",
    "DawnCache",
    "Service Worker",
)

_BUSY_ERRNOS = {errno.EBUSY, errno.ENOTEMPTY}
# Windows: ERROR_SHARING_VIOLATION / ERROR_LOCK_VIOLATION
_BUSY_WINERRORS = {32, 33}


def is_busy_error(e: OSError) -> bool:
    if getattr(e, "winerror", None) in _BUSY_WINERRORS:
        return True
    return e.errno in _BUSY_ERRNOS


def is_copyable(path: str | Path) -> bool:
    """通常ファイル・ディレクトリ・シンボリックリンクだけ True。"""
    try:
        mode = os.lstat(path).st_mode
    except OSError:
        # stat できないものは安全側で飛ばす
        return False
    return stat.S_ISREG(mode) or stat.S_ISDIR(mode) or stat.S_ISLNK(mode)


def _ignore_special(directory: str, names: list[str]) -> set[str]:
    skipped = {n for n in names if not is_copyable(os.path.join(directory, n))}
    if skipped:
        logger.debug("skip special entries in %s: %s", directory, sorted(skipped))
    return skipped


def remove_tree(path: Path) -> None:
    """path を消す。ロック由来の失敗は ResourceBusyError にする。"""
    if not os.path.lexists(path):
        return
    try:
        if path.is_symlink() or not path.is_dir():
            path.unlink()
        else:
            shutil.rmtree(path)
    except OSError as e:
        if is_busy_error(e):
            raise ResourceBusyError() from e
        raise


def copy_tree(source: Path, destination: Path) -> None:
    """source を destination に丸ごと複製する（destination は先に削除）。"""
    if not source.is_dir():
        raise FileNotFoundError(errno.ENOENT, "source directory not found", str(source))

    remove_tree(destination)
    destination.parent.mkdir(parents=True, exist_ok=True)
    shutil.copytree(source, destination, symlinks=True, ignore=_ignore_special)
    logger.info("copied %s -> %s", source, destination)


def purge_transient_state(path: Path) -> list[str]:
    """キャッシュ/ログ類を削除する。個々の失敗は無視。"""
    removed: list[str] = []
    for name in TRANSIENT_DIRS:
        target = path / name
        if not os.path.lexists(target):
            continue
        try:
            if target.is_dir() and not target.is_symlink():
                shutil.rmtree(target)
            else:
                target.unlink()
        except OSError as e:
            logger.debug("purge failed (%s): %s", target, e)
            continue
        removed.append(name)
    return removed


def tree_size(path: Path) -> int:
    """通常ファイルのバイト数合計。読めないところは飛ばす。"""
    total = 0
    try:
        entries = list(os.scandir(path))
    except OSError:
        return 0
    for entry in entries:
        try:
            if entry.is_dir(follow_symlinks=False):
                total += tree_size(Path(entry.path))
            elif entry.is_file(follow_symlinks=False):
                total += entry.stat(follow_symlinks=False).st_size
        except OSError:
            continue
    return total

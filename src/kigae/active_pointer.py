"""アクティブプロファイルのポインタ（`<base>/active` シンボリックリンク）。

- 存在しない / リンク先が無い（dangling）→ アクティブなし
- 付け替えは一時名でリンクを作ってから os.replace で上書きする。
  delete→create の間にクラッシュしてポインタが消える窓を作らない
"""

from __future__ import annotations

import logging
import os
import shutil
from pathlib import Path

logger = logging.getLogger(__name__)


class ActivePointer:
    def __init__(self, link_path: Path) -> None:
        self.link_path = link_path

    def _tmp_path(self) -> Path:
        return self.link_path.with_name(f".{self.link_path.name}.{os.getpid()}.tmp")

    def set_active(self, profile_path: Path) -> None:
        """profile_path をアクティブにする（何度呼んでも同じ結果）。"""
        target = Path(profile_path).absolute()
        self.link_path.parent.mkdir(parents=True, exist_ok=True)

        # symlink でないディレクトリが居座っていると os.replace できない
        if self.link_path.is_dir() and not self.link_path.is_symlink():
            shutil.rmtree(self.link_path)

        tmp = self._tmp_path()
        if os.path.lexists(tmp):
            tmp.unlink()
        os.symlink(target, tmp, target_is_directory=True)
        try:
            os.replace(tmp, self.link_path)
        except OSError:
            tmp.unlink(missing_ok=True)
            raise
        logger.info("active profile -> %s", target)

    def get_active(self) -> Path | None:
        if not self.link_path.is_symlink():
            return None
        target = Path(os.readlink(self.link_path))
        if not target.is_absolute():
            target = self.link_path.parent / target
        if not target.exists():
            logger.debug("active pointer is dangling: %s", target)
            return None
        return target

    def active_name(self) -> str | None:
        target = self.get_active()
        return target.name if target is not None else None

    def is_active(self, profile_path: Path) -> bool:
        target = self.get_active()
        if target is None:
            return False
        profile_path = Path(profile_path)
        if target == profile_path.absolute():
            return True
        # base ディレクトリが移動していても名前で判定できるように
        return target.name == profile_path.name

    def clear(self) -> None:
        if not os.path.lexists(self.link_path):
            return
        if self.link_path.is_dir() and not self.link_path.is_symlink():
            shutil.rmtree(self.link_path)
        else:
            self.link_path.unlink()
        logger.info("active pointer cleared")

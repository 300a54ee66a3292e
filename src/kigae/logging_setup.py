"""ログの初期化（CLI の起動時に1回）。

出力先:
- `<base>/logs/kigae.log`: 詳細ログ（2MB x 3 世代でローテーション）
- stderr: console_level 以上だけ rich で表示（プロセス確認の失敗など、利用者が知るべき警告）

操作履歴（add/switch/remove）は別物で、kigae.events が `<base>/events.log` に書く。
"""

from __future__ import annotations

import logging
from logging.handlers import RotatingFileHandler
from pathlib import Path

from rich.console import Console
from rich.logging import RichHandler

from kigae.config import KigaeConfig

LOG_FILE_NAME = "kigae.log"
_FILE_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def _level(name: str, default: int) -> int:
    value = logging.getLevelName(name.upper())
    return value if isinstance(value, int) else default


def _has_file_handler(logger: logging.Logger, log_path: Path) -> bool:
    target = str(log_path.absolute())
    return any(
        isinstance(h, RotatingFileHandler) and h.baseFilename == target for h in logger.handlers
    )


def setup_logging(cfg: KigaeConfig) -> Path:
    """kigae.log と stderr の handler を root logger に付ける。同じ base で2回呼んでも増やさない。"""
    log_path = cfg.base_dir / "logs" / LOG_FILE_NAME
    root = logging.getLogger()
    if _has_file_handler(root, log_path):
        return log_path

    log_path.parent.mkdir(parents=True, exist_ok=True)
    file_handler = RotatingFileHandler(log_path, maxBytes=2_000_000, backupCount=3, encoding="utf-8")
    file_handler.setLevel(_level(cfg.log.level, logging.INFO))
    file_handler.setFormatter(logging.Formatter(_FILE_FORMAT, datefmt="%Y-%m-%d %H:%M:%S"))

    console_handler = RichHandler(
        console=Console(stderr=True),
        level=_level(cfg.log.console_level, logging.WARNING),
        show_time=False,
        show_path=False,
    )

    root.setLevel(min(file_handler.level, console_handler.level))
    root.addHandler(file_handler)
    root.addHandler(console_handler)

    # watchdog は DEBUG だと inotify イベントを全部吐く
    logging.getLogger("watchdog").setLevel(logging.WARNING)
    return log_path

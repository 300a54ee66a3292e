"""対象アプリの起動。

切替後に「新しいプロファイルで開き直す」ために使う。
アプリは --user-data-dir を無視することがあるので、常に既定のデータディレクトリで起動する
（中身はすでに差し替え済み）。
"""

from __future__ import annotations

import logging
import os
import shutil
import subprocess
import sys
from pathlib import Path

from kigae.config import KigaeConfig

logger = logging.getLogger(__name__)


def candidate_paths(cfg: KigaeConfig, platform: str | None = None) -> list[Path]:
    platform = platform or sys.platform
    app = cfg.app.name
    binary = cfg.app.process_names[0]
    if platform == "darwin":
        return [
            Path("/Applications") / f"{app}.app",
            Path.home() / "Applications" / f"{app}.app",
        ]
    if platform.startswith("win"):
        local = os.environ.get("LOCALAPPDATA", "")
        paths = [Path("C:/Program Files") / app / f"{binary}.exe"]
        if local:
            paths.append(Path(local) / "Programs" / app / f"{binary}.exe")
        return paths
    return [Path("/usr/bin") / binary, Path("/usr/local/bin") / binary]


def find_app_binary(cfg: KigaeConfig, platform: str | None = None) -> Path | None:
    for p in candidate_paths(cfg, platform):
        if p.exists():
            return p
    found = shutil.which(cfg.app.process_names[0])
    return Path(found) if found else None


def build_launch_cmd(
    app_path: Path, workspace: str | None = None, platform: str | None = None
) -> list[str]:
    platform = platform or sys.platform
    if platform == "darwin":
        cmd = ["open", "-a", str(app_path)]
        if workspace:
            cmd.append(workspace)
        return cmd
    cmd = [str(app_path)]
    if workspace:
        cmd.append(workspace)
    return cmd


def launch_app(cfg: KigaeConfig, workspace: str | None = None) -> None:
    app_path = find_app_binary(cfg)
    if app_path is None:
        raise FileNotFoundError(f"{cfg.app.name} is not installed (searched standard locations)")

    cmd = build_launch_cmd(app_path, workspace)
    logger.info("launch: %s", cmd)
    if sys.platform == "darwin":
        subprocess.run(cmd, check=True, capture_output=True)
        return
    # 親（kigae）が終わってもアプリは残す
    subprocess.Popen(
        cmd,
        stdin=subprocess.DEVNULL,
        stdout=subprocess.DEVNULL,
        stderr=subprocess.DEVNULL,
        start_new_session=True,
    )

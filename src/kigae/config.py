"""設定: 対象アプリ・監視・切替の動作パラメータ。

設定ファイル: `<base>/config.toml`（無ければデフォルト）

```toml
[app]
name = "Antigravity"
data_dir = ""               # 空ならOS既定
process_names = ["antigravity"]

[watch]
poll_interval = 2.0
timeout = 300.0
fs_events = true

[switch]
quit_attempts = 30
quit_interval = 1.0
strict_process_check = false

[log]
level = "INFO"              # logs/kigae.log
console_level = "WARNING"   # 端末（stderr）
```

秘密情報（refresh token など）はこのファイルに書かない。tokens.json / keychain で扱う。
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path

from kigae import paths
from kigae.errors import ConfigError

try:
    import tomllib
except ModuleNotFoundError:  # Python < 3.11
    import tomli as tomllib  # type: ignore[no-redef]

CONFIG_FILE_NAME = "config.toml"


@dataclass
class AppConfig:
    name: str = "Antigravity"
    data_dir: Path | None = None
    process_names: list[str] = field(default_factory=lambda: ["antigravity"])


@dataclass
class WatchConfig:
    poll_interval: float = 2.0
    timeout: float = 300.0
    fs_events: bool = True


@dataclass
class SwitchConfig:
    quit_attempts: int = 30
    quit_interval: float = 1.0
    # True: プロセス列挙に失敗したら「起動中」とみなす（fail closed）
    strict_process_check: bool = False


@dataclass
class LogConfig:
    level: str = "INFO"
    console_level: str = "WARNING"


@dataclass
class KigaeConfig:
    base_dir: Path = field(default_factory=paths.base_dir)
    app: AppConfig = field(default_factory=AppConfig)
    watch: WatchConfig = field(default_factory=WatchConfig)
    switch: SwitchConfig = field(default_factory=SwitchConfig)
    log: LogConfig = field(default_factory=LogConfig)

    @property
    def profiles_dir(self) -> Path:
        return paths.profiles_dir(self.base_dir)

    @property
    def active_link(self) -> Path:
        return paths.active_link_path(self.base_dir)

    @property
    def live_data_dir(self) -> Path:
        if self.app.data_dir is not None:
            return self.app.data_dir
        return paths.default_app_data_dir(self.app.name)

    @property
    def state_db(self) -> Path:
        return paths.state_db_path(self.live_data_dir)

    @property
    def tokens_path(self) -> Path:
        return self.base_dir / "tokens.json"

    @property
    def event_log_path(self) -> Path:
        return self.base_dir / "events.log"


def load_config(base: Path | None = None) -> KigaeConfig:
    if base is None:
        base = paths.base_dir()
    path = base / CONFIG_FILE_NAME
    if not path.exists():
        return KigaeConfig(base_dir=base)

    try:
        raw = tomllib.loads(path.read_text(encoding="utf-8"))
    except tomllib.TOMLDecodeError as e:
        raise ConfigError(f"{path}: {e}") from e

    app = raw.get("app", {})
    watch = raw.get("watch", {})
    switch = raw.get("switch", {})
    log = raw.get("log", {})

    data_dir = str(app.get("data_dir", "") or "")
    try:
        return KigaeConfig(
            base_dir=base,
            app=AppConfig(
                name=str(app.get("name", "Antigravity")),
                data_dir=Path(data_dir).expanduser() if data_dir else None,
                process_names=[str(n) for n in (app.get("process_names", []) or ["antigravity"])],
            ),
            watch=WatchConfig(
                poll_interval=float(watch.get("poll_interval", 2.0)),
                timeout=float(watch.get("timeout", 300.0)),
                fs_events=bool(watch.get("fs_events", True)),
            ),
            switch=SwitchConfig(
                quit_attempts=int(switch.get("quit_attempts", 30)),
                quit_interval=float(switch.get("quit_interval", 1.0)),
                strict_process_check=bool(switch.get("strict_process_check", False)),
            ),
            log=LogConfig(
                level=str(log.get("level", "INFO")),
                console_level=str(log.get("console_level", "WARNING")),
            ),
        )
    except (TypeError, ValueError) as e:
        raise ConfigError(f"{path}: {e}") from e

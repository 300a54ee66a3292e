"""kigae の例外。"""

from __future__ import annotations


class KigaeError(Exception):
    """kigae の基底例外。"""


class ConfigError(KigaeError):
    """config.toml が壊れている。"""


class ProfileNotFoundError(KigaeError):
    def __init__(self, identity: str) -> None:
        super().__init__(f"profile not found: {identity}")
        self.identity = identity


class ResourceBusyError(KigaeError):
    """対象ディレクトリをアプリが掴んでいて置き換えられない。"""

    def __init__(self, message: str | None = None) -> None:
        super().__init__(
            message
            or "The application data directory is in use. Close the application and try again."
        )


class AppStillRunningError(ResourceBusyError):
    def __init__(self, app_name: str, attempts: int) -> None:
        super().__init__(
            f"{app_name} is still running after {attempts} checks. "
            f"Close {app_name} manually and try again."
        )
        self.app_name = app_name
        self.attempts = attempts


class AuthTimeoutError(KigaeError):
    def __init__(self, timeout: float) -> None:
        super().__init__(f"no sign-in detected within {timeout:g}s")
        self.timeout = timeout

"""identity ごとの refresh token 保管。

保存先:
- 既定は OS の keychain（`keyring` 経由。macOS Keychain / Secret Service / Windows Credential Locker）
- keychain が使えない / 失敗した / prefer_insecure_file=True のときは `<base>/tokens.json`

tokens.json には常にメタデータ（作成/更新時刻）を置く。keychain に入れた場合、
refresh_token 欄は `[keychain]` というマーカーになる。

注意:
- token をログに出さない
- add/switch の処理はこのモジュールに依存しない（一覧表示のバッジ用）
"""

from __future__ import annotations

import json
import logging
import os
import time
from pathlib import Path

import keyring
from keyring.backends.fail import Keyring as FailKeyring
from keyring.errors import KeyringError, PasswordDeleteError

logger = logging.getLogger(__name__)

KEYCHAIN_SERVICE = "kigae"
KEYCHAIN_MARKER = "[keychain]"


class Keychain:
    """keychain バックエンド。失敗は例外でなく戻り値で返す。

    secret はプロセス引数に載せない（`ps` で見えるため）。keyring がネイティブ API で渡す。
    """

    def __init__(self, service: str = KEYCHAIN_SERVICE) -> None:
        self.service = service

    def available(self) -> bool:
        # keyring が使えるバックエンドを見つけられなかったとき fail.Keyring になる
        return not isinstance(keyring.get_keyring(), FailKeyring)

    def set(self, identity: str, secret: str) -> bool:
        try:
            keyring.set_password(self.service, identity, secret)
        except KeyringError as e:
            logger.warning("keychain write failed: %s", type(e).__name__)
            return False
        return True

    def get(self, identity: str) -> str | None:
        try:
            return keyring.get_password(self.service, identity)
        except KeyringError as e:
            logger.warning("keychain read failed: %s", type(e).__name__)
            return None

    def delete(self, identity: str) -> bool:
        try:
            keyring.delete_password(self.service, identity)
        except PasswordDeleteError:
            return False
        except KeyringError as e:
            logger.warning("keychain delete failed: %s", type(e).__name__)
            return False
        return True


class TokenVault:
    def __init__(self, tokens_path: Path, keychain: Keychain | None = None) -> None:
        self.tokens_path = tokens_path
        self.keychain = keychain

    def _load(self) -> dict[str, dict]:
        if not self.tokens_path.exists():
            return {}
        try:
            raw = json.loads(self.tokens_path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as e:
            logger.warning("tokens.json is unreadable; treating as empty (%s)", type(e).__name__)
            return {}
        return raw if isinstance(raw, dict) else {}

    def _save(self, store: dict[str, dict]) -> None:
        self.tokens_path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self.tokens_path.with_suffix(".json.tmp")
        tmp.write_text(json.dumps(store, ensure_ascii=False, indent=2), encoding="utf-8")
        try:
            os.chmod(tmp, 0o600)
        except OSError:
            pass
        os.replace(tmp, self.tokens_path)

    def _keychain_usable(self) -> bool:
        return self.keychain is not None and self.keychain.available()

    def save(self, identity: str, secret: str, prefer_insecure_file: bool = False) -> None:
        store = self._load()
        now = time.time()
        prev = store.get(identity, {})
        created_at = prev.get("created_at", now)

        if not prefer_insecure_file and self._keychain_usable():
            assert self.keychain is not None
            if self.keychain.set(identity, secret):
                store[identity] = {
                    "refresh_token": KEYCHAIN_MARKER,
                    "created_at": created_at,
                    "updated_at": now,
                }
                self._save(store)
                return
            logger.warning("keychain write failed for %s; using file storage", identity)

        if prev.get("refresh_token") == KEYCHAIN_MARKER and self.keychain is not None:
            self.keychain.delete(identity)
        store[identity] = {"refresh_token": secret, "created_at": created_at, "updated_at": now}
        self._save(store)

    def get(self, identity: str) -> str | None:
        entry = self._load().get(identity)
        if not entry:
            return None
        token = entry.get("refresh_token")
        if token == KEYCHAIN_MARKER:
            return self.keychain.get(identity) if self.keychain is not None else None
        return str(token) if token else None

    def delete(self, identity: str) -> None:
        store = self._load()
        entry = store.pop(identity, None)
        if entry is None:
            return
        if entry.get("refresh_token") == KEYCHAIN_MARKER and self.keychain is not None:
            self.keychain.delete(identity)
        self._save(store)

    def has(self, identity: str) -> bool:
        return self.get(identity) is not None

    def is_backed_by_keychain(self, identity: str) -> bool:
        entry = self._load().get(identity) or {}
        return entry.get("refresh_token") == KEYCHAIN_MARKER

from __future__ import annotations

import os
import re
from pathlib import Path
from typing import Any, Protocol

from listing_studio.config import settings
from listing_studio.errors import StorageQuotaExceeded

_FROM_SETTINGS: Any = object()


class KeyValueStore(Protocol):
    def get(self, key: str) -> str | None: ...

    def set(self, key: str, value: str) -> None: ...

    def remove(self, key: str) -> None: ...


def _safe_key(key: str) -> str:
    # Prevent path traversal; keys become file names.
    cleaned = re.sub(r"[^A-Za-z0-9_.-]", "_", os.path.basename(key)).replace("..", "_")
    if not cleaned:
        raise ValueError("storage key is empty")
    return cleaned


def _check_quota(quota_bytes: int | None, used_elsewhere: int, value: str) -> None:
    if quota_bytes is None:
        return
    needed = used_elsewhere + len(value.encode("utf-8"))
    if needed > quota_bytes:
        raise StorageQuotaExceeded(f"writing {needed} bytes exceeds the {quota_bytes} byte storage quota")


class MemoryKeyValueStore:
    def __init__(self, quota_bytes: int | None = None) -> None:
        self.quota_bytes = quota_bytes
        self._data: dict[str, str] = {}

    def get(self, key: str) -> str | None:
        return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        used = sum(len(v.encode("utf-8")) for k, v in self._data.items() if k != key)
        _check_quota(self.quota_bytes, used, value)
        self._data[key] = value

    def remove(self, key: str) -> None:
        self._data.pop(key, None)


class FileKeyValueStore:
    """
    Local-storage stand-in: one UTF-8 file per key under ``<data_dir>/kv``.
    The quota covers the sum of all stored values, like a browser origin quota.
    """

    def __init__(self, root_dir: Path | None = None, quota_bytes: int | None = _FROM_SETTINGS) -> None:
        self.root_dir = Path(root_dir or Path(settings.data_dir) / "kv").resolve()
        self.root_dir.mkdir(parents=True, exist_ok=True)
        self.quota_bytes = settings.storage_quota_bytes if quota_bytes is _FROM_SETTINGS else quota_bytes

    def _path(self, key: str) -> Path:
        return self.root_dir / f"{_safe_key(key)}.json"

    def get(self, key: str) -> str | None:
        path = self._path(key)
        if not path.exists():
            return None
        return path.read_text("utf-8")

    def set(self, key: str, value: str) -> None:
        path = self._path(key)
        used = sum(p.stat().st_size for p in self.root_dir.glob("*.json") if p != path)
        _check_quota(self.quota_bytes, used, value)

        # Write-then-rename so a crash never leaves a half-written value behind.
        tmp = path.with_suffix(".tmp")
        tmp.write_text(value, encoding="utf-8")
        os.replace(tmp, path)

    def remove(self, key: str) -> None:
        self._path(key).unlink(missing_ok=True)

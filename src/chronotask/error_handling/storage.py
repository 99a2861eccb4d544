"""
Durable local key-value storage for JSON documents.

JSONFileStorage keeps one file per key under a directory; MemoryStorage keeps
everything in a dict and can enforce a byte quota. Both raise the package's
StorageError subclasses so callers can classify failures.
"""

import errno
import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Union

from chronotask.exceptions import (
    QuotaExceededError,
    StorageAccessError,
    StorageError,
    StorageParseError,
)
from chronotask.models.protocols import KeyValueStorage

logger = logging.getLogger(__name__)

_QUOTA_ERRNOS = {errno.ENOSPC, getattr(errno, "EDQUOT", errno.ENOSPC), errno.EFBIG}


def _translate_os_error(key: Optional[str], exc: OSError) -> StorageError:
    if exc.errno in _QUOTA_ERRNOS:
        return QuotaExceededError(key, str(exc))
    return StorageAccessError(key, str(exc))


class JSONFileStorage:
    """Stores each key as `<directory>/<key>.json`."""

    SUFFIX = ".json"

    def __init__(self, directory: Union[str, Path]):
        self.directory = Path(directory)

    def _path(self, key: str) -> Path:
        return self.directory / f"{key}{self.SUFFIX}"

    def get_item(self, key: str) -> Optional[str]:
        path = self._path(key)
        try:
            return path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
        except OSError as e:
            raise _translate_os_error(key, e) from e

    def set_item(self, key: str, value: str) -> None:
        try:
            self.directory.mkdir(parents=True, exist_ok=True)
            # Write to a temp file first so readers never see a torn document
            fd, tmp_name = tempfile.mkstemp(dir=self.directory, prefix=f".{key}.")
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as f:
                    f.write(value)
                os.replace(tmp_name, self._path(key))
            except BaseException:
                Path(tmp_name).unlink(missing_ok=True)
                raise
        except OSError as e:
            raise _translate_os_error(key, e) from e

    def remove_item(self, key: str) -> None:
        try:
            self._path(key).unlink(missing_ok=True)
        except OSError as e:
            raise _translate_os_error(key, e) from e

    def keys(self) -> List[str]:
        if not self.directory.exists():
            return []
        try:
            return sorted(
                p.name[: -len(self.SUFFIX)]
                for p in self.directory.iterdir()
                if p.is_file() and p.name.endswith(self.SUFFIX)
            )
        except OSError as e:
            raise _translate_os_error(None, e) from e


class MemoryStorage:
    """In-process storage; used as a fallback and in tests."""

    def __init__(self, quota_bytes: Optional[int] = None):
        self.quota_bytes = quota_bytes
        self._data: Dict[str, str] = {}

    def _size_with(self, key: str, value: str) -> int:
        current = sum(
            len(k) + len(v) for k, v in self._data.items() if k != key
        )
        return current + len(key) + len(value)

    def get_item(self, key: str) -> Optional[str]:
        return self._data.get(key)

    def set_item(self, key: str, value: str) -> None:
        if self.quota_bytes is not None and self._size_with(key, value) > self.quota_bytes:
            raise QuotaExceededError(key)
        self._data[key] = value

    def remove_item(self, key: str) -> None:
        self._data.pop(key, None)

    def keys(self) -> Iterable[str]:
        return list(self._data)


def read_json(storage: KeyValueStorage, key: str, default: Any = None) -> Any:
    """Read and decode a JSON document; StorageParseError on bad JSON."""
    raw = storage.get_item(key)
    if raw is None:
        return default
    try:
        return json.loads(raw)
    except ValueError as e:
        raise StorageParseError(key, str(e)) from e


def write_json(storage: KeyValueStorage, key: str, value: Any) -> None:
    storage.set_item(key, json.dumps(value, default=str))


def is_available(storage: KeyValueStorage) -> bool:
    """Probe the storage with a throwaway write."""
    probe = "__storage_test__"
    try:
        storage.set_item(probe, probe)
        storage.remove_item(probe)
        return True
    except StorageError:
        return False

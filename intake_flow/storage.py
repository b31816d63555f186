"""Key-value persistence for funnel form state snapshots."""

from __future__ import annotations

import copy
import hashlib
import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Any, Dict, Protocol

logger = logging.getLogger(__name__)


def scoped_key(session_id: str, name: str) -> str:
    """Namespace a storage entry by visitor session."""

    return f"{session_id}:{name}"


class StateStorage(Protocol):
    """Minimal interface shared by the storage backends."""

    def load(self, key: str) -> Dict[str, Any] | None: ...

    def save(self, key: str, value: Dict[str, Any]) -> None: ...

    def remove(self, key: str) -> None: ...


class MemoryStorage:
    """Process-local storage, suitable for tests and single-worker deployments."""

    def __init__(self) -> None:
        self._store: Dict[str, Dict[str, Any]] = {}

    def load(self, key: str) -> Dict[str, Any] | None:
        value = self._store.get(key)
        return copy.deepcopy(value) if value is not None else None

    def save(self, key: str, value: Dict[str, Any]) -> None:
        self._store[key] = copy.deepcopy(value)

    def remove(self, key: str) -> None:
        self._store.pop(key, None)

    def keys(self) -> list[str]:
        return sorted(self._store)


class JsonFileStorage:
    """One JSON document per key inside a directory.

    Writes go to a temporary file first and are moved into place, so a reader
    never observes a half-written snapshot.
    """

    def __init__(self, directory: str | os.PathLike[str]) -> None:
        self._directory = Path(directory)
        self._directory.mkdir(parents=True, exist_ok=True)

    def _path(self, key: str) -> Path:
        # Hashed so that distinct keys never share a file.
        digest = hashlib.sha256(key.encode("utf-8")).hexdigest()
        return self._directory / f"{digest}.json"

    def load(self, key: str) -> Dict[str, Any] | None:
        path = self._path(key)
        try:
            with path.open("r", encoding="utf-8") as handle:
                return json.load(handle)
        except FileNotFoundError:
            return None
        except json.JSONDecodeError:
            logger.warning("Discarding unreadable snapshot %s", path)
            return None

    def save(self, key: str, value: Dict[str, Any]) -> None:
        path = self._path(key)
        fd, tmp_name = tempfile.mkstemp(dir=self._directory, suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                json.dump(value, handle, ensure_ascii=False, default=str)
            os.replace(tmp_name, path)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise

    def remove(self, key: str) -> None:
        self._path(key).unlink(missing_ok=True)


def build_storage(storage_dir: str | None) -> StateStorage:
    """Pick the file backend when a directory is configured, memory otherwise."""

    if storage_dir:
        logger.info("Persisting funnel state under %s", storage_dir)
        return JsonFileStorage(storage_dir)
    return MemoryStorage()

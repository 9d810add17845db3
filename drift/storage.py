"""
Key-value store — the process-wide persisted state shared with the
presentation layer (popup, dashboard, onboarding pages).

Backed by a single JSON document on disk. Reads are served from an
in-memory copy loaded on first use; every write rewrites the document.
File I/O runs in the default executor so the event loop never blocks.
"""

from __future__ import annotations

import asyncio
import copy
import json
import logging
import os
import threading
from pathlib import Path
from typing import Any, Dict, Iterable, Optional

from .errors import StorageError

logger = logging.getLogger(__name__)

CORRUPT_SUFFIX = ".corrupt"


class KeyValueStore:
    """
    Usage:
        store = KeyValueStore(config.state_path)
        data = await store.get(["focusHistory", "sensitivity"])
        await store.set({"focusMinutes": 3})

    Pass ``path=None`` for a purely in-memory store.
    """

    def __init__(self, path: Optional[Path] = None):
        self.path = Path(path) if path is not None else None
        self._data: Optional[Dict[str, Any]] = None
        self._lock = threading.Lock()

    # ------------------------------------------------------------------
    # Async API
    # ------------------------------------------------------------------

    async def get(self, keys: Iterable[str]) -> Dict[str, Any]:
        """Return ``{key: value}`` for the keys that exist (missing keys are omitted)."""
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, self.get_sync, list(keys))

    async def set(self, items: Dict[str, Any]) -> None:
        loop = asyncio.get_running_loop()
        await loop.run_in_executor(None, self.set_sync, dict(items))

    async def remove(self, keys: Iterable[str]) -> None:
        loop = asyncio.get_running_loop()
        await loop.run_in_executor(None, self.remove_sync, list(keys))

    # ------------------------------------------------------------------
    # Sync API (executor side)
    # ------------------------------------------------------------------

    def get_sync(self, keys: Iterable[str]) -> Dict[str, Any]:
        with self._lock:
            data = self._ensure_loaded()
            return {k: copy.deepcopy(data[k]) for k in keys if k in data}

    def set_sync(self, items: Dict[str, Any]) -> None:
        with self._lock:
            data = self._ensure_loaded()
            staged = dict(data)
            staged.update(copy.deepcopy(items))
            self._write(staged)
            self._data = staged

    def remove_sync(self, keys: Iterable[str]) -> None:
        with self._lock:
            data = self._ensure_loaded()
            staged = {k: v for k, v in data.items() if k not in set(keys)}
            self._write(staged)
            self._data = staged

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _ensure_loaded(self) -> Dict[str, Any]:
        if self._data is not None:
            return self._data
        if self.path is None or not self.path.exists():
            self._data = {}
            return self._data
        try:
            loaded = json.loads(self.path.read_text())
        except OSError as e:
            raise StorageError(f"Could not read {self.path}: {e}") from e
        except ValueError:
            loaded = None
        if not isinstance(loaded, dict):
            self._quarantine()
            loaded = {}
        self._data = loaded
        return self._data

    def _quarantine(self) -> None:
        """Move an unreadable document aside so the next write cannot destroy it."""
        target = self.path.with_suffix(self.path.suffix + CORRUPT_SUFFIX)
        try:
            os.replace(self.path, target)
        except OSError as e:
            raise StorageError(f"{self.path} is malformed and could not be moved aside: {e}") from e
        logger.error("Store file %s is malformed, moved to %s and starting empty", self.path, target)

    def _write(self, data: Dict[str, Any]) -> None:
        if self.path is None:
            return
        tmp = self.path.with_suffix(self.path.suffix + ".tmp")
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            tmp.write_text(json.dumps(data, indent=2))
            os.replace(tmp, self.path)
        except (OSError, TypeError, ValueError) as e:
            raise StorageError(f"Could not write {self.path}: {e}") from e

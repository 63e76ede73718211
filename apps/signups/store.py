"""Whole-document storage backends for the signup engine.

A store only knows how to load and save one JSON-compatible dict holding
every collection. There are no partial writes: callers load, mutate in
memory and save the whole thing back.
"""
from __future__ import annotations

import json
import logging
import os
import tempfile
import threading
from copy import deepcopy
from pathlib import Path
from typing import Any, Dict

from .records import COLLECTIONS

logger = logging.getLogger(__name__)

_LOCKS: Dict[str, threading.RLock] = {}
_LOCKS_GUARD = threading.Lock()


def _lock_for(key: str) -> threading.RLock:
    with _LOCKS_GUARD:
        lock = _LOCKS.get(key)
        if lock is None:
            lock = _LOCKS[key] = threading.RLock()
        return lock


def empty_document() -> Dict[str, Any]:
    return {name: [] for name in COLLECTIONS}


class DocumentStoreError(Exception):
    """Raised when the stored document cannot be read or written."""


class DocumentStore:
    """Base class; subclasses implement ``load`` and ``save``."""

    key = "default"

    @property
    def lock(self) -> threading.RLock:
        # Shared by every store instance pointing at the same document.
        return _lock_for(self.key)

    def load(self) -> Dict[str, Any]:
        raise NotImplementedError

    def save(self, data: Dict[str, Any]) -> None:
        raise NotImplementedError


class JsonFileDocumentStore(DocumentStore):
    def __init__(self, path):
        self.path = Path(path)
        self.key = f"file:{self.path.resolve()}"

    def load(self) -> Dict[str, Any]:
        if not self.path.exists():
            return empty_document()
        try:
            with self.path.open("r", encoding="utf-8") as fh:
                data = json.load(fh)
        except (OSError, ValueError) as exc:
            logger.exception("Failed to read signup document", extra={"path": str(self.path)})
            raise DocumentStoreError(f"Cannot read {self.path}") from exc
        if not isinstance(data, dict):
            raise DocumentStoreError(f"{self.path} does not contain a JSON object")
        for name in COLLECTIONS:
            data.setdefault(name, [])
        return data

    def save(self, data: Dict[str, Any]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(
            dir=str(self.path.parent), prefix=f".{self.path.name}.", suffix=".tmp"
        )
        try:
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as fh:
                    json.dump(data, fh, indent=2)
                os.replace(tmp_name, self.path)
            finally:
                if os.path.exists(tmp_name):
                    os.unlink(tmp_name)
        except OSError as exc:
            logger.exception("Failed to write signup document", extra={"path": str(self.path)})
            raise DocumentStoreError(f"Cannot write {self.path}") from exc


class MemoryDocumentStore(DocumentStore):
    """Keeps the document in process memory. Used by tests and fixtures."""

    def __init__(self, data: Dict[str, Any] | None = None):
        self._data = deepcopy(data) if data is not None else empty_document()
        self._lock = threading.RLock()

    @property
    def lock(self) -> threading.RLock:
        return self._lock

    def load(self) -> Dict[str, Any]:
        return deepcopy(self._data)

    def save(self, data: Dict[str, Any]) -> None:
        self._data = deepcopy(data)

"""Keyed JSON document store.

Documents are addressed by ``(category, scope)``; the file store maps that to
``<root>/<category>/<scope>.json``. There are no multi-key transactions and no
concurrency tokens: two writers to the same key race and the last full write
wins. Each single write is atomic (temp file + rename), so a reader never sees
a half-written document.
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Protocol

from hourbook.errors import StorageUnavailable

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StoreKey:
    category: str
    scope: str

    def __str__(self) -> str:
        return f"{self.category}/{self.scope}"


class DocumentStore(Protocol):
    def exists(self, key: StoreKey) -> bool: ...

    def read(self, key: StoreKey) -> bytes | None: ...

    def write(self, key: StoreKey, data: bytes) -> None: ...

    def ensure_container(self, category: str) -> None: ...


def encode(doc: Any) -> bytes:
    return (json.dumps(doc, indent=2, ensure_ascii=False) + "\n").encode("utf-8")


def read_json(store: DocumentStore, key: StoreKey) -> Any | None:
    """Read and decode one document; ``None`` when the key is absent."""
    raw = store.read(key)
    if raw is None:
        return None
    try:
        return json.loads(raw.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as e:
        logger.error("Undecodable document %s: %s", key, e)
        raise StorageUnavailable(f"Document {key} is not valid JSON: {e}") from e


def write_json(store: DocumentStore, key: StoreKey, doc: Any) -> None:
    store.ensure_container(key.category)
    store.write(key, encode(doc))


class JsonFileStore:
    """Reads and writes documents as pretty-printed JSON files under *root*."""

    def __init__(self, root: str | Path):
        self.root = Path(root)

    def _path(self, key: StoreKey) -> Path:
        return self.root / key.category / f"{key.scope}.json"

    def exists(self, key: StoreKey) -> bool:
        return self._path(key).exists()

    def read(self, key: StoreKey) -> bytes | None:
        path = self._path(key)
        try:
            return path.read_bytes()
        except FileNotFoundError:
            return None
        except OSError as e:
            logger.error("Read failed for %s: %s", path, e)
            raise StorageUnavailable(f"Cannot read {key}: {e}") from e

    def write(self, key: StoreKey, data: bytes) -> None:
        path = self._path(key)
        try:
            fd, tmp = tempfile.mkstemp(dir=path.parent, prefix=f".{path.stem}.", suffix=".tmp")
            try:
                with os.fdopen(fd, "wb") as f:
                    f.write(data)
                os.replace(tmp, path)
            except BaseException:
                Path(tmp).unlink(missing_ok=True)
                raise
        except OSError as e:
            logger.error("Write failed for %s: %s", path, e)
            raise StorageUnavailable(f"Cannot write {key}: {e}") from e
        logger.debug("Wrote %s (%d bytes)", path, len(data))

    def ensure_container(self, category: str) -> None:
        try:
            (self.root / category).mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise StorageUnavailable(f"Cannot create {self.root / category}: {e}") from e


class MemoryStore:
    """In-process store with the same contract, for tests and dry runs."""

    def __init__(self) -> None:
        self.docs: dict[StoreKey, bytes] = {}
        self.writes = 0

    def exists(self, key: StoreKey) -> bool:
        return key in self.docs

    def read(self, key: StoreKey) -> bytes | None:
        return self.docs.get(key)

    def write(self, key: StoreKey, data: bytes) -> None:
        self.docs[key] = data
        self.writes += 1

    def ensure_container(self, category: str) -> None:
        return

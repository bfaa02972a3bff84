"""Directory-backed document collections keyed by package name."""

from __future__ import annotations

import asyncio
import json
import logging
import os
from pathlib import Path
from typing import Any
from urllib.parse import quote, unquote

from npmquality.errors import StoreError, StoreUnavailableError

logger = logging.getLogger(__name__)


class JsonCollection:
    """A collection of JSON documents, one file per key.

    Documents live in `{data_dir}/{name}/{key}.json`. Blocking file access
    runs in a worker thread and every operation is bounded by `timeout`, so
    a slow disk cannot hang the scheduler.

    Usage:
        packages = JsonCollection(Path("data"), "packages")
        await packages.upsert("loadtest", {"name": "loadtest", "quality": 0.9})
        doc = await packages.find_one("loadtest")
    """

    def __init__(self, data_dir: Path, name: str, timeout: float = 2.0) -> None:
        """Initialize the collection.

        Args:
            data_dir: Root data directory.
            name: Collection name, used as the subdirectory.
            timeout: Seconds allowed for each operation.
        """
        self.name = name
        self.directory = data_dir / name
        self.timeout = timeout

    def _path(self, key: str) -> Path:
        # Scoped package names contain a slash
        return self.directory / f"{quote(key, safe='@')}.json"

    async def _run(self, operation: str, func, *args) -> Any:
        try:
            return await asyncio.wait_for(asyncio.to_thread(func, *args), timeout=self.timeout)
        except asyncio.TimeoutError as e:
            raise StoreError(self.name, operation, f"timed out after {self.timeout}s") from e
        except OSError as e:
            raise StoreError(self.name, operation, str(e)) from e
        except json.JSONDecodeError as e:
            raise StoreError(self.name, operation, f"corrupt document: {e}") from e

    async def ping(self) -> None:
        """Make sure the collection can be used.

        Raises:
            StoreUnavailableError: If the directory cannot be created or written.
        """
        try:
            await self._run("ping", self._ensure_directory)
        except StoreError as e:
            raise StoreUnavailableError(self.name, "ping", str(e)) from e

    def _ensure_directory(self) -> None:
        self.directory.mkdir(parents=True, exist_ok=True)
        if not os.access(self.directory, os.W_OK):
            raise PermissionError(f"{self.directory} is not writable")

    async def find_one(self, key: str) -> dict | None:
        """Return the document stored under `key`, or None."""
        return await self._run("find_one", self._read, key)

    def _read(self, key: str) -> dict | None:
        path = self._path(key)
        if not path.exists():
            return None
        return json.loads(path.read_text())

    async def upsert(self, key: str, document: dict) -> None:
        """Insert a document, or set its fields on the existing one."""
        await self._run("upsert", self._write, key, document)

    def _write(self, key: str, document: dict) -> None:
        self.directory.mkdir(parents=True, exist_ok=True)
        path = self._path(key)
        merged = json.loads(path.read_text()) if path.exists() else {}
        merged.update(document)
        self._atomic_write(path, merged)

    async def replace(self, key: str, document: dict) -> None:
        """Store a document in place of the existing one, without merging.

        The old document stays in place if the write fails.
        """
        await self._run("replace", self._replace, key, document)

    def _replace(self, key: str, document: dict) -> None:
        self.directory.mkdir(parents=True, exist_ok=True)
        self._atomic_write(self._path(key), document)

    def _atomic_write(self, path: Path, document: dict) -> None:
        tmp = path.with_suffix(".json.tmp")
        tmp.write_text(json.dumps(document, indent=2, default=str))
        tmp.replace(path)

    async def delete(self, key: str) -> bool:
        """Delete a document. Returns False if there was none."""
        return await self._run("delete", self._delete, key)

    def _delete(self, key: str) -> bool:
        path = self._path(key)
        if not path.exists():
            return False
        path.unlink()
        return True

    async def list_all(self) -> list[dict]:
        """Return every document, ordered by key."""
        return await self._run("list_all", self._list)

    def _list(self) -> list[dict]:
        if not self.directory.exists():
            return []
        documents = []
        for path in sorted(self.directory.glob("*.json"), key=lambda p: unquote(p.stem)):
            try:
                documents.append(json.loads(path.read_text()))
            except json.JSONDecodeError as e:
                logger.warning(f"Skipping corrupt document {path}: {e}")
        return documents

"""Document host: the note storage the sync engine reads and writes.

``DocumentHost`` is the contract the orchestrator depends on. Every
read-modify-write goes through ``process_document`` so that two edits to
one note never interleave. ``FileDocumentHost`` implements it over a folder
of Markdown files, serializing writes per path with an ``asyncio.Lock``.
"""

from __future__ import annotations

import asyncio
import logging
import weakref
from collections.abc import Callable
from pathlib import Path
from typing import Any, Protocol

from ..core.async_utils import run_sync
from ..file_handler import (
    read_file_with_encoding,
    resolve_document_path,
    write_file,
)
from .frontmatter import render_document, split_frontmatter

logger = logging.getLogger(__name__)


class DocumentHost(Protocol):
    """Storage operations consumed by ``SyncOrchestrator``."""

    async def read_document_text(self, handle: str) -> str: ...

    async def process_document(
        self, handle: str, transform: Callable[[str], str]
    ) -> str: ...

    async def read_frontmatter(self, handle: str) -> dict[str, Any]: ...

    async def mutate_frontmatter(
        self, handle: str, mutate: Callable[[dict[str, Any]], None]
    ) -> None: ...

    async def create_document(self, handle: str, content: str) -> str: ...

    async def find_by_key(self, key: str) -> str | None: ...

    def exists(self, handle: str) -> bool: ...

    def remember_key(self, key: str, handle: str) -> None: ...


class FileDocumentHost:
    """Markdown notes stored under a root folder.

    Handles are paths relative to ``root`` (absolute paths must lie inside
    it). Files are read with encoding detection and written as UTF-8.
    """

    def __init__(self, root: str | Path):
        self.root = Path(root).resolve()
        # A lock lives only while a caller holds it or waits on it.
        self._locks: weakref.WeakValueDictionary[Path, asyncio.Lock] = (
            weakref.WeakValueDictionary()
        )
        self._key_cache: dict[str, str] = {}

    def _path(self, handle: str | Path) -> Path:
        return resolve_document_path(handle, self.root)

    def _lock_for(self, path: Path) -> asyncio.Lock:
        lock = self._locks.get(path)
        if lock is None:
            lock = self._locks[path] = asyncio.Lock()
        return lock

    def handle_for(self, path: Path) -> str:
        return path.resolve().relative_to(self.root).as_posix()

    def exists(self, handle: str) -> bool:
        return self._path(handle).is_file()

    async def read_document_text(self, handle: str) -> str:
        content, _ = await run_sync(read_file_with_encoding, self._path(handle))
        return content

    async def process_document(
        self, handle: str, transform: Callable[[str], str]
    ) -> str:
        """Atomically read, transform and (if changed) write one note.

        The lock is released on every exit path; if ``transform`` raises,
        nothing is written.
        """
        path = self._path(handle)
        async with self._lock_for(path):
            content, _ = await run_sync(read_file_with_encoding, path)
            updated = transform(content)
            if updated != content:
                await run_sync(write_file, path, updated)
                logger.debug("Wrote %s", handle)
            return updated

    async def read_frontmatter(self, handle: str) -> dict[str, Any]:
        frontmatter, _, _ = split_frontmatter(await self.read_document_text(handle))
        return frontmatter

    async def mutate_frontmatter(
        self, handle: str, mutate: Callable[[dict[str, Any]], None]
    ) -> None:
        def transform(text: str) -> str:
            frontmatter, body, had_block = split_frontmatter(text)
            before = dict(frontmatter)
            mutate(frontmatter)
            if frontmatter == before:
                return text
            return render_document(frontmatter, body, force_block=had_block)

        await self.process_document(handle, transform)

    async def create_document(self, handle: str, content: str) -> str:
        """Write a new note; returns its handle.

        Raises:
            FileExistsError: If a note already exists at ``handle``.
        """
        path = self._path(handle)
        async with self._lock_for(path):
            if path.exists():
                raise FileExistsError(f"Note already exists: {handle}")
            await run_sync(write_file, path, content)
        logger.info("Created note %s", handle)
        return self.handle_for(path)

    def remember_key(self, key: str, handle: str) -> None:
        self._key_cache[key] = handle

    async def find_by_key(self, key: str) -> str | None:
        """Locate the note whose frontmatter ``key`` equals ``key``.

        Uses the key cache first and verifies the hit; falls back to
        scanning every ``.md`` file under the root.
        """
        cached = self._key_cache.get(key)
        if cached and self.exists(cached):
            try:
                if (await self.read_frontmatter(cached)).get("key") == key:
                    return cached
            except ValueError:
                pass
        self._key_cache.pop(key, None)

        paths = await run_sync(lambda: sorted(self.root.rglob("*.md")))
        for path in paths:
            handle = self.handle_for(path)
            try:
                frontmatter = await self.read_frontmatter(handle)
            except ValueError:
                logger.debug("Skipping %s: unreadable frontmatter", handle)
                continue
            note_key = frontmatter.get("key")
            if note_key:
                self._key_cache.setdefault(str(note_key), handle)
            if note_key == key:
                return handle
        return None

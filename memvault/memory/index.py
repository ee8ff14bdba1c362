"""Memory index: a persisted, searchable catalogue of memories keyed by session id."""

import asyncio
import json
from datetime import datetime
from pathlib import Path

from loguru import logger
from pydantic import ValidationError

from memvault.errors import IndexLoadError
from memvault.memory.quality import update_usage_tracking
from memvault.memory.types import (
    IndexData,
    IndexEntry,
    IndexStats,
    MemoryRecord,
    MemoryStats,
    QualityScore,
    QueryResult,
    UsageTracking,
)
from memvault.utils.helpers import now_iso, parse_timestamp, read_json, validate_each, write_json_atomic


def _read_index(path: Path) -> IndexData | None:
    try:
        data = read_json(path)
        if data is None:
            return None
        raw_entries = data.pop("entries", [])
        if not isinstance(raw_entries, list):
            raise ValueError("\"entries\" is not a list")
        index = IndexData.model_validate(data)
        index.entries = validate_each(raw_entries, IndexEntry, f"index entry in {path}")
        return index
    except (OSError, ValueError, ValidationError) as e:
        # json.JSONDecodeError is a ValueError
        raise IndexLoadError(f"{path}: {e}") from e


def _limited(entries: list[IndexEntry], limit: int | None) -> list[IndexEntry]:
    return entries if limit is None else entries[:limit]


class MemoryIndex:
    """
    Searchable index of memories, persisted as one JSON file.

    Entries are held in insertion order and keyed by ``session_id``; adding an
    existing id replaces the old entry. Every mutation rewrites the whole
    file. A single writer process is assumed; within the process an
    ``asyncio.Lock`` serializes mutations.
    """

    def __init__(self, index_path: Path):
        self.index_path = Path(index_path)
        self._entries: dict[str, IndexEntry] = {}
        self._created: str = ""
        self._loaded = False
        self._lock = asyncio.Lock()

    @property
    def loaded(self) -> bool:
        return self._loaded

    def __len__(self) -> int:
        return len(self._entries)

    # -- Lifecycle --

    async def load(self) -> None:
        """Load the index from disk; missing or corrupt files yield an empty index."""
        async with self._lock:
            await self._load()

    async def persist(self) -> None:
        """Write the whole index to disk."""
        async with self._lock:
            await self._ensure_loaded()
            await self._persist()

    async def _load(self) -> None:
        try:
            data = await asyncio.to_thread(_read_index, self.index_path)
        except IndexLoadError as e:
            logger.warning(f"Failed to load memory index, starting empty: {e}")
            data = None
        else:
            if data is None:
                logger.debug(f"No memory index at {self.index_path}, creating new one")

        if data is None:
            data = IndexData(created=now_iso())

        self._entries = {}
        for entry in data.entries:
            self._entries.pop(entry.session_id, None)
            self._entries[entry.session_id] = entry
        self._created = data.created or now_iso()
        self._loaded = True
        logger.debug(f"Loaded memory index with {len(self._entries)} entries")

    async def _ensure_loaded(self) -> None:
        if not self._loaded:
            await self._load()

    async def _ensure_loaded_locked(self) -> None:
        if not self._loaded:
            async with self._lock:
                await self._ensure_loaded()

    def _snapshot(self) -> dict:
        data = IndexData(
            created=self._created,
            last_updated=now_iso(),
            entries=list(self._entries.values()),
        )
        return data.model_dump(mode="json", by_alias=True, exclude_none=True)

    async def _persist(self) -> None:
        try:
            await asyncio.to_thread(write_json_atomic, self.index_path, self._snapshot())
            logger.debug(f"Saved memory index to {self.index_path}")
        except OSError as e:
            logger.error(f"Failed to save memory index: {e}")

    # -- Mutations --

    async def add_entry(
        self,
        metadata: MemoryRecord,
        file_path: str | Path,
        quality: QualityScore | None = None,
        usage: UsageTracking | None = None,
    ) -> IndexEntry:
        """Insert or replace the entry for ``metadata.session_id``."""
        entry = IndexEntry(
            session_id=metadata.session_id,
            node_id=metadata.node_id,
            node_name=metadata.node_name,
            timestamp=metadata.timestamp,
            command=metadata.command,
            summary=metadata.summary,
            tags=list(dict.fromkeys(metadata.tags)),
            file_path=str(file_path),
            quality=quality,
            usage=usage,
        )
        async with self._lock:
            await self._ensure_loaded()
            self._entries.pop(entry.session_id, None)
            self._entries[entry.session_id] = entry
            await self._persist()
        logger.debug(f"Added memory index entry: {entry.session_id}")
        return entry

    async def remove_entry(self, session_id: str) -> bool:
        """Remove an entry; returns False (and does nothing) when absent."""
        async with self._lock:
            await self._ensure_loaded()
            if self._entries.pop(session_id, None) is None:
                return False
            await self._persist()
        logger.debug(f"Removed memory index entry: {session_id}")
        return True

    async def update_usage(self, session_id: str, now: datetime | None = None) -> IndexEntry | None:
        """Count one consumption of a memory."""
        async with self._lock:
            await self._ensure_loaded()
            entry = self._entries.get(session_id)
            if entry is None:
                return None
            entry.usage = update_usage_tracking(entry.usage, now)
            await self._persist()
        return entry

    async def set_quality(self, session_id: str, quality: QualityScore) -> IndexEntry | None:
        """Attach a (re)computed quality score to an entry."""
        async with self._lock:
            await self._ensure_loaded()
            entry = self._entries.get(session_id)
            if entry is None:
                return None
            entry.quality = quality
            await self._persist()
        return entry

    async def clear(self) -> None:
        """Remove every entry and persist immediately."""
        async with self._lock:
            await self._ensure_loaded()
            self._entries = {}
            await self._persist()
        logger.warning("Cleared all memory index entries")

    # -- Queries --

    async def get_entry(self, session_id: str, node_id: str | None = None) -> IndexEntry | None:
        await self._ensure_loaded_locked()
        entry = self._entries.get(session_id)
        if entry is None or (node_id is not None and entry.node_id != node_id):
            return None
        return entry

    async def get_all_entries(self, limit: int | None = None) -> list[IndexEntry]:
        await self._ensure_loaded_locked()
        return _limited(list(self._entries.values()), limit)

    async def query_by_node(self, node_id: str, limit: int | None = None) -> list[IndexEntry]:
        await self._ensure_loaded_locked()
        return _limited([e for e in self._entries.values() if e.node_id == node_id], limit)

    async def query_by_tags(self, tags: list[str], limit: int | None = None) -> list[IndexEntry]:
        """Entries carrying any of ``tags``."""
        await self._ensure_loaded_locked()
        wanted = set(tags)
        return _limited([e for e in self._entries.values() if wanted.intersection(e.tags)], limit)

    async def query_by_command(self, command: str, limit: int | None = None) -> list[IndexEntry]:
        """Entries whose command or summary contains ``command`` (case-insensitive)."""
        await self._ensure_loaded_locked()
        needle = command.lower()
        return _limited(
            [
                e for e in self._entries.values()
                if needle in e.command.lower() or needle in e.summary.lower()
            ],
            limit,
        )

    async def query_by_time_range(
        self,
        start: datetime,
        end: datetime,
        limit: int | None = None,
    ) -> list[IndexEntry]:
        await self._ensure_loaded_locked()
        start, end = parse_timestamp(start), parse_timestamp(end)
        return _limited(
            [e for e in self._entries.values() if start <= parse_timestamp(e.timestamp) <= end],
            limit,
        )

    async def search(self, text: str, limit: int | None = None) -> QueryResult:
        """Case-insensitive substring search over summary, tags, command and node name."""
        await self._ensure_loaded_locked()
        needle = text.lower()
        matches = [
            e for e in self._entries.values()
            if needle in e.summary.lower()
            or needle in e.command.lower()
            or needle in e.node_name.lower()
            or any(needle in tag.lower() for tag in e.tags)
        ]
        matches = _limited(matches, limit)
        return QueryResult(matches=matches, total=len(matches), query=text)

    async def get_stats(self, node_id: str | None = None) -> MemoryStats:
        await self._ensure_loaded_locked()
        entries = list(self._entries.values())
        if node_id:
            entries = [e for e in entries if e.node_id == node_id]

        tag_counts: dict[str, int] = {}
        for entry in entries:
            for tag in entry.tags:
                tag_counts[tag] = tag_counts.get(tag, 0) + 1

        by_time = sorted(entries, key=lambda e: parse_timestamp(e.timestamp))
        return MemoryStats(
            total_sessions=len(self._entries),
            total_memories=len(entries),
            oldest_memory=by_time[0].timestamp if by_time else None,
            newest_memory=by_time[-1].timestamp if by_time else None,
            tag_counts=tag_counts,
        )

    def get_index_stats(self) -> IndexStats:
        """Entry count and serialized size of the in-memory index."""
        entries = list(self._entries.values())
        newest = max(entries, key=lambda e: parse_timestamp(e.timestamp), default=None)
        return IndexStats(
            total_entries=len(entries),
            file_size=len(json.dumps(self._snapshot())),
            newest_entry=newest.session_id if newest else None,
        )

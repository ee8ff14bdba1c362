"""Memory manager: one entry point over the index, loader and metrics log."""

import asyncio
from pathlib import Path

from loguru import logger

from memvault.config.schema import Config
from memvault.memory import loader
from memvault.memory.index import MemoryIndex
from memvault.memory.markdown import parse_memory_sections
from memvault.memory.metrics import MetricsRecorder, detect_cache_size
from memvault.memory.quality import filter_by_quality, load_top_memories, overall_quality, rank_entries
from memvault.memory.types import (
    ArchiveCandidate,
    CacheSize,
    IndexEntry,
    MemoryRecord,
    MemoryStats,
)


class MemoryManager:
    """
    Memory operations for one memvault home.

    Construct one per home directory; the manager owns its index and metrics
    log, so two managers on the same files behave as two writers.
    """

    def __init__(
        self,
        config: Config | None = None,
        index: MemoryIndex | None = None,
        metrics: MetricsRecorder | None = None,
    ):
        self.config = config or Config()
        storage = self.config.storage
        self.sessions_path = storage.sessions_path
        self.index = index or MemoryIndex(storage.index_path)
        self.metrics = metrics or MetricsRecorder(storage.metrics_path, self.config.archive)

    async def initialize(self) -> None:
        await self.index.load()
        await self.metrics.initialize()
        logger.debug(f"Memory manager initialized with {len(self.index)} entries")

    # -- Indexing --

    async def index_memory(
        self,
        record: MemoryRecord,
        file_path: str | Path,
        vault_type: str = "generic",
    ) -> IndexEntry:
        """Score a freshly extracted record and add it to the index."""
        quality = overall_quality(record, vault_type)
        entry = await self.index.add_entry(record, file_path, quality=quality)
        logger.debug(f"Indexed memory {record.session_id} (quality {quality.overall:.2f})")
        return entry

    async def load_memory(self, session_id: str, node_id: str) -> MemoryRecord | None:
        """Rebuild a record from its index entry and memory file."""
        entry = await self.index.get_entry(session_id, node_id)
        if entry is None:
            logger.debug(f"Memory entry not found in index: {session_id} / {node_id}")
            return None

        content = await loader.load_memory_file(Path(entry.file_path))
        if content is None:
            return None

        fields = {
            "session_id": entry.session_id,
            "node_id": entry.node_id,
            "node_name": entry.node_name,
            "timestamp": entry.timestamp,
            "command": entry.command,
            "summary": entry.summary,
            "tags": entry.tags,
            "title": entry.summary,
        }
        fields.update(parse_memory_sections(content))
        return MemoryRecord(**fields)

    async def delete_memory(self, session_id: str) -> bool:
        """Delete the memory file (if any) and its index entry."""
        entry = await self.index.get_entry(session_id)
        if entry is None:
            return False

        path = Path(entry.file_path)
        try:
            await asyncio.to_thread(path.unlink, missing_ok=True)
            logger.debug(f"Deleted memory file: {path}")
        except OSError as e:
            logger.warning(f"Failed to delete memory file {path}: {e}")

        return await self.index.remove_entry(session_id)

    # -- Listing and search --

    async def list_memories(self, node_id: str | None = None, limit: int = 50) -> list[IndexEntry]:
        if node_id:
            return await self.index.query_by_node(node_id, limit)
        return await self.index.get_all_entries(limit)

    async def search_memories(self, query: str, limit: int = 20) -> list[IndexEntry]:
        result = await self.index.search(query, limit)
        return result.matches

    async def get_memories_by_tags(self, tags: list[str], limit: int = 20) -> list[IndexEntry]:
        return await self.index.query_by_tags(tags, limit)

    async def get_memory_stats(self, node_id: str | None = None) -> MemoryStats:
        return await self.index.get_stats(node_id)

    # -- Quality-ranked retrieval --

    async def load_top_memories_by_quality(self, node_id: str, limit: int = 3) -> list[IndexEntry]:
        entries = await self.index.query_by_node(node_id)
        top = load_top_memories(entries, limit, self.config.quality)
        logger.debug(f"Loaded top {len(top)} memories by quality for node {node_id}")
        return top

    async def get_ranked_memories(self, node_id: str) -> list[IndexEntry]:
        return rank_entries(await self.index.query_by_node(node_id), self.config.quality)

    async def get_high_quality_memories(self, node_id: str, min_quality: float = 0.5) -> list[IndexEntry]:
        return filter_by_quality(await self.index.query_by_node(node_id), min_quality)

    # -- Context injection --

    async def build_prompt(
        self,
        node_id: str,
        context_text: str,
        command_text: str,
        tags: list[str] | None = None,
    ) -> tuple[str, str]:
        """
        Load relevant memories for ``node_id`` and inject them into the context.

        With ``tags``, only memories whose index entry carries one of the tags
        are kept; discovered files have no tags of their own.
        """
        options = self.config.loader
        session_ids = None
        if tags:
            session_ids = {
                e.session_id for e in await self.index.query_by_tags(tags)
                if e.node_id == node_id
            }

        memories = await loader.load_relevant_memories(
            self.sessions_path,
            node_id,
            limit=options.limit,
            max_age=options.max_age,
            sort_by=options.sort_by,
            session_ids=session_ids,
        )

        logger.debug(loader.get_memory_summary(memories))
        return loader.inject_memories_into_prompt(context_text, command_text, memories)

    async def record_usage(self, session_ids: list[str]) -> int:
        """Count one consumption for each memory; returns how many were tracked."""
        updated = 0
        for session_id in session_ids:
            if await self.index.update_usage(session_id) is not None:
                updated += 1
        if updated:
            logger.info(f"Recorded usage for {updated} memories")
        return updated

    # -- Archival --

    async def get_archive_candidates(
        self,
        threshold: float | None = None,
        node_id: str | None = None,
    ) -> list[ArchiveCandidate]:
        return await self.metrics.get_archivable_candidates(threshold, node_id)

    async def get_cache_size(self) -> CacheSize:
        return await detect_cache_size(self.sessions_path)

    async def needs_archival(self) -> bool:
        """True when the active hierarchy exceeds the configured cache size."""
        size = await self.get_cache_size()
        return size.total_size_mb > self.config.archive.cache_threshold_mb

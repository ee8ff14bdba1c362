"""
Session memory loader.

Finds ``memory.md`` files left behind by past sessions, ranks them by
recency and injects the best ones into the context of a new session.

Layout: ``{sessions_root}/{node_id}/{YYYY}/{MM}/{DD}/{session_id}/memory.md``
"""

import asyncio
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Literal

from loguru import logger

from memvault.errors import InvalidMemoryPathError
from memvault.memory.quality import recency_score
from memvault.utils.helpers import days_since, parse_timestamp, utcnow, walk_files

MEMORY_FILENAME = "memory.md"
ARCHIVE_DIRNAME = ".archives"

CONTEXT_HEADER = "=== CONTEXT FROM PREVIOUS SESSIONS ==="
CONTEXT_FOOTER = "=" * 42
SESSION_DIVIDER = "\n---\n"

SortBy = Literal["recent", "relevance"]


@dataclass
class MemoryFile:
    """A memory file found on disk."""
    path: Path
    filename: str
    timestamp: str  # ISO-8601, from the file's mtime
    session_id: str


@dataclass
class RankedMemory:
    """A memory file that survived ranking."""
    path: Path
    timestamp: str
    session_id: str
    relevance_score: float  # 0-100


def resolve_node_path(sessions_root: Path, node_id: str) -> Path:
    """Directory holding ``node_id``'s sessions; must stay inside ``sessions_root``."""
    root = Path(sessions_root).resolve()
    node_path = (root / node_id).resolve()
    if not node_id or node_path == root or not node_path.is_relative_to(root):
        raise InvalidMemoryPathError(f"Node path escapes sessions root: {node_id!r}")
    return node_path


def _scan(node_path: Path) -> list[MemoryFile]:
    memories = []
    for found in walk_files(node_path, MEMORY_FILENAME, skip_dirs=frozenset({ARCHIVE_DIRNAME})):
        memories.append(MemoryFile(
            path=found.path,
            filename=found.path.name,
            timestamp=datetime.fromtimestamp(found.mtime, tz=timezone.utc).isoformat(),
            session_id=found.path.parent.name,
        ))
    return memories


async def discover_memories(sessions_root: Path, node_id: str) -> list[MemoryFile]:
    """All memory files for ``node_id``, newest first. Empty when nothing is there."""
    try:
        node_path = resolve_node_path(sessions_root, node_id)
    except InvalidMemoryPathError as e:
        logger.warning(str(e))
        return []

    if not node_path.is_dir():
        logger.debug(f"Sessions directory not found: {node_path}")
        return []

    memories = await asyncio.to_thread(_scan, node_path)
    memories.sort(key=lambda m: parse_timestamp(m.timestamp), reverse=True)
    logger.debug(f"Discovered {len(memories)} memories for node {node_id}")
    return memories


async def load_memory_file(path: Path) -> str | None:
    """Read a memory file; ``None`` if it cannot be read."""
    try:
        return await asyncio.to_thread(Path(path).read_text, encoding="utf-8")
    except (OSError, UnicodeDecodeError) as e:
        logger.warning(f"Failed to load memory file: {path} - {e}")
        return None


def rank_memories(
    memories: list[MemoryFile],
    limit: int | None = None,
    max_age: int | None = None,
    sort_by: SortBy = "recent",
    now: datetime | None = None,
) -> list[RankedMemory]:
    """
    Filter memories older than ``max_age`` days, score and order the rest.

    ``relevance_score`` is the recency score scaled to 0-100, using
    ``max_age`` (or a year) as the decay horizon.
    """
    now = now or utcnow()
    horizon = max_age if max_age is not None else 365

    ranked = [
        RankedMemory(
            path=m.path,
            timestamp=m.timestamp,
            session_id=m.session_id,
            relevance_score=recency_score(m.timestamp, horizon, now) * 100,
        )
        for m in memories
        if max_age is None or days_since(m.timestamp, now) <= max_age
    ]

    ranked.sort(key=lambda m: parse_timestamp(m.timestamp), reverse=True)
    if sort_by == "relevance":
        # stable: ties stay newest-first
        ranked.sort(key=lambda m: m.relevance_score, reverse=True)

    return ranked if limit is None else ranked[:limit]


async def load_relevant_memories(
    sessions_root: Path,
    node_id: str,
    limit: int = 3,
    max_age: int | None = 30,
    sort_by: SortBy = "recent",
    session_ids: set[str] | None = None,
) -> list[str]:
    """
    Contents of the top memories for ``node_id``. Never raises.

    ``session_ids`` restricts loading to those sessions before ranking.
    """
    try:
        memories = await discover_memories(sessions_root, node_id)
        if session_ids is not None:
            memories = [m for m in memories if m.session_id in session_ids]
        if not memories:
            logger.debug(f"No memories found for node: {node_id}")
            return []

        ranked = rank_memories(memories, limit=limit, max_age=max_age, sort_by=sort_by)
        contents = await asyncio.gather(*(load_memory_file(m.path) for m in ranked))
        loaded = [c for c in contents if c]

        logger.debug(f"Loaded {len(loaded)} memories for node {node_id}")
        return loaded
    except Exception as e:
        logger.error(f"Failed to load relevant memories for {node_id}: {e}")
        return []


def inject_memories_into_context(base_context: str, memories: list[str]) -> str:
    """Prepend past-session memories to ``base_context``; identity when there are none."""
    if not memories:
        return base_context

    sessions = SESSION_DIVIDER.join(
        f"[Session {i}]\n{memory}" for i, memory in enumerate(memories, start=1)
    )
    return f"{CONTEXT_HEADER}\n\n{sessions}\n\n{CONTEXT_FOOTER}\n\n{base_context}"


def inject_memories_into_prompt(
    context_text: str | None,
    command_text: str,
    memories: list[str],
) -> tuple[str | None, str]:
    """Inject memories into the context only; the command is returned untouched."""
    if not memories:
        return context_text, command_text
    return inject_memories_into_context(context_text or "", memories), command_text


def get_memory_summary(memories: list[str]) -> str:
    """One-line summary for logs."""
    count = len(memories)
    noun = "session" if count == 1 else "sessions"
    return f"Loaded {count} past {noun} for context"

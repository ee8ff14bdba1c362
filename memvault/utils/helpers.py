"""Path, time and JSON helpers shared by the memory modules."""

import json
import os
import tempfile
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Iterator, TypeVar

from loguru import logger
from pydantic import BaseModel, ValidationError

SECONDS_PER_DAY = 24 * 60 * 60

ModelT = TypeVar("ModelT", bound=BaseModel)


def ensure_dir(path: Path) -> Path:
    """Ensure a directory exists, creating it if necessary."""
    path.mkdir(parents=True, exist_ok=True)
    return path


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def now_iso() -> str:
    """Current time as an ISO-8601 string (UTC)."""
    return utcnow().isoformat()


def parse_timestamp(value: str | datetime) -> datetime:
    """Parse an ISO-8601 timestamp; naive values are treated as UTC."""
    dt = value if isinstance(value, datetime) else datetime.fromisoformat(value)
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


def days_since(value: str | datetime, now: datetime | None = None) -> float:
    """Fractional days elapsed between ``value`` and ``now``."""
    now = now or utcnow()
    return (now - parse_timestamp(value)).total_seconds() / SECONDS_PER_DAY


@dataclass(frozen=True)
class WalkedFile:
    """A file matched by :func:`walk_files`."""
    path: Path
    mtime: float


def walk_files(
    root: Path,
    filename: str,
    skip_dirs: frozenset[str] = frozenset(),
) -> Iterator[WalkedFile]:
    """
    Lazily yield every file named ``filename`` under ``root``.

    Iterative depth-first walk. Symlinks are not followed. Unreadable
    directories and files that vanish between listing and stat are logged
    and skipped. Each call starts a fresh walk, so the sequence can be
    restarted by calling again.
    """
    if not root.is_dir():
        return

    stack = [root]
    while stack:
        current = stack.pop()
        try:
            children = sorted(current.iterdir())
        except OSError as e:
            logger.debug(f"Failed to scan directory {current}: {e}")
            continue

        for child in children:
            if child.is_symlink():
                continue
            if child.is_dir():
                if child.name not in skip_dirs:
                    stack.append(child)
            elif child.name == filename:
                try:
                    stat = child.stat()
                except OSError as e:
                    logger.warning(f"Failed to stat memory file {child}: {e}")
                    continue
                yield WalkedFile(path=child, mtime=stat.st_mtime)


def read_json(path: Path) -> dict[str, Any] | None:
    """Read a JSON object from ``path``; ``None`` when the file is missing."""
    if not path.exists():
        return None
    data = json.loads(path.read_text(encoding="utf-8"))
    if not isinstance(data, dict):
        raise ValueError(f"Expected a JSON object in {path}")
    return data


def write_json_atomic(path: Path, data: Any) -> None:
    """Overwrite ``path`` with ``data`` via a temp file and ``os.replace``."""
    ensure_dir(path.parent)
    fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", suffix=".tmp")
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=2, ensure_ascii=False)
        os.replace(tmp_name, path)
    except BaseException:
        Path(tmp_name).unlink(missing_ok=True)
        raise


def validate_each(items: list[Any], model: type[ModelT], label: str) -> list[ModelT]:
    """Validate ``items`` one by one, logging and skipping the invalid ones."""
    valid = []
    for i, item in enumerate(items):
        try:
            valid.append(model.model_validate(item))
        except ValidationError as e:
            logger.warning(f"Skipping invalid {label} at position {i}: {e.error_count()} error(s)")
    return valid

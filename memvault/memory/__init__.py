"""Memory package.

`memory.types` is a stable contract (Pydantic models with camelCase JSON).
Scoring lives in `memory.quality`, storage in `memory.index` and
`memory.metrics`, context injection in `memory.loader`.
"""

from memvault.memory.index import MemoryIndex
from memvault.memory.manager import MemoryManager
from memvault.memory.metrics import MetricsRecorder, calculate_archive_score
from memvault.memory.types import (
    ArchiveScore,
    IndexEntry,
    MemoryRecord,
    MetricEntry,
    QualityScore,
    UsageTracking,
    VaultTypeWeights,
)

__all__ = [
    "ArchiveScore",
    "IndexEntry",
    "MemoryIndex",
    "MemoryManager",
    "MemoryRecord",
    "MetricEntry",
    "MetricsRecorder",
    "QualityScore",
    "UsageTracking",
    "VaultTypeWeights",
    "calculate_archive_score",
]

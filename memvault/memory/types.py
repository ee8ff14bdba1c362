"""Memory types (Pydantic models with camelCase JSON aliases)."""

from typing import Literal

from pydantic import BaseModel, Field

AccessTrend = Literal["increasing", "stable", "decreasing"]
Trend = Literal["increasing", "stable", "decreasing"]


class MemoryRecord(BaseModel):
    """A distilled record of one past session. Never edited in place."""

    session_id: str = Field(alias="sessionId")
    node_id: str = Field(alias="nodeId")
    node_name: str = Field("", alias="nodeName")
    timestamp: str
    command: str = ""
    ai_provider: str = Field("unknown", alias="aiProvider")
    token_count: int | None = Field(None, alias="tokenCount")
    duration_minutes: float = Field(0.0, alias="durationMinutes")
    tags: list[str] = []
    summary: str = ""

    title: str | None = None
    current_state: str | None = Field(None, alias="currentState")
    task_spec: str | None = Field(None, alias="taskSpec")
    workflow: str | None = None
    errors: str | None = None
    learnings: str | None = None
    key_results: str | None = Field(None, alias="keyResults")

    model_config = {"populate_by_name": True, "frozen": True}


class QualityScore(BaseModel):
    """Quality dimensions of a memory, each in [0, 1]."""

    overall: float = Field(ge=0.0, le=1.0)
    completeness: float = Field(ge=0.0, le=1.0)
    accuracy: float = Field(ge=0.0, le=1.0)
    relevance_to_command: float = Field(ge=0.0, le=1.0, alias="relevanceToCommand")

    model_config = {"populate_by_name": True}


class UsageTracking(BaseModel):
    """How often a memory has actually been consumed."""

    last_used: str | None = Field(None, alias="lastUsed")
    times_used: int = Field(0, ge=0, alias="timesUsed")
    access_trend: AccessTrend = Field("stable", alias="accessTrend")

    model_config = {"populate_by_name": True}


class VaultTypeWeights(BaseModel):
    """Weights applied to completeness, accuracy and relevance."""

    completeness_weight: float = Field(alias="completenessWeight")
    accuracy_weight: float = Field(alias="accuracyWeight")
    relevance_weight: float = Field(alias="relevanceWeight")

    model_config = {"populate_by_name": True, "frozen": True}


class IndexEntry(BaseModel):
    """One memory as stored in the index."""

    session_id: str = Field(alias="sessionId")
    node_id: str = Field(alias="nodeId")
    node_name: str = Field("", alias="nodeName")
    timestamp: str
    command: str = ""
    summary: str = ""
    tags: list[str] = []
    file_path: str = Field(alias="filePath")
    quality: QualityScore | None = None
    usage: UsageTracking | None = None

    model_config = {"populate_by_name": True}


class IndexData(BaseModel):
    """Persisted envelope of the memory index."""

    version: str = "1.0"
    created: str = ""
    last_updated: str = Field("", alias="lastUpdated")
    entries: list[IndexEntry] = []

    model_config = {"populate_by_name": True}


class QueryResult(BaseModel):
    """Result of a free-text index search."""

    matches: list[IndexEntry] = []
    total: int = 0
    query: str = ""


class MemoryStats(BaseModel):
    """Aggregate counts over the index, optionally scoped to one node."""

    total_sessions: int = Field(0, alias="totalSessions")
    total_memories: int = Field(0, alias="totalMemories")
    oldest_memory: str | None = Field(None, alias="oldestMemory")
    newest_memory: str | None = Field(None, alias="newestMemory")
    tag_counts: dict[str, int] = Field(default_factory=dict, alias="tagCounts")

    model_config = {"populate_by_name": True}


class IndexStats(BaseModel):
    """Size of the index itself."""

    total_entries: int = Field(0, alias="totalEntries")
    file_size: int = Field(0, alias="fileSize")
    newest_entry: str | None = Field(None, alias="newestEntry")

    model_config = {"populate_by_name": True}


# ---------------------------------------------------------------------------
# Archive engine
# ---------------------------------------------------------------------------


class MetricEntry(BaseModel):
    """One measurement of a memory file at a point in time."""

    timestamp: str
    node_id: str = Field(alias="nodeId")
    file_path: str = Field(alias="filePath")
    file_size_mb: float = Field(0.0, ge=0.0, alias="fileSizeMB")
    entry_count: int = Field(0, ge=0, alias="entryCount")
    average_entry_size: float = Field(0.0, ge=0.0, alias="averageEntrySize")
    oldest_entry: str = Field("", alias="oldestEntry")
    newest_entry: str = Field("", alias="newestEntry")
    usage_frequency: float = Field(0.0, ge=0.0, alias="usageFrequency")
    quality_score: float = Field(0.0, ge=0.0, le=1.0, alias="qualityScore")

    model_config = {"populate_by_name": True}


class MetricsLog(BaseModel):
    """Persisted envelope of the metrics log."""

    entries: list[MetricEntry] = []
    last_calculated: str = Field("", alias="lastCalculated")

    model_config = {"populate_by_name": True}


class ArchiveScore(BaseModel):
    """Eviction judgment for one file. Computed, never persisted."""

    final_score: float = Field(alias="finalScore")
    should_archive: bool = Field(alias="shouldArchive")
    reason: str
    age_score: float = Field(0.0, alias="ageScore")
    quality_penalty: float = Field(0.0, alias="qualityPenalty")
    usage_penalty: float = Field(0.0, alias="usagePenalty")

    model_config = {"populate_by_name": True}


class ArchiveCandidate(BaseModel):
    """Latest metric of a file together with its archive score."""

    metric: MetricEntry
    days_old: int = Field(alias="daysOld")
    archive_score: ArchiveScore = Field(alias="archiveScore")

    model_config = {"populate_by_name": True}


class SizeTrend(BaseModel):
    start: float = 0.0
    end: float = 0.0
    change: float = 0.0


class TrendAnalysis(BaseModel):
    """Growth and quality trend over a trailing window."""

    total_metrics: int = Field(0, alias="totalMetrics")
    growth_trend: Trend = Field("stable", alias="growthTrend")
    size_trend_mb: SizeTrend = Field(default_factory=SizeTrend, alias="sizeTrendMB")
    quality_trend: Trend = Field("stable", alias="qualityTrend")
    usage_trend: Trend = Field("stable", alias="usageTrend")

    model_config = {"populate_by_name": True}


class LargestFile(BaseModel):
    path: str = ""
    size_mb: float = Field(0.0, alias="sizeMB")

    model_config = {"populate_by_name": True}


class MetricsStatistics(BaseModel):
    """Aggregates over the latest metric of every tracked file."""

    total_memories: int = Field(0, alias="totalMemories")
    total_size_mb: float = Field(0.0, alias="totalSizeMB")
    average_quality: float = Field(0.0, alias="averageQuality")
    average_usage_frequency: float = Field(0.0, alias="averageUsageFrequency")
    largest_file: LargestFile = Field(default_factory=LargestFile, alias="largestFile")
    oldest_entry: str = Field("", alias="oldestEntry")
    newest_entry: str = Field("", alias="newestEntry")

    model_config = {"populate_by_name": True}


class OversizedFile(BaseModel):
    file_path: str = Field(alias="filePath")
    file_size_mb: float = Field(alias="fileSizeMB")

    model_config = {"populate_by_name": True}


class SizeRecommendations(BaseModel):
    oversized_files: list[OversizedFile] = Field(default_factory=list, alias="oversizedFiles")
    recommendation: str = ""

    model_config = {"populate_by_name": True}


class CacheSize(BaseModel):
    """Size of the active (non-archived) session hierarchy."""

    total_size_mb: float = Field(0.0, alias="totalSizeMB")
    file_count: int = Field(0, alias="fileCount")
    by_node: dict[str, float] = Field(default_factory=dict, alias="byNode")

    model_config = {"populate_by_name": True}

"""
Memory metrics and archive decisions.

Keeps an append-only log of per-file measurements (size, entry count,
usage, quality) and turns the latest measurement of each file into an
archive recommendation:

    final = 0.4 * age + 0.3 * (1 - quality) + 0.3 * (1 - usage)

where age saturates at 90 days and usage at 10 uses. Files scoring above
the threshold (0.6 by default) should move to cold storage.
"""

import asyncio
import math
from datetime import datetime, timedelta
from pathlib import Path

from loguru import logger
from pydantic import ValidationError

from memvault.config.schema import ArchiveConfig
from memvault.errors import MetricsLogError
from memvault.memory.types import (
    ArchiveCandidate,
    ArchiveScore,
    CacheSize,
    LargestFile,
    MetricEntry,
    MetricsLog,
    MetricsStatistics,
    OversizedFile,
    SizeRecommendations,
    SizeTrend,
    Trend,
    TrendAnalysis,
)
from memvault.utils.helpers import (
    days_since,
    now_iso,
    parse_timestamp,
    read_json,
    utcnow,
    validate_each,
    write_json_atomic,
)

DEFAULT_ARCHIVE_CONFIG = ArchiveConfig()

AGE_WEIGHT = 0.4
QUALITY_WEIGHT = 0.3
USAGE_WEIGHT = 0.3

SIZE_TREND_MB = 0.5
QUALITY_TREND = 0.1
USAGE_TREND = 1.0

OVERSIZED_RECOMMENDATION = (
    "Consider moving oversized memory files to a local database "
    "(e.g. SQLite) for structured storage"
)
WITHIN_LIMITS = "All memory files within size limits"

BYTES_PER_MB = 1024 * 1024


def _archive_reason(age_score: float, quality_penalty: float, usage_penalty: float) -> str:
    reasons = []
    if age_score > 0.5:
        reasons.append("old")
    if quality_penalty > 0.5:
        reasons.append("low quality")
    if usage_penalty > 0.5:
        reasons.append("rarely used")
    return ", ".join(reasons) if reasons else "no dominant factor"


def calculate_archive_score(
    quality_score: float,
    usage_frequency: float,
    days_old: float,
    config: ArchiveConfig = DEFAULT_ARCHIVE_CONFIG,
) -> ArchiveScore:
    """Composite eviction score for one file."""
    age_score = min(max(days_old, 0) / config.age_horizon_days, 1.0)
    quality_penalty = 1.0 - min(max(quality_score, 0.0), 1.0)
    usage_penalty = 1.0 - min(max(usage_frequency, 0) / config.usage_saturation, 1.0)

    final_score = (
        AGE_WEIGHT * age_score
        + QUALITY_WEIGHT * quality_penalty
        + USAGE_WEIGHT * usage_penalty
    )
    return ArchiveScore(
        final_score=final_score,
        should_archive=final_score > config.threshold,
        reason=_archive_reason(age_score, quality_penalty, usage_penalty),
        age_score=age_score,
        quality_penalty=quality_penalty,
        usage_penalty=usage_penalty,
    )


def _classify(change: float, tolerance: float) -> Trend:
    if change > tolerance:
        return "increasing"
    if change < -tolerance:
        return "decreasing"
    return "stable"


def latest_per_file(entries: list[MetricEntry]) -> list[MetricEntry]:
    """The most recent measurement of each file, in first-seen file order."""
    latest: dict[str, MetricEntry] = {}
    for entry in entries:
        current = latest.get(entry.file_path)
        if current is None or parse_timestamp(entry.timestamp) >= parse_timestamp(current.timestamp):
            latest[entry.file_path] = entry
    return list(latest.values())


def _read_log(path: Path) -> MetricsLog | None:
    try:
        data = read_json(path)
        if data is None:
            return None
        raw_entries = data.pop("entries", [])
        if not isinstance(raw_entries, list):
            raise ValueError("\"entries\" is not a list")
        log = MetricsLog.model_validate(data)
        log.entries = validate_each(raw_entries, MetricEntry, f"metric entry in {path}")
        return log
    except (OSError, ValueError, ValidationError) as e:
        raise MetricsLogError(f"{path}: {e}") from e


class MetricsRecorder:
    """Append-only metrics log backed by one JSON file."""

    def __init__(self, metrics_path: Path, config: ArchiveConfig | None = None):
        self.metrics_path = Path(metrics_path)
        self.config = config or DEFAULT_ARCHIVE_CONFIG
        self._log = MetricsLog()
        self._loaded = False
        self._lock = asyncio.Lock()

    async def initialize(self) -> None:
        """(Re)load the log from disk; missing or corrupt files yield an empty log."""
        async with self._lock:
            await self._load()

    async def _load(self) -> None:
        try:
            log = await asyncio.to_thread(_read_log, self.metrics_path)
        except MetricsLogError as e:
            logger.warning(f"Failed to load memory metrics, starting empty: {e}")
            log = None
        self._log = log or MetricsLog()
        self._loaded = True

    async def _entries(self) -> list[MetricEntry]:
        if not self._loaded:
            async with self._lock:
                if not self._loaded:
                    await self._load()
        return list(self._log.entries)

    async def _persist(self) -> None:
        self._log.last_calculated = now_iso()
        data = self._log.model_dump(mode="json", by_alias=True)
        await asyncio.to_thread(write_json_atomic, self.metrics_path, data)

    async def record_metric(self, metric: MetricEntry) -> None:
        """Append one measurement and persist the log."""
        async with self._lock:
            if not self._loaded:
                await self._load()
            self._log.entries.append(metric)
            try:
                await self._persist()
            except OSError as e:
                logger.error(f"Failed to save memory metrics: {e}")
                return
        logger.debug(f"Recorded metric for {metric.file_path} ({metric.file_size_mb:.2f}MB)")

    async def clear(self) -> None:
        async with self._lock:
            self._log = MetricsLog()
            self._loaded = True
            try:
                await self._persist()
            except OSError as e:
                logger.error(f"Failed to save memory metrics: {e}")
        logger.warning("Cleared all memory metrics")

    async def get_all_metrics(self) -> list[MetricEntry]:
        return await self._entries()

    async def get_metrics_by_node_id(self, node_id: str) -> list[MetricEntry]:
        return [m for m in await self._entries() if m.node_id == node_id]

    async def get_trend_analysis(
        self,
        window_days: int = 30,
        node_id: str | None = None,
        now: datetime | None = None,
    ) -> TrendAnalysis:
        """Compare the earliest and latest measurement inside the trailing window."""
        cutoff = (now or utcnow()) - timedelta(days=window_days)
        window = [
            m for m in await self._entries()
            if parse_timestamp(m.timestamp) >= cutoff and (node_id is None or m.node_id == node_id)
        ]
        window.sort(key=lambda m: parse_timestamp(m.timestamp))

        if len(window) < 2:
            size = window[0].file_size_mb if window else 0.0
            return TrendAnalysis(
                total_metrics=len(window),
                size_trend_mb=SizeTrend(start=size, end=size, change=0.0),
            )

        first, last = window[0], window[-1]
        size_change = last.file_size_mb - first.file_size_mb
        return TrendAnalysis(
            total_metrics=len(window),
            growth_trend=_classify(size_change, SIZE_TREND_MB),
            size_trend_mb=SizeTrend(start=first.file_size_mb, end=last.file_size_mb, change=size_change),
            quality_trend=_classify(last.quality_score - first.quality_score, QUALITY_TREND),
            usage_trend=_classify(last.usage_frequency - first.usage_frequency, USAGE_TREND),
        )

    async def get_statistics(self) -> MetricsStatistics:
        """Aggregates over the latest measurement of each tracked file."""
        latest = latest_per_file(await self._entries())
        if not latest:
            return MetricsStatistics()

        count = len(latest)
        largest = max(latest, key=lambda m: m.file_size_mb)
        oldest = [m.oldest_entry for m in latest if m.oldest_entry]
        newest = [m.newest_entry for m in latest if m.newest_entry]
        return MetricsStatistics(
            total_memories=count,
            total_size_mb=sum(m.file_size_mb for m in latest),
            average_quality=sum(m.quality_score for m in latest) / count,
            average_usage_frequency=sum(m.usage_frequency for m in latest) / count,
            largest_file=LargestFile(path=largest.file_path, size_mb=largest.file_size_mb),
            oldest_entry=min(oldest) if oldest else "",
            newest_entry=max(newest) if newest else "",
        )

    async def get_archivable_candidates(
        self,
        threshold: float | None = None,
        node_id: str | None = None,
        now: datetime | None = None,
    ) -> list[ArchiveCandidate]:
        """Tracked files whose archive score is at or above ``threshold``, worst first."""
        threshold = self.config.threshold if threshold is None else threshold
        now = now or utcnow()

        candidates = []
        for metric in latest_per_file(await self._entries()):
            if node_id is not None and metric.node_id != node_id:
                continue
            days_old = max(math.floor(days_since(metric.timestamp, now)), 0)
            score = calculate_archive_score(
                metric.quality_score, metric.usage_frequency, days_old, self.config
            )
            if score.final_score >= threshold:
                candidates.append(ArchiveCandidate(metric=metric, days_old=days_old, archive_score=score))

        candidates.sort(key=lambda c: c.archive_score.final_score, reverse=True)
        if candidates:
            logger.info(f"Found {len(candidates)} archive candidates (threshold {threshold})")
        return candidates

    async def get_size_recommendations(self) -> SizeRecommendations:
        oversized = sorted(
            (m for m in latest_per_file(await self._entries()) if m.file_size_mb > self.config.oversized_file_mb),
            key=lambda m: m.file_size_mb,
            reverse=True,
        )
        return SizeRecommendations(
            oversized_files=[OversizedFile(file_path=m.file_path, file_size_mb=m.file_size_mb) for m in oversized],
            recommendation=OVERSIZED_RECOMMENDATION if oversized else WITHIN_LIMITS,
        )


def _directory_size(path: Path, skip_dir: str) -> tuple[int, int]:
    total_bytes = 0
    file_count = 0
    stack = [path]
    while stack:
        current = stack.pop()
        try:
            children = list(current.iterdir())
        except OSError as e:
            logger.debug(f"Failed to scan directory {current}: {e}")
            continue
        for child in children:
            try:
                if child.is_symlink():
                    continue
                if child.is_dir():
                    if child.name != skip_dir:
                        stack.append(child)
                else:
                    total_bytes += child.stat().st_size
                    file_count += 1
            except OSError:
                continue
    return total_bytes, file_count


async def detect_cache_size(sessions_root: Path, archive_dirname: str = ".archives") -> CacheSize:
    """Size of the active session hierarchy per node, excluding archives."""
    root = Path(sessions_root)
    if not root.is_dir():
        return CacheSize()

    by_node: dict[str, float] = {}
    total_bytes = 0
    file_count = 0
    for node_path in sorted(p for p in root.iterdir() if p.is_dir() and p.name != archive_dirname):
        node_bytes, node_files = await asyncio.to_thread(_directory_size, node_path, archive_dirname)
        by_node[node_path.name] = node_bytes / BYTES_PER_MB
        total_bytes += node_bytes
        file_count += node_files

    return CacheSize(
        total_size_mb=round(total_bytes / BYTES_PER_MB, 2),
        file_count=file_count,
        by_node=by_node,
    )

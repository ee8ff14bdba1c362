"""
Memory quality scoring.

Ranks memories by a blend of recency and content quality so that an older,
well-documented session can outrank a fresh but sparse one:

    score = recency * recency_weight + boosted_quality * quality_weight

Quality itself is a weighted mix of completeness, accuracy and relevance,
with weights chosen per vault type. Everything here is pure.
"""

from datetime import datetime

from memvault.config.schema import QualityConfig
from memvault.memory.types import (
    IndexEntry,
    MemoryRecord,
    QualityScore,
    UsageTracking,
    VaultTypeWeights,
)
from memvault.utils.helpers import days_since, utcnow

DEFAULT_QUALITY_CONFIG = QualityConfig()

RECENCY_FLOOR = 0.1
USAGE_SATURATION = 10
USAGE_BOOST = 0.1

CONTENT_SECTIONS = (
    "title",
    "current_state",
    "task_spec",
    "workflow",
    "errors",
    "learnings",
    "key_results",
)

VAULT_TYPE_WEIGHTS: dict[str, VaultTypeWeights] = {
    "generic": VaultTypeWeights(completeness_weight=0.4, accuracy_weight=0.3, relevance_weight=0.3),
    "project": VaultTypeWeights(completeness_weight=0.5, accuracy_weight=0.3, relevance_weight=0.2),
    "music": VaultTypeWeights(completeness_weight=0.3, accuracy_weight=0.3, relevance_weight=0.4),
    "journal": VaultTypeWeights(completeness_weight=0.35, accuracy_weight=0.25, relevance_weight=0.4),
    "content": VaultTypeWeights(completeness_weight=0.35, accuracy_weight=0.25, relevance_weight=0.4),
}
DEFAULT_VAULT_TYPE = "generic"


def _clamp(value: float, low: float = 0.0, high: float = 1.0) -> float:
    return max(low, min(high, value))


def _present(text: str | None) -> bool:
    return bool(text and text.strip())


def recency_score(
    timestamp: str | datetime,
    max_age_days: int = 365,
    now: datetime | None = None,
) -> float:
    """
    Recency of a memory in [0.1, 1.0].

    1.0 within a day, 0.1 at or beyond ``max_age_days``, linear in between.
    The floor keeps old memories loadable.
    """
    age_days = days_since(timestamp, now)

    if age_days <= 1:
        return 1.0
    if age_days >= max_age_days:
        return RECENCY_FLOOR
    return 1.0 - ((age_days - 1) / (max_age_days - 1)) * (1.0 - RECENCY_FLOOR)


def usage_weight(times_used: int) -> float:
    """Usage weight in [0, 1]; saturates at 10 uses."""
    return min(max(times_used, 0) / USAGE_SATURATION, 1.0)


def completeness(record: MemoryRecord) -> float:
    """Fraction of the content sections that are filled in."""
    filled = sum(1 for name in CONTENT_SECTIONS if _present(getattr(record, name)))
    return filled / len(CONTENT_SECTIONS)


def accuracy(record: MemoryRecord) -> float:
    """
    How trustworthy the record's outcome reporting is.

    Starts at 0.5. A documented errors section raises the score, as do
    learnings mentioning success and recorded key results.
    """
    score = 0.5
    if _present(record.errors):
        score += 0.25
    if record.learnings and "success" in record.learnings.lower():
        score += 0.15
    if _present(record.key_results):
        score += 0.10
    return _clamp(score)


def relevance(record: MemoryRecord) -> float:
    """Proxy for how findable the record is: tags, summary and command detail."""
    tag_score = min(len(set(record.tags)) / 5, 1.0)
    summary_score = min(len(record.summary or "") / 100, 1.0)
    command_score = min(len(record.command or "") / 20, 1.0)
    return _clamp(0.4 * tag_score + 0.35 * summary_score + 0.25 * command_score)


def get_vault_type_weights(vault_type: str | None) -> VaultTypeWeights:
    """Weights for ``vault_type``; unknown types fall back to ``generic``."""
    return VAULT_TYPE_WEIGHTS.get((vault_type or "").lower(), VAULT_TYPE_WEIGHTS[DEFAULT_VAULT_TYPE])


def overall_quality(
    record: MemoryRecord,
    weights: VaultTypeWeights | str = DEFAULT_VAULT_TYPE,
) -> QualityScore:
    """Score a record; ``weights`` may be a vault type name or explicit weights."""
    if isinstance(weights, str):
        weights = get_vault_type_weights(weights)

    c = completeness(record)
    a = accuracy(record)
    r = relevance(record)
    overall = (
        c * weights.completeness_weight
        + a * weights.accuracy_weight
        + r * weights.relevance_weight
    )
    return QualityScore(
        overall=_clamp(overall),
        completeness=_clamp(c),
        accuracy=_clamp(a),
        relevance_to_command=_clamp(r),
    )


def ranking_score(
    entry: IndexEntry,
    config: QualityConfig = DEFAULT_QUALITY_CONFIG,
    now: datetime | None = None,
) -> float:
    """Comparable ranking score for an index entry (higher is better)."""
    recency = recency_score(entry.timestamp, config.max_age_days, now)
    if entry.quality is None:
        return recency

    weight = usage_weight(entry.usage.times_used) if entry.usage else 0.0
    boosted_quality = min(entry.quality.overall + weight * USAGE_BOOST, 1.0)
    return recency * config.recency_weight + boosted_quality * config.quality_weight


def update_usage_tracking(
    previous: UsageTracking | None,
    now: datetime | None = None,
) -> UsageTracking:
    """Record one more consumption of a memory."""
    previous_count = previous.times_used if previous else 0
    new_count = previous_count + 1

    trend = "stable"
    if new_count > max(previous_count + 1, 2):
        trend = "increasing"
    elif new_count < previous_count:
        trend = "decreasing"

    return UsageTracking(
        last_used=(now or utcnow()).isoformat(),
        times_used=new_count,
        access_trend=trend,
    )


def rank_entries(
    entries: list[IndexEntry],
    config: QualityConfig = DEFAULT_QUALITY_CONFIG,
    now: datetime | None = None,
) -> list[IndexEntry]:
    """Sort entries by ranking score, highest first. Stable for ties."""
    now = now or utcnow()
    return sorted(entries, key=lambda e: ranking_score(e, config, now), reverse=True)


def filter_by_quality(
    entries: list[IndexEntry],
    min_quality: float = DEFAULT_QUALITY_CONFIG.min_quality_score,
) -> list[IndexEntry]:
    """Drop scored entries below ``min_quality``; un-scored entries are kept."""
    return [e for e in entries if e.quality is None or e.quality.overall >= min_quality]


def load_top_memories(
    entries: list[IndexEntry],
    limit: int = 3,
    config: QualityConfig = DEFAULT_QUALITY_CONFIG,
    now: datetime | None = None,
) -> list[IndexEntry]:
    """Filter by quality, rank, and keep the top ``limit``."""
    filtered = filter_by_quality(entries, config.min_quality_score)
    return rank_entries(filtered, config, now)[:limit]

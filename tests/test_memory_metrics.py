"""Tests for the metrics log and archive decisions."""

import json
from datetime import timedelta

import pytest

from memvault.config.schema import ArchiveConfig
from memvault.memory.metrics import (
    OVERSIZED_RECOMMENDATION,
    WITHIN_LIMITS,
    MetricsRecorder,
    calculate_archive_score,
    detect_cache_size,
    latest_per_file,
)
from memvault.memory.types import MetricEntry


@pytest.fixture
def metrics_path(tmp_path):
    return tmp_path / "memory-metrics.json"


@pytest.fixture
def recorder(metrics_path):
    return MetricsRecorder(metrics_path)


def _metric(
    file_path: str = "/sessions/music/s1/memory.md",
    timestamp: str = "2026-03-15T12:00:00+00:00",
    node_id: str = "music",
    size_mb: float = 0.01,
    quality: float = 0.8,
    usage: float = 5,
    oldest: str = "",
    newest: str = "",
) -> MetricEntry:
    return MetricEntry(
        timestamp=timestamp,
        node_id=node_id,
        file_path=file_path,
        file_size_mb=size_mb,
        entry_count=1,
        average_entry_size=size_mb,
        oldest_entry=oldest,
        newest_entry=newest,
        usage_frequency=usage,
        quality_score=quality,
    )


# ============================================================================
# Archive score
# ============================================================================


class TestCalculateArchiveScore:

    def test_old_unused_low_quality_is_archived(self):
        score = calculate_archive_score(quality_score=0.3, usage_frequency=0, days_old=90)
        assert score.final_score == pytest.approx(0.91)
        assert score.final_score > 0.7
        assert score.should_archive is True
        assert score.reason == "old, low quality, rarely used"

    def test_fresh_high_quality_frequently_used_is_kept(self):
        score = calculate_archive_score(quality_score=0.95, usage_frequency=10, days_old=2)
        assert score.final_score == pytest.approx(0.4 * 2 / 90 + 0.3 * 0.05)
        assert score.final_score < 0.1
        assert score.should_archive is False
        assert score.reason == "no dominant factor"

    def test_usage_suppresses_archival_despite_mediocre_quality(self):
        score = calculate_archive_score(quality_score=0.5, usage_frequency=15, days_old=45)
        assert score.final_score == pytest.approx(0.35)
        assert score.should_archive is False

    def test_threshold_is_exclusive(self):
        score = calculate_archive_score(quality_score=0.0, usage_frequency=0, days_old=0)
        assert score.final_score == pytest.approx(0.6)
        assert score.should_archive is False

    def test_age_and_usage_saturate(self):
        a = calculate_archive_score(quality_score=0.5, usage_frequency=10, days_old=90)
        b = calculate_archive_score(quality_score=0.5, usage_frequency=500, days_old=5000)
        assert a.final_score == pytest.approx(b.final_score)

    def test_components_exposed(self):
        score = calculate_archive_score(quality_score=0.8, usage_frequency=5, days_old=45)
        assert score.age_score == pytest.approx(0.5)
        assert score.quality_penalty == pytest.approx(0.2)
        assert score.usage_penalty == pytest.approx(0.5)

    def test_score_stays_in_bounds(self):
        for quality in (0.0, 0.5, 1.0):
            for usage in (0, 3, 50):
                for days in (0, 30, 365):
                    score = calculate_archive_score(quality, usage, days)
                    assert 0.0 <= score.final_score <= 1.0

    def test_configurable_threshold(self):
        strict = ArchiveConfig(threshold=0.3)
        score = calculate_archive_score(quality_score=0.5, usage_frequency=15, days_old=45, config=strict)
        assert score.should_archive is True


# ============================================================================
# Log persistence
# ============================================================================


class TestMetricsLog:

    @pytest.mark.asyncio
    async def test_missing_log_is_empty(self, recorder):
        await recorder.initialize()
        assert await recorder.get_all_metrics() == []

    @pytest.mark.asyncio
    async def test_corrupt_log_is_empty(self, recorder, metrics_path):
        metrics_path.write_text("[[[ not json")
        await recorder.initialize()
        assert await recorder.get_all_metrics() == []

    @pytest.mark.asyncio
    async def test_invalid_metric_skipped_and_log_kept(self, recorder, metrics_path):
        await recorder.record_metric(_metric(file_path="/a.md"))
        await recorder.record_metric(_metric(file_path="/b.md"))
        data = json.loads(metrics_path.read_text())
        bad = dict(data["entries"][0], filePath="/bad.md", qualityScore=1.5)
        data["entries"].insert(1, bad)
        metrics_path.write_text(json.dumps(data))

        reloaded = MetricsRecorder(metrics_path)
        assert [m.file_path for m in await reloaded.get_all_metrics()] == ["/a.md", "/b.md"]

        await reloaded.record_metric(_metric(file_path="/c.md"))
        on_disk = json.loads(metrics_path.read_text())
        assert [e["filePath"] for e in on_disk["entries"]] == ["/a.md", "/b.md", "/c.md"]

    @pytest.mark.asyncio
    async def test_record_creates_log_file(self, recorder, metrics_path):
        await recorder.record_metric(_metric())

        data = json.loads(metrics_path.read_text())
        assert data["lastCalculated"]
        assert data["entries"][0]["filePath"] == "/sessions/music/s1/memory.md"
        assert data["entries"][0]["fileSizeMB"] == 0.01

    @pytest.mark.asyncio
    async def test_log_is_append_only(self, recorder, metrics_path):
        await recorder.record_metric(_metric(timestamp="2026-03-01T00:00:00+00:00"))
        await recorder.record_metric(_metric(timestamp="2026-03-02T00:00:00+00:00"))

        fresh = MetricsRecorder(metrics_path)
        assert len(await fresh.get_all_metrics()) == 2

    @pytest.mark.asyncio
    async def test_clear(self, recorder, metrics_path):
        await recorder.record_metric(_metric())
        await recorder.clear()

        fresh = MetricsRecorder(metrics_path)
        assert await fresh.get_all_metrics() == []

    @pytest.mark.asyncio
    async def test_by_node(self, recorder):
        await recorder.record_metric(_metric(node_id="music"))
        await recorder.record_metric(_metric(node_id="journal", file_path="/j.md"))

        journal = await recorder.get_metrics_by_node_id("journal")
        assert [m.file_path for m in journal] == ["/j.md"]
        assert await recorder.get_metrics_by_node_id("missing") == []


# ============================================================================
# Trends and statistics
# ============================================================================


class TestTrendAnalysis:

    @pytest.mark.asyncio
    async def test_empty_window_is_stable(self, recorder, now):
        trend = await recorder.get_trend_analysis(now=now)
        assert trend.total_metrics == 0
        assert trend.growth_trend == "stable"
        assert trend.size_trend_mb.change == 0.0

    @pytest.mark.asyncio
    async def test_growth_and_quality_decline(self, recorder, now, ago):
        await recorder.record_metric(_metric(timestamp=ago(20), size_mb=1.0, quality=0.9, usage=1))
        await recorder.record_metric(_metric(timestamp=ago(10), size_mb=1.5, quality=0.8, usage=2))
        await recorder.record_metric(_metric(timestamp=ago(1), size_mb=2.0, quality=0.6, usage=5))

        trend = await recorder.get_trend_analysis(window_days=30, now=now)

        assert trend.total_metrics == 3
        assert trend.growth_trend == "increasing"
        assert trend.size_trend_mb.start == 1.0
        assert trend.size_trend_mb.end == 2.0
        assert trend.size_trend_mb.change == pytest.approx(1.0)
        assert trend.quality_trend == "decreasing"
        assert trend.usage_trend == "increasing"

    @pytest.mark.asyncio
    async def test_entries_outside_window_ignored(self, recorder, now, ago):
        await recorder.record_metric(_metric(timestamp=ago(60), size_mb=0.1))
        await recorder.record_metric(_metric(timestamp=ago(5), size_mb=3.0))
        await recorder.record_metric(_metric(timestamp=ago(2), size_mb=3.1))

        trend = await recorder.get_trend_analysis(window_days=30, now=now)

        assert trend.total_metrics == 2
        assert trend.growth_trend == "stable"
        assert trend.size_trend_mb.start == 3.0

    @pytest.mark.asyncio
    async def test_scoped_to_node(self, recorder, now, ago):
        await recorder.record_metric(_metric(timestamp=ago(3), node_id="journal", size_mb=9.0))
        await recorder.record_metric(_metric(timestamp=ago(2), node_id="music", size_mb=1.0))

        trend = await recorder.get_trend_analysis(node_id="music", now=now)
        assert trend.total_metrics == 1
        assert trend.size_trend_mb.start == trend.size_trend_mb.end == 1.0


class TestStatistics:

    @pytest.mark.asyncio
    async def test_empty(self, recorder):
        stats = await recorder.get_statistics()
        assert stats.total_memories == 0
        assert stats.total_size_mb == 0.0

    @pytest.mark.asyncio
    async def test_uses_latest_metric_per_file(self, recorder, ago):
        await recorder.record_metric(_metric(file_path="/a.md", timestamp=ago(10), size_mb=1.0, quality=0.2))
        await recorder.record_metric(_metric(file_path="/a.md", timestamp=ago(1), size_mb=2.0, quality=0.6))
        await recorder.record_metric(_metric(file_path="/b.md", timestamp=ago(5), size_mb=4.0, quality=1.0,
                                             oldest=ago(40), newest=ago(5)))

        stats = await recorder.get_statistics()

        assert stats.total_memories == 2
        assert stats.total_size_mb == pytest.approx(6.0)
        assert stats.average_quality == pytest.approx(0.8)
        assert stats.largest_file.path == "/b.md"
        assert stats.largest_file.size_mb == 4.0
        assert stats.oldest_entry == ago(40)

    def test_latest_per_file_ignores_log_order(self, ago):
        newer = _metric(file_path="/a.md", timestamp=ago(1), size_mb=2.0)
        older = _metric(file_path="/a.md", timestamp=ago(9), size_mb=1.0)
        assert latest_per_file([newer, older]) == [newer]


# ============================================================================
# Archive candidates and size warnings
# ============================================================================


class TestArchivableCandidates:

    @pytest.mark.asyncio
    async def test_returns_candidates_worst_first(self, recorder, now, ago):
        await recorder.record_metric(_metric(file_path="/fresh.md", timestamp=ago(1), quality=0.9, usage=10))
        await recorder.record_metric(_metric(file_path="/stale.md", timestamp=ago(100), quality=0.1, usage=0))
        await recorder.record_metric(_metric(file_path="/aging.md", timestamp=ago(90), quality=0.4, usage=1))

        candidates = await recorder.get_archivable_candidates(now=now)

        assert [c.metric.file_path for c in candidates] == ["/stale.md", "/aging.md"]
        assert candidates[0].days_old == 100
        assert candidates[0].archive_score.should_archive is True

    @pytest.mark.asyncio
    async def test_threshold_is_inclusive(self, recorder, now, ago):
        await recorder.record_metric(_metric(file_path="/edge.md", timestamp=ago(0), quality=0.0, usage=0))

        at_threshold = await recorder.get_archivable_candidates(threshold=0.6, now=now)
        assert [c.metric.file_path for c in at_threshold] == ["/edge.md"]
        assert await recorder.get_archivable_candidates(threshold=0.61, now=now) == []

    @pytest.mark.asyncio
    async def test_uses_latest_measurement(self, recorder, now, ago):
        await recorder.record_metric(_metric(file_path="/a.md", timestamp=ago(120), quality=0.1, usage=0))
        await recorder.record_metric(_metric(file_path="/a.md", timestamp=ago(0), quality=0.9, usage=10))

        assert await recorder.get_archivable_candidates(now=now) == []

    @pytest.mark.asyncio
    async def test_scoped_to_node(self, recorder, now, ago):
        await recorder.record_metric(_metric(file_path="/m.md", node_id="music", timestamp=ago(200), quality=0.0, usage=0))
        await recorder.record_metric(_metric(file_path="/j.md", node_id="journal", timestamp=ago(200), quality=0.0, usage=0))

        candidates = await recorder.get_archivable_candidates(node_id="journal", now=now)
        assert [c.metric.file_path for c in candidates] == ["/j.md"]

    @pytest.mark.asyncio
    async def test_days_old_floored(self, recorder, now):
        stamp = (now - timedelta(days=10, hours=20)).isoformat()
        await recorder.record_metric(_metric(timestamp=stamp, quality=0.0, usage=0))

        candidates = await recorder.get_archivable_candidates(threshold=0.0, now=now)
        assert candidates[0].days_old == 10


class TestSizeRecommendations:

    @pytest.mark.asyncio
    async def test_within_limits(self, recorder):
        await recorder.record_metric(_metric(size_mb=4.9))
        result = await recorder.get_size_recommendations()
        assert result.oversized_files == []
        assert result.recommendation == WITHIN_LIMITS

    @pytest.mark.asyncio
    async def test_flags_oversized_files(self, recorder):
        await recorder.record_metric(_metric(file_path="/big.md", size_mb=6.5))
        await recorder.record_metric(_metric(file_path="/bigger.md", size_mb=12.0))
        await recorder.record_metric(_metric(file_path="/ok.md", size_mb=5.0))

        result = await recorder.get_size_recommendations()

        assert [f.file_path for f in result.oversized_files] == ["/bigger.md", "/big.md"]
        assert result.recommendation == OVERSIZED_RECOMMENDATION


# ============================================================================
# Cache size
# ============================================================================


class TestDetectCacheSize:

    @pytest.mark.asyncio
    async def test_missing_root(self, tmp_path):
        size = await detect_cache_size(tmp_path / "missing")
        assert size.total_size_mb == 0.0
        assert size.file_count == 0

    @pytest.mark.asyncio
    async def test_counts_active_files_only(self, sessions_root, memory_writer):
        memory_writer("music", "s1", "a" * 1000)
        memory_writer("journal", "s2", "b" * 500)
        archived = sessions_root / "music" / ".archives" / "old"
        archived.mkdir(parents=True)
        (archived / "memory.md").write_text("c" * 100_000)

        size = await detect_cache_size(sessions_root)

        assert size.file_count == 2
        assert set(size.by_node) == {"music", "journal"}
        assert size.by_node["music"] == pytest.approx(1000 / (1024 * 1024))

    @pytest.mark.asyncio
    async def test_symlinks_not_followed(self, sessions_root, memory_writer, tmp_path):
        memory_writer("music", "s1", "a" * 1000)
        outside = tmp_path / "outside"
        outside.mkdir()
        (outside / "huge.bin").write_bytes(b"x" * 100_000)
        (sessions_root / "music" / "loop").symlink_to(sessions_root / "music", target_is_directory=True)
        (sessions_root / "music" / "escape").symlink_to(outside, target_is_directory=True)

        size = await detect_cache_size(sessions_root)

        assert size.file_count == 1
        assert size.by_node["music"] == pytest.approx(1000 / (1024 * 1024))

"""
Tests for harvester run state, run history and the dashboard statistics.
"""
from datetime import date

import pytest

from src.harvester.run_state import (
    RUN_HISTORY_BLOB,
    HarvesterRunRecord,
    RunHistory,
    RunStateHolder,
    WorkerState,
)
from src.harvester.stats import HarvesterStatsService, build_trend, format_bytes
from src.knowledge.models import Solution
from src.storage.blob_store import BlobStore
from src.storage.collections import SolutionStore


@pytest.fixture()
def blobs(tmp_path):
    b = BlobStore(tmp_path / "knowledge_hub.sqlite")
    b.initialize()
    return b


# ───────── Run state ─────────


def test_snapshot_is_independent_copy():
    holder = RunStateHolder()
    copy = holder.snapshot()
    copy.total_tickets_processed = 99

    holder.apply(lambda s: setattr(s, "worker_state", WorkerState.RUNNING))

    assert holder.snapshot().total_tickets_processed == 0
    assert holder.snapshot().worker_state == WorkerState.RUNNING
    assert copy.worker_state == WorkerState.IDLE


def test_state_to_dict_uses_plain_values():
    data = RunStateHolder().snapshot().to_dict()
    assert data["worker_state"] == "idle"
    assert data["harvest_interval_seconds"] == 6 * 3600


# ───────── Run history ─────────


class TestRunHistory:
    def test_newest_first(self, blobs):
        history = RunHistory(blobs)
        history.record(HarvesterRunRecord(timestamp="t1", new_solutions=1))
        history.record(HarvesterRunRecord(timestamp="t2", new_solutions=2))
        assert [r.timestamp for r in history.list()] == ["t2", "t1"]

    def test_capped(self, blobs):
        history = RunHistory(blobs, max_records=3)
        for i in range(5):
            history.record(HarvesterRunRecord(timestamp=f"t{i}"))
        assert [r.timestamp for r in history.list()] == ["t4", "t3", "t2"]

    def test_malformed_blob_reads_empty(self, blobs):
        blobs.save_blob(RUN_HISTORY_BLOB, "[{broken")
        assert RunHistory(blobs).list() == []

    def test_mistyped_fields_default(self, blobs):
        blobs.save_blob(RUN_HISTORY_BLOB, '[{"timestamp": "t", "new_solutions": "x", "success": "yes"}]')
        [record] = RunHistory(blobs).list()
        assert record.new_solutions == 0
        assert record.success is False

    def test_missing_table_reads_empty(self, tmp_path):
        assert RunHistory(BlobStore(tmp_path / "fresh.sqlite")).list() == []


# ───────── Stats ─────────


def test_format_bytes():
    assert format_bytes(512) == "512 B"
    assert format_bytes(2048) == "2.0 KB"
    assert format_bytes(3 * 1024 * 1024) == "3.0 MB"


def test_build_trend():
    solutions = [
        Solution(ticket_id="A", harvested_at="2026-10-18T08:00:00+00:00"),
        Solution(ticket_id="B", harvested_at="2026-10-18T09:00:00+00:00"),
        Solution(ticket_id="C", harvested_at="2026-10-17T09:00:00+00:00"),
        Solution(ticket_id="D", harvested_at="2026-10-01T09:00:00+00:00"),
        Solution(ticket_id="E", harvested_at="garbage"),
    ]
    trend = build_trend(solutions, today=date(2026, 10, 18))

    assert len(trend) == 7
    assert trend[0].date == "2026-10-12"
    assert trend[-1].day_label == "Today"
    assert trend[-2].day_label == "Yesterday"
    assert trend[0].day_label == "Mon"
    assert [p.harvested for p in trend] == [0, 0, 0, 0, 0, 1, 2]


class TestStatsService:
    def test_breakdowns(self, blobs):
        store = SolutionStore(blobs)
        store.merge([
            Solution(ticket_id="A-1", ticket_title="x" * 80, system="SAP", category="OPS",
                     harvested_at="2026-01-02", keywords=["sap"]),
            Solution(ticket_id="B-1", system="", category="OPS", harvested_at="2026-01-03",
                     embedding=[0.1, 0.2]),
        ])
        stats = HarvesterStatsService(RunStateHolder(), store, RunHistory(blobs)).get_stats()

        assert stats.solutions_in_storage == 2
        assert stats.storage_size_bytes > 0
        assert stats.solutions_by_system == {"SAP": 1, "Unknown": 1}
        assert stats.solutions_by_category == {"OPS": 2}
        assert [s.ticket_id for s in stats.recent_solutions] == ["B-1", "A-1"]
        assert stats.recent_solutions[0].has_embedding
        assert len(stats.recent_solutions[1].title) == 60
        assert stats.to_dict()["storage_size_formatted"].endswith("B")

    def test_totals_fall_back_to_history(self, blobs):
        history = RunHistory(blobs)
        history.record(HarvesterRunRecord(timestamp="t1", tickets_found=10, skipped=3, new_solutions=5, no_solution=2))
        history.record(HarvesterRunRecord(timestamp="t2", tickets_found=10, skipped=10))

        stats = HarvesterStatsService(RunStateHolder(), SolutionStore(blobs), history).get_stats()

        assert stats.run_state["total_tickets_processed"] == 7
        assert stats.run_state["total_solutions_harvested"] == 5
        assert stats.run_state["total_tickets_skipped"] == 13
        assert stats.run_state["total_tickets_no_solution"] == 2

    def test_live_totals_win(self, blobs):
        holder = RunStateHolder()
        holder.apply(lambda s: setattr(s, "total_tickets_processed", 4))
        history = RunHistory(blobs)
        history.record(HarvesterRunRecord(timestamp="t1", tickets_found=10))

        stats = HarvesterStatsService(holder, SolutionStore(blobs), history).get_stats()
        assert stats.run_state["total_tickets_processed"] == 4

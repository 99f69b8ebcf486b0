"""
Harvester dashboard statistics: live run state plus storage breakdowns.
"""
import logging
from collections import Counter
from dataclasses import asdict, dataclass, field
from datetime import UTC, date, datetime, timedelta
from typing import Optional

from src.harvester.run_state import RunHistory, RunStateHolder
from src.knowledge.models import Solution
from src.storage.collections import SolutionStore

log = logging.getLogger(__name__)

RECENT_SOLUTIONS = 10
TREND_DAYS = 7
SUMMARY_TITLE_MAX = 60


@dataclass
class HarvestedSolutionSummary:
    ticket_id: str
    title: str
    system: str
    category: str
    harvested_at: str
    resolved_at: str
    validation_count: int
    is_promoted: bool
    source_url: str
    keyword_count: int
    has_embedding: bool


@dataclass
class TrendPoint:
    date: str
    day_label: str
    harvested: int


@dataclass
class HarvesterStats:
    run_state: dict
    solutions_in_storage: int = 0
    storage_size_bytes: int = 0
    solutions_by_system: dict[str, int] = field(default_factory=dict)
    solutions_by_category: dict[str, int] = field(default_factory=dict)
    recent_solutions: list[HarvestedSolutionSummary] = field(default_factory=list)
    trend: list[TrendPoint] = field(default_factory=list)

    @property
    def storage_size_formatted(self) -> str:
        return format_bytes(self.storage_size_bytes)

    def to_dict(self) -> dict:
        data = asdict(self)
        data["storage_size_formatted"] = self.storage_size_formatted
        return data


def format_bytes(size: int) -> str:
    if size < 1024:
        return f"{size} B"
    if size < 1024 * 1024:
        return f"{size / 1024:.1f} KB"
    return f"{size / (1024 * 1024):.1f} MB"


def _truncate(text: str, max_length: int) -> str:
    if not text:
        return ""
    return text[:max_length - 3] + "..." if len(text) > max_length else text


def _parse_date(value: str) -> Optional[date]:
    try:
        return datetime.fromisoformat(value).date()
    except (TypeError, ValueError):
        return None


def build_trend(solutions: list[Solution], today: Optional[date] = None) -> list[TrendPoint]:
    """Solutions harvested per day over the last TREND_DAYS days, oldest first."""
    today = today or datetime.now(UTC).date()
    per_day = Counter(_parse_date(s.harvested_at) for s in solutions)
    trend = []
    for offset in range(TREND_DAYS - 1, -1, -1):
        day = today - timedelta(days=offset)
        if offset == 0:
            label = "Today"
        elif offset == 1:
            label = "Yesterday"
        else:
            label = day.strftime("%a")
        trend.append(TrendPoint(date=day.isoformat(), day_label=label, harvested=per_day.get(day, 0)))
    return trend


class HarvesterStatsService:
    """Read-only aggregation for the monitoring view. Never raises."""

    def __init__(self, state: RunStateHolder, store: SolutionStore, history: RunHistory):
        self.state = state
        self.store = store
        self.history = history

    def get_stats(self) -> HarvesterStats:
        snapshot = self.state.snapshot()
        stats = HarvesterStats(run_state=snapshot.to_dict())

        try:
            solutions = self.store.load_solutions()
            stats.storage_size_bytes = self.store.storage_size()
            stats.solutions_in_storage = len(solutions)
            stats.solutions_by_system = dict(Counter(s.system or "Unknown" for s in solutions))
            stats.solutions_by_category = dict(Counter(s.category or "Unknown" for s in solutions))
            recent = sorted(solutions, key=lambda s: s.harvested_at, reverse=True)[:RECENT_SOLUTIONS]
            stats.recent_solutions = [
                HarvestedSolutionSummary(
                    ticket_id=s.ticket_id,
                    title=_truncate(s.ticket_title, SUMMARY_TITLE_MAX),
                    system=s.system,
                    category=s.category,
                    harvested_at=s.harvested_at,
                    resolved_at=s.resolved_at,
                    validation_count=s.validation_count,
                    is_promoted=s.is_promoted,
                    source_url=s.source_url,
                    keyword_count=len(s.keywords),
                    has_embedding=bool(s.embedding),
                )
                for s in recent
            ]
            stats.trend = build_trend(solutions)
        except Exception as e:
            log.warning("Failed to load solution statistics: %s", e)

        # A fresh process has zero in-memory totals; fall back to the persisted history
        if snapshot.total_tickets_processed == 0:
            history = self.history.list()
            if history:
                run_state = stats.run_state
                run_state["total_tickets_processed"] = sum(r.tickets_found - r.skipped for r in history)
                run_state["total_solutions_harvested"] = sum(r.new_solutions for r in history)
                run_state["total_tickets_skipped"] = sum(r.skipped for r in history)
                run_state["total_tickets_no_solution"] = sum(r.no_solution for r in history)

        return stats

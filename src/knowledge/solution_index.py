"""
Search index over solutions harvested from resolved tickets.
"""
import logging
from collections import Counter
from dataclasses import dataclass, field
from typing import Optional

from src.knowledge.live_index import LiveIndex
from src.knowledge.models import SearchResult, Solution
from src.retrieval.embedding_service import EmbeddingService
from src.retrieval.rank_fusion import FusionConfig
from src.storage.collections import SolutionStore

log = logging.getLogger(__name__)

AGENT_CONTEXT_HEADER = "### Historical ticket solutions (previous experience):"
AGENT_CONTEXT_NOTE = (
    "_Note: these are suggestions based on past incidents. "
    "Prefer the official documentation when they disagree._"
)
AGENT_CONTEXT_MAX_STEPS = 3


@dataclass
class SolutionStats:
    total_solutions: int = 0
    validated_solutions: int = 0
    promoted_solutions: int = 0
    solutions_by_system: dict[str, int] = field(default_factory=dict)
    solutions_by_category: dict[str, int] = field(default_factory=dict)
    last_harvest_date: Optional[str] = None
    oldest_solution: Optional[str] = None
    newest_solution: Optional[str] = None


class SolutionIndex(LiveIndex[Solution]):
    """
    Live, hot-reloadable index of harvested solutions.

    Write paths (upsert, validate, promote, delete) persist through the
    SolutionStore first and only then update the in-memory snapshot; their
    storage errors propagate to the caller.
    """

    name = "solution index"

    def __init__(
        self,
        store: SolutionStore,
        embedder: Optional[EmbeddingService] = None,
        config: FusionConfig = FusionConfig(weight=0.65),
    ):
        super().__init__(embedder, config)
        self.store = store

    def _prepare_storage(self) -> None:
        self.store.initialize()

    def _load(self) -> list[Solution]:
        return self.store.load_solutions()

    def search(self, query: str, top_k: int = 5) -> list[SearchResult]:
        return super().search(query, top_k)

    def get(self, ticket_id: str) -> Optional[Solution]:
        self.initialize()
        wanted = ticket_id.lower()
        return next((s for s in self.snapshot() if s.ticket_id.lower() == wanted), None)

    def upsert(self, solution: Solution) -> Solution:
        """Persist then mirror a solution; an existing key is replaced, never duplicated."""
        self.initialize()
        with self._writer:
            stored = self.store.upsert(solution)
            self._replace_in_snapshot(lambda s: s.ticket_id.lower(), stored)
        return stored

    def validate(self, ticket_id: str) -> Solution:
        """
        Record that a user found the solution helpful.

        Raises:
            NotFoundError: If the ticket is unknown
        """
        def bump(solution: Solution) -> None:
            solution.validation_count += 1

        return self._update(ticket_id, bump)

    def promote(self, ticket_id: str) -> Solution:
        """
        Mark a solution as promoted to a KB article.

        Raises:
            NotFoundError: If the ticket is unknown
        """
        def mark(solution: Solution) -> None:
            solution.is_promoted = True

        return self._update(ticket_id, mark)

    def _update(self, ticket_id, mutator) -> Solution:
        self.initialize()
        with self._writer:
            updated = self.store.update(ticket_id, mutator)
            self._replace_in_snapshot(lambda s: s.ticket_id.lower(), updated)
        return updated

    def delete(self, ticket_id: str) -> bool:
        self.initialize()
        with self._writer:
            removed = self.store.delete(ticket_id)
            if removed:
                wanted = ticket_id.lower()
                self._publish(s for s in self.snapshot() if s.ticket_id.lower() != wanted)
        return removed

    def promotion_candidates(self, min_validations: int = 5) -> list[Solution]:
        """Solutions validated often enough to become KB articles, most validated first."""
        self.initialize()
        candidates = [
            s for s in self.snapshot()
            if s.validation_count >= min_validations and not s.is_promoted
        ]
        return sorted(candidates, key=lambda s: (-s.validation_count, s.ticket_id))

    def stats(self) -> SolutionStats:
        self.initialize()
        solutions = self.snapshot()
        if not solutions:
            return SolutionStats()

        resolved = [s.resolved_at for s in solutions if s.resolved_at]
        harvested = [s.harvested_at for s in solutions if s.harvested_at]
        return SolutionStats(
            total_solutions=len(solutions),
            validated_solutions=sum(1 for s in solutions if s.validation_count > 0),
            promoted_solutions=sum(1 for s in solutions if s.is_promoted),
            solutions_by_system=dict(Counter(s.system for s in solutions)),
            solutions_by_category=dict(Counter(s.category for s in solutions)),
            last_harvest_date=max(harvested) if harvested else None,
            oldest_solution=min(resolved) if resolved else None,
            newest_solution=max(resolved) if resolved else None,
        )

    def search_for_agent(self, query: str, top_k: int = 3) -> str:
        """Search results formatted as a markdown context block for an agent prompt."""
        results = self.search(query, top_k)
        if not results:
            return ""

        lines = [AGENT_CONTEXT_HEADER, AGENT_CONTEXT_NOTE, ""]
        for result in results:
            solution: Solution = result.item
            lines.append(f"**[{solution.ticket_id}]** System: {solution.system}")
            lines.append(f"- **Problem**: {solution.problem}")
            lines.append(f"- **Solution**: {solution.solution}")
            if solution.steps:
                lines.append("- **Steps**:")
                lines.extend(f"  - {step}" for step in solution.steps[:AGENT_CONTEXT_MAX_STEPS])
            if solution.validation_count > 0:
                lines.append(f"- _Validated {solution.validation_count} times by users_")
            lines.append("")
        return "\n".join(lines)

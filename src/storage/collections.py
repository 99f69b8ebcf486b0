"""
Typed collections on top of BlobStore.

Each store serializes its own read-modify-write cycles with a lock, so a
harvester merge and a concurrent validate never lose each other's update.
"""
import json
import logging
import threading
from typing import Callable, Iterable, Optional

from src.knowledge.models import Article, Solution
from src.shared.errors import NotFoundError
from src.storage.blob_store import BlobStore

log = logging.getLogger(__name__)

SOLUTIONS_BLOB = "harvested-solutions"
PROCESSED_TICKETS_BLOB = "harvested-tickets"
ARTICLES_BLOB = "kb-articles"


class SolutionStore:
    """Durable solution collection and the processed-ticket set."""

    def __init__(self, blobs: BlobStore):
        self.blobs = blobs
        self._lock = threading.RLock()

    def initialize(self) -> None:
        self.blobs.initialize()

    def load_solutions(self) -> list[Solution]:
        return [Solution.from_dict(r) for r in self.blobs.load_collection(SOLUTIONS_BLOB)]

    def save_solutions(self, solutions: Iterable[Solution]) -> None:
        self.blobs.save_collection(SOLUTIONS_BLOB, [s.to_dict() for s in solutions])

    def upsert(self, solution: Solution) -> Solution:
        """
        Insert or replace a solution by ticket_id.

        Ticket ids match case-insensitively. An existing record keeps its stored
        id casing, max(validation_count) and a promoted flag that never reverts.

        Returns:
            The stored solution
        """
        with self._lock:
            solutions = self.load_solutions()
            for i, existing in enumerate(solutions):
                if existing.ticket_id.lower() == solution.ticket_id.lower():
                    solution.ticket_id = existing.ticket_id
                    solution.validation_count = max(existing.validation_count, solution.validation_count)
                    solution.is_promoted = existing.is_promoted or solution.is_promoted
                    solutions[i] = solution
                    break
            else:
                solutions.append(solution)
            self.save_solutions(solutions)
            return solution

    def merge(self, new_solutions: Iterable[Solution]) -> int:
        """
        Append solutions whose ticket_id is not stored yet.

        Returns:
            Number of solutions actually added
        """
        with self._lock:
            solutions = self.load_solutions()
            known = {s.ticket_id.lower() for s in solutions}
            added = 0
            for solution in new_solutions:
                if solution.ticket_id.lower() in known:
                    continue
                solutions.append(solution)
                known.add(solution.ticket_id.lower())
                added += 1
            if added:
                self.save_solutions(solutions)
            return added

    def update(self, ticket_id: str, mutator: Callable[[Solution], None]) -> Solution:
        """
        Apply mutator to a stored solution and persist it.

        Raises:
            NotFoundError: If ticket_id is not stored
        """
        with self._lock:
            solutions = self.load_solutions()
            for solution in solutions:
                if solution.ticket_id.lower() == ticket_id.lower():
                    mutator(solution)
                    self.save_solutions(solutions)
                    return solution
        raise NotFoundError(f"Solution not found: {ticket_id}")

    def delete(self, ticket_id: str) -> bool:
        with self._lock:
            solutions = self.load_solutions()
            kept = [s for s in solutions if s.ticket_id.lower() != ticket_id.lower()]
            if len(kept) == len(solutions):
                return False
            self.save_solutions(kept)
            return True

    def load_processed_ids(self) -> set[str]:
        content = self.blobs.load_blob(PROCESSED_TICKETS_BLOB)
        if not content:
            return set()
        try:
            data = json.loads(content)
        except json.JSONDecodeError as e:
            log.warning("Processed ticket set is not valid JSON, starting empty: %s", e)
            return set()
        if not isinstance(data, list):
            return set()
        return {t for t in data if isinstance(t, str)}

    def save_processed_ids(self, ticket_ids: Iterable[str]) -> None:
        self.blobs.save_blob(PROCESSED_TICKETS_BLOB, json.dumps(sorted(ticket_ids)))

    def storage_size(self) -> int:
        return self.blobs.blob_size(SOLUTIONS_BLOB)


class ArticleStore:
    """Durable KB article collection."""

    def __init__(self, blobs: BlobStore):
        self.blobs = blobs
        self._lock = threading.RLock()

    def initialize(self) -> None:
        self.blobs.initialize()

    def load(self) -> list[Article]:
        return [Article.from_dict(r) for r in self.blobs.load_collection(ARTICLES_BLOB)]

    def save(self, articles: Iterable[Article]) -> None:
        self.blobs.save_collection(ARTICLES_BLOB, [a.to_dict() for a in articles])

    def upsert(self, article: Article) -> Article:
        """Insert or replace an article by id."""
        with self._lock:
            articles = self.load()
            for i, existing in enumerate(articles):
                if existing.id == article.id:
                    articles[i] = article
                    break
            else:
                articles.append(article)
            self.save(articles)
            return article

    def insert_new(self, build: Callable[[list[Article]], Article]) -> Article:
        """
        Build and append an article from the current collection under the store lock.

        build receives every stored article (inactive included) so it can
        assign a non-colliding id and KB number.
        """
        with self._lock:
            articles = self.load()
            article = build(articles)
            articles.append(article)
            self.save(articles)
            return article

    def update(self, article_id: int, mutator: Callable[[Article], None]) -> Article:
        """
        Raises:
            NotFoundError: If article_id is not stored
        """
        with self._lock:
            articles = self.load()
            for article in articles:
                if article.id == article_id:
                    mutator(article)
                    self.save(articles)
                    return article
        raise NotFoundError(f"Article not found: {article_id}")

    def delete(self, kb_number: str) -> Optional[Article]:
        """Hard delete by KB number; returns the removed article or None."""
        with self._lock:
            articles = self.load()
            for i, article in enumerate(articles):
                if article.kb_number.lower() == kb_number.lower():
                    removed = articles.pop(i)
                    self.save(articles)
                    return removed
        return None

"""
Base for the in-memory search indexes.

Holds an immutable snapshot (tuple) behind a single reference. Readers grab the
reference under the shared lock and iterate outside it; writers are serialized
by a writer mutex across persist + swap and take the exclusive lock only for
the reference assignment.
"""
import logging
import threading
from typing import Callable, Generic, Iterable, Optional, TypeVar

from src.retrieval.embedding_service import EmbeddingService
from src.retrieval.rank_fusion import FusionConfig, hybrid_rank
from src.shared.concurrency import OneShotInitializer, ReadWriteLock
from src.shared.errors import format_openai_error
from src.shared.text_analysis import extract_search_terms

log = logging.getLogger(__name__)

T = TypeVar("T")


class LiveIndex(Generic[T]):
    """Snapshot, locks and hybrid search shared by solution and article indexes."""

    name = "index"

    def __init__(self, embedder: Optional[EmbeddingService], config: FusionConfig):
        self.embedder = embedder
        self.config = config
        self._snapshot: tuple[T, ...] = ()
        self._rw_lock = ReadWriteLock()
        self._writer = threading.Lock()
        self._initializer = OneShotInitializer()

    # --- lifecycle ---

    @property
    def is_initialized(self) -> bool:
        return self._initializer.is_initialized

    def _load(self) -> list[T]:
        """Read the full collection from storage. Subclasses implement."""
        raise NotImplementedError

    def _prepare_storage(self) -> None:
        pass

    def initialize(self) -> None:
        """
        Load the snapshot exactly once.

        A failed load is logged and leaves the snapshot empty; it is not
        remembered as success, so a later call retries.
        """
        try:
            self._initializer.run_once(self._initial_load)
        except Exception:
            log.exception("Failed to initialize %s; serving an empty snapshot", self.name)

    def _initial_load(self) -> None:
        self._prepare_storage()
        with self._writer:
            items = self._load()
            self._publish(items)
        log.info("Loaded %d items into %s", len(items), self.name)

    def reload(self) -> int:
        """Re-read the whole collection and swap it in. Returns the new size."""
        with self._writer:
            items = self._load()
            self._publish(items)
        log.info("Reloaded %d items into %s", len(items), self.name)
        return len(items)

    # --- snapshot access ---

    def _publish(self, items: Iterable[T]) -> None:
        snapshot = tuple(items)
        with self._rw_lock.write():
            self._snapshot = snapshot

    def _replace_in_snapshot(self, key_fn: Callable[[T], object], item: T) -> None:
        """Build a new snapshot with item replacing (or appended after) its key. Caller holds the writer mutex."""
        key = key_fn(item)
        current = self.snapshot()
        items = [item if key_fn(x) == key else x for x in current]
        if not any(key_fn(x) == key for x in current):
            items.append(item)
        self._publish(items)

    def snapshot(self) -> tuple[T, ...]:
        with self._rw_lock.read():
            return self._snapshot

    def count(self) -> int:
        return len(self.snapshot())

    # --- search ---

    def _searchable(self, items: tuple[T, ...]) -> tuple[T, ...]:
        return items

    def _embed_query(self, query: str) -> list[float]:
        if self.embedder is None or not self.embedder.is_configured:
            return []
        try:
            return self.embedder.embed(query)
        except Exception as e:
            log.warning(
                "Query embedding failed for %s, using keyword ranking only: %s", self.name, format_openai_error(e),
            )
            return []

    def search(self, query: str, top_k: int = 5) -> list:
        """
        Hybrid search over the current snapshot.

        Never raises: an empty corpus, blank query or a query without usable
        terms returns []. Without an embedding the ranking is keyword only.
        """
        if not query or not query.strip() or top_k <= 0:
            return []

        self.initialize()
        try:
            items = self._searchable(self.snapshot())
            if not items:
                return []

            terms = extract_search_terms(query)
            if not terms:
                return []

            query_vector = self._embed_query(query)
            return hybrid_rank(terms, query_vector, items, top_k, self.config)
        except Exception:
            log.exception("Search failed in %s", self.name)
            return []

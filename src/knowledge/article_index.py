"""
Search index over curated knowledge base articles.
"""
import logging
import re
from collections import Counter
from typing import Optional

from src.knowledge.live_index import LiveIndex
from src.knowledge.models import Article, SearchResult, utc_now
from src.retrieval.embedding_service import EmbeddingService
from src.retrieval.rank_fusion import FusionConfig
from src.shared.errors import format_openai_error
from src.storage.collections import ArticleStore

log = logging.getLogger(__name__)

EMBED_BATCH_SIZE = 16
KB_PREFIX = "KB"
_KB_NUMBER = re.compile(r"^KB(\d+)$", re.IGNORECASE)


def format_kb_number(n: int) -> str:
    return f"{KB_PREFIX}{n:07d}"


def next_kb_number(articles: list[Article]) -> str:
    """Next KB number after the highest existing one (KB0000001 when there is none)."""
    numbers = []
    for article in articles:
        match = _KB_NUMBER.match(article.kb_number or "")
        if match:
            numbers.append(int(match.group(1)))
    return format_kb_number(max(numbers) + 1 if numbers else 1)


def next_article_id(articles: list[Article]) -> int:
    return max((a.id for a in articles), default=0) + 1


class ArticleIndex(LiveIndex[Article]):
    """
    Live index of KB articles.

    Inactive (soft-deleted) articles stay in the snapshot so numbering never
    collides, but they are excluded from search and from default listings.
    """

    name = "article index"

    def __init__(
        self,
        store: ArticleStore,
        embedder: Optional[EmbeddingService] = None,
        config: FusionConfig = FusionConfig(weight=1.0),
    ):
        super().__init__(embedder, config)
        self.store = store

    def _prepare_storage(self) -> None:
        self.store.initialize()

    def _load(self) -> list[Article]:
        articles = self.store.load()
        self._embed_missing(articles)
        return articles

    def _searchable(self, items: tuple[Article, ...]) -> tuple[Article, ...]:
        return tuple(a for a in items if a.is_active)

    def _embed_missing(self, articles: list[Article]) -> None:
        """Embed articles loaded without a vector, in batches. Failures leave them keyword-only."""
        if self.embedder is None or not self.embedder.is_configured:
            return

        missing = [a for a in articles if not a.embedding]
        for start in range(0, len(missing), EMBED_BATCH_SIZE):
            batch = missing[start:start + EMBED_BATCH_SIZE]
            try:
                vectors = self.embedder.embed_batch([a.embedding_text() for a in batch])
            except Exception as e:
                log.warning("Embedding batch of %d articles failed: %s", len(batch), format_openai_error(e))
                continue
            for article, vector in zip(batch, vectors):
                article.embedding = vector

    def _embed_article(self, article: Article) -> None:
        if self.embedder is None or not self.embedder.is_configured:
            return
        try:
            article.embedding = self.embedder.embed(article.embedding_text())
        except Exception as e:
            log.warning(
                "Embedding article %s failed, it stays keyword-only: %s", article.kb_number, format_openai_error(e),
            )

    def _mirror(self, article: Article) -> None:
        """Put a persisted article into the snapshot, keeping a vector computed at load time."""
        if not article.embedding:
            current = next((a for a in self.snapshot() if a.id == article.id), None)
            if current is not None:
                article.embedding = current.embedding
        self._replace_in_snapshot(lambda a: a.id, article)

    # --- queries ---

    def search(self, query: str, top_k: int = 10) -> list[SearchResult]:
        return super().search(query, top_k)

    def get_by_id(self, article_id: int) -> Optional[Article]:
        self.initialize()
        return next((a for a in self.snapshot() if a.id == article_id), None)

    def get_by_kb_number(self, kb_number: str) -> Optional[Article]:
        self.initialize()
        wanted = kb_number.lower()
        return next((a for a in self.snapshot() if a.kb_number.lower() == wanted), None)

    def list_articles(self, include_inactive: bool = False) -> list[Article]:
        """Articles, most recently updated first."""
        self.initialize()
        articles = [a for a in self.snapshot() if include_inactive or a.is_active]
        return sorted(articles, key=lambda a: a.updated_at, reverse=True)

    def list_by_group(self, group: str) -> list[Article]:
        wanted = group.lower()
        return [a for a in self.list_articles() if a.kb_group.lower() == wanted]

    def groups_with_counts(self) -> dict[str, int]:
        return dict(Counter(a.kb_group for a in self.list_articles()))

    def next_id(self) -> int:
        self.initialize()
        return next_article_id(list(self.snapshot()))

    def generate_kb_number(self) -> str:
        """Next KB number, counting soft-deleted articles."""
        self.initialize()
        return next_kb_number(list(self.snapshot()))

    # --- writes ---

    def create(self, article: Article) -> Article:
        """
        Store a new article.

        The id and KB number are assigned from the stored collection under the
        store lock; incoming values are ignored.
        """
        self.initialize()
        self._embed_article(article)

        def assign(existing: list[Article]) -> Article:
            article.id = next_article_id(existing)
            article.kb_number = next_kb_number(existing)
            now = utc_now()
            article.created_at = now
            article.updated_at = now
            return article

        with self._writer:
            created = self.store.insert_new(assign)
            self._mirror(created)
        log.info("Created article %s (%s)", created.kb_number, created.title)
        return created

    def upsert(self, article: Article) -> Article:
        """Persist then mirror an article by id."""
        self.initialize()
        with self._writer:
            stored = self.store.upsert(article)
            self._mirror(stored)
        return stored

    def update(self, article: Article) -> Article:
        """
        Replace an existing article, refresh updated_at and re-embed.

        Raises:
            NotFoundError: If the article id is unknown
        """
        self.initialize()
        article.updated_at = utc_now()
        self._embed_article(article)

        def replace(stored: Article) -> None:
            stored.__dict__.update(article.__dict__)

        with self._writer:
            updated = self.store.update(article.id, replace)
            self._mirror(updated)
        return updated

    def deactivate(self, article_id: int) -> Article:
        """
        Soft delete.

        Raises:
            NotFoundError: If the article id is unknown
        """
        self.initialize()

        def soft_delete(stored: Article) -> None:
            stored.is_active = False
            stored.updated_at = utc_now()

        with self._writer:
            updated = self.store.update(article_id, soft_delete)
            self._mirror(updated)
        return updated

    def delete(self, kb_number: str) -> bool:
        """Hard delete by KB number."""
        self.initialize()
        with self._writer:
            removed = self.store.delete(kb_number)
            if removed is not None:
                self._publish(a for a in self.snapshot() if a.id != removed.id)
        return removed is not None

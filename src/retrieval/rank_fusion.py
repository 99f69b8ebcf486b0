"""
Hybrid ranking with Reciprocal Rank Fusion (RRF).

Combines a keyword-ranked list and a semantic-ranked list into one ranking.
Both indexes (solutions and articles) call hybrid_rank() with their own
corpus weight.

Scoring:
- Keyword: per matched query term, 2.5 for a system tag match, 2.0 for a
  keyword tag match, 1.0 for a plain text match; boosted by validations
  (max +50%) and by query coverage.
- Semantic: cosine similarity >= semantic_floor.
- Fusion: sum of 1 / (K + rank) over both lists, normalized by the maximum
  2 / (K + 1) and scaled by the corpus weight.

Every list sorts by (score desc, key asc) so equal scores order deterministically.
"""
from dataclasses import dataclass
from typing import Any, Sequence

from src.knowledge.models import SearchResult
from src.retrieval.vector_math import batch_cosine_similarity

SYSTEM_MATCH_WEIGHT = 2.5
KEYWORD_MATCH_WEIGHT = 2.0
TEXT_MATCH_WEIGHT = 1.0
VALIDATION_BOOST_PER_COUNT = 0.1
MAX_VALIDATION_BOOST = 0.5


@dataclass(frozen=True)
class FusionConfig:
    """Relevance knobs for one corpus."""
    weight: float = 1.0
    rrf_k: int = 60
    retrieve_count: int = 15
    semantic_floor: float = 0.20

    @property
    def max_rrf(self) -> float:
        return 2.0 / (self.rrf_k + 1)


@dataclass
class RankedItem:
    item: Any
    rank: int
    score: float


def keyword_score(terms: Sequence[str], item: Any) -> float:
    """Keyword relevance of item for already tokenized query terms."""
    if not terms:
        return 0.0

    fields = item.keyword_fields()
    score = 0.0
    matched = 0
    for term in terms:
        if term == fields.system_tag:
            score += SYSTEM_MATCH_WEIGHT
        elif any(term in k for k in fields.keywords):
            score += KEYWORD_MATCH_WEIGHT
        elif term in fields.searchable_text:
            score += TEXT_MATCH_WEIGHT
        else:
            continue
        matched += 1

    if fields.validation_count > 0:
        score *= 1.0 + min(fields.validation_count * VALIDATION_BOOST_PER_COUNT, MAX_VALIDATION_BOOST)

    if matched:
        score *= 1.0 + matched / len(terms)

    return score


def rank_by_keywords(terms: Sequence[str], items: Sequence[Any], limit: int) -> list[RankedItem]:
    """Keyword ranking: candidates with score > 0, best first, ranks from 1."""
    if not terms:
        return []

    scored = [(keyword_score(terms, item), item) for item in items]
    scored = [(s, item) for s, item in scored if s > 0]
    scored.sort(key=lambda x: (-x[0], x[1].key))
    return [RankedItem(item=item, rank=i, score=s) for i, (s, item) in enumerate(scored[:limit], 1)]


def rank_by_similarity(
    query_vector: Sequence[float],
    items: Sequence[Any],
    limit: int,
    floor: float,
) -> list[RankedItem]:
    """Semantic ranking over items that have an embedding; below-floor candidates are dropped."""
    if not query_vector:
        return []

    embedded = [item for item in items if item.embedding]
    similarities = batch_cosine_similarity(query_vector, [item.embedding for item in embedded])
    scored = [(s, item) for s, item in zip(similarities, embedded) if s >= floor]
    scored.sort(key=lambda x: (-x[0], x[1].key))
    return [RankedItem(item=item, rank=i, score=s) for i, (s, item) in enumerate(scored[:limit], 1)]


def fuse(
    keyword_ranked: Sequence[RankedItem],
    semantic_ranked: Sequence[RankedItem],
    top_k: int,
    config: FusionConfig,
) -> list[SearchResult]:
    """Reciprocal Rank Fusion of two ranked lists."""
    fused: dict[Any, list] = {}  # key -> [item, rrf, similarity]

    for ranked in keyword_ranked:
        entry = fused.setdefault(ranked.item.key, [ranked.item, 0.0, 0.0])
        entry[1] += 1.0 / (config.rrf_k + ranked.rank)

    for ranked in semantic_ranked:
        entry = fused.setdefault(ranked.item.key, [ranked.item, 0.0, 0.0])
        entry[1] += 1.0 / (config.rrf_k + ranked.rank)
        entry[2] = ranked.score

    ordered = sorted(fused.items(), key=lambda kv: (-kv[1][1], kv[0]))
    return [
        SearchResult(
            item=item,
            relevance_score=rrf / config.max_rrf * config.weight,
            similarity_score=similarity,
        )
        for _, (item, rrf, similarity) in ordered[:max(top_k, 0)]
    ]


def hybrid_rank(
    terms: Sequence[str],
    query_vector: Sequence[float],
    items: Sequence[Any],
    top_k: int,
    config: FusionConfig,
) -> list[SearchResult]:
    """
    Rank items for a query.

    Args:
        terms: Tokenized query terms (may be empty: ranking is then purely semantic)
        query_vector: Query embedding (may be empty: ranking is then purely keyword)
        items: Snapshot of entities exposing key, embedding and keyword_fields()
        top_k: Maximum number of results
        config: Corpus relevance settings

    Returns:
        At most top_k SearchResult, best first
    """
    if not items or top_k <= 0:
        return []

    keyword_ranked = rank_by_keywords(terms, items, config.retrieve_count)
    semantic_ranked = rank_by_similarity(
        query_vector, items, config.retrieve_count, config.semantic_floor
    )
    return fuse(keyword_ranked, semantic_ranked, top_k, config)

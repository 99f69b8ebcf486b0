"""
Service wiring and dependency access for FastAPI routes.
"""
import logging
from dataclasses import dataclass
from typing import Optional

from fastapi import Request

from src.harvester.extraction import HeuristicSolutionExtractor, SolutionExtractor
from src.harvester.run_state import RunHistory, RunStateHolder
from src.harvester.stats import HarvesterStatsService
from src.harvester.ticket_source import JiraClient, TicketSource
from src.harvester.worker import HarvesterWorker
from src.knowledge.article_index import ArticleIndex
from src.knowledge.solution_index import SolutionIndex
from src.retrieval.embedding_service import EmbeddingService
from src.retrieval.rank_fusion import FusionConfig
from src.shared.settings import Settings
from src.storage.blob_store import BlobStore
from src.storage.collections import ArticleStore, SolutionStore

log = logging.getLogger(__name__)


@dataclass
class ServiceContainer:
    settings: Settings
    blobs: BlobStore
    embedder: EmbeddingService
    solution_store: SolutionStore
    article_store: ArticleStore
    solutions: SolutionIndex
    articles: ArticleIndex
    run_state: RunStateHolder
    run_history: RunHistory
    harvester: HarvesterWorker
    harvester_stats: HarvesterStatsService
    ticket_source: TicketSource


def _fusion_config(settings: Settings, weight: float) -> FusionConfig:
    return FusionConfig(
        weight=weight,
        rrf_k=settings.rrf_k,
        retrieve_count=settings.retrieve_count,
        semantic_floor=settings.semantic_floor,
    )


def build_extractor(settings: Settings) -> SolutionExtractor:
    """Extraction strategy selected by HARVEST_EXTRACTOR."""
    if settings.harvest_extractor == "openai":
        if settings.openai_api_key:
            from src.harvester.llm_extraction import OpenAISolutionExtractor
            return OpenAISolutionExtractor(api_key=settings.openai_api_key, model=settings.extraction_model)
        log.warning("HARVEST_EXTRACTOR=openai but OPENAI_API_KEY is not set; using heuristic extraction")
    return HeuristicSolutionExtractor()


def build_services(
    settings: Settings,
    embedder: Optional[EmbeddingService] = None,
    ticket_source: Optional[TicketSource] = None,
    extractor: Optional[SolutionExtractor] = None,
) -> ServiceContainer:
    """Build the service graph. Nothing touches storage until the indexes initialize."""
    blobs = BlobStore(settings.db_path)
    embedder = embedder or EmbeddingService(api_key=settings.openai_api_key, model=settings.embedding_model)
    ticket_source = ticket_source or JiraClient(
        settings.jira_base_url, settings.jira_email, settings.jira_api_token,
    )

    solution_store = SolutionStore(blobs)
    article_store = ArticleStore(blobs)
    solutions = SolutionIndex(solution_store, embedder, _fusion_config(settings, settings.solution_weight))
    articles = ArticleIndex(article_store, embedder, _fusion_config(settings, settings.article_weight))

    run_state = RunStateHolder()
    run_history = RunHistory(blobs)
    harvester = HarvesterWorker(
        settings=settings,
        source=ticket_source,
        extractor=extractor or build_extractor(settings),
        store=solution_store,
        index=solutions,
        state=run_state,
        history=run_history,
        embedder=embedder,
    )

    return ServiceContainer(
        settings=settings,
        blobs=blobs,
        embedder=embedder,
        solution_store=solution_store,
        article_store=article_store,
        solutions=solutions,
        articles=articles,
        run_state=run_state,
        run_history=run_history,
        harvester=harvester,
        harvester_stats=HarvesterStatsService(run_state, solution_store, run_history),
        ticket_source=ticket_source,
    )


def get_services(request: Request) -> ServiceContainer:
    return request.app.state.services

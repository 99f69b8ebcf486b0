"""
Application settings: read once at startup from environment variables.
"""
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional


def _env_int(name: str, default: int) -> int:
    raw = os.environ.get(name)
    return int(raw) if raw else default


def _env_float(name: str, default: float) -> float:
    raw = os.environ.get(name)
    return float(raw) if raw else default


def _env_bool(name: str, default: bool) -> bool:
    raw = os.environ.get(name)
    if not raw:
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


@dataclass
class Settings:
    """Read-only configuration shared by the indexes and the harvester."""
    data_root: Path = Path("./data")

    # Embedding provider
    openai_api_key: Optional[str] = None
    embedding_model: str = "text-embedding-3-large"

    # Ticket source
    jira_base_url: Optional[str] = None
    jira_email: Optional[str] = None
    jira_api_token: Optional[str] = None

    # Harvester
    harvest_enabled: bool = True
    harvest_interval_hours: float = 6.0
    harvest_initial_delay_seconds: float = 30.0
    harvest_lookback_days: int = 7
    harvest_max_tickets: int = 50
    harvest_project_keys: list[str] = field(default_factory=list)
    harvest_extractor: str = "heuristic"  # "heuristic" | "openai"
    extraction_model: str = "gpt-5.2"
    embedding_delay_seconds: float = 0.5
    storage_init_attempts: int = 3
    storage_init_backoff_seconds: float = 30.0

    # Relevance
    semantic_floor: float = 0.20
    rrf_k: int = 60
    retrieve_count: int = 15
    solution_weight: float = 0.65
    article_weight: float = 1.0

    @property
    def db_path(self) -> Path:
        return self.data_root / "knowledge_hub.sqlite"

    @property
    def harvest_interval_seconds(self) -> float:
        return self.harvest_interval_hours * 3600

    @classmethod
    def from_env(cls) -> "Settings":
        """Build settings from environment variables, falling back to defaults."""
        projects = os.environ.get("HARVEST_PROJECT_KEYS", "")
        return cls(
            data_root=Path(os.environ.get("HUB_DATA_ROOT", "./data")),
            openai_api_key=os.environ.get("OPENAI_API_KEY") or None,
            embedding_model=os.environ.get("EMBEDDING_MODEL", cls.embedding_model),
            jira_base_url=os.environ.get("JIRA_BASE_URL") or None,
            jira_email=os.environ.get("JIRA_EMAIL") or None,
            jira_api_token=os.environ.get("JIRA_API_TOKEN") or None,
            harvest_enabled=_env_bool("HARVEST_ENABLED", True),
            harvest_interval_hours=_env_float("HARVEST_INTERVAL_HOURS", cls.harvest_interval_hours),
            harvest_initial_delay_seconds=_env_float(
                "HARVEST_INITIAL_DELAY_SECONDS", cls.harvest_initial_delay_seconds
            ),
            harvest_lookback_days=_env_int("HARVEST_LOOKBACK_DAYS", cls.harvest_lookback_days),
            harvest_max_tickets=_env_int("HARVEST_MAX_TICKETS", cls.harvest_max_tickets),
            harvest_project_keys=[p.strip().upper() for p in projects.split(",") if p.strip()],
            harvest_extractor=os.environ.get("HARVEST_EXTRACTOR", cls.harvest_extractor).strip().lower(),
            extraction_model=os.environ.get("EXTRACTION_MODEL", cls.extraction_model),
            embedding_delay_seconds=_env_float("EMBEDDING_DELAY_SECONDS", cls.embedding_delay_seconds),
            storage_init_attempts=_env_int("STORAGE_INIT_ATTEMPTS", cls.storage_init_attempts),
            storage_init_backoff_seconds=_env_float(
                "STORAGE_INIT_BACKOFF_SECONDS", cls.storage_init_backoff_seconds
            ),
            retrieve_count=_env_int("RETRIEVE_COUNT", cls.retrieve_count),
            semantic_floor=_env_float("SEMANTIC_FLOOR", cls.semantic_floor),
            rrf_k=_env_int("RRF_K", cls.rrf_k),
            solution_weight=_env_float("SOLUTION_WEIGHT", cls.solution_weight),
            article_weight=_env_float("ARTICLE_WEIGHT", cls.article_weight),
        )

"""
Knowledge entities: harvested ticket solutions and curated KB articles.

Both serialize to field-named JSON records. Deserialization is lenient:
missing or mistyped fields fall back to empty defaults.
"""
from dataclasses import asdict, dataclass, field
from datetime import UTC, datetime
from typing import Any, Optional

MAX_STEPS = 7


def utc_now() -> str:
    return datetime.now(UTC).isoformat()


def _str(data: dict, key: str, default: str = "") -> str:
    value = data.get(key)
    return value if isinstance(value, str) else default


def _opt_str(data: dict, key: str) -> Optional[str]:
    value = data.get(key)
    return value if isinstance(value, str) else None


def _int(data: dict, key: str, default: int = 0) -> int:
    value = data.get(key)
    if isinstance(value, bool):
        return default
    if isinstance(value, int):
        return value
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


def _bool(data: dict, key: str, default: bool = False) -> bool:
    value = data.get(key)
    return value if isinstance(value, bool) else default


def _str_list(data: dict, key: str) -> list[str]:
    value = data.get(key)
    if not isinstance(value, list):
        return []
    return [v for v in value if isinstance(v, str)]


def _vector(data: dict, key: str = "embedding") -> list[float]:
    value = data.get(key)
    if not isinstance(value, list):
        return []
    try:
        return [float(v) for v in value]
    except (TypeError, ValueError):
        return []


@dataclass(frozen=True)
class KeywordFields:
    """Projection of an entity used by keyword ranking."""
    system_tag: str
    keywords: tuple[str, ...]
    searchable_text: str
    validation_count: int = 0


@dataclass
class Solution:
    """Reusable solution harvested from a resolved ticket."""
    ticket_id: str
    ticket_title: str = ""
    problem: str = ""
    root_cause: str = ""
    solution: str = ""
    steps: list[str] = field(default_factory=list)
    system: str = ""
    category: str = ""
    keywords: list[str] = field(default_factory=list)
    priority: str = ""
    resolved_at: str = ""
    harvested_at: str = field(default_factory=utc_now)
    validation_count: int = 0
    is_promoted: bool = False
    source_url: str = ""
    embedding: list[float] = field(default_factory=list)

    @property
    def key(self) -> str:
        return self.ticket_id

    def searchable_text(self) -> str:
        """Text embedded for semantic search."""
        parts = [
            self.problem,
            self.solution,
            self.root_cause,
            " ".join(self.keywords),
            self.system,
            self.category,
        ]
        if self.steps:
            parts.append(" ".join(self.steps))
        return ". ".join(p for p in parts if p and p.strip())

    def keyword_fields(self) -> KeywordFields:
        text = f"{self.problem} {self.solution} {self.root_cause} {' '.join(self.keywords)}"
        return KeywordFields(
            system_tag=self.system.lower(),
            keywords=tuple(k.lower() for k in self.keywords),
            searchable_text=text.lower(),
            validation_count=self.validation_count,
        )

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> "Solution":
        return cls(
            ticket_id=_str(data, "ticket_id"),
            ticket_title=_str(data, "ticket_title"),
            problem=_str(data, "problem"),
            root_cause=_str(data, "root_cause"),
            solution=_str(data, "solution"),
            steps=_str_list(data, "steps")[:MAX_STEPS],
            system=_str(data, "system"),
            category=_str(data, "category"),
            keywords=_str_list(data, "keywords"),
            priority=_str(data, "priority"),
            resolved_at=_str(data, "resolved_at"),
            harvested_at=_str(data, "harvested_at"),
            validation_count=max(0, _int(data, "validation_count")),
            is_promoted=_bool(data, "is_promoted"),
            source_url=_str(data, "source_url"),
            embedding=_vector(data),
        )


@dataclass
class ArticleImage:
    """Image attached to a KB article."""
    id: str
    file_name: str = ""
    blob_url: str = ""
    alt_text: str = ""
    caption: Optional[str] = None
    order: int = 0
    uploaded_at: str = field(default_factory=utc_now)
    size_bytes: int = 0

    @classmethod
    def from_dict(cls, data: dict) -> "ArticleImage":
        return cls(
            id=_str(data, "id"),
            file_name=_str(data, "file_name"),
            blob_url=_str(data, "blob_url"),
            alt_text=_str(data, "alt_text"),
            caption=_opt_str(data, "caption"),
            order=_int(data, "order"),
            uploaded_at=_str(data, "uploaded_at"),
            size_bytes=_int(data, "size_bytes"),
        )


class KBGroups:
    """Known article groups."""
    MY_WORKPLACE = "My WorkPlace"
    SECURITY = "Security"
    NETWORK = "Network"
    SOFTWARE = "Software"
    HARDWARE = "Hardware"
    PROCEDURES = "Procedures"
    POLICIES = "Policies"
    TROUBLESHOOTING = "Troubleshooting"

    ALL = (
        MY_WORKPLACE, SECURITY, NETWORK, SOFTWARE,
        HARDWARE, PROCEDURES, POLICIES, TROUBLESHOOTING,
    )


@dataclass
class Article:
    """Curated knowledge base article."""
    id: int
    kb_number: str
    title: str = ""
    short_description: str = ""
    purpose: str = ""
    context: str = ""
    applies_to: str = ""
    content: str = ""
    kb_group: str = ""
    kb_owner: str = ""
    target_readers: str = ""
    language: str = "English"
    tags: list[str] = field(default_factory=list)
    is_active: bool = True
    created_at: str = field(default_factory=utc_now)
    updated_at: str = field(default_factory=utc_now)
    author: str = ""
    images: list[ArticleImage] = field(default_factory=list)
    source_document: Optional[str] = None
    original_pdf_url: Optional[str] = None
    embedding: list[float] = field(default_factory=list)

    @property
    def key(self) -> tuple[str, int]:
        return self.kb_number, self.id

    def embedding_text(self) -> str:
        return f"{self.title} {self.short_description} {self.purpose} {' '.join(self.tags)}".strip()

    def keyword_fields(self) -> KeywordFields:
        text = " ".join([
            self.title, self.short_description, self.purpose, self.context,
            self.applies_to, self.kb_number, " ".join(self.tags),
        ])
        return KeywordFields(
            system_tag=self.kb_group.lower(),
            keywords=tuple(t.lower() for t in self.tags),
            searchable_text=text.lower(),
        )

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> "Article":
        images = data.get("images")
        return cls(
            id=_int(data, "id"),
            kb_number=_str(data, "kb_number"),
            title=_str(data, "title"),
            short_description=_str(data, "short_description"),
            purpose=_str(data, "purpose"),
            context=_str(data, "context"),
            applies_to=_str(data, "applies_to"),
            content=_str(data, "content"),
            kb_group=_str(data, "kb_group"),
            kb_owner=_str(data, "kb_owner"),
            target_readers=_str(data, "target_readers"),
            language=_str(data, "language", "English"),
            tags=_str_list(data, "tags"),
            is_active=_bool(data, "is_active", True),
            created_at=_str(data, "created_at"),
            updated_at=_str(data, "updated_at"),
            author=_str(data, "author"),
            images=[ArticleImage.from_dict(i) for i in images if isinstance(i, dict)]
            if isinstance(images, list) else [],
            source_document=_opt_str(data, "source_document"),
            original_pdf_url=_opt_str(data, "original_pdf_url"),
            embedding=_vector(data),
        )


@dataclass
class SearchResult:
    """Ranked search hit: the entity, fused relevance and raw cosine similarity."""
    item: Any
    relevance_score: float
    similarity_score: float

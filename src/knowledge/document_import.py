"""
Document import for KB articles: text, PDF and DOCX are reduced to plain text
and turned into an article draft.

Extraction produces deterministic output.
"""
import hashlib
import io
from dataclasses import dataclass
from pathlib import Path

from docx import Document as DocxDocument
from pypdf import PdfReader

from src.knowledge.models import Article, KBGroups
from src.shared.text_analysis import extract_keywords

SHORT_DESCRIPTION_MAX = 200
TITLE_MAX = 150

SUPPORTED_SUFFIXES = {".txt": "text", ".md": "text", ".pdf": "pdf", ".docx": "docx"}


@dataclass
class ExtractionResult:
    """Result of text extraction."""
    text: str
    input_hash: str  # sha256(extracted_text)
    input_kind: str  # "text" | "pdf" | "docx"
    input_name: str | None  # filename or label


def _compute_hash(text: str) -> str:
    return hashlib.sha256(text.encode()).hexdigest()


def extract_text(raw_text: str, label: str | None = None) -> ExtractionResult:
    """
    Extract from free text (pasted).

    Raises:
        ValueError: If the text is empty
    """
    text = raw_text.strip()
    if not text:
        raise ValueError("Input text is empty")

    return ExtractionResult(
        text=text,
        input_hash=_compute_hash(text),
        input_kind="text",
        input_name=label,
    )


def extract_pdf(data: bytes, name: str) -> ExtractionResult:
    """
    Extract text from PDF bytes, pages separated by blank lines.

    Raises:
        ValueError: If no text could be extracted
    """
    reader = PdfReader(io.BytesIO(data))
    pages = []
    for page in reader.pages:
        page_text = page.extract_text()
        if page_text:
            pages.append(page_text)

    text = "\n\n".join(pages).strip()
    if not text:
        raise ValueError(f"No text extracted from PDF: {name}")

    return ExtractionResult(
        text=text,
        input_hash=_compute_hash(text),
        input_kind="pdf",
        input_name=name,
    )


def extract_docx(data: bytes, name: str) -> ExtractionResult:
    """
    Extract non-empty paragraphs from DOCX bytes.

    Raises:
        ValueError: If no text could be extracted
    """
    doc = DocxDocument(io.BytesIO(data))
    paragraphs = [p.text.strip() for p in doc.paragraphs if p.text.strip()]

    text = "\n\n".join(paragraphs).strip()
    if not text:
        raise ValueError(f"No text extracted from DOCX: {name}")

    return ExtractionResult(
        text=text,
        input_hash=_compute_hash(text),
        input_kind="docx",
        input_name=name,
    )


def extract_document(data: bytes, name: str) -> ExtractionResult:
    """
    Dispatch on file suffix.

    Raises:
        ValueError: If the type is unsupported or nothing could be extracted
    """
    kind = SUPPORTED_SUFFIXES.get(Path(name).suffix.lower())
    if kind == "pdf":
        return extract_pdf(data, name)
    if kind == "docx":
        return extract_docx(data, name)
    if kind == "text":
        return extract_text(data.decode("utf-8", errors="replace"), label=name)
    raise ValueError(f"Unsupported document type: {name}")


def _paragraphs(text: str) -> list[str]:
    return [p.strip() for p in text.replace("\r\n", "\n").split("\n\n") if p.strip()]


def build_article_draft(
    extraction: ExtractionResult,
    kb_group: str = KBGroups.PROCEDURES,
    author: str = "",
) -> Article:
    """
    Turn extracted text into an unsaved article.

    Title is the first non-empty line, the short description the first
    paragraph after it. Id and KB number are assigned by ArticleIndex.create().
    """
    lines = [line.strip() for line in extraction.text.splitlines() if line.strip()]
    title = lines[0][:TITLE_MAX] if lines else (extraction.input_name or "Untitled")

    body = _paragraphs(extraction.text)
    if body and body[0].startswith(title):
        rest = body[0][len(title):].strip()
        body = ([rest] if rest else []) + body[1:]
    description = " ".join(body[0].split()) if body else ""
    if len(description) > SHORT_DESCRIPTION_MAX:
        description = description[:SHORT_DESCRIPTION_MAX - 3] + "..."

    return Article(
        id=0,
        kb_number="",
        title=title,
        short_description=description,
        content=extraction.text,
        kb_group=kb_group,
        author=author,
        tags=extract_keywords(extraction.text),
        source_document=extraction.input_name,
    )

"""Knowledge base article API: search, listing, editing and document import."""
import logging

from fastapi import APIRouter, File, Form, Query, Request, UploadFile
from fastapi.responses import JSONResponse

from src.knowledge.document_import import build_article_draft, extract_document
from src.knowledge.models import Article, KBGroups, SearchResult
from src.shared.errors import AppErrors, NotFoundError
from src.web.dependencies import get_services

log = logging.getLogger(__name__)
router = APIRouter(prefix="/api/articles")

# Fields a client may set; id, kb_number, timestamps and embedding are server-owned
EDITABLE_FIELDS = (
    "title", "short_description", "purpose", "context", "applies_to", "content",
    "kb_group", "kb_owner", "target_readers", "language", "tags", "author",
    "source_document", "original_pdf_url",
)


def _article_to_dict(a: Article) -> dict:
    d = a.to_dict()
    d.pop("embedding", None)
    d["has_embedding"] = bool(a.embedding)
    return d


def _result_to_dict(r: SearchResult) -> dict:
    return {
        "article": _article_to_dict(r.item),
        "relevance_score": round(r.relevance_score, 4),
        "similarity_score": round(r.similarity_score, 4),
    }


def _validate_body(body) -> str | None:
    if not isinstance(body, dict):
        return "Request body must be a JSON object."
    title = body.get("title")
    if not isinstance(title, str) or not title.strip():
        return "Title is required."
    tags = body.get("tags", [])
    if not isinstance(tags, list) or not all(isinstance(t, str) for t in tags):
        return "Tags must be a list of strings."
    return None


def _editable(body: dict) -> dict:
    return {k: body[k] for k in EDITABLE_FIELDS if k in body}


@router.get("/search")
async def search_articles(request: Request, q: str = "", top_k: int = Query(10, ge=1, le=50)):
    services = get_services(request)
    results = services.articles.search(q, top_k)
    return {"query": q, "results": [_result_to_dict(r) for r in results]}


@router.get("")
async def list_articles(request: Request, group: str | None = None, include_inactive: bool = False):
    services = get_services(request)
    if group:
        articles = services.articles.list_by_group(group)
    else:
        articles = services.articles.list_articles(include_inactive=include_inactive)
    return {"articles": [_article_to_dict(a) for a in articles]}


@router.get("/groups")
async def list_groups(request: Request):
    services = get_services(request)
    return {"groups": services.articles.groups_with_counts(), "known_groups": list(KBGroups.ALL)}


@router.post("")
async def create_article(request: Request):
    services = get_services(request)
    body = await request.json()
    error = _validate_body(body)
    if error:
        return JSONResponse({"error": error}, status_code=400)

    draft = Article.from_dict(_editable(body))
    article = services.articles.create(draft)
    return JSONResponse(_article_to_dict(article), status_code=201)


@router.post("/import")
async def import_document(
    request: Request,
    file: UploadFile = File(...),
    kb_group: str = Form(KBGroups.PROCEDURES),
    author: str = Form(""),
):
    services = get_services(request)
    data = await file.read()
    if not data:
        return JSONResponse({"error": AppErrors.EMPTY_INPUT}, status_code=400)

    try:
        extraction = extract_document(data, file.filename or "document.txt")
    except ValueError as e:
        return JSONResponse({"error": str(e)}, status_code=400)

    article = services.articles.create(build_article_draft(extraction, kb_group=kb_group, author=author))
    log.info("Imported %s as %s", extraction.input_name, article.kb_number)
    return JSONResponse(_article_to_dict(article), status_code=201)


@router.get("/{kb_number}")
async def get_article(request: Request, kb_number: str):
    services = get_services(request)
    article = services.articles.get_by_kb_number(kb_number)
    if article is None:
        return JSONResponse({"error": "Article not found."}, status_code=404)
    return _article_to_dict(article)


@router.put("/{article_id:int}")
async def update_article(request: Request, article_id: int):
    services = get_services(request)
    body = await request.json()
    error = _validate_body(body)
    if error:
        return JSONResponse({"error": error}, status_code=400)

    existing = services.articles.get_by_id(article_id)
    if existing is None:
        return JSONResponse({"error": "Article not found."}, status_code=404)

    merged = existing.to_dict()
    merged.update(_editable(body))
    merged["embedding"] = []
    try:
        article = services.articles.update(Article.from_dict(merged))
    except NotFoundError:
        return JSONResponse({"error": "Article not found."}, status_code=404)
    return _article_to_dict(article)


@router.post("/{article_id:int}/deactivate")
async def deactivate_article(request: Request, article_id: int):
    services = get_services(request)
    try:
        article = services.articles.deactivate(article_id)
    except NotFoundError:
        return JSONResponse({"error": "Article not found."}, status_code=404)
    return _article_to_dict(article)


@router.delete("/{kb_number}")
async def delete_article(request: Request, kb_number: str):
    services = get_services(request)
    if not services.articles.delete(kb_number):
        return JSONResponse({"error": "Article not found."}, status_code=404)
    return {"deleted": kb_number}

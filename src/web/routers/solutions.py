"""Harvested solution search and feedback API."""
import logging
from dataclasses import asdict

from fastapi import APIRouter, Query, Request
from fastapi.responses import JSONResponse

from src.knowledge.models import SearchResult, Solution
from src.shared.errors import NotFoundError
from src.web.dependencies import get_services

log = logging.getLogger(__name__)
router = APIRouter(prefix="/api/solutions")


def _solution_to_dict(s: Solution) -> dict:
    d = s.to_dict()
    d.pop("embedding", None)
    d["has_embedding"] = bool(s.embedding)
    return d


def _result_to_dict(r: SearchResult) -> dict:
    return {
        "solution": _solution_to_dict(r.item),
        "relevance_score": round(r.relevance_score, 4),
        "similarity_score": round(r.similarity_score, 4),
    }


@router.get("/search")
async def search_solutions(request: Request, q: str = "", top_k: int = Query(5, ge=1, le=50)):
    services = get_services(request)
    results = services.solutions.search(q, top_k)
    return {"query": q, "results": [_result_to_dict(r) for r in results]}


@router.get("/candidates")
async def promotion_candidates(request: Request, min_validations: int = Query(5, ge=0)):
    services = get_services(request)
    candidates = services.solutions.promotion_candidates(min_validations)
    return {"solutions": [_solution_to_dict(s) for s in candidates]}


@router.get("/stats")
async def solution_stats(request: Request):
    services = get_services(request)
    return asdict(services.solutions.stats())


@router.get("/{ticket_id}")
async def get_solution(request: Request, ticket_id: str):
    services = get_services(request)
    solution = services.solutions.get(ticket_id)
    if solution is None:
        return JSONResponse({"error": "Solution not found."}, status_code=404)
    return _solution_to_dict(solution)


@router.post("/{ticket_id}/validate")
async def validate_solution(request: Request, ticket_id: str):
    services = get_services(request)
    try:
        solution = services.solutions.validate(ticket_id)
    except NotFoundError:
        return JSONResponse({"error": "Solution not found."}, status_code=404)
    log.info("Solution %s validated (%d)", solution.ticket_id, solution.validation_count)
    return _solution_to_dict(solution)


@router.post("/{ticket_id}/promote")
async def promote_solution(request: Request, ticket_id: str):
    services = get_services(request)
    try:
        solution = services.solutions.promote(ticket_id)
    except NotFoundError:
        return JSONResponse({"error": "Solution not found."}, status_code=404)
    return _solution_to_dict(solution)

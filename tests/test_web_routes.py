"""
Tests for web routes and FastAPI application.

Uses FastAPI TestClient to validate all API endpoints without starting a server.
All tests use tmp_path for data isolation and in-memory fakes for the
embedding provider and the ticket source.
"""
import io

import pytest
from docx import Document
from fastapi.testclient import TestClient

from src.harvester.extraction import HeuristicSolutionExtractor
from src.knowledge.models import Solution
from src.shared.errors import AppErrors
from src.web.app import create_app
from src.web.dependencies import build_extractor, build_services
from tests.fakes import FakeEmbedder, FakeTicketSource, make_issue


@pytest.fixture()
def services(settings):
    return build_services(settings, embedder=FakeEmbedder(), ticket_source=FakeTicketSource())


@pytest.fixture()
def client(services):
    with TestClient(create_app(services=services)) as c:
        yield c


def _seed_solutions(services):
    services.solutions.upsert(Solution(
        ticket_id="INC-1", system="SAP", keywords=["password"],
        problem="SAP password expired", solution="Reset it in SU01",
    ))
    services.solutions.upsert(Solution(
        ticket_id="INC-2", system="VPN", keywords=["zscaler"],
        problem="Zscaler disconnects", solution="Reinstall client",
    ))


# ───────── App / Health ─────────


class TestAppRoot:
    def test_health(self, client):
        resp = client.get("/health")
        assert resp.status_code == 200
        data = resp.json()
        assert data["status"] == "ok"
        assert data["solutions"] == 0
        assert data["embedding_configured"] is True
        assert data["harvester_state"] == "idle"
        assert data["warnings"] == []

    def test_health_reports_missing_configuration(self, settings):
        services = build_services(
            settings,
            embedder=FakeEmbedder(configured=False),
            ticket_source=FakeTicketSource(configured=False),
        )
        with TestClient(create_app(services=services)) as c:
            data = c.get("/health").json()

        assert data["embedding_configured"] is False
        assert data["warnings"] == [AppErrors.OPENAI_NOT_CONFIGURED, AppErrors.JIRA_NOT_CONFIGURED]

    def test_openapi_available(self, client):
        resp = client.get("/openapi.json")
        assert resp.status_code == 200
        assert resp.json()["info"]["title"] == "Support Knowledge Hub"

    def test_harvester_not_started_when_disabled(self, client, services):
        assert not services.harvester.is_alive


class TestWiring:
    def test_default_extractor_is_heuristic(self, settings):
        assert isinstance(build_extractor(settings), HeuristicSolutionExtractor)

    def test_openai_extractor_needs_key(self, settings):
        settings.harvest_extractor = "openai"
        assert isinstance(build_extractor(settings), HeuristicSolutionExtractor)


# ───────── Solutions API ─────────


class TestSolutionsAPI:
    def test_search(self, client, services):
        _seed_solutions(services)
        resp = client.get("/api/solutions/search", params={"q": "sap password"})
        assert resp.status_code == 200
        results = resp.json()["results"]
        assert results[0]["solution"]["ticket_id"] == "INC-1"
        assert "embedding" not in results[0]["solution"]
        assert 0 < results[0]["relevance_score"] <= 0.65

    def test_search_blank_query(self, client, services):
        _seed_solutions(services)
        resp = client.get("/api/solutions/search", params={"q": "  "})
        assert resp.json()["results"] == []

    def test_search_rejects_bad_top_k(self, client):
        resp = client.get("/api/solutions/search", params={"q": "sap", "top_k": 0})
        assert resp.status_code == 422

    def test_get_case_insensitive(self, client, services):
        _seed_solutions(services)
        resp = client.get("/api/solutions/inc-2")
        assert resp.status_code == 200
        assert resp.json()["system"] == "VPN"

    def test_get_missing(self, client):
        resp = client.get("/api/solutions/INC-404")
        assert resp.status_code == 404
        assert resp.json()["error"] == "Solution not found."

    def test_validate_and_promote(self, client, services):
        _seed_solutions(services)
        assert client.post("/api/solutions/INC-1/validate").json()["validation_count"] == 1
        resp = client.post("/api/solutions/INC-1/promote")
        assert resp.status_code == 200
        assert resp.json()["is_promoted"] is True
        assert services.solution_store.load_solutions()[0].is_promoted

    def test_validate_missing(self, client):
        assert client.post("/api/solutions/INC-404/validate").status_code == 404
        assert client.post("/api/solutions/INC-404/promote").status_code == 404

    def test_candidates_and_stats(self, client, services):
        _seed_solutions(services)
        client.post("/api/solutions/INC-2/validate")

        resp = client.get("/api/solutions/candidates", params={"min_validations": 1})
        assert [s["ticket_id"] for s in resp.json()["solutions"]] == ["INC-2"]

        stats = client.get("/api/solutions/stats").json()
        assert stats["total_solutions"] == 2
        assert stats["validated_solutions"] == 1


# ───────── Articles API ─────────


class TestArticlesAPI:
    def test_create_and_get(self, client):
        resp = client.post("/api/articles", json={
            "title": "Reset SAP password", "kb_group": "Security", "tags": ["sap", "password"],
            "kb_number": "KB9999999",
        })
        assert resp.status_code == 201
        created = resp.json()
        assert created["kb_number"] == "KB0000001"
        assert created["has_embedding"] is True

        resp = client.get("/api/articles/kb0000001")
        assert resp.status_code == 200
        assert resp.json()["title"] == "Reset SAP password"

    def test_create_requires_title(self, client):
        resp = client.post("/api/articles", json={"content": "no title"})
        assert resp.status_code == 400
        assert resp.json()["error"] == "Title is required."

    def test_create_rejects_bad_tags(self, client):
        resp = client.post("/api/articles", json={"title": "x", "tags": "sap"})
        assert resp.status_code == 400

    def test_search_and_list(self, client):
        client.post("/api/articles", json={"title": "VPN with Zscaler", "kb_group": "Network", "tags": ["vpn"]})
        client.post("/api/articles", json={"title": "Printer queue", "kb_group": "Hardware", "tags": ["printer"]})

        results = client.get("/api/articles/search", params={"q": "zscaler vpn"}).json()["results"]
        assert results[0]["article"]["kb_number"] == "KB0000001"

        listed = client.get("/api/articles").json()["articles"]
        assert len(listed) == 2
        by_group = client.get("/api/articles", params={"group": "hardware"}).json()["articles"]
        assert [a["title"] for a in by_group] == ["Printer queue"]

        groups = client.get("/api/articles/groups").json()
        assert groups["groups"] == {"Network": 1, "Hardware": 1}
        assert "Procedures" in groups["known_groups"]

    def test_update(self, client):
        created = client.post("/api/articles", json={"title": "Old", "tags": []}).json()
        resp = client.put(f"/api/articles/{created['id']}", json={"title": "New", "tags": ["teams"]})
        assert resp.status_code == 200
        assert resp.json()["title"] == "New"
        assert resp.json()["kb_number"] == created["kb_number"]
        assert client.get(f"/api/articles/{created['kb_number']}").json()["tags"] == ["teams"]

    def test_update_missing(self, client):
        resp = client.put("/api/articles/42", json={"title": "x"})
        assert resp.status_code == 404

    def test_deactivate_hides_from_search(self, client):
        created = client.post("/api/articles", json={"title": "Outlook profile", "tags": ["outlook"]}).json()
        assert client.post(f"/api/articles/{created['id']}/deactivate").json()["is_active"] is False

        assert client.get("/api/articles/search", params={"q": "outlook"}).json()["results"] == []
        assert client.get("/api/articles").json()["articles"] == []
        listed = client.get("/api/articles", params={"include_inactive": True}).json()["articles"]
        assert len(listed) == 1

        created = client.post("/api/articles", json={"title": "Next"}).json()
        assert created["kb_number"] == "KB0000002"

    def test_delete(self, client):
        client.post("/api/articles", json={"title": "Temp"})
        assert client.delete("/api/articles/KB0000001").json() == {"deleted": "KB0000001"}
        assert client.delete("/api/articles/KB0000001").status_code == 404
        assert client.get("/api/articles/KB0000001").status_code == 404

    def test_import_docx(self, client):
        doc = Document()
        doc.add_paragraph("Teams audio troubleshooting")
        doc.add_paragraph("Check the selected microphone in Teams settings.")
        buf = io.BytesIO()
        doc.save(buf)

        resp = client.post(
            "/api/articles/import",
            files={"file": ("teams.docx", buf.getvalue(),
                            "application/vnd.openxmlformats-officedocument.wordprocessingml.document")},
            data={"kb_group": "Software", "author": "helpdesk"},
        )
        assert resp.status_code == 201
        article = resp.json()
        assert article["title"] == "Teams audio troubleshooting"
        assert article["kb_group"] == "Software"
        assert article["source_document"] == "teams.docx"
        assert "teams" in article["tags"]

    def test_import_empty_file(self, client):
        resp = client.post("/api/articles/import", files={"file": ("empty.txt", b"", "text/plain")})
        assert resp.status_code == 400

    def test_import_unsupported(self, client):
        resp = client.post("/api/articles/import", files={"file": ("a.xlsx", b"data", "application/octet-stream")})
        assert resp.status_code == 400
        assert "Unsupported" in resp.json()["error"]


# ───────── Harvester API ─────────


class TestHarvesterAPI:
    def test_status(self, client):
        data = client.get("/api/harvester/status").json()
        assert data["worker_state"] == "idle"
        assert data["is_configured"] is True
        assert data["harvest_interval_seconds"] == 3600

    def test_history_and_stats_after_cycle(self, settings):
        source = FakeTicketSource([make_issue("NET-1"), make_issue("NET-2", comment=None)])
        services = build_services(settings, embedder=FakeEmbedder(), ticket_source=source)

        with TestClient(create_app(services=services)) as client:
            services.harvester.run_cycle()

            runs = client.get("/api/harvester/history").json()["runs"]
            assert len(runs) == 1
            assert runs[0]["new_solutions"] == 1
            assert runs[0]["no_solution"] == 1

            stats = client.get("/api/harvester/stats").json()
            assert stats["solutions_in_storage"] == 1
            assert stats["solutions_by_system"] == {"Network": 1}
            assert len(stats["trend"]) == 7
            assert stats["run_state"]["total_tickets_processed"] == 2

            results = client.get("/api/solutions/search", params={"q": "zscaler"}).json()["results"]
            assert [r["solution"]["ticket_id"] for r in results] == ["NET-1"]

"""
Tests for heuristic and model-based solution extraction.
"""
import json
from unittest.mock import MagicMock, patch

import pytest

from src.harvester.extraction import (
    HeuristicSolutionExtractor,
    clean_comment_text,
    extract_steps,
    find_solution_text,
)
from src.harvester.llm_extraction import (
    OpenAISolutionExtractor,
    format_issue_prompt,
    validate_extraction_output,
)
from src.harvester.ticket_source import Comment, Issue
from src.shared.errors import ExtractionError
from tests.fakes import make_issue


# --- Heuristic extraction ---

def test_keyword_comment_wins_over_newer_long_comment():
    issue = Issue(key="INC-1", comments=[
        Comment(body="Solved: cleared the SAP GUI cache.", created="2026-01-01T10:00"),
        Comment(body="Thanks for the quick turnaround, closing this ticket now as agreed with the user.",
                created="2026-01-02T10:00"),
    ])
    assert find_solution_text(issue) == "Solved: cleared the SAP GUI cache."


def test_newest_keyword_comment_wins():
    issue = Issue(key="INC-1", comments=[
        Comment(body="Fixed by rebooting", created="2026-01-01"),
        Comment(body="Resolved: reinstalled the client", created="2026-01-03"),
    ])
    assert find_solution_text(issue) == "Resolved: reinstalled the client"


def test_fallback_requires_long_comment():
    short = Issue(key="INC-1", comments=[Comment(body="Ok, thanks", created="2026-01-01")])
    assert find_solution_text(short) is None

    long_body = "The user profile was rebuilt and the mailbox cache was recreated from scratch."
    long = Issue(key="INC-2", comments=[Comment(body=long_body, created="2026-01-01")])
    assert find_solution_text(long) == long_body


def test_no_comments():
    assert find_solution_text(Issue(key="INC-1")) is None


def test_clean_comment_text():
    assert clean_comment_text("  a\\nb\\r  ") == "a\nb"
    capped = clean_comment_text("x" * 5000)
    assert len(capped) == 2000
    assert capped.endswith("...")


def test_extract_steps():
    text = "Steps:\n1. Open SU01\n2) Reset password\n- Unlock user\n* Inform user\nDone"
    assert extract_steps(text) == ["Open SU01", "Reset password", "Unlock user", "Inform user"]


def test_extract_steps_capped():
    text = "\n".join(f"{i}. step {i}" for i in range(1, 12))
    assert len(extract_steps(text)) == 7


def test_heuristic_extractor_builds_draft():
    issue = make_issue("NET-4", priority="")
    draft = HeuristicSolutionExtractor().extract(issue)

    assert draft.problem == "Problem in NET-4"
    assert draft.solution.startswith("Solved:")
    assert draft.system == "Network"
    assert draft.category == "NET"
    assert draft.priority == "Medium"


def test_heuristic_extractor_no_solution():
    assert HeuristicSolutionExtractor().extract(make_issue("NET-5", comment=None)) is None


# --- Model-based extraction ---

VALID_OUTPUT = {
    "has_solution": True,
    "problem": "VPN drops every few minutes",
    "root_cause": "Outdated Zscaler client",
    "solution": "Updated the Zscaler client",
    "steps": ["Uninstall client", " ", "Install 4.3"],
    "keywords": ["Zscaler", "VPN"],
}


def _make_response(payload):
    response = MagicMock()
    response.output_text = payload if isinstance(payload, str) else json.dumps(payload)
    return response


@pytest.fixture
def mock_openai_client():
    """Mock OpenAI client."""
    with patch("src.harvester.llm_extraction.OpenAI") as mock_class:
        mock_client = MagicMock()
        mock_class.return_value = mock_client
        yield mock_client


def test_validate_valid_output():
    assert validate_extraction_output(VALID_OUTPUT) == []


def test_validate_missing_fields():
    errors = validate_extraction_output({"has_solution": True})
    assert len(errors) == 5


def test_validate_types():
    data = dict(VALID_OUTPUT, has_solution="yes", steps="one")
    errors = validate_extraction_output(data)
    assert any("has_solution" in e for e in errors)
    assert any("steps" in e for e in errors)


def test_validate_empty_solution_with_flag():
    errors = validate_extraction_output(dict(VALID_OUTPUT, solution="  "))
    assert errors == ["solution: must be non-empty when has_solution is true"]


def test_validate_not_a_dict():
    assert validate_extraction_output([]) == ["Output must be a JSON object"]


def test_prompt_lists_comments_oldest_first():
    issue = Issue(key="INC-1", summary="VPN", comments=[
        Comment(body="second", created="2026-01-02", author="B"),
        Comment(body="first", created="2026-01-01", author="A"),
    ])
    prompt = format_issue_prompt(issue)
    assert prompt.index("A: first") < prompt.index("B: second")


def test_model_extraction_success(mock_openai_client):
    mock_openai_client.responses.create.return_value = _make_response(VALID_OUTPUT)
    draft = OpenAISolutionExtractor(api_key="sk-test").extract(make_issue("NET-1"))

    assert draft.problem == "VPN drops every few minutes"
    assert draft.root_cause == "Outdated Zscaler client"
    assert draft.steps == ["Uninstall client", "Install 4.3"]
    assert draft.keywords == ["zscaler", "vpn"]
    assert draft.category == "NET"
    mock_openai_client.responses.create.assert_called_once()


def test_model_extraction_no_solution(mock_openai_client):
    mock_openai_client.responses.create.return_value = _make_response(
        dict(VALID_OUTPUT, has_solution=False, solution="", steps=[], keywords=[])
    )
    assert OpenAISolutionExtractor(api_key="sk-test").extract(make_issue("NET-1")) is None


def test_model_extraction_retry_on_invalid(mock_openai_client):
    mock_openai_client.responses.create.side_effect = [
        _make_response("not json"),
        _make_response(VALID_OUTPUT),
    ]
    draft = OpenAISolutionExtractor(api_key="sk-test").extract(make_issue("NET-1"))
    assert draft is not None
    assert mock_openai_client.responses.create.call_count == 2


def test_model_extraction_fails_after_retries(mock_openai_client):
    mock_openai_client.responses.create.return_value = _make_response({"has_solution": True})
    with pytest.raises(ExtractionError, match="after 2 attempts"):
        OpenAISolutionExtractor(api_key="sk-test").extract(make_issue("NET-1"))
    assert mock_openai_client.responses.create.call_count == 2


def test_model_extraction_api_error(mock_openai_client):
    mock_openai_client.responses.create.side_effect = Exception("API timeout")
    with pytest.raises(ExtractionError, match="API timeout"):
        OpenAISolutionExtractor(api_key="sk-test").extract(make_issue("NET-1"))

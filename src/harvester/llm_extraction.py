"""
Model-based solution extraction.

Calls the Responses API with structured output, validates the result and
retries once on invalid output.
"""
import json
import logging
from typing import Any, Optional

from openai import OpenAI

from src.harvester.extraction import DEFAULT_PRIORITY, SolutionDraft, clean_comment_text
from src.harvester.ticket_source import Issue
from src.knowledge.models import MAX_STEPS
from src.shared.errors import ExtractionError, format_openai_error
from src.shared.text_analysis import MAX_KEYWORDS, detect_system

log = logging.getLogger(__name__)

MAX_PROMPT_COMMENTS = 10

SOLUTION_SCHEMA = {
    "type": "object",
    "properties": {
        "has_solution": {"type": "boolean"},
        "problem": {"type": "string"},
        "root_cause": {"type": "string"},
        "solution": {"type": "string"},
        "steps": {
            "type": "array",
            "items": {"type": "string"},
        },
        "keywords": {
            "type": "array",
            "items": {"type": "string"},
        },
    },
    "required": ["has_solution", "problem", "root_cause", "solution", "steps", "keywords"],
    "additionalProperties": False,
}

EXTRACTION_SYSTEM_PROMPT = """You are an IT support knowledge engineer. You receive a resolved
support ticket with its comments. Decide whether it contains a reusable solution that would help
someone facing the same problem again.

If it does, return:
- has_solution: true
- problem: one or two sentences describing the symptom
- root_cause: the cause if stated, otherwise an empty string
- solution: what fixed it, self-contained
- steps: ordered actionable steps (at most 7), empty if not applicable
- keywords: short search keywords (systems, error codes, products)

If the ticket was closed without a real fix (duplicate, no answer, user error without
guidance), return has_solution: false and empty strings/arrays for the other fields.
Return valid JSON matching the required schema."""


def validate_extraction_output(data: Any) -> list[str]:
    """
    Validate model output against SOLUTION_SCHEMA.

    Returns:
        List of validation error messages (empty if valid)
    """
    if not isinstance(data, dict):
        return ["Output must be a JSON object"]

    errors = []
    for field in SOLUTION_SCHEMA["required"]:
        if field not in data:
            errors.append(f"missing required field '{field}'")
    if errors:
        return errors

    if not isinstance(data["has_solution"], bool):
        errors.append("has_solution: must be a boolean")

    for field in ["problem", "root_cause", "solution"]:
        if not isinstance(data[field], str):
            errors.append(f"{field}: must be a string")

    for field in ["steps", "keywords"]:
        if not isinstance(data[field], list) or not all(isinstance(v, str) for v in data[field]):
            errors.append(f"{field}: must be an array of strings")

    if data.get("has_solution") is True and isinstance(data.get("solution"), str) \
            and not data["solution"].strip():
        errors.append("solution: must be non-empty when has_solution is true")

    return errors


def format_issue_prompt(issue: Issue) -> str:
    lines = [
        f"Ticket: {issue.key}",
        f"Project: {issue.project}",
        f"Summary: {issue.summary}",
        f"Description:\n{issue.description}",
        "",
        "Comments (oldest first):",
    ]
    comments = sorted(issue.comments, key=lambda c: c.created)[-MAX_PROMPT_COMMENTS:]
    for comment in comments:
        if comment.body and comment.body.strip():
            lines.append(f"[{comment.created}] {comment.author}: {comment.body.strip()}")
    return "\n".join(lines)


class OpenAISolutionExtractor:
    """
    Solution extraction with an OpenAI model.

    On schema invalid: 1 controlled retry, then ExtractionError.
    """

    def __init__(self, api_key: str | None = None, model: str = "gpt-5.2", max_retries: int = 1):
        self.client = OpenAI(api_key=api_key) if api_key else OpenAI()
        self.model = model
        self.max_retries = max_retries

    def _request(self, issue: Issue) -> dict:
        last_errors: list[str] = []

        for attempt in range(1 + self.max_retries):
            try:
                response = self.client.responses.create(
                    model=self.model,
                    instructions=EXTRACTION_SYSTEM_PROMPT,
                    input=format_issue_prompt(issue),
                    text={"format": {"type": "json_schema", "name": "ticket_solution", "schema": SOLUTION_SCHEMA}},
                )
                data = json.loads(response.output_text)
                errors = validate_extraction_output(data)
                if not errors:
                    return data
                last_errors = errors

            except json.JSONDecodeError as e:
                last_errors = [f"Invalid JSON: {e}"]
            except Exception as e:
                last_errors = [format_openai_error(e)]

            log.debug("Extraction attempt %d for %s failed: %s", attempt + 1, issue.key, last_errors)

        raise ExtractionError(
            f"Extraction failed for {issue.key} after {1 + self.max_retries} attempts. Errors: {last_errors}"
        )

    def extract(self, issue: Issue) -> Optional[SolutionDraft]:
        """
        Raises:
            ExtractionError: If output is invalid after all retries
        """
        data = self._request(issue)
        if not data["has_solution"]:
            return None

        return SolutionDraft(
            problem=data["problem"].strip() or issue.summary,
            solution=clean_comment_text(data["solution"]),
            root_cause=data["root_cause"].strip(),
            steps=[s.strip() for s in data["steps"] if s.strip()][:MAX_STEPS],
            system=detect_system(f"{issue.summary} {issue.description}"),
            category=issue.project,
            keywords=[k.strip().lower() for k in data["keywords"] if k.strip()][:MAX_KEYWORDS],
            priority=issue.priority or DEFAULT_PRIORITY,
        )

"""
Solution extraction strategies.

An extractor turns one resolved issue into a SolutionDraft, or None when the
issue carries no reusable solution. The harvester loop only depends on the
SolutionExtractor protocol.
"""
import re
from dataclasses import dataclass, field
from typing import Optional, Protocol

from src.harvester.ticket_source import Issue
from src.knowledge.models import MAX_STEPS
from src.shared.text_analysis import detect_system, extract_keywords

SOLUTION_KEYWORDS = (
    "solución", "solucion", "solved", "resuelto", "fixed", "resolved",
    "pasos:", "steps:", "to fix:", "para resolver:", "solution:",
    "se resolvió", "se solucionó", "done", "completado", "completed",
)

MIN_FALLBACK_COMMENT_LENGTH = 50
MAX_SOLUTION_LENGTH = 2000
DEFAULT_PRIORITY = "Medium"

_STEP_MARKER = re.compile(r"^(\d+[\.\)\-]|[\-\*\•])\s*")


@dataclass
class SolutionDraft:
    """Reusable solution extracted from a ticket, before embedding."""
    problem: str
    solution: str
    root_cause: str = ""
    steps: list[str] = field(default_factory=list)
    system: str = ""
    category: str = ""
    keywords: list[str] = field(default_factory=list)
    priority: str = DEFAULT_PRIORITY


class SolutionExtractor(Protocol):
    def extract(self, issue: Issue) -> Optional[SolutionDraft]: ...


def clean_comment_text(text: str) -> str:
    """Unescape literal newlines and cap the length."""
    cleaned = text.replace("\\n", "\n").replace("\\r", "").strip()
    if len(cleaned) > MAX_SOLUTION_LENGTH:
        cleaned = cleaned[:MAX_SOLUTION_LENGTH - 3] + "..."
    return cleaned


def extract_steps(text: str) -> list[str]:
    """Numbered or bulleted lines, markers stripped (at most MAX_STEPS)."""
    steps = []
    for line in text.split("\n"):
        trimmed = line.strip()
        if not _STEP_MARKER.match(trimmed):
            continue
        step = _STEP_MARKER.sub("", trimmed, count=1).strip()
        if step:
            steps.append(step)
    return steps[:MAX_STEPS]


def find_solution_text(issue: Issue) -> Optional[str]:
    """
    Pick the comment that most likely holds the solution.

    Newest comment mentioning a solution keyword wins; otherwise the newest
    comment longer than MIN_FALLBACK_COMMENT_LENGTH characters.
    """
    comments = sorted(issue.comments, key=lambda c: c.created, reverse=True)

    for comment in comments:
        if not comment.body or not comment.body.strip():
            continue
        body = comment.body.lower()
        if any(k in body for k in SOLUTION_KEYWORDS):
            return clean_comment_text(comment.body)

    for comment in comments:
        if comment.body and comment.body.strip() and len(comment.body) > MIN_FALLBACK_COMMENT_LENGTH:
            return clean_comment_text(comment.body)

    return None


class HeuristicSolutionExtractor:
    """Comment mining with fixed multilingual keyword lists."""

    def extract(self, issue: Issue) -> Optional[SolutionDraft]:
        solution_text = find_solution_text(issue)
        if not solution_text:
            return None

        return SolutionDraft(
            problem=issue.summary,
            solution=solution_text,
            steps=extract_steps(solution_text),
            system=detect_system(f"{issue.summary} {issue.description}"),
            category=issue.project,
            keywords=extract_keywords(f"{issue.summary} {solution_text}"),
            priority=issue.priority or DEFAULT_PRIORITY,
        )

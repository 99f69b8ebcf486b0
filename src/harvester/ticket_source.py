"""
Ticket source: resolved issues with comments from Jira Cloud (REST API v3).
"""
import logging
from dataclasses import dataclass, field
from typing import Any, Optional, Protocol, Sequence

import httpx

log = logging.getLogger(__name__)

SEARCH_PATH = "/rest/api/3/search/jql"
PAGE_SIZE = 50
ISSUE_FIELDS = [
    "key", "summary", "description", "status", "resolution", "priority",
    "project", "created", "resolutiondate", "comment",
]


@dataclass
class Comment:
    body: str
    created: str = ""
    author: str = ""


@dataclass
class Issue:
    """Resolved ticket as seen by the harvester."""
    key: str
    summary: str = ""
    description: str = ""
    status: str = ""
    resolution: str = ""
    priority: str = ""
    project: str = ""
    created: str = ""
    resolved: Optional[str] = None
    comments: list[Comment] = field(default_factory=list)


class TicketSource(Protocol):
    @property
    def is_configured(self) -> bool: ...

    def search_issues(self, jql: str, max_results: int = 50) -> list[Issue]: ...

    def get_resolved_issues(
        self,
        lookback_days: int = 7,
        project_keys: Optional[Sequence[str]] = None,
        max_results: int = 50,
    ) -> list[Issue]: ...


def build_resolved_jql(lookback_days: int, project_keys: Optional[Sequence[str]] = None) -> str:
    jql = f"resolved >= -{lookback_days}d"
    if project_keys:
        jql += f" AND project in ({', '.join(project_keys)})"
    return jql + " ORDER BY resolved DESC"


def adf_to_text(node: Any) -> str:
    """Flatten an Atlassian Document Format node (or plain string) to text."""
    if node is None:
        return ""
    if isinstance(node, str):
        return node
    if not isinstance(node, dict):
        return str(node)

    parts: list[str] = []
    _collect_adf(node.get("content") or [], parts)
    return "".join(parts).strip()


def _collect_adf(nodes: list, parts: list[str]) -> None:
    for node in nodes:
        if not isinstance(node, dict):
            continue
        node_type = node.get("type")
        if node_type == "text" and node.get("text"):
            parts.append(node["text"])
        elif node_type in ("hardBreak", "paragraph"):
            parts.append("\n")
        _collect_adf(node.get("content") or [], parts)


def _name(value: Any, key: str = "name") -> str:
    if isinstance(value, dict):
        result = value.get(key)
        return result if isinstance(result, str) else ""
    return ""


def parse_issue(raw: dict) -> Issue:
    fields = raw.get("fields") or {}
    comment_block = fields.get("comment") or {}
    comments = [
        Comment(
            body=adf_to_text(c.get("body")),
            created=c.get("created") or "",
            author=_name(c.get("author"), "displayName") or "Unknown",
        )
        for c in comment_block.get("comments") or []
        if isinstance(c, dict)
    ]
    return Issue(
        key=raw.get("key") or "",
        summary=fields.get("summary") or "",
        description=adf_to_text(fields.get("description")),
        status=_name(fields.get("status")),
        resolution=_name(fields.get("resolution")),
        priority=_name(fields.get("priority")),
        project=_name(fields.get("project"), "key"),
        created=fields.get("created") or "",
        resolved=fields.get("resolutiondate"),
        comments=comments,
    )


class JiraClient:
    """
    Minimal Jira Cloud client over httpx.

    Not configured (missing URL or credentials) -> every query returns [].
    HTTP and transport errors propagate to the caller.
    """

    def __init__(
        self,
        base_url: Optional[str],
        email: Optional[str],
        api_token: Optional[str],
        timeout: float = 30.0,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        self.base_url = (base_url or "").rstrip("/")
        self._configured = bool(self.base_url and email and api_token)
        self._client: Optional[httpx.Client] = None
        if self._configured:
            self._client = httpx.Client(
                base_url=self.base_url,
                auth=(email, api_token),
                headers={"Accept": "application/json"},
                timeout=timeout,
                transport=transport,
            )

    @property
    def is_configured(self) -> bool:
        return self._configured

    def browse_url(self, key: str) -> str:
        return f"{self.base_url}/browse/{key}"

    def close(self) -> None:
        if self._client is not None:
            self._client.close()

    def search_issues(self, jql: str, max_results: int = 50) -> list[Issue]:
        """Run a JQL query, following nextPageToken until max_results or the last page."""
        if not self._configured:
            log.warning("Jira client not configured")
            return []

        issues: list[Issue] = []
        next_page_token: Optional[str] = None
        while len(issues) < max_results:
            body: dict[str, Any] = {
                "jql": jql,
                "maxResults": min(PAGE_SIZE, max_results - len(issues)),
                "fields": ISSUE_FIELDS,
            }
            if next_page_token:
                body["nextPageToken"] = next_page_token

            response = self._client.post(SEARCH_PATH, json=body)
            response.raise_for_status()
            data = response.json()

            page = data.get("issues") or []
            if not page:
                break
            issues.extend(parse_issue(raw) for raw in page if isinstance(raw, dict))

            next_page_token = data.get("nextPageToken")
            if data.get("isLast") or not next_page_token:
                break

        log.info("Jira search returned %d issues", len(issues))
        return issues[:max_results]

    def get_resolved_issues(
        self,
        lookback_days: int = 7,
        project_keys: Optional[Sequence[str]] = None,
        max_results: int = 50,
    ) -> list[Issue]:
        return self.search_issues(build_resolved_jql(lookback_days, project_keys), max_results)

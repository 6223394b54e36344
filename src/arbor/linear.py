"""Linear GraphQL client for arbor."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

import httpx

from arbor.config import DEFAULT_LINEAR_API_URL

REQUEST_TIMEOUT = 20.0
PAGE_SIZE = 100

_ISSUE_FIELDS = """
    identifier
    title
    description
    url
    priority
    priorityLabel
    state { name type }
    labels { nodes { name } }
    project { id name }
"""

ASSIGNED_ISSUES_QUERY = (
    """
query AssignedIssues($first: Int!, $after: String) {
  viewer {
    assignedIssues(
      first: $first
      after: $after
      filter: { state: { type: { nin: ["completed", "canceled"] } } }
    ) {
      nodes {"""
    + _ISSUE_FIELDS
    + """}
      pageInfo { hasNextPage endCursor }
    }
  }
}
"""
)

ISSUE_QUERY = (
    """
query Issue($id: String!) {
  issue(id: $id) {"""
    + _ISSUE_FIELDS
    + """}
}
"""
)


class LinearError(Exception):
    """Linear API error."""

    pass


@dataclass(frozen=True)
class TicketState:
    name: str
    type: str  # backlog, unstarted, started, triage, completed, canceled, orphaned


@dataclass(frozen=True)
class Ticket:
    """An issue-tracker ticket, snapshot for one refresh cycle."""

    identifier: str
    title: str
    url: str
    state: TicketState
    description: str | None = None
    priority: int = 0
    priority_label: str = "No priority"
    labels: tuple[str, ...] = field(default_factory=tuple)
    project_id: str | None = None
    project_name: str | None = None


def parse_ticket(node: dict[str, Any]) -> Ticket:
    """Build a Ticket from a GraphQL issue node."""
    state = node.get("state") or {}
    project = node.get("project") or {}
    labels = (node.get("labels") or {}).get("nodes") or []
    return Ticket(
        identifier=node["identifier"],
        title=node.get("title") or "",
        url=node.get("url") or "",
        state=TicketState(name=state.get("name") or "", type=state.get("type") or "other"),
        description=node.get("description"),
        priority=int(node.get("priority") or 0),
        priority_label=node.get("priorityLabel") or "No priority",
        labels=tuple(label["name"] for label in labels if label.get("name")),
        project_id=project.get("id"),
        project_name=project.get("name"),
    )


async def _graphql(
    client: httpx.AsyncClient,
    api_key: str,
    api_url: str,
    query: str,
    variables: dict[str, Any],
) -> dict[str, Any]:
    try:
        response = await client.post(
            api_url,
            json={"query": query, "variables": variables},
            headers={"Authorization": api_key, "Content-Type": "application/json"},
        )
    except httpx.HTTPError as e:
        raise LinearError(f"Linear request failed: {e}") from e

    if response.status_code == 401:
        raise LinearError("Linear rejected the API key. Check LINEAR_API_KEY.")
    if response.status_code != 200:
        raise LinearError(f"Linear API returned {response.status_code}: {response.text[:200]}")

    try:
        payload = response.json()
    except ValueError as e:
        raise LinearError("Linear API returned invalid JSON") from e

    if payload.get("errors"):
        messages = "; ".join(err.get("message", "unknown error") for err in payload["errors"])
        raise LinearError(f"Linear API error: {messages}")
    return payload.get("data") or {}


async def fetch_assigned_issues(
    api_key: str | None,
    api_url: str = DEFAULT_LINEAR_API_URL,
    client: httpx.AsyncClient | None = None,
) -> list[Ticket]:
    """Fetch open tickets assigned to the API key's user.

    Raises:
        LinearError: if no key is configured or the API can't be queried
    """
    if not api_key:
        raise LinearError("No Linear API key configured (set LINEAR_API_KEY)")

    owns_client = client is None
    if client is None:
        client = httpx.AsyncClient(timeout=REQUEST_TIMEOUT)

    tickets: list[Ticket] = []
    after: str | None = None
    try:
        while True:
            data = await _graphql(
                client,
                api_key,
                api_url,
                ASSIGNED_ISSUES_QUERY,
                {"first": PAGE_SIZE, "after": after},
            )
            connection = ((data.get("viewer") or {}).get("assignedIssues")) or {}
            tickets.extend(parse_ticket(node) for node in connection.get("nodes") or [])
            page_info = connection.get("pageInfo") or {}
            if not page_info.get("hasNextPage"):
                break
            after = page_info.get("endCursor")
    finally:
        if owns_client:
            await client.aclose()

    return tickets


async def fetch_issue(
    identifier: str,
    api_key: str | None,
    api_url: str = DEFAULT_LINEAR_API_URL,
) -> Ticket | None:
    """Fetch a single ticket by identifier, None if it doesn't exist."""
    if not api_key:
        raise LinearError("No Linear API key configured (set LINEAR_API_KEY)")

    async with httpx.AsyncClient(timeout=REQUEST_TIMEOUT) as client:
        data = await _graphql(client, api_key, api_url, ISSUE_QUERY, {"id": identifier})
    node = data.get("issue")
    return parse_ticket(node) if node else None

"""
Linear GraphQL client.
"""

from __future__ import annotations

from typing import Any

from .base import BaseIntegration, IntegrationError

ISSUES_QUERY = """
query RecentIssues($first: Int!) {
  issues(first: $first, orderBy: updatedAt) {
    nodes { id identifier title url updatedAt state { name } }
  }
}
"""

CREATE_ISSUE_MUTATION = """
mutation CreateIssue($input: IssueCreateInput!) {
  issueCreate(input: $input) {
    success
    issue { id identifier title url }
  }
}
"""


class LinearIntegration(BaseIntegration):
    type = "LINEAR"
    base_url = "https://api.linear.app"
    actions = {
        "create_issue": "create_issue",
        "create_linear_issue": "create_issue",
        "get_issues": "get_issues",
    }

    async def graphql(self, query: str, variables: dict[str, Any] | None = None) -> dict[str, Any]:
        data = await self.request("POST", "/graphql", json={"query": query, "variables": variables or {}})
        if not isinstance(data, dict):
            raise IntegrationError("LINEAR returned an empty response.")
        errors = data.get("errors")
        if errors:
            message = "; ".join(str(err.get("message") or err) for err in errors)
            raise IntegrationError(f"LINEAR request failed: {message}")
        return data.get("data") or {}

    async def ping(self) -> None:
        await self.graphql("query { viewer { id } }")

    async def get_issues(self, limit: int = 10) -> list[dict[str, Any]]:
        data = await self.graphql(ISSUES_QUERY, {"first": limit})
        return ((data.get("issues") or {}).get("nodes")) or []

    async def create_issue(self, team_id: str, title: str, description: str | None = None) -> dict[str, Any]:
        issue_input: dict[str, Any] = {"teamId": team_id, "title": title}
        if description:
            issue_input["description"] = description
        data = await self.graphql(CREATE_ISSUE_MUTATION, {"input": issue_input})
        result = data.get("issueCreate") or {}
        if not result.get("success"):
            raise IntegrationError("LINEAR issue was not created.")
        return result.get("issue") or {}

    async def get_recent_data(self) -> list[dict[str, Any]]:
        return await self.get_issues()

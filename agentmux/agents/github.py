"""GitHub REST agent for issue listing, creation and comments."""
from __future__ import annotations

from typing import Any, Dict, Optional

import httpx
from pydantic import Field

from agentmux.agents.base import ActionAgent, ActionPayload
from agentmux.core.logging import get_logger

logger = get_logger(__name__)

# Owner and repo end up in the URL path.
SLUG_PATTERN = r"^[A-Za-z0-9_.-]+$"


class RepoPayload(ActionPayload):
    owner: str = Field(..., pattern=SLUG_PATTERN)
    repo: str = Field(..., pattern=SLUG_PATTERN)


class CreateIssuePayload(RepoPayload):
    title: str = Field(..., min_length=1)
    body: Optional[str] = None


class CreateCommentPayload(RepoPayload):
    issue_number: int = Field(..., alias="issueNumber", gt=0)
    body: str = Field(..., min_length=1)


class GithubAgent(ActionAgent):
    name = "github"
    actions = {
        "listIssues": RepoPayload,
        "createIssue": CreateIssuePayload,
        "createComment": CreateCommentPayload,
    }

    def __init__(
        self,
        *,
        token: Optional[str],
        api_url: str = "https://api.github.com",
        timeout_seconds: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._token = token
        self._api_url = api_url
        self._timeout = httpx.Timeout(timeout_seconds, connect=10.0)
        self._transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self._api_url,
            headers={
                "Authorization": f"Bearer {self._token}",
                "Accept": "application/vnd.github+json",
                "X-GitHub-Api-Version": "2022-11-28",
            },
            timeout=self._timeout,
            transport=self._transport,
        )

    async def handle(self, action: str, payload: Any) -> Dict[str, Any]:
        if not self._token:
            raise RuntimeError("GitHub agent is not configured. GITHUB_TOKEN is missing.")

        repo_path = f"/repos/{payload.owner}/{payload.repo}"
        async with self._client() as client:
            if action == "listIssues":
                response = await client.get(f"{repo_path}/issues")
                response.raise_for_status()
                return {"issues": response.json()}

            if action == "createIssue":
                body: Dict[str, Any] = {"title": payload.title}
                if payload.body is not None:
                    body["body"] = payload.body
                response = await client.post(f"{repo_path}/issues", json=body)
                response.raise_for_status()
                issue = response.json()
                logger.info("github_issue_created", owner=payload.owner, repo=payload.repo, number=issue.get("number"))
                return {"issue": issue, "success": True}

            response = await client.post(
                f"{repo_path}/issues/{payload.issue_number}/comments",
                json={"body": payload.body},
            )
            response.raise_for_status()
            return {"comment": response.json(), "success": True}


def build_handler(
    *,
    token: Optional[str],
    api_url: str = "https://api.github.com",
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> GithubAgent:
    return GithubAgent(token=token, api_url=api_url, transport=transport)

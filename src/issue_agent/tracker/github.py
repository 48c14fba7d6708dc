"""GitHub REST implementation of :class:`~issue_agent.tracker.base.IssueTracker`."""

from __future__ import annotations

import json
import logging
import urllib.parse
from typing import Any, Callable, Dict, List, Mapping, Optional

from .base import ChangeRequest, TrackerError, WorkItem

__all__ = ["DEFAULT_API_URL", "GithubIssueTracker", "MAX_BODY_CHARS"]

LOGGER = logging.getLogger(__name__)

DEFAULT_API_URL = "https://api.github.com"
MAX_BODY_CHARS = 65000

Transport = Callable[[str, str, Optional[Dict[str, Any]]], Any]


class GithubIssueTracker:
    """Issue tracker backed by the GitHub REST API."""

    def __init__(
        self,
        owner: str,
        repo: str,
        *,
        token: Optional[str] = None,
        api_url: str = DEFAULT_API_URL,
        page_size: int = 10,
        timeout: float = 30.0,
        transport: Optional[Transport] = None,
    ) -> None:
        self.owner = owner
        self.repo = repo
        self._token = token
        self._api_url = api_url.rstrip("/")
        self._page_size = page_size
        self._timeout = timeout
        self._transport = transport or self._http_transport

    @property
    def _repo_path(self) -> str:
        return f"/repos/{self.owner}/{self.repo}"

    def list_eligible(self, label: str) -> List[WorkItem]:
        """Return open issues carrying ``label`` ordered by creation date."""
        query = urllib.parse.urlencode(
            {
                "state": "open",
                "labels": label,
                "per_page": self._page_size,
                "sort": "created",
                "direction": "asc",
            }
        )
        payload = self._request("GET", f"{self._repo_path}/issues?{query}")
        if not isinstance(payload, list):
            raise TrackerError("Unexpected issue list payload from GitHub.")

        items: List[WorkItem] = []
        for entry in payload:
            if not isinstance(entry, Mapping) or entry.get("pull_request"):
                continue
            number = entry.get("number")
            if not isinstance(number, int):
                continue
            items.append(
                WorkItem(
                    number=number,
                    title=str(entry.get("title") or f"issue-{number}"),
                    body=str(entry.get("body") or ""),
                )
            )
        return items

    def comment(self, number: int, body: str) -> None:
        self._request(
            "POST",
            f"{self._repo_path}/issues/{number}/comments",
            {"body": body[:MAX_BODY_CHARS]},
        )

    def open_change_request(self, head: str, base: str, title: str, body: str) -> ChangeRequest:
        payload = self._request(
            "POST",
            f"{self._repo_path}/pulls",
            {"title": title, "head": head, "base": base, "body": body[:MAX_BODY_CHARS]},
        )
        if not isinstance(payload, Mapping) or not payload.get("html_url"):
            raise TrackerError("GitHub did not return a pull request URL.")
        return ChangeRequest(number=int(payload.get("number") or 0), url=str(payload["html_url"]))

    # ------------------------------------------------------------ transport
    def _request(self, method: str, path: str, body: Optional[Dict[str, Any]] = None) -> Any:
        try:
            return self._transport(method, path, body)
        except TrackerError:
            raise
        except Exception as error:
            raise TrackerError(f"GitHub request {method} {path} failed: {error}") from error

    def _http_transport(self, method: str, path: str, body: Optional[Dict[str, Any]]) -> Any:
        """Default HTTP transport for the GitHub REST API."""
        import urllib.error
        import urllib.request

        headers = {
            "Accept": "application/vnd.github+json",
            "X-GitHub-Api-Version": "2022-11-28",
            "User-Agent": "issue-agent",
        }
        if self._token:
            headers["Authorization"] = f"Bearer {self._token}"
        data = None
        if body is not None:
            data = json.dumps(body).encode("utf-8")
            headers["Content-Type"] = "application/json"

        request = urllib.request.Request(f"{self._api_url}{path}", data=data, headers=headers, method=method)
        LOGGER.debug("GitHub %s %s", method, path)
        try:
            with urllib.request.urlopen(request, timeout=self._timeout) as response:
                raw = response.read()
        except urllib.error.HTTPError as error:  # pragma: no cover - network-dependent
            message = error.read().decode("utf-8", errors="ignore")
            raise TrackerError(f"GitHub {method} {path} failed: HTTP {error.code} {message}") from error
        except urllib.error.URLError as error:  # pragma: no cover - network-dependent
            raise TrackerError(f"Failed to reach GitHub: {error.reason}") from error
        except TimeoutError as error:  # pragma: no cover - network-dependent
            raise TrackerError(f"GitHub {method} {path} timed out.") from error

        if not raw:
            return None
        try:
            return json.loads(raw.decode("utf-8"))
        except json.JSONDecodeError as error:
            raise TrackerError(f"GitHub returned invalid JSON for {method} {path}.") from error

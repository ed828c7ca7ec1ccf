import logging
import threading
from typing import Any

import requests

from ..config import Config
from ..constants import REQUIRED_CREATE_FIELDS
from ..errors import MissingRequiredFieldError, RemoteRequestError

logger = logging.getLogger(__name__)

SEARCH_PAGE_SIZE = 1000


class JiraClient:
    def __init__(self, config: Config):
        self.config = config
        self._thread_local = threading.local()
        self.api_url = self._get_api_url()

    @property
    def session(self) -> requests.Session:
        """Accessor for the current thread's session."""
        return self._get_session()

    def _get_api_url(self) -> str:
        return f"{self.config.jira_url.rstrip('/')}/rest/api/{self.config.api_version}"

    def _get_session(self) -> requests.Session:
        """Get or create a thread-local requests.Session."""
        if not hasattr(self._thread_local, "session"):
            self._thread_local.session = self._create_session()
        return self._thread_local.session

    def _create_session(self) -> requests.Session:
        session = requests.Session()
        session.verify = not self.config.insecure
        session.headers.update(
            {"Accept": "application/json", "Content-Type": "application/json"}
        )
        match self.config.auth_method:
            case "basic":
                session.auth = (
                    self.config.username,
                    self.config.api_token or self.config.password,
                )
            case "bearer":
                session.headers["Authorization"] = (
                    f"Bearer {self.config.api_token}"
                )
        return session

    def authenticate(self) -> None:
        """Establish credentials on the current thread's session.

        For session auth this posts to ``/rest/auth/1/session`` and stores the
        returned cookie; basic and bearer credentials are static.
        """
        if self.config.auth_method != "session":
            return
        session = self._get_session()
        url = f"{self.config.jira_url.rstrip('/')}/rest/auth/1/session"
        response = session.post(
            url,
            json={
                "username": self.config.username,
                "password": self.config.password,
            },
            timeout=(10, 60),
        )
        if not response.ok:
            raise RemoteRequestError(
                response.status_code, response.text, "POST", "/rest/auth/1/session"
            )
        info = response.json().get("session", {})
        name = info.get("name") or self.config.session_cookie_name
        session.cookies.set(name, info.get("value", ""))
        self._thread_local.authenticated = True
        logger.debug("Authenticated Jira session for %s", self.config.username)

    def _request(
        self,
        method: str,
        path: str,
        payload: Any = None,
        params: dict[str, Any] | None = None,
    ) -> Any:
        """Make a REST call, re-authenticating and retrying once on 401."""
        if self.config.auth_method == "session" and not getattr(
            self._thread_local, "authenticated", False
        ):
            self.authenticate()

        url = f"{self.api_url}{path}"
        response = self._send(method, url, payload, params)
        if response.status_code == 401:
            logger.info("Jira returned 401 for %s %s, re-authenticating", method, path)
            self._thread_local.authenticated = False
            self.authenticate()
            response = self._send(method, url, payload, params)

        if not response.ok:
            raise RemoteRequestError(
                response.status_code, response.text, method, path
            )
        if response.status_code == 204 or not response.content:
            return None
        return response.json()

    def _send(
        self,
        method: str,
        url: str,
        payload: Any,
        params: dict[str, Any] | None,
    ) -> requests.Response:
        return self._get_session().request(
            method,
            url,
            json=payload,
            params=params,
            timeout=(10, 60),
        )

    def validate_connection(self) -> str:
        """
        Validate connection by fetching the current user.
        Returns the user's display name if successful.
        """
        user = self._request("GET", "/myself") or {}
        return str(user.get("displayName") or user.get("name") or "")

    def fetch_issue(self, key: str) -> dict[str, Any]:
        """
        Get issue details by key.
        """
        return self._request("GET", f"/issue/{key}")

    def create_issue(self, fields: dict[str, Any]) -> dict[str, Any]:
        """
        Create a new issue.

        Args:
            fields: Jira ``fields`` payload (summary, project, issuetype required)

        Returns:
            Created issue reference: ``{"id", "key", "self"}``

        Raises:
            MissingRequiredFieldError: If a required field is absent
            RemoteRequestError: If Jira rejects the request
        """
        missing = [name for name in REQUIRED_CREATE_FIELDS if not fields.get(name)]
        if missing:
            raise MissingRequiredFieldError(missing)
        return self._request("POST", "/issue", {"fields": fields})

    def update_issue(self, key: str, fields: dict[str, Any]) -> None:
        """
        Update fields of an existing issue.
        """
        self._request("PUT", f"/issue/{key}", {"fields": fields})

    def fetch_transitions(self, key: str) -> list[dict[str, str]]:
        """
        List transitions available for an issue.

        Returns:
            ``[{"id", "action", "status"}]`` where action is the transition
            name and status the target status name.
        """
        data = self._request("GET", f"/issue/{key}/transitions") or {}
        return [
            {
                "id": str(t.get("id", "")),
                "action": t.get("name", ""),
                "status": (t.get("to") or {}).get("name", ""),
            }
            for t in data.get("transitions", [])
        ]

    def transition_issue(self, key: str, transition_id: str) -> None:
        self._request(
            "POST",
            f"/issue/{key}/transitions",
            {"transition": {"id": str(transition_id)}},
        )

    def post_work_log(
        self,
        key: str,
        time_spent: str,
        started_at: str,
        comment: str = "",
    ) -> dict[str, Any]:
        """
        Add a work-log entry to an issue.

        Args:
            key: Issue key
            time_spent: Jira duration, e.g. "1h 30m"
            started_at: Timestamp in ``YYYY-MM-DDTHH:MM:SS.000+0000`` form
            comment: Optional comment
        """
        return self._request(
            "POST",
            f"/issue/{key}/worklog",
            {"timeSpent": time_spent, "started": started_at, "comment": comment},
        )

    def search_by_query(
        self,
        jql: str,
        max_results: int = 50,
        start_at: int = 0,
        fields: list[str] | None = None,
    ) -> dict[str, Any]:
        """
        Search issues with JQL.

        Returns:
            ``{"total": int, "issues": [...]}``
        """
        payload: dict[str, Any] = {
            "jql": jql,
            "maxResults": max_results,
            "startAt": start_at,
        }
        if fields:
            payload["fields"] = fields
        data = self._request("POST", "/search", payload) or {}
        return {
            "total": int(data.get("total", 0)),
            "issues": data.get("issues", []),
        }

    def fetch_issues_by_query(
        self,
        jql: str,
        limit: int | None = None,
        fields: list[str] | None = None,
    ) -> list[dict[str, Any]]:
        """
        Fetch every issue matching a JQL query, paging as needed.

        Args:
            jql: Query
            limit: Stop after this many issues (None: all)
            fields: Field names to request (None: Jira's default set)
        """
        issues: list[dict[str, Any]] = []
        start_at = 0
        while True:
            page_size = SEARCH_PAGE_SIZE
            if limit is not None:
                page_size = min(page_size, limit - len(issues))
                if page_size <= 0:
                    break
            page = self.search_by_query(jql, page_size, start_at, fields)
            batch = page["issues"]
            issues.extend(batch)
            start_at += len(batch)
            if not batch or start_at >= page["total"]:
                break
        logger.debug("Fetched %d issues for query %r", len(issues), jql)
        return issues

import base64
import time
from typing import Any, Dict, List, Optional

import requests

from .errors import InvalidArgument, RemoteUnavailable
from .logger import get_logger

logger = get_logger("jira")

MAX_SEARCH_SIZE = 1000
IDEMPOTENT_METHODS = {"GET", "PUT", "DELETE"}


def _as_int(name: str, value: Any) -> Optional[int]:
    if value is None or value == "":
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        raise InvalidArgument(f"Invalid {name}: {value!r}")


class JiraClient:
    """
    Jira REST API (v2) client.

    Idempotent calls are retried on connection errors, timeouts and 5xx
    responses with a fixed delay between attempts. Whatever still fails is
    raised as RemoteUnavailable.
    """

    def __init__(
        self,
        base_url: str,
        username: str,
        password: str,
        timeout_s: float = 30,
        max_attempts: int = 6,
        backoff_s: float = 1.0,
        session: Optional[requests.Session] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.api_url = f"{self.base_url}/rest/api/2"
        token = base64.b64encode(f"{username}:{password}".encode("utf-8")).decode("utf-8")
        self._auth_header = f"Basic {token}"
        self.timeout_s = timeout_s
        self.max_attempts = max(1, int(max_attempts))
        self.backoff_s = backoff_s
        self.session = session or requests.Session()

    def _headers(self) -> Dict[str, str]:
        return {
            "Authorization": self._auth_header,
            "Accept": "application/json",
            "Content-Type": "application/json",
        }

    def _request(
        self,
        method: str,
        path: str,
        params: Optional[Dict[str, Any]] = None,
        payload: Optional[Dict[str, Any]] = None,
    ) -> Any:
        url = f"{self.api_url}{path}"
        attempts = self.max_attempts if method in IDEMPOTENT_METHODS else 1
        last_error: Optional[RemoteUnavailable] = None

        for attempt in range(1, attempts + 1):
            try:
                r = self.session.request(
                    method,
                    url,
                    headers=self._headers(),
                    params=params,
                    json=payload,
                    timeout=self.timeout_s,
                )
            except (requests.ConnectionError, requests.Timeout) as e:
                last_error = RemoteUnavailable(f"{method} {path} failed: {e}")
            except requests.RequestException as e:
                # Broken bodies and bad URLs fail on the first attempt
                raise RemoteUnavailable(f"{method} {path} failed: {e}") from e
            else:
                if r.status_code >= 500:
                    last_error = RemoteUnavailable(
                        f"{method} {path} returned {r.status_code}: {(r.text or '')[:200]}",
                        status_code=r.status_code,
                    )
                elif r.status_code >= 400:
                    raise RemoteUnavailable(
                        f"{method} {path} returned {r.status_code}: {(r.text or '')[:200]}",
                        status_code=r.status_code,
                    )
                else:
                    return self._body(r)

            if attempt < attempts:
                logger.warning(f"Jira call failed (attempt {attempt}/{attempts}): {last_error}, retrying in {self.backoff_s}s")
                time.sleep(self.backoff_s)

        raise last_error or RemoteUnavailable(f"{method} {path} failed")

    @staticmethod
    def _body(r: requests.Response) -> Any:
        if r.status_code == 204 or not r.text:
            return None
        try:
            return r.json()
        except ValueError:
            return None

    def search(self, query: Optional[str], offset: Any = None, size: Any = None) -> Dict[str, Any]:
        """
        Run a JQL search.

        Args:
            query: JQL query
            offset: index of the first result (startAt)
            size: maximum number of results (maxResults), at most 1000

        Raises:
            InvalidArgument: size is above 1000 or offset/size are not numbers
        """
        start_at = _as_int("offset", offset)
        max_results = _as_int("size", size)
        if max_results is not None and max_results > MAX_SEARCH_SIZE:
            raise InvalidArgument("Size cannot be greater than 1,000")

        params: Dict[str, Any] = {"jql": query or ""}
        if start_at is not None:
            params["startAt"] = start_at
        if max_results is not None:
            params["maxResults"] = max_results
        return self._request("GET", "/search", params=params) or {}

    def get_issue(self, issue_key: str) -> Dict[str, Any]:
        return self._request("GET", f"/issue/{issue_key}")

    def create_issue(self, issue: Dict[str, Any]) -> Dict[str, Any]:
        """Create an issue. Returns Jira's {id, key, self} reference."""
        return self._request("POST", "/issue", payload={"fields": issue.get("fields") or {}})

    def update_issue(self, issue: Dict[str, Any]) -> Dict[str, str]:
        issue_key = issue.get("key")
        if not issue_key:
            raise InvalidArgument("Issue key is required to update an issue")
        self._request("PUT", f"/issue/{issue_key}", payload={"fields": issue.get("fields") or {}})
        return {"key": issue_key}

    def delete_issue(self, issue_key: str) -> Dict[str, str]:
        self._request("DELETE", f"/issue/{issue_key}")
        return {"key": issue_key}

    def add_comment(self, issue_key: str, body: Optional[str]) -> Dict[str, Any]:
        """Add a comment in wiki markup. Returns the created comment."""
        return self._request("POST", f"/issue/{issue_key}/comment", payload={"body": body or ""})

    def get_transitions(self, issue_key: str) -> List[Dict[str, Any]]:
        result = self._request("GET", f"/issue/{issue_key}/transitions") or {}
        return result.get("transitions", [])

    def transition(self, issue_key: str, transition_id: str) -> None:
        payload = {"transition": {"id": transition_id}}
        self._request("POST", f"/issue/{issue_key}/transitions", payload=payload)

    def get_fields(self) -> List[Dict[str, Any]]:
        return self._request("GET", "/field") or []

    def get_project(self, project_id: Any) -> Dict[str, Any]:
        return self._request("GET", f"/project/{project_id}")

    def server_info(self, do_health_check: bool = False) -> Dict[str, Any]:
        params = {"doHealthCheck": "true" if do_health_check else "false"}
        return self._request("GET", "/serverInfo", params=params)

"""
Boundary functions called by the application.

Each function takes the application's JSON parameters, talks to Jira through
the client and returns application JSON. Missing identifiers are rejected
with InvalidArgument before any request is made.
"""
from typing import Any, Dict, Optional

from .errors import InvalidArgument, RemoteUnavailable
from .field_cache import FieldSchemaCache
from .issue_mapper import IssueMapper
from .jira import JiraClient
from .logger import get_logger, log_performance

logger = get_logger("service")

Params = Optional[Dict[str, Any]]


def _required(params: Dict[str, Any], name: str) -> Any:
    value = params.get(name)
    if value is None or (isinstance(value, str) and not value.strip()):
        raise InvalidArgument(f"Parameter [{name}] is required")
    return value


def _flag(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in ("true", "1", "yes")
    return bool(value)


class IssueService:
    def __init__(self, client: JiraClient, fields_cache: FieldSchemaCache, mapper: IssueMapper):
        self.client = client
        self.fields_cache = fields_cache
        self.mapper = mapper

    def warm_up(self) -> None:
        """Load field metadata up front; Jira being down is not fatal."""
        try:
            count = self.fields_cache.refresh()
            logger.info(f"Fields cache loaded with {count} fields")
        except RemoteUnavailable as e:
            logger.warning(f"Could not load fields cache at startup, will retry lazily: {e}")

    def _read_issue(self, issue_key: str) -> Dict[str, Any]:
        jira_issue = self.client.get_issue(issue_key)
        if not jira_issue:
            raise RemoteUnavailable(f"Jira returned no data for issue {issue_key}")
        return self.mapper.issue_to_app(jira_issue)

    @log_performance("find_issues")
    def find_issues(self, params: Params) -> Optional[Dict[str, Any]]:
        params = params or {}
        result = self.client.search(params.get("query"), params.get("offset"), params.get("size"))
        return self.mapper.search_result_to_app(result)

    @log_performance("find_issue")
    def find_issue(self, params: Params) -> Dict[str, Any]:
        issue_key = _required(params or {}, "key")
        return self._read_issue(issue_key)

    @log_performance("create_issue")
    def create_issue(self, params: Params) -> Dict[str, Any]:
        """Create the issue, then read it back so the caller gets every field Jira filled in."""
        jira_issue = self.mapper.issue_to_tracker(params or {})
        created = self.client.create_issue(jira_issue) or {}
        issue_key = created.get("key")
        if not issue_key:
            raise RemoteUnavailable("Jira did not return the key of the created issue")
        logger.info(f"Created issue {issue_key}", extra={"issue_key": issue_key})
        return self._read_issue(issue_key)

    @log_performance("update_issue")
    def update_issue(self, params: Params) -> Dict[str, str]:
        params = params or {}
        _required(params, "key")
        return self.client.update_issue(self.mapper.issue_to_tracker(params))

    @log_performance("delete_issue")
    def delete_issue(self, params: Params) -> Dict[str, str]:
        issue_key = _required(params or {}, "key")
        return self.client.delete_issue(issue_key)

    @log_performance("add_comment")
    def add_comment(self, params: Params) -> Dict[str, Any]:
        params = params or {}
        _required(params, "issueKey")
        comment = self.mapper.comment_to_tracker(params)
        created = self.client.add_comment(comment["issueKey"], comment["body"]) or {}
        return self.mapper.comment_to_app(created)

    @log_performance("do_transition")
    def do_transition(self, params: Params) -> Dict[str, Any]:
        """
        Move an issue through a workflow transition.

        Args:
            params: issueKey plus either transitionId or transitionName
                (names match case-insensitively)

        Returns:
            The issue after the transition

        Raises:
            InvalidArgument: the issue has no transitions or none matches
        """
        params = params or {}
        issue_key = _required(params, "issueKey")
        transition_id = params.get("transitionId")
        transition_name = params.get("transitionName")
        if transition_id is None and not transition_name:
            raise InvalidArgument("Parameter [transitionId] or [transitionName] is required")

        transitions = self.client.get_transitions(issue_key)
        if not transitions:
            raise InvalidArgument(f"No transitions available for issue {issue_key}")

        match = None
        for t in transitions:
            if transition_id is not None and str(t.get("id")) == str(transition_id):
                match = t
                break
            if transition_name and (t.get("name") or "").strip().lower() == str(transition_name).strip().lower():
                match = t
                break
        if match is None:
            available = [t.get("name") for t in transitions]
            raise InvalidArgument(
                f"Invalid transition [{transition_id or transition_name}] for issue {issue_key}. Available: {available}"
            )

        self.client.transition(issue_key, match["id"])
        logger.info(f"Transitioned {issue_key} with [{match.get('name')}]", extra={"issue_key": issue_key})
        return self._read_issue(issue_key)

    @log_performance("server_info")
    def server_info(self, params: Params) -> Dict[str, Any]:
        params = params or {}
        return self.client.server_info(_flag(params.get("doHealthCheck")))

"""
Converts issues, comments, work logs and attachments between the Jira wire
format and the flatter format used by applications.

Inbound (Jira -> app) conversion never fails on missing data: absent numbers
default to zero and absent references come out as None. Outbound (app -> Jira)
conversion only emits the keys present in the input, so it can be used for
partial updates.
"""
from decimal import Decimal
from typing import Any, Callable, Dict, List, Optional, Tuple

from .field_cache import FieldDescriptor, FieldSchemaCache, ValueType
from .logger import get_logger
from .markup import to_wiki, wiki_to_html, wiki_to_text
from .time_utils import format_jira_date, parse_jira_date, parse_seconds

logger = get_logger("issue_mapper")

CUSTOM_FIELD_PREFIX = "customfield_"

Converter = Callable[[Any], Any]


def as_list(value: Any) -> List[Any]:
    """
    Normalize a value that should be a list.

    Jira sometimes sends a single object for fields declared as arrays, so a
    bare value becomes a one element list.
    """
    if isinstance(value, (list, tuple)):
        return list(value)
    return [value]


def _identity(value: Any) -> Any:
    return value


def _enum(*additional_fields: str) -> Converter:
    """Builds a converter for Jira reference objects ({id, name, ...})."""

    def convert(value: Any) -> Any:
        if not isinstance(value, dict):
            return value
        enum_value: Dict[str, Any] = {}
        if "id" in value:
            enum_value["id"] = value.get("id")
        enum_value["name"] = value.get("name")
        for field in additional_fields:
            if field in value:
                enum_value[field] = value.get(field)
        return enum_value

    return convert


def _wrap(key: str) -> Converter:
    def convert(value: Any) -> Any:
        return {key: value}

    return convert


def _parse_datetime(value: Any) -> Any:
    if isinstance(value, str):
        return parse_jira_date(value)
    return value


def _format_datetime(value: Any) -> Any:
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return format_jira_date(int(value))
    return value


def issue_ref(value: Any) -> Optional[Dict[str, Any]]:
    """Lightweight {id, key, summary} reference used for links, parents and sub-tasks."""
    if not isinstance(value, dict):
        return None
    fields = value.get("fields") or {}
    return {
        "id": value.get("id"),
        "key": value.get("key"),
        "summary": fields.get("summary"),
    }


def issue_link(value: Any) -> Optional[Dict[str, Any]]:
    """
    Issue link seen from this issue.

    ``relationship`` reads from this issue's point of view: "blocks" when this
    issue blocks the other one, "is blocked by" when it is blocked.
    """
    if not isinstance(value, dict):
        return None
    link_type = value.get("type") or {}
    if "outwardIssue" in value:
        link = issue_ref(value.get("outwardIssue")) or {}
        link["relationship"] = link_type.get("outward")
    else:
        link = issue_ref(value.get("inwardIssue")) or {}
        link["relationship"] = link_type.get("inward")
    return link


INBOUND_RULES: Dict[ValueType, Converter] = {
    ValueType.STRING: _identity,
    ValueType.NUMBER: _identity,
    ValueType.DATE: _identity,
    ValueType.DATETIME: _parse_datetime,
    ValueType.USER: _enum("key", "emailAddress", "displayName", "active"),
    ValueType.VERSION: _enum("archived", "released", "releaseDate"),
    ValueType.COMPONENT: _enum(),
    ValueType.PRIORITY: _enum(),
    ValueType.RESOLUTION: _enum(),
    ValueType.ISSUETYPE: _enum(),
    ValueType.STATUS: _enum(),
    ValueType.PROJECT: _enum("key"),
    ValueType.ISSUELINKS: issue_ref,
    ValueType.OTHER: _identity,
}

OUTBOUND_RULES: Dict[ValueType, Converter] = {
    ValueType.STRING: _identity,
    ValueType.NUMBER: _identity,
    ValueType.DATE: _identity,
    ValueType.DATETIME: _format_datetime,
    ValueType.USER: _wrap("name"),
    ValueType.VERSION: _wrap("name"),
    ValueType.COMPONENT: _wrap("name"),
    ValueType.PRIORITY: _wrap("name"),
    ValueType.RESOLUTION: _wrap("name"),
    ValueType.ISSUETYPE: _wrap("name"),
    ValueType.STATUS: _wrap("name"),
    ValueType.PROJECT: _wrap("key"),
    ValueType.ISSUELINKS: _identity,  # read only in Jira
    ValueType.OTHER: _identity,
}


def convert_to_app(value: Any, value_type: Optional[ValueType], is_array: bool = False) -> Any:
    """Apply the inbound rule for ``value_type`` (identity when unknown)."""
    if value is None:
        return None
    rule = INBOUND_RULES.get(value_type, _identity) if value_type else _identity
    if is_array:
        return [rule(item) for item in as_list(value)]
    return rule(value)


def convert_to_jira(value: Any, value_type: Optional[ValueType], is_array: bool = False) -> Any:
    """Apply the outbound rule for ``value_type`` (identity when unknown)."""
    if value is None:
        return None
    rule = OUTBOUND_RULES.get(value_type, _identity) if value_type else _identity
    if is_array:
        return [rule(item) for item in as_list(value)]
    return rule(value)


# Duration fields: (jira field, app field), seconds in Jira, milliseconds in app
DURATION_FIELDS: Tuple[Tuple[str, str], ...] = (
    ("timespent", "timeSpent"),
    ("aggregatetimespent", "aggregateTimeSpent"),
    ("timeestimate", "timeEstimate"),
    ("aggregatetimeestimate", "aggregateTimeEstimate"),
    ("timeoriginalestimate", "timeOriginalEstimate"),
    ("aggregatetimeoriginalestimate", "aggregateOriginalTimeEstimate"),
)

# Built-in app fields accepted on create/update: app key -> (jira key, type, is_array)
BUILTIN_OUTBOUND: Dict[str, Tuple[str, ValueType, bool]] = {
    "project": ("project", ValueType.PROJECT, False),
    "issueType": ("issuetype", ValueType.ISSUETYPE, False),
    "summary": ("summary", ValueType.STRING, False),
    "environment": ("environment", ValueType.STRING, False),
    "dueDate": ("duedate", ValueType.DATE, False),
    "assignee": ("assignee", ValueType.USER, False),
    "reporter": ("reporter", ValueType.USER, False),
    "priority": ("priority", ValueType.PRIORITY, False),
    "labels": ("labels", ValueType.STRING, True),
    "versions": ("versions", ValueType.VERSION, True),
    "fixVersions": ("fixVersions", ValueType.VERSION, True),
    "components": ("components", ValueType.COMPONENT, True),
}
# Keys handled separately or that only steer the conversion
SPECIAL_KEYS = {"key", "description", "descriptionFormat", "parent"}


def _progress(raw: Any) -> Dict[str, Any]:
    if not isinstance(raw, dict):
        return {"progress": 0, "total": 0, "percent": Decimal(0)}
    percent = raw.get("percent")
    if percent is None:
        percent = 0
    return {
        "progress": parse_seconds(raw.get("progress")),
        "total": parse_seconds(raw.get("total")),
        # Decimal keeps 53 -> 0.53 exact
        "percent": Decimal(str(percent)) / Decimal(100),
    }


def _many(values: Any, convert: Callable[[Any], Any]) -> Optional[List[Any]]:
    if values is None:
        return None
    return [convert(item) for item in as_list(values)]


class IssueMapper:
    """Bidirectional converter for issues and their sub-resources."""

    def __init__(self, fields_cache: FieldSchemaCache):
        self.fields_cache = fields_cache

    # ------------------------------------------------------------------
    # Jira -> app
    # ------------------------------------------------------------------

    def search_result_to_app(self, search_result: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
        """Converts every issue of a search result with ``issue_to_app``."""
        if search_result is None:
            return None
        result: Dict[str, Any] = {"total": search_result.get("total")}
        if "startAt" in search_result:
            result["offset"] = search_result.get("startAt")
        if "maxResults" in search_result:
            result["size"] = search_result.get("maxResults")
        result["items"] = [self.issue_to_app(issue) for issue in search_result.get("issues") or []]
        return result

    def issue_to_app(self, jira_issue: Dict[str, Any]) -> Dict[str, Any]:
        """
        Converts an issue from Jira into the application format.

        Args:
            jira_issue: issue JSON as returned by the Jira REST API

        Returns:
            A new dict; the input is not modified
        """
        fields = jira_issue.get("fields") or {}
        issue_type = fields.get("issuetype")

        issue: Dict[str, Any] = {
            "id": jira_issue.get("id"),
            "key": jira_issue.get("key"),
            "issueType": convert_to_app(issue_type, ValueType.ISSUETYPE),
            "subTask": bool(isinstance(issue_type, dict) and issue_type.get("subtask", False)),
            "project": convert_to_app(fields.get("project"), ValueType.PROJECT),
        }

        for jira_name, app_name in DURATION_FIELDS:
            issue[app_name] = parse_seconds(fields.get(jira_name))
        time_tracking = fields.get("timetracking")
        if isinstance(time_tracking, dict):
            issue["remainingEstimate"] = parse_seconds(time_tracking.get("remainingEstimateSeconds"))
        else:
            issue["remainingEstimate"] = 0
        issue["progress"] = _progress(fields.get("progress"))
        issue["aggregateProgress"] = _progress(fields.get("aggregateprogress"))

        votes = fields.get("votes")
        description = fields.get("description")

        issue.update({
            "versions": convert_to_app(fields.get("versions"), ValueType.VERSION, is_array=True),
            "fixVersions": convert_to_app(fields.get("fixVersions"), ValueType.VERSION, is_array=True),
            "status": convert_to_app(fields.get("status"), ValueType.STATUS),
            "created": parse_jira_date(fields.get("created")),
            "updated": parse_jira_date(fields.get("updated")),
            "dueDate": fields.get("duedate"),
            "resolution": convert_to_app(fields.get("resolution"), ValueType.RESOLUTION),
            "resolutionDate": parse_jira_date(fields.get("resolutiondate")),
            "priority": convert_to_app(fields.get("priority"), ValueType.PRIORITY),
            "labels": convert_to_app(fields.get("labels"), ValueType.STRING, is_array=True),
            "issueLinks": _many(fields.get("issuelinks"), issue_link),
            "components": convert_to_app(fields.get("components"), ValueType.COMPONENT, is_array=True),
            "environment": fields.get("environment"),
            "votes": (votes.get("votes") or 0) if isinstance(votes, dict) else 0,
            "assignee": convert_to_app(fields.get("assignee"), ValueType.USER),
            "reporter": convert_to_app(fields.get("reporter"), ValueType.USER),
            "creator": convert_to_app(fields.get("creator"), ValueType.USER),
            "summary": fields.get("summary"),
            "descriptionHtml": wiki_to_html(description),
            "descriptionText": wiki_to_text(description),
            "descriptionWiki": description,
            "parent": issue_ref(fields.get("parent")),
            "subTasks": _many(fields.get("subtasks"), issue_ref),
            "customFields": self.custom_fields_to_app(fields),
        })

        comment = fields.get("comment")
        if isinstance(comment, dict) and comment.get("comments") is not None:
            issue["comments"] = [self.comment_to_app(c) for c in comment["comments"]]
        work_log = fields.get("worklog")
        if isinstance(work_log, dict) and work_log.get("worklogs") is not None:
            issue["workLogs"] = [self.worklog_to_app(w) for w in work_log["worklogs"]]
        if fields.get("attachment") is not None:
            issue["attachments"] = [self.attachment_to_app(a) for a in as_list(fields["attachment"])]

        return issue

    def custom_fields_to_app(self, fields: Dict[str, Any]) -> Dict[str, Any]:
        """Custom fields keyed by display name; the raw id is used when the name is unknown."""
        custom_fields: Dict[str, Any] = {}
        for key, value in fields.items():
            if not key.startswith(CUSTOM_FIELD_PREFIX):
                continue
            descriptor = self.fields_cache.lookup(key)
            if descriptor is None:
                logger.debug(f"Custom field [{key}] not found in fields cache, passing value through")
                custom_fields[key] = value
                continue
            custom_fields[descriptor.name] = convert_to_app(value, descriptor.value_type, descriptor.is_array)
        return custom_fields

    def comment_to_app(self, jira_comment: Dict[str, Any]) -> Dict[str, Any]:
        body = jira_comment.get("body")
        return {
            "id": jira_comment.get("id"),
            "author": convert_to_app(jira_comment.get("author"), ValueType.USER),
            "created": parse_jira_date(jira_comment.get("created")),
            "updated": parse_jira_date(jira_comment.get("updated")),
            "bodyHtml": wiki_to_html(body),
            "bodyText": wiki_to_text(body),
            "bodyWiki": body,
        }

    def worklog_to_app(self, jira_worklog: Dict[str, Any]) -> Dict[str, Any]:
        comment = jira_worklog.get("comment")
        return {
            "id": jira_worklog.get("id"),
            "author": convert_to_app(jira_worklog.get("author"), ValueType.USER),
            "created": parse_jira_date(jira_worklog.get("created")),
            "started": parse_jira_date(jira_worklog.get("started")),
            "timeSpent": parse_seconds(jira_worklog.get("timeSpentSeconds")),
            "commentHtml": wiki_to_html(comment),
            "commentText": wiki_to_text(comment),
            "commentWiki": comment,
        }

    def attachment_to_app(self, jira_attachment: Dict[str, Any]) -> Dict[str, Any]:
        # Metadata only, the content itself is never downloaded
        return {
            "id": jira_attachment.get("id"),
            "author": convert_to_app(jira_attachment.get("author"), ValueType.USER),
            "created": parse_jira_date(jira_attachment.get("created")),
            "filename": jira_attachment.get("filename"),
            "mimeType": jira_attachment.get("mimeType"),
            "size": jira_attachment.get("size"),
            "contentUrl": jira_attachment.get("content"),
        }

    # ------------------------------------------------------------------
    # app -> Jira
    # ------------------------------------------------------------------

    def issue_to_tracker(self, app_issue: Dict[str, Any]) -> Dict[str, Any]:
        """
        Converts an issue in application create/update format to Jira format.

        Only keys present in ``app_issue`` end up in the result. Keys that are
        neither built-in fields nor known custom field names are dropped.
        """
        issue: Dict[str, Any] = {}
        fields: Dict[str, Any] = {}

        if "key" in app_issue:
            issue["key"] = app_issue.get("key")

        for app_name, (jira_name, value_type, is_array) in BUILTIN_OUTBOUND.items():
            if app_name in app_issue:
                fields[jira_name] = convert_to_jira(app_issue[app_name], value_type, is_array)

        if "description" in app_issue:
            fields["description"] = to_wiki(app_issue.get("description"), app_issue.get("descriptionFormat"))
        if "parent" in app_issue:
            parent = app_issue.get("parent")
            fields["parent"] = {"key": parent} if parent is not None else None

        for key, value in app_issue.items():
            if key in BUILTIN_OUTBOUND or key in SPECIAL_KEYS:
                continue
            descriptor = self._custom_field_for(key)
            if descriptor is None:
                logger.debug(f"Ignoring unknown field [{key}] in outbound issue")
                continue
            fields[descriptor.id] = convert_to_jira(value, descriptor.value_type, descriptor.is_array)

        issue["fields"] = fields
        return issue

    def _custom_field_for(self, key: str) -> Optional[FieldDescriptor]:
        field_id = self.fields_cache.resolve_id_by_name(key)
        if field_id is None and key.startswith(CUSTOM_FIELD_PREFIX):
            field_id = key
        if field_id is None:
            return None
        return self.fields_cache.get(field_id)

    def comment_to_tracker(self, app_comment: Dict[str, Any]) -> Dict[str, Any]:
        """Converts a comment in application format to the body Jira expects."""
        return {
            "issueKey": app_comment.get("issueKey"),
            "body": to_wiki(app_comment.get("body"), app_comment.get("bodyFormat")),
        }

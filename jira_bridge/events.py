"""
Webhook event classification.

Jira posts one payload shape for every webhook; ``webhookEvent`` and the
presence of ``comment`` tell what happened. Events caused by the integration
user itself are suppressed so changes made through the bridge don't echo back
to the application.
"""
from enum import Enum
from typing import Any, Dict, List, Optional, Protocol, Tuple

from .errors import RemoteUnavailable
from .field_cache import FieldSchemaCache
from .issue_mapper import CUSTOM_FIELD_PREFIX, IssueMapper
from .logger import ContextLogger, get_logger
from .time_utils import parse_version_date

logger = get_logger("events")

SYSTEM_USER = "__system_user__"


class EventKind(Enum):
    ISSUE_CREATED = "issue-created"
    ISSUE_UPDATED = "issue-updated"
    ISSUE_DELETED = "issue-deleted"
    COMMENT_CREATED = "comment-created"
    VERSION_RELEASED = "version-released"
    UNKNOWN = "unknown"


# Name of the event sent to the application for each kind
APP_EVENTS: Dict[EventKind, str] = {
    EventKind.ISSUE_CREATED: "issueCreated",
    EventKind.ISSUE_UPDATED: "issueUpdated",
    EventKind.ISSUE_DELETED: "issueDeleted",
    EventKind.COMMENT_CREATED: "commentCreated",
    EventKind.VERSION_RELEASED: "versionReleased",
}


class ProjectSource(Protocol):
    def get_project(self, project_id: Any) -> Dict[str, Any]:
        ...


class EventClassifier:
    """Turns raw Jira webhook payloads into (application event, data) pairs."""

    def __init__(
        self,
        mapper: IssueMapper,
        fields_cache: FieldSchemaCache,
        projects: ProjectSource,
        integration_username: Optional[str] = None,
    ):
        self.mapper = mapper
        self.fields_cache = fields_cache
        self.projects = projects
        self.integration_username = integration_username

    @staticmethod
    def detect_user(payload: Dict[str, Any]) -> str:
        """User that triggered the event, or the system user when there is none."""
        user = payload.get("user")
        if isinstance(user, dict) and user.get("name"):
            return user["name"]
        return SYSTEM_USER

    def is_self_event(self, payload: Dict[str, Any]) -> bool:
        if not self.integration_username:
            return False
        return self.detect_user(payload) == self.integration_username

    @staticmethod
    def classify(payload: Dict[str, Any]) -> EventKind:
        webhook_event = payload.get("webhookEvent")
        if webhook_event == "jira:issue_created":
            return EventKind.ISSUE_CREATED
        if webhook_event == "jira:issue_updated":
            if payload.get("comment") is not None:
                return EventKind.COMMENT_CREATED
            return EventKind.ISSUE_UPDATED
        if webhook_event == "jira:issue_deleted":
            return EventKind.ISSUE_DELETED
        if webhook_event == "jira:version_released":
            return EventKind.VERSION_RELEASED
        return EventKind.UNKNOWN

    def handle(self, payload: Dict[str, Any]) -> Optional[Tuple[str, Dict[str, Any]]]:
        """
        Classify a webhook payload and build the application event.

        Returns:
            (event name, data), or None when the event is ignored: sent by the
            integration user, of an unknown type, or its data could not be built
        """
        webhook_event = payload.get("webhookEvent")
        if self.is_self_event(payload):
            logger.debug(f"Ignoring {webhook_event} triggered by integration user")
            return None

        kind = self.classify(payload)
        if kind is EventKind.UNKNOWN:
            logger.info(f"Unknown webhook event [{webhook_event}], ignoring", extra={"webhook_event": webhook_event})
            return None

        if kind is EventKind.ISSUE_UPDATED:
            data = self.issue_updated(payload)
        elif kind is EventKind.COMMENT_CREATED:
            data = self.comment_created(payload)
        elif kind is EventKind.VERSION_RELEASED:
            data = self.version_released(payload)
        else:
            data = self.mapper.issue_to_app(payload.get("issue") or {})

        if data is None:
            return None

        event_name = APP_EVENTS[kind]
        ContextLogger("events", issue_key=data.get("key") or data.get("issueKey"), event=event_name).debug(
            f"Webhook {webhook_event} classified as {kind.value}"
        )
        return event_name, data

    def issue_updated(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        data = self.mapper.issue_to_app(payload.get("issue") or {})
        data["modifiedFields"] = self.modified_fields(payload.get("changelog"))
        return data

    def modified_fields(self, changelog: Optional[Dict[str, Any]]) -> List[str]:
        """Changed field names in changelog order; custom field ids resolved to names."""
        if not isinstance(changelog, dict):
            return []
        names: List[str] = []
        for item in changelog.get("items") or []:
            if not isinstance(item, dict):
                continue
            field = item.get("field")
            if field and str(field).startswith(CUSTOM_FIELD_PREFIX):
                field = self.fields_cache.resolve_name(field) or field
            names.append(field)
        return names

    def comment_created(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        data = self.mapper.comment_to_app(payload.get("comment") or {})
        data["issueKey"] = (payload.get("issue") or {}).get("key")
        return data

    def version_released(self, payload: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        version = payload.get("version") or {}
        project_key = None
        project_id = version.get("projectId")
        if project_id is not None:
            try:
                project = self.projects.get_project(project_id) or {}
            except RemoteUnavailable as e:
                logger.warning(f"Dropping version released event, project {project_id} lookup failed: {e}")
                return None
            project_key = project.get("key")

        return {
            "id": version.get("id", payload.get("id")),
            "name": version.get("name"),
            "description": version.get("description"),
            "releaseDate": parse_version_date(version.get("userReleaseDate")),
            "project": project_key,
        }

"""
Cache of Jira field metadata.

Custom fields only show up as ``customfield_<n>`` ids on the wire. The cache
maps those ids to display names and value types (and back) so issues can be
converted in both directions.

Descriptors are immutable and replaced whole on refresh, so readers running
in other threads never see a half-updated entry. Lookups by id refresh the
cache once when the id is unknown; lookups by name never do, since outbound
conversion checks every key of the input against it.
"""
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Iterable, Optional, Protocol

from .errors import RemoteUnavailable
from .logger import get_logger

logger = get_logger("field_cache")


class ValueType(Enum):
    """Semantic value types the converters know about."""
    STRING = "string"
    NUMBER = "number"
    DATE = "date"
    DATETIME = "datetime"
    USER = "user"
    VERSION = "version"
    COMPONENT = "component"
    PRIORITY = "priority"
    RESOLUTION = "resolution"
    ISSUETYPE = "issuetype"
    STATUS = "status"
    PROJECT = "project"
    ISSUELINKS = "issuelinks"
    OTHER = "other"

    @classmethod
    def from_schema(cls, schema_type: Optional[str]) -> "ValueType":
        """Map a Jira schema type (e.g. "user", "option") to a ValueType."""
        if not schema_type:
            return cls.OTHER
        try:
            return cls(schema_type)
        except ValueError:
            return cls.OTHER


@dataclass(frozen=True)
class FieldDescriptor:
    id: str
    name: str
    value_type: ValueType
    is_array: bool = False

    @classmethod
    def from_jira(cls, field: Dict[str, Any]) -> "FieldDescriptor":
        schema = field.get("schema") or {}
        if schema.get("type") == "array":
            return cls(
                id=field["id"],
                name=field.get("name") or field["id"],
                value_type=ValueType.from_schema(schema.get("items")),
                is_array=True,
            )
        return cls(
            id=field["id"],
            name=field.get("name") or field["id"],
            value_type=ValueType.from_schema(schema.get("type")),
            is_array=False,
        )


class FieldSource(Protocol):
    def get_fields(self) -> Iterable[Dict[str, Any]]:
        ...


class FieldSchemaCache:
    """Refreshable snapshot of Jira field metadata, indexed by id and by name."""

    def __init__(self, source: FieldSource):
        self.source = source
        self._by_id: Dict[str, FieldDescriptor] = {}
        self._by_name: Dict[str, FieldDescriptor] = {}

    def refresh(self) -> int:
        """
        Fetch the full field list and upsert every entry.

        Returns:
            Number of fields received

        Raises:
            RemoteUnavailable: the field listing failed; the previous snapshot is kept
        """
        fields = list(self.source.get_fields() or [])
        count = 0
        for raw in fields:
            if not isinstance(raw, dict) or not raw.get("id"):
                continue
            descriptor = FieldDescriptor.from_jira(raw)
            self._by_id[descriptor.id] = descriptor
            self._by_name[descriptor.name] = descriptor
            count += 1
        logger.debug(f"Field cache refreshed with {count} fields")
        return count

    def lookup(self, field_id: str) -> Optional[FieldDescriptor]:
        """Descriptor for ``field_id``, refreshing once if the id is unknown."""
        descriptor = self._by_id.get(field_id)
        if descriptor is None:
            try:
                self.refresh()
            except RemoteUnavailable as e:
                logger.warning(f"Could not refresh fields cache while resolving [{field_id}]: {e}")
                return None
            descriptor = self._by_id.get(field_id)
        return descriptor

    def get(self, field_id: str) -> Optional[FieldDescriptor]:
        """Descriptor for ``field_id`` without triggering a refresh."""
        return self._by_id.get(field_id)

    def resolve_id_by_name(self, name: str) -> Optional[str]:
        # No refresh here: called for every key of an outbound issue
        descriptor = self._by_name.get(name)
        return descriptor.id if descriptor else None

    def resolve_type(self, field_id: str) -> Optional[ValueType]:
        descriptor = self.lookup(field_id)
        return descriptor.value_type if descriptor else None

    def resolve_name(self, field_id: str) -> Optional[str]:
        descriptor = self.lookup(field_id)
        return descriptor.name if descriptor else None

    def is_array(self, field_id: str) -> bool:
        descriptor = self.lookup(field_id)
        return descriptor.is_array if descriptor else False

    def __contains__(self, field_id: str) -> bool:
        return field_id in self._by_id

    def __len__(self) -> int:
        return len(self._by_id)

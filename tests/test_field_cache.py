import pytest
import requests

from jira_bridge.errors import RemoteUnavailable
from jira_bridge.field_cache import FieldDescriptor, FieldSchemaCache, ValueType
from jira_bridge.issue_mapper import IssueMapper
from jira_bridge.jira import JiraClient


def test_refresh_indexes_by_id_and_name(jira):
    cache = FieldSchemaCache(jira)

    assert cache.refresh() == len(jira.fields)
    assert cache.resolve_id_by_name("Main Reviewer") == "customfield_10400"
    assert cache.resolve_id_by_name("Story Points") == "customfield_10004"
    assert cache.resolve_type("customfield_10400") == ValueType.USER
    assert cache.resolve_type("customfield_10004") == ValueType.NUMBER
    assert cache.resolve_name("customfield_10004") == "Story Points"


def test_array_fields_take_type_from_items(fields_cache):
    assert fields_cache.is_array("customfield_10600") is True
    assert fields_cache.resolve_type("customfield_10600") == ValueType.USER
    assert fields_cache.is_array("labels") is True
    assert fields_cache.resolve_type("labels") == ValueType.STRING
    assert fields_cache.is_array("customfield_10400") is False


def test_unknown_or_missing_schema_is_other(fields_cache):
    # "any" is not a known type, customfield_10800 has no schema at all
    assert fields_cache.resolve_type("customfield_10005") == ValueType.OTHER
    assert fields_cache.resolve_type("customfield_10800") == ValueType.OTHER
    assert fields_cache.is_array("customfield_10800") is False


def test_unknown_id_refreshes_once(jira, fields_cache):
    calls = jira.fields_calls

    assert fields_cache.resolve_type("customfield_99999") is None
    assert jira.fields_calls == calls + 1


def test_unknown_id_found_after_lazy_refresh(jira, fields_cache):
    jira.fields.append({"id": "customfield_20000", "name": "Team", "schema": {"type": "string"}})

    assert fields_cache.resolve_name("customfield_20000") == "Team"
    assert fields_cache.resolve_id_by_name("Team") == "customfield_20000"


def test_name_lookup_never_refreshes(jira, fields_cache):
    calls = jira.fields_calls

    assert fields_cache.resolve_id_by_name("Nonexistent") is None
    assert jira.fields_calls == calls


def test_failed_refresh_keeps_snapshot(jira, fields_cache):
    jira.fail_fields = True

    with pytest.raises(RemoteUnavailable):
        fields_cache.refresh()
    assert fields_cache.resolve_name("customfield_10400") == "Main Reviewer"


def test_failed_lazy_refresh_is_unresolved(jira, fields_cache):
    jira.fail_fields = True

    assert fields_cache.resolve_type("customfield_99999") is None
    assert fields_cache.resolve_name("customfield_99999") is None
    assert fields_cache.is_array("customfield_99999") is False


def test_refresh_upserts_without_removing(jira, fields_cache):
    jira.fields = [{"id": "customfield_10004", "name": "Points", "schema": {"type": "number"}}]
    fields_cache.refresh()

    assert fields_cache.resolve_name("customfield_10004") == "Points"
    assert fields_cache.resolve_id_by_name("Points") == "customfield_10004"
    # Entries missing from the new listing stay
    assert "customfield_10400" in fields_cache


def test_descriptor_from_jira():
    descriptor = FieldDescriptor.from_jira(
        {"id": "fixVersions", "name": "Fix Version/s", "schema": {"type": "array", "items": "version"}}
    )
    assert descriptor == FieldDescriptor("fixVersions", "Fix Version/s", ValueType.VERSION, True)


class BrokenSession:
    def __init__(self):
        self.calls = 0

    def request(self, method, url, **kwargs):
        self.calls += 1
        raise requests.exceptions.ChunkedEncodingError("connection broken")


def test_truncated_field_listing_leaves_custom_fields_unresolved():
    session = BrokenSession()
    client = JiraClient("http://jira.example.com", "integration", "secret", backoff_s=0, session=session)

    issue = IssueMapper(FieldSchemaCache(client)).issue_to_app({"fields": {"customfield_1": "x"}})

    assert issue["customFields"] == {"customfield_1": "x"}
    assert session.calls == 1

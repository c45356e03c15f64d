"""Shared fixtures: an in-memory Jira stand-in and webhook payloads.

The project root is added to sys.path so `import jira_bridge` works without
an editable install.
"""

import copy
import json
import sys
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from jira_bridge.errors import RemoteUnavailable  # noqa: E402
from jira_bridge.field_cache import FieldSchemaCache  # noqa: E402
from jira_bridge.issue_mapper import IssueMapper  # noqa: E402

FIXTURES = Path(__file__).resolve().parent / "fixtures"

JIRA_FIELDS = [
    {"id": "summary", "name": "Summary", "schema": {"type": "string", "system": "summary"}},
    {"id": "labels", "name": "Labels", "schema": {"type": "array", "items": "string", "system": "labels"}},
    {"id": "customfield_10400", "name": "Main Reviewer",
     "schema": {"type": "user", "custom": "com.atlassian.jira.plugin.system.customfieldtypes:userpicker"}},
    {"id": "customfield_10004", "name": "Story Points",
     "schema": {"type": "number", "custom": "com.atlassian.jira.plugin.system.customfieldtypes:float"}},
    {"id": "customfield_10005", "name": "Rank",
     "schema": {"type": "any", "custom": "com.pyxis.greenhopper.jira:gh-lexo-rank"}},
    {"id": "customfield_10600", "name": "Reviewers",
     "schema": {"type": "array", "items": "user", "custom": "com.atlassian.jira.plugin.system.customfieldtypes:multiuserpicker"}},
    {"id": "customfield_10700", "name": "Go Live",
     "schema": {"type": "datetime", "custom": "com.atlassian.jira.plugin.system.customfieldtypes:datetime"}},
    {"id": "customfield_10800", "name": "Notes"},
]


def load_fixture(name):
    with open(FIXTURES / name) as f:
        return json.load(f)


class FakeJira:
    """In-memory replacement for JiraClient."""

    def __init__(self, fields=None):
        self.fields = copy.deepcopy(JIRA_FIELDS if fields is None else fields)
        self.fields_calls = 0
        self.fail_fields = False
        self.issues = {}
        self.projects = {}
        self.transitions = {}
        self.calls = []
        self.next_id = 10000

    def get_fields(self):
        self.fields_calls += 1
        if self.fail_fields:
            raise RemoteUnavailable("GET /field returned 503", status_code=503)
        return copy.deepcopy(self.fields)

    def get_project(self, project_id):
        self.calls.append(("get_project", project_id))
        if project_id not in self.projects:
            raise RemoteUnavailable(f"GET /project/{project_id} returned 404", status_code=404)
        return self.projects[project_id]

    def search(self, query, offset=None, size=None):
        self.calls.append(("search", query, offset, size))
        issues = list(self.issues.values())
        return {"startAt": offset or 0, "maxResults": size or 50, "total": len(issues), "issues": issues}

    def get_issue(self, issue_key):
        self.calls.append(("get_issue", issue_key))
        if issue_key not in self.issues:
            raise RemoteUnavailable(f"GET /issue/{issue_key} returned 404", status_code=404)
        return copy.deepcopy(self.issues[issue_key])

    def create_issue(self, issue):
        self.calls.append(("create_issue", issue))
        self.next_id += 1
        fields = issue["fields"]
        key = f"{fields['project']['key']}-{self.next_id - 10000}"
        self.issues[key] = {
            "id": str(self.next_id),
            "key": key,
            "fields": {
                "summary": fields.get("summary"),
                "description": fields.get("description"),
                "project": {"id": "10000", "key": fields["project"]["key"], "name": "Test"},
                "issuetype": {"id": "3", "name": fields["issuetype"]["name"], "subtask": False},
            },
        }
        return {"id": str(self.next_id), "key": key, "self": f"http://jira/rest/api/2/issue/{self.next_id}"}

    def update_issue(self, issue):
        self.calls.append(("update_issue", issue))
        return {"key": issue["key"]}

    def delete_issue(self, issue_key):
        self.calls.append(("delete_issue", issue_key))
        self.issues.pop(issue_key, None)
        return {"key": issue_key}

    def add_comment(self, issue_key, body):
        self.calls.append(("add_comment", issue_key, body))
        return {
            "id": "10100",
            "body": body,
            "author": {"name": "integration", "displayName": "Integration"},
            "created": "2015-06-04T11:22:33.000-0300",
            "updated": "2015-06-04T11:22:33.000-0300",
        }

    def get_transitions(self, issue_key):
        self.calls.append(("get_transitions", issue_key))
        return self.transitions.get(issue_key, [])

    def transition(self, issue_key, transition_id):
        self.calls.append(("transition", issue_key, transition_id))

    def server_info(self, do_health_check=False):
        self.calls.append(("server_info", do_health_check))
        return {"version": "7.0.0", "serverTitle": "JIRA", "healthChecks": [] if do_health_check else None}


@pytest.fixture
def jira():
    return FakeJira()


@pytest.fixture
def fields_cache(jira):
    cache = FieldSchemaCache(jira)
    cache.refresh()
    return cache


@pytest.fixture
def mapper(fields_cache):
    return IssueMapper(fields_cache)


@pytest.fixture
def issue_payload():
    return load_fixture("issue.json")

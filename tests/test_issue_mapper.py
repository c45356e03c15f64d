import copy
from decimal import Decimal

from jira_bridge.field_cache import ValueType
from jira_bridge.issue_mapper import (
    INBOUND_RULES,
    OUTBOUND_RULES,
    convert_to_app,
    convert_to_jira,
)

ISSUE_KEYS = {
    "id", "key", "issueType", "subTask", "project", "timeSpent", "aggregateTimeSpent",
    "timeEstimate", "aggregateTimeEstimate", "timeOriginalEstimate",
    "aggregateOriginalTimeEstimate", "remainingEstimate", "progress", "aggregateProgress",
    "versions", "fixVersions", "status", "created", "updated", "dueDate", "resolution",
    "resolutionDate", "priority", "labels", "issueLinks", "components", "environment",
    "votes", "assignee", "reporter", "creator", "summary", "descriptionHtml",
    "descriptionText", "descriptionWiki", "parent", "subTasks", "customFields",
}


def test_issue_keys(mapper, issue_payload):
    issue = mapper.issue_to_app(issue_payload)

    assert set(issue) == ISSUE_KEYS | {"comments", "workLogs", "attachments"}


def test_issue_basic_fields(mapper, issue_payload):
    issue = mapper.issue_to_app(issue_payload)

    assert issue["id"] == "10200"
    assert issue["key"] == "TEST-34"
    assert issue["issueType"] == {"id": "1", "name": "Bug"}
    assert issue["subTask"] is False
    assert issue["project"] == {"id": "10000", "name": "Test Project", "key": "TEST"}
    assert issue["status"] == {"id": "3", "name": "In Progress"}
    assert issue["priority"] == {"id": "3", "name": "Major"}
    assert issue["created"] == 1433427753000
    assert issue["dueDate"] == "2015-06-30"
    assert issue["resolution"] is None
    assert issue["resolutionDate"] is None
    assert issue["labels"] == ["backend", "urgent"]
    assert issue["components"] == [{"id": "10100", "name": "API"}]
    assert issue["versions"] == [
        {"id": "10000", "name": "1.0", "archived": False, "released": True, "releaseDate": "2015-06-05"}
    ]
    assert issue["fixVersions"] == []
    assert issue["environment"] == "Production"
    assert issue["votes"] == 2
    assert issue["summary"] == "Login fails with SSO"


def test_durations_in_millis(mapper, issue_payload):
    issue = mapper.issue_to_app(issue_payload)

    assert issue["timeSpent"] == 7200000
    assert issue["aggregateTimeSpent"] == 25200000
    assert issue["timeEstimate"] == 3600000
    assert issue["timeOriginalEstimate"] == 10800000
    assert issue["aggregateOriginalTimeEstimate"] == 0
    assert issue["remainingEstimate"] == 3600000


def test_progress_percent_is_exact(mapper, issue_payload):
    issue = mapper.issue_to_app(issue_payload)

    assert issue["progress"]["progress"] == 7200000
    assert issue["progress"]["total"] == 21600000
    assert str(issue["progress"]["percent"]) == "0.33"
    assert str(issue["aggregateProgress"]["percent"]) == "0.53"


def test_users(mapper, issue_payload):
    issue = mapper.issue_to_app(issue_payload)

    assert issue["assignee"] == {
        "name": "jdoe", "key": "jdoe", "emailAddress": "jdoe@example.com",
        "displayName": "John Doe", "active": True,
    }
    assert issue["creator"]["active"] is False


def test_reporter_and_creator_come_from_their_own_fields(mapper, issue_payload):
    issue = mapper.issue_to_app(issue_payload)

    assert issue["reporter"]["name"] == "asmith"
    assert issue["creator"]["name"] == "bwhite"


def test_issue_links(mapper, issue_payload):
    links = mapper.issue_to_app(issue_payload)["issueLinks"]

    assert links == [
        {"id": "10201", "key": "TEST-35", "summary": "Blocker issue", "relationship": "is blocked by"},
        {"id": "10202", "key": "TEST-36", "summary": "Related issue", "relationship": "relates to"},
    ]


def test_parent_and_sub_tasks(mapper, issue_payload):
    issue = mapper.issue_to_app(issue_payload)

    assert issue["parent"] is None
    assert issue["subTasks"] == [{"id": "10203", "key": "TEST-37", "summary": "Fix token refresh"}]


def test_description_in_three_formats(mapper, issue_payload):
    issue = mapper.issue_to_app(issue_payload)

    assert issue["descriptionWiki"] == "h2. Steps\n# Open login\n# Click *SSO*"
    assert issue["descriptionHtml"] == (
        "<h2>Steps</h2><ol><li>Open login</li><li>Click <strong>SSO</strong></li></ol>"
    )
    assert issue["descriptionText"] == "Steps\n\n1. Open login\n2. Click SSO"


def test_custom_fields_by_name(mapper, issue_payload):
    custom_fields = mapper.issue_to_app(issue_payload)["customFields"]

    assert custom_fields["Main Reviewer"]["name"] == "test"
    assert custom_fields["Main Reviewer"]["displayName"] == "Test User"
    assert custom_fields["Story Points"] == 3
    assert custom_fields["Rank"] == "0|i0004v:"
    assert custom_fields["Reviewers"] == [{"name": "jdoe", "key": "jdoe", "displayName": "John Doe", "active": True}]
    assert custom_fields["Go Live"] == 1435744800000


def test_unresolved_custom_field_keeps_raw_id(mapper, issue_payload):
    custom_fields = mapper.issue_to_app(issue_payload)["customFields"]

    assert custom_fields["customfield_99999"] == "mystery"


def test_comments_worklogs_attachments(mapper, issue_payload):
    issue = mapper.issue_to_app(issue_payload)

    comment = issue["comments"][0]
    assert comment["id"] == "10300"
    assert comment["author"]["name"] == "jdoe"
    assert comment["created"] == 1433427753000
    assert comment["bodyHtml"] == "<p><strong>test comment</strong></p>"
    assert comment["bodyText"] == "test comment"
    assert comment["bodyWiki"] == "*test comment*"

    work_log = issue["workLogs"][0]
    assert work_log["timeSpent"] == 7200000
    assert work_log["commentHtml"] == "<p>doing something</p>"
    assert work_log["commentText"] == "doing something"
    assert work_log["commentWiki"] == "doing something"

    attachment = issue["attachments"][0]
    assert attachment == {
        "id": "10500",
        "author": {"name": "jdoe", "key": "jdoe", "displayName": "John Doe", "active": True},
        "created": 1433427753000,
        "filename": "screen.png",
        "mimeType": "image/png",
        "size": 1024,
        "contentUrl": "http://jira.example.com/secure/attachment/10500/screen.png",
    }


def test_minimal_issue_defaults(mapper):
    issue = mapper.issue_to_app({"id": "1", "key": "X-1", "fields": {}})

    assert set(issue) == ISSUE_KEYS
    assert issue["progress"] == {"progress": 0, "total": 0, "percent": Decimal(0)}
    assert issue["aggregateProgress"]["percent"] == Decimal(0)
    assert issue["timeSpent"] == 0
    assert issue["remainingEstimate"] == 0
    assert issue["votes"] == 0
    assert issue["subTask"] is False
    assert issue["assignee"] is None
    assert issue["descriptionHtml"] is None
    assert issue["customFields"] == {}


def test_inbound_conversion_does_not_modify_input(mapper, issue_payload):
    original = copy.deepcopy(issue_payload)
    mapper.issue_to_app(issue_payload)

    assert issue_payload == original


def test_search_result(mapper, issue_payload):
    result = mapper.search_result_to_app({"startAt": 0, "maxResults": 50, "total": 1, "issues": [issue_payload]})

    assert result["total"] == 1
    assert result["offset"] == 0
    assert result["size"] == 50
    assert [item["key"] for item in result["items"]] == ["TEST-34"]


def test_search_result_edge_cases(mapper):
    assert mapper.search_result_to_app(None) is None
    assert mapper.search_result_to_app({"total": 0, "issues": []}) == {"total": 0, "items": []}


def test_issue_to_tracker(mapper):
    issue = mapper.issue_to_tracker({
        "project": "TEST",
        "issueType": "Task",
        "summary": "Fix login",
        "description": "<p><b>urgent</b></p>",
        "descriptionFormat": "HTML",
        "labels": "single",
        "Main Reviewer": "test",
        "Story Points": 3,
        "Unknown Thing": 1,
    })

    assert issue == {
        "fields": {
            "project": {"key": "TEST"},
            "issuetype": {"name": "Task"},
            "summary": "Fix login",
            "labels": ["single"],
            "description": "*urgent*",
            "customfield_10400": {"name": "test"},
            "customfield_10004": 3,
        }
    }


def test_issue_to_tracker_partial_update(mapper):
    assert mapper.issue_to_tracker({"key": "TEST-1", "summary": "New"}) == {
        "key": "TEST-1",
        "fields": {"summary": "New"},
    }


def test_issue_to_tracker_references(mapper):
    fields = mapper.issue_to_tracker({
        "assignee": "jdoe",
        "reporter": None,
        "priority": "Major",
        "fixVersions": ["1.0", "1.1"],
        "components": "API",
        "dueDate": "2015-06-30",
        "parent": "TEST-34",
        "environment": "Production",
    })["fields"]

    assert fields == {
        "assignee": {"name": "jdoe"},
        "reporter": None,
        "priority": {"name": "Major"},
        "fixVersions": [{"name": "1.0"}, {"name": "1.1"}],
        "components": [{"name": "API"}],
        "duedate": "2015-06-30",
        "parent": {"key": "TEST-34"},
        "environment": "Production",
    }


def test_issue_to_tracker_custom_field_types(mapper):
    fields = mapper.issue_to_tracker({
        "Go Live": 1435744800000,
        "Reviewers": "jdoe",
        "customfield_10004": 8,
    })["fields"]

    assert fields == {
        "customfield_10700": "2015-07-01T10:00:00.000+0000",
        "customfield_10600": [{"name": "jdoe"}],
        "customfield_10004": 8,
    }


def test_description_formats(mapper):
    assert mapper.issue_to_tracker({"description": "h1. x", "descriptionFormat": "wiki"})["fields"] == {
        "description": "h1. x"
    }
    assert mapper.issue_to_tracker({"description": "<p>x</p>"})["fields"] == {"description": "<p>x</p>"}
    assert mapper.issue_to_tracker({"description": "hello", "descriptionFormat": 1})["fields"] == {
        "description": "hello"
    }


def test_custom_field_round_trip(mapper, issue_payload):
    custom_fields = mapper.issue_to_app(issue_payload)["customFields"]
    fields = mapper.issue_to_tracker({"Story Points": custom_fields["Story Points"]})["fields"]

    assert fields["customfield_10004"] == issue_payload["fields"]["customfield_10004"]


def test_builtin_fields_round_trip(mapper):
    app_issue = {
        "summary": "Round trip",
        "labels": ["backend", "urgent"],
        "versions": ["1.0", "1.1"],
        "components": ["API", "Web"],
    }

    jira_issue = mapper.issue_to_tracker(app_issue)
    issue = mapper.issue_to_app({"id": "1", "key": "TEST-1", "fields": jira_issue["fields"]})

    assert issue["summary"] == app_issue["summary"]
    assert issue["labels"] == app_issue["labels"]
    assert [v["name"] for v in issue["versions"]] == app_issue["versions"]
    assert [c["name"] for c in issue["components"]] == app_issue["components"]


def test_comment_to_tracker(mapper):
    comment = mapper.comment_to_tracker({
        "issueKey": "TEST-34",
        "body": "<p>hi <strong>there</strong></p>",
        "bodyFormat": "html",
    })

    assert comment == {"issueKey": "TEST-34", "body": "hi *there*"}


def test_rules_cover_every_value_type():
    assert set(INBOUND_RULES) == set(ValueType)
    assert set(OUTBOUND_RULES) == set(ValueType)


def test_array_rules_wrap_bare_values():
    assert convert_to_app({"name": "x"}, ValueType.USER, is_array=True) == [{"name": "x"}]
    assert convert_to_jira("x", ValueType.VERSION, is_array=True) == [{"name": "x"}]
    assert convert_to_app(None, ValueType.USER, is_array=True) is None
    assert convert_to_jira(None, ValueType.PROJECT) is None


def test_unresolved_type_is_identity():
    value = {"anything": [1, 2]}
    assert convert_to_app(value, None) == value
    assert convert_to_jira(value, ValueType.OTHER) == value

import pytest

from cdevents_adapter.core.config import Settings
from cdevents_adapter.schemas.cdevents import (
    PIPELINE_RUN_FINISHED,
    PIPELINE_RUN_QUEUED,
    PIPELINE_RUN_STARTED,
    TASK_RUN_FINISHED,
    TASK_RUN_STARTED,
    Outcome,
)
from cdevents_adapter.schemas.jira import (
    JIRA_WEBHOOK_EVENT_TYPES,
    JiraChangelog,
    JiraPriorities,
    JiraStatuses,
    extract_jira_event_type,
    get_event_category,
    get_status_changes,
    is_comment_event,
    is_high_priority,
    is_issue_event,
    is_worklog_event,
    moved_from_status,
    moved_to_status,
    was_assigned,
    was_unassigned,
)
from cdevents_adapter.services.adapters.base import (
    UnsupportedEventTypeError,
    WebhookTransformError,
)
from cdevents_adapter.services.adapters.jira import (
    JiraAdapter,
    _jira_time,
    map_status_to_outcome,
)


@pytest.fixture
def adapter():
    return JiraAdapter()


def test_issue_created(adapter, jira_payload):
    event = adapter.transform(jira_payload("jira:issue_created"), "jira:issue_created")

    assert event.context.type == TASK_RUN_STARTED
    assert event.context.source == "https://jira.com/PROJ/PROJ-123"
    assert event.context.timestamp == "2024-01-15T10:00:00.000Z"
    assert event.subject.id == "jira-issue-PROJ-123"
    assert event.subject.content.task_name == "Implement login page"
    assert event.subject.content.url == "https://example.atlassian.net/browse/PROJ-123"

    jira = event.custom_data["jira"]
    assert jira["eventType"] == "jira:issue_created"
    assert jira["eventContext"] == "issue_created"
    assert jira["issue"]["status"] == {
        "name": "To Do",
        "category": "To Do",
        "categoryKey": "new",
    }
    assert jira["user"]["displayName"] == "Jane Developer"


def test_issue_moved_to_done(adapter, jira_payload, status_changelog):
    payload = jira_payload("jira:issue_updated", status="Done", changelog=status_changelog("Done"))

    event = adapter.transform(payload, "jira:issue_updated")

    assert event.context.type == PIPELINE_RUN_FINISHED
    assert event.subject.content.outcome == Outcome.SUCCESS
    assert event.subject.content.pipeline_name == "Implement login page"
    assert event.subject.content.errors is None
    assert event.custom_data["jira"]["changelog"]["items"][0]["toString"] == "Done"


@pytest.mark.parametrize(
    "status,event_type",
    [
        ("To Do", PIPELINE_RUN_QUEUED),
        ("Backlog", PIPELINE_RUN_QUEUED),
        ("In Progress", PIPELINE_RUN_STARTED),
        ("code review", PIPELINE_RUN_STARTED),
        ("Resolved", PIPELINE_RUN_FINISHED),
        ("Ready for Deploy", PIPELINE_RUN_FINISHED),
        ("Blocked", TASK_RUN_FINISHED),
    ],
)
def test_status_buckets(adapter, jira_payload, status_changelog, status, event_type):
    payload = jira_payload("jira:issue_updated", changelog=status_changelog(status))

    event = adapter.transform(payload, "jira:issue_updated")

    assert event.context.type == event_type
    assert event.subject.id == "jira-issue-PROJ-123"


def test_last_status_change_wins(adapter, jira_payload, status_changelog):
    changelog = status_changelog("In Progress", from_status="To Do")
    changelog["items"].append(
        {
            "field": "status",
            "fieldtype": "jira",
            "fromString": "In Progress",
            "toString": "Closed",
        }
    )

    event = adapter.transform(
        jira_payload("jira:issue_updated", changelog=changelog), "jira:issue_updated"
    )

    assert event.context.type == PIPELINE_RUN_FINISHED


def test_issue_updated_without_status_change(adapter, jira_payload):
    changelog = {
        "id": "10501",
        "items": [{"field": "summary", "fieldtype": "jira", "toString": "New title"}],
    }

    event = adapter.transform(
        jira_payload("jira:issue_updated", changelog=changelog), "jira:issue_updated"
    )

    assert event.context.type == TASK_RUN_FINISHED
    assert event.subject.content.outcome == Outcome.SUCCESS
    assert event.custom_data["jira"]["eventContext"] == "issue_updated"


def test_issue_deleted(adapter, jira_payload):
    event = adapter.transform(jira_payload("jira:issue_deleted"), "jira:issue_deleted")

    assert event.context.type == PIPELINE_RUN_FINISHED
    assert event.subject.content.outcome == Outcome.ERROR
    assert event.subject.content.errors == "Issue was deleted"


def test_comment_events(adapter, jira_payload):
    comment = {"id": "10100", "body": "Looks good", "author": {"displayName": "Sam"}}

    created = adapter.transform(
        jira_payload("comment_created", comment=comment), "comment_created"
    )
    deleted = adapter.transform(
        jira_payload("comment_deleted", comment=comment), "comment_deleted"
    )

    assert created.context.type == TASK_RUN_STARTED
    assert created.subject.id == "jira-issue-PROJ-123-comment-10100"
    assert created.subject.content.task_name == "Comment on Implement login page"
    assert created.custom_data["jira"]["comment"]["body"] == "Looks good"

    assert deleted.context.type == TASK_RUN_FINISHED
    assert deleted.subject.id == created.subject.id
    assert deleted.subject.content.outcome == Outcome.ERROR


def test_worklog_events(adapter, jira_payload):
    worklog = {"id": "20200", "timeSpent": "2h", "timeSpentSeconds": 7200}

    created = adapter.transform(
        jira_payload("worklog_created", worklog=worklog), "worklog_created"
    )
    updated = adapter.transform(
        jira_payload("worklog_updated", worklog=worklog), "worklog_updated"
    )

    assert created.subject.id == "jira-issue-PROJ-123-worklog-20200"
    assert created.subject.content.task_name == "Work logged on Implement login page"
    assert updated.context.type == TASK_RUN_FINISHED
    assert updated.subject.content.outcome == Outcome.SUCCESS
    assert updated.subject.content.task_name == "Worklog updated on Implement login page"


def test_comment_event_requires_comment(adapter, jira_payload):
    with pytest.raises(WebhookTransformError, match="comment"):
        adapter.transform(jira_payload("comment_created"), "comment_created")


def test_generic_event_with_issue(adapter, jira_payload):
    payload = jira_payload("issue_property_set")

    event = adapter.transform(payload, "issue_property_set")

    assert event.context.type == TASK_RUN_FINISHED
    assert event.subject.id == "jira-issue-PROJ-123"
    assert event.subject.content.outcome == Outcome.SUCCESS
    assert event.custom_data["jira"]["eventType"] == "issue_property_set"


def test_generic_event_without_issue(adapter):
    payload = {
        "timestamp": 1705312800000,
        "webhookEvent": "version_released",
        "version": {"id": "10010", "name": "1.2.0", "released": True},
    }

    event = adapter.transform(payload, "version_released")

    assert event.context.source == "https://jira.com"
    assert event.subject.id.startswith("jira-version_released-")
    assert event.subject.content.task_name == "Jira version_released event"
    assert event.custom_data["jira"]["issue"] is None


def test_generic_event_with_partial_issue(adapter):
    payload = {
        "webhookEvent": "version_released",
        "timestamp": 1705312800000,
        "issue": {"key": "P-1"},
    }

    event = adapter.transform(payload, "version_released")

    assert event.context.type == TASK_RUN_FINISHED
    assert event.context.source == "https://jira.com"
    assert event.subject.id == "jira-issue-P-1"
    assert event.subject.content.task_name == "Jira version_released event"
    assert event.subject.content.url is None
    assert event.custom_data["jira"]["issue"]["key"] == "P-1"
    assert event.custom_data["jira"]["issue"]["project"] is None


def test_generic_event_issue_without_key(adapter):
    payload = {
        "webhookEvent": "issue_property_set",
        "timestamp": 1705312800000,
        "issue": {
            "self": "https://example.atlassian.net/rest/api/2/issue/10002",
            "fields": {"summary": "Implement login page", "project": {"key": "PROJ"}},
        },
        "user": {"accountId": "abc"},
    }

    event = adapter.transform(payload, "issue_property_set")

    assert event.context.source == "https://jira.com"
    assert event.subject.id.startswith("jira-issue_property_set-")
    assert event.subject.content.task_name == "Implement login page"
    assert event.subject.content.url is None
    assert event.custom_data["jira"]["user"]["accountId"] == "abc"
    assert event.custom_data["jira"]["user"]["displayName"] is None


def test_unknown_event_type_rejected(adapter, jira_payload):
    with pytest.raises(UnsupportedEventTypeError, match="Unsupported event type: sprint_started"):
        adapter.transform(jira_payload("sprint_started"), "sprint_started")


def test_all_declared_events_supported(adapter):
    assert adapter.supported_events == JIRA_WEBHOOK_EVENT_TYPES
    assert len(adapter.supported_events) == 22


def test_configurable_status_buckets(jira_payload, status_changelog):
    adapter = JiraAdapter(
        queued_statuses=["Triage"],
        in_progress_statuses=["Building"],
        completed_statuses=["Shipped", "Won't Fix"],
    )

    def transform(status):
        payload = jira_payload("jira:issue_updated", changelog=status_changelog(status))
        return adapter.transform(payload, "jira:issue_updated")

    assert transform("Triage").context.type == PIPELINE_RUN_QUEUED
    assert transform("Building").context.type == PIPELINE_RUN_STARTED
    assert transform("Shipped").subject.content.outcome == Outcome.SUCCESS
    wont_fix = transform("Won't Fix")
    assert wont_fix.subject.content.outcome == Outcome.ERROR
    assert wont_fix.subject.content.errors == "Issue moved to Won't Fix"
    assert transform("Done").context.type == TASK_RUN_FINISHED


@pytest.mark.parametrize(
    "status,outcome",
    [
        ("Done", Outcome.SUCCESS),
        ("Deployed", Outcome.SUCCESS),
        ("Ready for Deploy", Outcome.SUCCESS),
        ("Rejected", Outcome.FAILURE),
        ("Cancelled", Outcome.FAILURE),
        ("Reopened", Outcome.ERROR),
        ("Duplicate", Outcome.ERROR),
        ("Won't Fix", Outcome.ERROR),
        ("Cannot Reproduce", Outcome.ERROR),
        (None, Outcome.ERROR),
        ("", Outcome.ERROR),
    ],
)
def test_status_outcomes(status, outcome):
    assert map_status_to_outcome(status) == outcome


def test_issue_url_requires_rest_self_link(adapter, jira_payload):
    payload = jira_payload()
    payload["issue"]["self"] = "urn:jira:issue:10002"

    event = adapter.transform(payload, "jira:issue_created")

    assert event.subject.content.url is None


def test_detect_event_type(adapter, jira_payload):
    assert adapter.detect_event_type(jira_payload("comment_updated"), {}) == "comment_updated"

    payload = jira_payload()
    del payload["webhookEvent"]
    assert adapter.detect_event_type(payload, {"X-Event-Key": "jira:issue_deleted"}) == (
        "jira:issue_deleted"
    )
    assert extract_jira_event_type({}, {}) is None


def test_changelog_helpers():
    changelog = JiraChangelog.model_validate(
        {
            "id": "1",
            "items": [
                {"field": "status", "fieldtype": "jira", "fromString": "To Do", "toString": "In Progress"},
                {"field": "assignee", "fieldtype": "jira", "from": None, "to": "jane"},
            ],
        }
    )

    assert len(get_status_changes(changelog)) == 1
    assert moved_to_status(changelog, "In Progress")
    assert moved_from_status(changelog, "To Do")
    assert was_assigned(changelog)
    assert not was_unassigned(changelog)
    assert get_status_changes(None) == []


def test_empty_bucket_disables_it(jira_payload, status_changelog):
    adapter = JiraAdapter(queued_statuses=[])
    payload = jira_payload("jira:issue_updated", changelog=status_changelog("To Do"))

    event = adapter.transform(payload, "jira:issue_updated")

    assert adapter.queued_statuses == frozenset()
    assert event.context.type == TASK_RUN_FINISHED
    assert event.custom_data["jira"]["eventContext"] == "status_change_generic"


def test_default_buckets_use_status_constants():
    defaults = Settings()

    assert JiraStatuses.BACKLOG in defaults.JIRA_QUEUED_STATUSES
    assert JiraStatuses.CODE_REVIEW in defaults.JIRA_IN_PROGRESS_STATUSES
    assert JiraStatuses.READY_FOR_DEPLOY in defaults.JIRA_COMPLETED_STATUSES
    assert JiraStatuses.REOPENED not in defaults.JIRA_COMPLETED_STATUSES


def test_event_categories():
    assert is_issue_event("jira:issue_deleted")
    assert is_comment_event("comment_updated")
    assert is_worklog_event("worklog_created")
    assert not is_issue_event("comment_created")

    assert get_event_category("jira:issue_created") == "issue"
    assert get_event_category("comment_deleted") == "comment"
    assert get_event_category("worklog_updated") == "worklog"
    assert get_event_category("version_released") == "other"


def test_event_category_in_custom_data(adapter, jira_payload):
    comment = {"id": "10100", "body": "Looks good"}

    issue_event = adapter.transform(jira_payload(), "jira:issue_created")
    comment_event = adapter.transform(
        jira_payload("comment_created", comment=comment), "comment_created"
    )
    generic_event = adapter.transform(jira_payload("project_updated"), "project_updated")

    assert issue_event.custom_data["jira"]["eventCategory"] == "issue"
    assert comment_event.custom_data["jira"]["eventCategory"] == "comment"
    assert generic_event.custom_data["jira"]["eventCategory"] == "other"


@pytest.mark.parametrize(
    "priority,high",
    [
        (JiraPriorities.BLOCKER, True),
        (JiraPriorities.HIGHEST, True),
        (JiraPriorities.HIGH, True),
        (JiraPriorities.MEDIUM, False),
        (JiraPriorities.TRIVIAL, False),
        (None, False),
    ],
)
def test_high_priority(priority, high):
    assert is_high_priority(priority) is high


def test_priority_flag_in_custom_data(adapter, jira_payload):
    payload = jira_payload()
    payload["issue"]["fields"]["priority"] = {"id": "1", "name": JiraPriorities.CRITICAL}

    event = adapter.transform(payload, "jira:issue_created")

    assert event.custom_data["jira"]["issue"]["priority"] == {
        "name": "Critical",
        "id": "1",
        "high": True,
    }


def test_issue_dates_are_normalised(adapter, jira_payload):
    payload = jira_payload()
    payload["issue"]["fields"]["updated"] = "2024-01-15T12:00:00.000+0200"
    payload["issue"]["fields"]["duedate"] = "2024-02-01"

    issue = adapter.transform(payload, "jira:issue_created").custom_data["jira"]["issue"]

    assert issue["created"] == "2024-01-15T09:00:00.000Z"
    assert issue["updated"] == "2024-01-15T10:00:00.000Z"
    assert issue["duedate"] == "2024-02-01"


@pytest.mark.parametrize(
    "value,expected",
    [
        (1705312800000, "2024-01-15T10:00:00.000Z"),
        ("2024-01-15T10:00:00+00:00", "2024-01-15T10:00:00.000Z"),
        ("2024-01-15T10:00:00.123Z", "2024-01-15T10:00:00.123Z"),
        ("last tuesday", "last tuesday"),
        (None, None),
    ],
)
def test_jira_time(value, expected):
    assert _jira_time(value) == expected

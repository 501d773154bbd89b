from typing import Any, Dict, List, Literal, Mapping, Optional, Union, get_args

from pydantic import BaseModel, ConfigDict, Field

# Jira Server sends numeric ids, Jira Cloud sends them as strings
JiraId = Union[int, str]

JiraWebhookEventType = Literal[
    "jira:issue_created",
    "jira:issue_updated",
    "jira:issue_deleted",
    "comment_created",
    "comment_updated",
    "comment_deleted",
    "issue_property_set",
    "issue_property_deleted",
    "worklog_created",
    "worklog_updated",
    "worklog_deleted",
    "project_created",
    "project_updated",
    "project_deleted",
    "version_created",
    "version_updated",
    "version_deleted",
    "version_released",
    "version_unreleased",
    "component_created",
    "component_updated",
    "component_deleted",
]

JIRA_WEBHOOK_EVENT_TYPES: List[str] = list(get_args(JiraWebhookEventType))

ISSUE_EVENTS = ("jira:issue_created", "jira:issue_updated", "jira:issue_deleted")
COMMENT_EVENTS = ("comment_created", "comment_updated", "comment_deleted")
WORKLOG_EVENTS = ("worklog_created", "worklog_updated", "worklog_deleted")


class JiraStatuses:
    OPEN = "Open"
    IN_PROGRESS = "In Progress"
    REOPENED = "Reopened"
    RESOLVED = "Resolved"
    CLOSED = "Closed"
    TODO = "To Do"
    DONE = "Done"
    SELECTED_FOR_DEVELOPMENT = "Selected for Development"
    IN_REVIEW = "In Review"
    READY_FOR_TEST = "Ready for Test"
    TESTING = "Testing"
    READY_FOR_DEPLOY = "Ready for Deploy"
    BACKLOG = "Backlog"
    READY = "Ready"
    IN_DEVELOPMENT = "In Development"
    CODE_REVIEW = "Code Review"
    DEPLOYED = "Deployed"
    COMPLETE = "Complete"


class JiraPriorities:
    BLOCKER = "Blocker"
    CRITICAL = "Critical"
    MAJOR = "Major"
    MINOR = "Minor"
    TRIVIAL = "Trivial"
    HIGHEST = "Highest"
    HIGH = "High"
    MEDIUM = "Medium"
    LOW = "Low"
    LOWEST = "Lowest"


HIGH_PRIORITIES = frozenset(
    {
        JiraPriorities.BLOCKER,
        JiraPriorities.CRITICAL,
        JiraPriorities.HIGHEST,
        JiraPriorities.HIGH,
    }
)


class JiraModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class JiraUser(JiraModel):
    self_: Optional[str] = Field(default=None, alias="self")
    name: Optional[str] = None
    key: Optional[str] = None
    account_id: Optional[str] = Field(default=None, alias="accountId")
    email_address: Optional[str] = Field(default=None, alias="emailAddress")
    avatar_urls: Optional[Dict[str, str]] = Field(default=None, alias="avatarUrls")
    display_name: str = Field(alias="displayName")
    active: Optional[bool] = None
    time_zone: Optional[str] = Field(default=None, alias="timeZone")
    locale: Optional[str] = None


class JiraStatusCategory(JiraModel):
    self_: Optional[str] = Field(default=None, alias="self")
    id: JiraId
    key: str
    color_name: Optional[str] = Field(default=None, alias="colorName")
    name: str


class JiraStatus(JiraModel):
    self_: Optional[str] = Field(default=None, alias="self")
    description: Optional[str] = None
    icon_url: Optional[str] = Field(default=None, alias="iconUrl")
    name: str
    id: JiraId
    status_category: JiraStatusCategory = Field(alias="statusCategory")


class JiraIssueType(JiraModel):
    self_: Optional[str] = Field(default=None, alias="self")
    id: JiraId
    description: Optional[str] = None
    icon_url: Optional[str] = Field(default=None, alias="iconUrl")
    name: str
    subtask: bool


class JiraProject(JiraModel):
    self_: Optional[str] = Field(default=None, alias="self")
    id: JiraId
    key: str
    name: str
    project_type_key: Optional[str] = Field(default=None, alias="projectTypeKey")
    simplified: Optional[bool] = None


class JiraPriority(JiraModel):
    self_: Optional[str] = Field(default=None, alias="self")
    id: JiraId
    name: str


class JiraIssueFields(JiraModel):
    """Issue fields; custom fields (customfield_*) are kept as extras"""

    model_config = ConfigDict(extra="allow")

    summary: str
    status: JiraStatus
    issuetype: JiraIssueType
    project: JiraProject
    # Plain text on Server, Atlassian Document Format on Cloud
    description: Optional[Any] = None
    assignee: Optional[JiraUser] = None
    reporter: Optional[JiraUser] = None
    creator: Optional[JiraUser] = None
    priority: Optional[JiraPriority] = None
    labels: List[str] = []
    created: Optional[Union[int, str]] = None
    updated: Optional[Union[int, str]] = None
    duedate: Optional[str] = None
    resolution: Optional[Any] = None


class JiraIssue(JiraModel):
    self_: str = Field(alias="self")
    id: JiraId
    key: str
    fields: JiraIssueFields
    changelog: Optional[Dict[str, Any]] = None


class JiraChangeItem(JiraModel):
    field: str
    fieldtype: str
    from_: Optional[str] = Field(default=None, alias="from")
    from_string: Optional[str] = Field(default=None, alias="fromString")
    to: Optional[str] = None
    to_string: Optional[str] = Field(default=None, alias="toString")


class JiraChangelog(JiraModel):
    id: str
    items: List[JiraChangeItem]


class JiraVisibility(JiraModel):
    type: str
    value: str


class JiraComment(JiraModel):
    self_: Optional[str] = Field(default=None, alias="self")
    id: str
    author: Optional[JiraUser] = None
    body: Optional[Any] = None
    created: Optional[str] = None
    updated: Optional[str] = None
    visibility: Optional[JiraVisibility] = None


class JiraWorklog(JiraModel):
    self_: Optional[str] = Field(default=None, alias="self")
    id: str
    author: Optional[JiraUser] = None
    comment: Optional[Any] = None
    created: Optional[str] = None
    updated: Optional[str] = None
    started: Optional[str] = None
    time_spent: Optional[str] = Field(default=None, alias="timeSpent")
    time_spent_seconds: Optional[int] = Field(default=None, alias="timeSpentSeconds")
    visibility: Optional[JiraVisibility] = None


class JiraWebhookEvent(JiraModel):
    """Base Jira webhook payload"""

    timestamp: int
    webhook_event: JiraWebhookEventType = Field(alias="webhookEvent")
    user: JiraUser
    issue: JiraIssue
    comment: Optional[JiraComment] = None
    worklog: Optional[JiraWorklog] = None
    changelog: Optional[JiraChangelog] = None


class JiraIssueCreatedWebhook(JiraWebhookEvent):
    webhook_event: Literal["jira:issue_created"] = Field(alias="webhookEvent")


class JiraIssueUpdatedWebhook(JiraWebhookEvent):
    webhook_event: Literal["jira:issue_updated"] = Field(alias="webhookEvent")
    issue_event_type_name: Optional[str] = None


class JiraIssueDeletedWebhook(JiraWebhookEvent):
    webhook_event: Literal["jira:issue_deleted"] = Field(alias="webhookEvent")


class JiraCommentCreatedWebhook(JiraWebhookEvent):
    webhook_event: Literal["comment_created"] = Field(alias="webhookEvent")
    comment: JiraComment


class JiraCommentUpdatedWebhook(JiraWebhookEvent):
    webhook_event: Literal["comment_updated"] = Field(alias="webhookEvent")
    comment: JiraComment


class JiraCommentDeletedWebhook(JiraWebhookEvent):
    webhook_event: Literal["comment_deleted"] = Field(alias="webhookEvent")
    comment: JiraComment


class JiraWorklogCreatedWebhook(JiraWebhookEvent):
    webhook_event: Literal["worklog_created"] = Field(alias="webhookEvent")
    worklog: JiraWorklog


class JiraWorklogUpdatedWebhook(JiraWebhookEvent):
    webhook_event: Literal["worklog_updated"] = Field(alias="webhookEvent")
    worklog: JiraWorklog


class JiraWorklogDeletedWebhook(JiraWebhookEvent):
    webhook_event: Literal["worklog_deleted"] = Field(alias="webhookEvent")
    worklog: JiraWorklog


class JiraGenericIssueFields(JiraModel):
    model_config = ConfigDict(extra="allow")

    summary: Optional[str] = None
    status: Optional[Dict[str, Any]] = None
    issuetype: Optional[Dict[str, Any]] = None
    project: Optional[Dict[str, Any]] = None
    assignee: Optional[Dict[str, Any]] = None


class JiraGenericIssue(JiraModel):
    """Whatever part of an issue a non-issue event chooses to include"""

    model_config = ConfigDict(extra="allow")

    self_: Optional[str] = Field(default=None, alias="self")
    id: Optional[JiraId] = None
    key: Optional[str] = None
    fields: Optional[JiraGenericIssueFields] = None


class JiraGenericWebhook(JiraModel):
    """Loose shape for event types without a dedicated schema"""

    model_config = ConfigDict(extra="allow")

    timestamp: Optional[int] = None
    webhook_event: Optional[str] = Field(default=None, alias="webhookEvent")
    user: Optional[Dict[str, Any]] = None
    issue: Optional[JiraGenericIssue] = None
    comment: Optional[Dict[str, Any]] = None
    worklog: Optional[Dict[str, Any]] = None
    changelog: Optional[Dict[str, Any]] = None


def is_issue_event(webhook_event: str) -> bool:
    return webhook_event in ISSUE_EVENTS


def is_comment_event(webhook_event: str) -> bool:
    return webhook_event in COMMENT_EVENTS


def is_worklog_event(webhook_event: str) -> bool:
    return webhook_event in WORKLOG_EVENTS


def get_event_category(webhook_event: str) -> str:
    """Category of a webhook event: issue, comment, worklog or other"""
    if is_issue_event(webhook_event):
        return "issue"
    if is_comment_event(webhook_event):
        return "comment"
    if is_worklog_event(webhook_event):
        return "worklog"
    return "other"


def is_high_priority(priority_name: Optional[str]) -> bool:
    return priority_name in HIGH_PRIORITIES


def extract_jira_event_type(
    headers: Mapping[str, str], payload: Optional[Dict[str, Any]] = None
) -> Optional[str]:
    """Read the event type from the payload, falling back to the X-Event-Key header"""
    if payload and isinstance(payload.get("webhookEvent"), str):
        return payload["webhookEvent"]
    lowered = {key.lower(): value for key, value in headers.items()}
    return lowered.get("x-event-key") or None


def get_status_changes(changelog: Optional[JiraChangelog]) -> List[JiraChangeItem]:
    if not changelog:
        return []
    return [item for item in changelog.items if item.field == "status"]


def get_assignee_changes(changelog: Optional[JiraChangelog]) -> List[JiraChangeItem]:
    if not changelog:
        return []
    return [item for item in changelog.items if item.field == "assignee"]


def was_assigned(changelog: Optional[JiraChangelog]) -> bool:
    return any(
        change.from_ is None and change.to is not None
        for change in get_assignee_changes(changelog)
    )


def was_unassigned(changelog: Optional[JiraChangelog]) -> bool:
    return any(
        change.from_ is not None and change.to is None
        for change in get_assignee_changes(changelog)
    )


def moved_to_status(changelog: Optional[JiraChangelog], status_name: str) -> bool:
    return any(change.to_string == status_name for change in get_status_changes(changelog))


def moved_from_status(changelog: Optional[JiraChangelog], status_name: str) -> bool:
    return any(
        change.from_string == status_name for change in get_status_changes(changelog)
    )


JIRA_EVENT_WEBHOOKS: Dict[str, type] = {
    "jira:issue_created": JiraIssueCreatedWebhook,
    "jira:issue_updated": JiraIssueUpdatedWebhook,
    "jira:issue_deleted": JiraIssueDeletedWebhook,
    "comment_created": JiraCommentCreatedWebhook,
    "comment_updated": JiraCommentUpdatedWebhook,
    "comment_deleted": JiraCommentDeletedWebhook,
    "worklog_created": JiraWorklogCreatedWebhook,
    "worklog_updated": JiraWorklogUpdatedWebhook,
    "worklog_deleted": JiraWorklogDeletedWebhook,
}

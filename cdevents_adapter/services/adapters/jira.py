import time
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Iterable, Mapping, Optional, Type, Union

from pydantic import BaseModel, ValidationError

from cdevents_adapter.core.config import settings
from cdevents_adapter.schemas.cdevents import (
    CDEvent,
    Outcome,
    create_pipeline_run_finished_event,
    create_pipeline_run_queued_event,
    create_pipeline_run_started_event,
    create_task_run_finished_event,
    create_task_run_started_event,
    format_timestamp,
)
from cdevents_adapter.schemas.jira import (
    JIRA_EVENT_WEBHOOKS,
    JIRA_WEBHOOK_EVENT_TYPES,
    JiraGenericIssue,
    JiraGenericWebhook,
    JiraIssue,
    JiraUser,
    JiraWebhookEvent,
    extract_jira_event_type,
    get_event_category,
    get_status_changes,
    is_high_priority,
)

from .base import Adapter, TransformResult, create_source_uri

STATUS_OUTCOMES: Dict[str, Outcome] = {
    "done": Outcome.SUCCESS,
    "closed": Outcome.SUCCESS,
    "resolved": Outcome.SUCCESS,
    "complete": Outcome.SUCCESS,
    "deployed": Outcome.SUCCESS,
    "rejected": Outcome.FAILURE,
    "cancelled": Outcome.FAILURE,
    "failed": Outcome.FAILURE,
    "blocked": Outcome.FAILURE,
    "reopened": Outcome.ERROR,
    "duplicate": Outcome.ERROR,
    "won't fix": Outcome.ERROR,
    "wontfix": Outcome.ERROR,
    "cannot reproduce": Outcome.ERROR,
    "cannotreproduce": Outcome.ERROR,
}


def map_status_to_outcome(status: Optional[str]) -> Outcome:
    """Outcome for an issue that reached a completed-like status"""
    if not status:
        return Outcome.ERROR
    # Any other completed-like status is a success
    return STATUS_OUTCOMES.get(status.lower(), Outcome.SUCCESS)


def _user_summary(user: Optional[JiraUser]) -> Optional[Dict[str, Any]]:
    if user is None:
        return None
    return {
        "displayName": user.display_name,
        "emailAddress": user.email_address,
        "accountId": user.account_id,
    }


def _parse_jira_datetime(value: str) -> Optional[datetime]:
    # Jira renders offsets without a colon ("2024-01-15T10:00:00.000+0000")
    for pattern in ("%Y-%m-%dT%H:%M:%S.%f%z", "%Y-%m-%dT%H:%M:%S%z"):
        try:
            return datetime.strptime(value, pattern)
        except ValueError:
            continue
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None


def _jira_time(value: Union[int, str, None]) -> Optional[str]:
    """Issue dates rendered like every other CD Events timestamp

    Epoch milliseconds and ISO strings are both accepted; anything
    unparseable is passed through untouched.
    """
    if isinstance(value, int):
        return format_timestamp(datetime.fromtimestamp(value / 1000, tz=timezone.utc))
    if isinstance(value, str):
        parsed = _parse_jira_datetime(value)
        return format_timestamp(parsed) if parsed is not None else value
    return value


def _dump(model: Optional[BaseModel]) -> Optional[Dict[str, Any]]:
    if model is None:
        return None
    return model.model_dump(mode="json", by_alias=True, exclude_none=True)


def browse_url(self_link: Optional[str], key: Optional[str]) -> Optional[str]:
    """Browse URL derived from an issue's REST self link"""
    if not self_link or not key:
        return None
    index = self_link.find("/rest/api")
    if index == -1:
        return None
    return f"{self_link[:index]}/browse/{key}"


class JiraAdapter(Adapter):
    name = "jira"
    version = settings.APP_VERSION
    supported_events = JIRA_WEBHOOK_EVENT_TYPES
    description = "Jira webhook adapter for transforming Jira events to CD Events"

    def __init__(
        self,
        queued_statuses: Optional[Iterable[str]] = None,
        in_progress_statuses: Optional[Iterable[str]] = None,
        completed_statuses: Optional[Iterable[str]] = None,
    ):
        self.queued_statuses = self._normalise(
            queued_statuses, settings.JIRA_QUEUED_STATUSES
        )
        self.in_progress_statuses = self._normalise(
            in_progress_statuses, settings.JIRA_IN_PROGRESS_STATUSES
        )
        self.completed_statuses = self._normalise(
            completed_statuses, settings.JIRA_COMPLETED_STATUSES
        )
        self._handlers: Dict[str, Callable[[Any, str], CDEvent]] = {
            "jira:issue_created": self._transform_issue_created,
            "jira:issue_updated": self._transform_issue_updated,
            "jira:issue_deleted": self._transform_issue_deleted,
            "comment_created": self._transform_comment_created,
            "comment_updated": self._transform_comment_updated,
            "comment_deleted": self._transform_comment_deleted,
            "worklog_created": self._transform_worklog_created,
            "worklog_updated": self._transform_worklog_updated,
            "worklog_deleted": self._transform_worklog_deleted,
        }

    @staticmethod
    def _normalise(statuses: Optional[Iterable[str]], default: Iterable[str]) -> frozenset:
        # An empty list disables the bucket; only None falls back to settings
        if statuses is None:
            statuses = default
        return frozenset(status.casefold() for status in statuses)

    @property
    def endpoints(self) -> Dict[str, str]:
        return {
            "issue_created": "/adapters/jira/events/jira:issue_created",
            "issue_updated": "/adapters/jira/events/jira:issue_updated",
            "issue_deleted": "/adapters/jira/events/jira:issue_deleted",
            "comment_created": "/adapters/jira/events/comment_created",
            "comment_updated": "/adapters/jira/events/comment_updated",
            "comment_deleted": "/adapters/jira/events/comment_deleted",
            "worklog_created": "/adapters/jira/events/worklog_created",
            "worklog_updated": "/adapters/jira/events/worklog_updated",
            "worklog_deleted": "/adapters/jira/events/worklog_deleted",
            "generic_webhook": "/adapters/jira/webhook",
            "info": "/adapters/jira/info",
        }

    def get_webhook_schema(self, event_type: str) -> Optional[Type[BaseModel]]:
        return JIRA_EVENT_WEBHOOKS.get(event_type, JiraGenericWebhook)

    def validate_webhook(self, payload: Any) -> bool:
        try:
            JiraWebhookEvent.model_validate(payload)
            return True
        except ValidationError:
            return False

    def detect_event_type(
        self, payload: Dict[str, Any], headers: Mapping[str, str]
    ) -> Optional[str]:
        return extract_jira_event_type(headers, payload)

    def _transform(
        self, payload: Dict[str, Any], event_type: str, event_id: str
    ) -> TransformResult:
        handler = self._handlers.get(event_type)
        if handler is None:
            webhook = self.parse(JiraGenericWebhook, payload)
            return self._transform_generic(webhook, event_type, event_id)
        return handler(self.parse(JIRA_EVENT_WEBHOOKS[event_type], payload), event_id)

    # Status buckets

    def is_queued_status(self, status: Optional[str]) -> bool:
        return bool(status) and status.casefold() in self.queued_statuses

    def is_in_progress_status(self, status: Optional[str]) -> bool:
        return bool(status) and status.casefold() in self.in_progress_statuses

    def is_completed_status(self, status: Optional[str]) -> bool:
        return bool(status) and status.casefold() in self.completed_statuses

    # Issue events

    def _transform_issue_created(self, webhook: JiraWebhookEvent, event_id: str) -> CDEvent:
        return create_task_run_started_event(
            event_id,
            self._source(webhook.issue),
            self._timestamp(webhook.timestamp),
            self.create_subject_id(webhook.issue),
            task_name=webhook.issue.fields.summary,
            url=self.create_issue_url(webhook.issue),
            custom_data=self._custom_data(webhook, "issue_created"),
        )

    def _transform_issue_updated(self, webhook: JiraWebhookEvent, event_id: str) -> CDEvent:
        issue = webhook.issue
        common = dict(
            context_id=event_id,
            source=self._source(issue),
            timestamp=self._timestamp(webhook.timestamp),
            subject_id=self.create_subject_id(issue),
            url=self.create_issue_url(issue),
        )

        status_changes = get_status_changes(webhook.changelog)
        if not status_changes:
            return create_task_run_finished_event(
                outcome=Outcome.SUCCESS,
                task_name=issue.fields.summary,
                custom_data=self._custom_data(webhook, "issue_updated"),
                **common,
            )

        # The last status item is where the issue ended up
        new_status = status_changes[-1].to_string

        if self.is_queued_status(new_status):
            return create_pipeline_run_queued_event(
                pipeline_name=issue.fields.summary,
                custom_data=self._custom_data(webhook, "status_change_queued"),
                **common,
            )

        if self.is_in_progress_status(new_status):
            return create_pipeline_run_started_event(
                pipeline_name=issue.fields.summary,
                custom_data=self._custom_data(webhook, "status_change_started"),
                **common,
            )

        if self.is_completed_status(new_status):
            outcome = map_status_to_outcome(new_status)
            return create_pipeline_run_finished_event(
                outcome=outcome,
                pipeline_name=issue.fields.summary,
                errors=f"Issue moved to {new_status}" if outcome != Outcome.SUCCESS else None,
                custom_data=self._custom_data(webhook, "status_change_finished"),
                **common,
            )

        return create_task_run_finished_event(
            outcome=Outcome.SUCCESS,
            task_name=issue.fields.summary,
            custom_data=self._custom_data(webhook, "status_change_generic"),
            **common,
        )

    def _transform_issue_deleted(self, webhook: JiraWebhookEvent, event_id: str) -> CDEvent:
        return create_pipeline_run_finished_event(
            event_id,
            self._source(webhook.issue),
            self._timestamp(webhook.timestamp),
            self.create_subject_id(webhook.issue),
            outcome=Outcome.ERROR,
            pipeline_name=webhook.issue.fields.summary,
            url=self.create_issue_url(webhook.issue),
            errors="Issue was deleted",
            custom_data=self._custom_data(webhook, "issue_deleted"),
        )

    # Comment and worklog events get their own subject so they don't
    # collide with the lifecycle of the issue itself

    def _transform_comment_created(self, webhook: JiraWebhookEvent, event_id: str) -> CDEvent:
        return self._sub_entity_started(
            webhook, event_id, f"comment-{webhook.comment.id}",
            f"Comment on {webhook.issue.fields.summary}", "comment_created",
        )

    def _transform_comment_updated(self, webhook: JiraWebhookEvent, event_id: str) -> CDEvent:
        return self._sub_entity_finished(
            webhook, event_id, f"comment-{webhook.comment.id}", Outcome.SUCCESS,
            f"Comment updated on {webhook.issue.fields.summary}", "comment_updated",
        )

    def _transform_comment_deleted(self, webhook: JiraWebhookEvent, event_id: str) -> CDEvent:
        return self._sub_entity_finished(
            webhook, event_id, f"comment-{webhook.comment.id}", Outcome.ERROR,
            f"Comment deleted from {webhook.issue.fields.summary}", "comment_deleted",
        )

    def _transform_worklog_created(self, webhook: JiraWebhookEvent, event_id: str) -> CDEvent:
        return self._sub_entity_started(
            webhook, event_id, f"worklog-{webhook.worklog.id}",
            f"Work logged on {webhook.issue.fields.summary}", "worklog_created",
        )

    def _transform_worklog_updated(self, webhook: JiraWebhookEvent, event_id: str) -> CDEvent:
        return self._sub_entity_finished(
            webhook, event_id, f"worklog-{webhook.worklog.id}", Outcome.SUCCESS,
            f"Worklog updated on {webhook.issue.fields.summary}", "worklog_updated",
        )

    def _transform_worklog_deleted(self, webhook: JiraWebhookEvent, event_id: str) -> CDEvent:
        return self._sub_entity_finished(
            webhook, event_id, f"worklog-{webhook.worklog.id}", Outcome.ERROR,
            f"Worklog deleted from {webhook.issue.fields.summary}", "worklog_deleted",
        )

    def _sub_entity_started(
        self, webhook: JiraWebhookEvent, event_id: str, suffix: str, task_name: str, label: str
    ) -> CDEvent:
        return create_task_run_started_event(
            event_id,
            self._source(webhook.issue),
            self._timestamp(webhook.timestamp),
            f"{self.create_subject_id(webhook.issue)}-{suffix}",
            task_name=task_name,
            url=self.create_issue_url(webhook.issue),
            custom_data=self._custom_data(webhook, label),
        )

    def _sub_entity_finished(
        self,
        webhook: JiraWebhookEvent,
        event_id: str,
        suffix: str,
        outcome: Outcome,
        task_name: str,
        label: str,
    ) -> CDEvent:
        return create_task_run_finished_event(
            event_id,
            self._source(webhook.issue),
            self._timestamp(webhook.timestamp),
            f"{self.create_subject_id(webhook.issue)}-{suffix}",
            outcome=outcome,
            task_name=task_name,
            url=self.create_issue_url(webhook.issue),
            custom_data=self._custom_data(webhook, label),
        )

    # Anything without a dedicated mapping

    def _transform_generic(
        self, webhook: JiraGenericWebhook, event_type: str, event_id: str
    ) -> CDEvent:
        """Best-effort task run built from whatever issue fields are present"""
        issue = webhook.issue or JiraGenericIssue()
        fields = issue.fields
        project = (fields.project if fields else None) or {}

        if issue.key:
            source = create_source_uri("jira", project.get("key"), issue.key)
            subject_id = f"jira-issue-{issue.key}"
        else:
            source = create_source_uri("jira")
            subject_id = f"jira-{event_type}-{int(time.time() * 1000)}"

        issue_data = None
        if webhook.issue is not None:
            issue_data = {
                "key": issue.key,
                "id": issue.id,
                "summary": fields.summary if fields else None,
                "status": (fields.status or {}).get("name") if fields else None,
                "assignee": (fields.assignee or {}).get("displayName") if fields else None,
                "project": {"key": project.get("key"), "name": project.get("name")}
                if project
                else None,
                "issueType": (fields.issuetype or {}).get("name") if fields else None,
            }

        user = webhook.user or {}
        return create_task_run_finished_event(
            event_id,
            source,
            self._timestamp(webhook.timestamp),
            subject_id,
            outcome=Outcome.SUCCESS,
            task_name=(fields.summary if fields else None) or f"Jira {event_type} event",
            url=browse_url(issue.self_, issue.key),
            custom_data={
                "jira": {
                    "eventType": event_type,
                    "eventCategory": get_event_category(event_type),
                    "timestamp": webhook.timestamp,
                    "user": {
                        "displayName": user.get("displayName"),
                        "emailAddress": user.get("emailAddress"),
                        "accountId": user.get("accountId"),
                    }
                    if user
                    else None,
                    "issue": issue_data,
                    "comment": webhook.comment,
                    "worklog": webhook.worklog,
                    "changelog": webhook.changelog,
                }
            },
        )

    # Helpers

    def create_subject_id(self, issue: JiraIssue) -> str:
        return f"jira-issue-{issue.key}"

    def create_issue_url(self, issue: JiraIssue) -> Optional[str]:
        return browse_url(issue.self_, issue.key)

    def _source(self, issue: JiraIssue) -> str:
        return create_source_uri("jira", issue.fields.project.key, issue.key)

    def _timestamp(self, timestamp: Optional[int]) -> str:
        if timestamp is None:
            return format_timestamp()
        return format_timestamp(datetime.fromtimestamp(timestamp / 1000, tz=timezone.utc))

    def _custom_data(self, webhook: JiraWebhookEvent, event_context: str) -> Dict[str, Any]:
        fields = webhook.issue.fields
        return {
            "jira": {
                "eventType": webhook.webhook_event,
                "eventCategory": get_event_category(webhook.webhook_event),
                "eventContext": event_context,
                "timestamp": webhook.timestamp,
                "user": _user_summary(webhook.user),
                "issue": {
                    "key": webhook.issue.key,
                    "id": webhook.issue.id,
                    "summary": fields.summary,
                    "description": fields.description,
                    "status": {
                        "name": fields.status.name,
                        "category": fields.status.status_category.name,
                        "categoryKey": fields.status.status_category.key,
                    },
                    "assignee": _user_summary(fields.assignee),
                    "reporter": _user_summary(fields.reporter),
                    "creator": _user_summary(fields.creator),
                    "project": {
                        "key": fields.project.key,
                        "name": fields.project.name,
                        "id": fields.project.id,
                    },
                    "issueType": {
                        "name": fields.issuetype.name,
                        "id": fields.issuetype.id,
                        "subtask": fields.issuetype.subtask,
                    },
                    "priority": {
                        "name": fields.priority.name,
                        "id": fields.priority.id,
                        "high": is_high_priority(fields.priority.name),
                    }
                    if fields.priority
                    else None,
                    "labels": fields.labels,
                    "created": _jira_time(fields.created),
                    "updated": _jira_time(fields.updated),
                    "duedate": fields.duedate,
                },
                "comment": _dump(webhook.comment),
                "worklog": _dump(webhook.worklog),
                "changelog": _dump(webhook.changelog),
            }
        }

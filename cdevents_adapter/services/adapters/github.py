from typing import Any, Dict, Mapping, Optional, Type

from pydantic import BaseModel, ValidationError

from cdevents_adapter.core.config import settings
from cdevents_adapter.schemas.adapter import PingAcknowledgement, PingDetails
from cdevents_adapter.schemas.cdevents import (
    CDEvent,
    Outcome,
    create_pipeline_run_finished_event,
    create_pipeline_run_queued_event,
    create_pipeline_run_started_event,
    format_timestamp,
)
from cdevents_adapter.schemas.github import (
    WORKFLOW_JOB_WEBHOOKS,
    GitHubPingWebhook,
    GitHubWorkflowJobCompletedWebhook,
    GitHubWorkflowJobWebhook,
)

from .base import Adapter, TransformResult, create_source_uri

CONCLUSION_OUTCOMES: Dict[str, Outcome] = {
    "success": Outcome.SUCCESS,
    "failure": Outcome.FAILURE,
    "timed_out": Outcome.FAILURE,
    "action_required": Outcome.FAILURE,
    "cancelled": Outcome.ERROR,
    "skipped": Outcome.ERROR,
    "neutral": Outcome.ERROR,
}

CONCLUSION_MESSAGES: Dict[str, str] = {
    "failure": "failed",
    "timed_out": "timed out",
    "cancelled": "was cancelled",
    "action_required": "requires action",
}


def map_conclusion_to_outcome(conclusion: Optional[str]) -> Outcome:
    """Unknown or missing conclusions count as errors, never as success"""
    return CONCLUSION_OUTCOMES.get(conclusion or "", Outcome.ERROR)


def describe_conclusion(job_name: str, conclusion: Optional[str]) -> str:
    if conclusion in CONCLUSION_MESSAGES:
        return f'Workflow job "{job_name}" {CONCLUSION_MESSAGES[conclusion]}'
    return f'Workflow job "{job_name}" completed with conclusion: {conclusion}'


class GitHubAdapter(Adapter):
    name = "github"
    version = settings.APP_VERSION
    supported_events = [
        "workflow_job.queued",
        "workflow_job.waiting",
        "workflow_job.in_progress",
        "workflow_job.completed",
        "ping",
    ]
    description = "GitHub webhook adapter for transforming workflow job events to CD Events"

    @property
    def endpoints(self) -> Dict[str, str]:
        return {
            "workflow_job_queued": "/adapters/github/events/workflow_job.queued",
            "workflow_job_waiting": "/adapters/github/events/workflow_job.waiting",
            "workflow_job_in_progress": "/adapters/github/events/workflow_job.in_progress",
            "workflow_job_completed": "/adapters/github/events/workflow_job.completed",
            "ping": "/adapters/github/events/ping",
            "generic_webhook": "/adapters/github/webhook",
            "info": "/adapters/github/info",
        }

    def get_webhook_schema(self, event_type: str) -> Optional[Type[BaseModel]]:
        if event_type == "ping":
            return GitHubPingWebhook
        if event_type.startswith("workflow_job."):
            action = event_type.split(".", 1)[1]
            return WORKFLOW_JOB_WEBHOOKS.get(action, GitHubWorkflowJobWebhook)
        return GitHubWorkflowJobWebhook

    def validate_webhook(self, payload: Any) -> bool:
        try:
            GitHubWorkflowJobWebhook.model_validate(payload)
            return True
        except ValidationError:
            return False

    def detect_event_type(
        self, payload: Dict[str, Any], headers: Mapping[str, str]
    ) -> Optional[str]:
        """Work out the event type from the X-GitHub-Event header and payload"""
        header_event = {key.lower(): value for key, value in headers.items()}.get(
            "x-github-event"
        )
        if header_event == "ping" or (
            "zen" in payload and "hook_id" in payload and "action" not in payload
        ):
            return "ping"
        return f"{header_event or 'workflow_job'}.{payload.get('action')}"

    def _transform(
        self, payload: Dict[str, Any], event_type: str, event_id: str
    ) -> TransformResult:
        if event_type == "ping":
            return self._transform_ping(self.parse(GitHubPingWebhook, payload))

        webhook = self.parse(self.get_webhook_schema(event_type), payload)
        if webhook.action in ("queued", "waiting"):
            return self._transform_queued(webhook, event_id)
        if webhook.action == "in_progress":
            return self._transform_in_progress(webhook, event_id)
        return self._transform_completed(webhook, event_id)

    def _transform_queued(self, webhook: GitHubWorkflowJobWebhook, event_id: str) -> CDEvent:
        # queued and waiting both mean accepted but not yet running
        return create_pipeline_run_queued_event(
            event_id,
            self._source(webhook),
            self._timestamp(webhook),
            self.create_subject_id(webhook.workflow_job.id),
            pipeline_name=self._pipeline_name(webhook),
            url=webhook.workflow_job.html_url,
            custom_data=self._custom_data(webhook),
        )

    def _transform_in_progress(
        self, webhook: GitHubWorkflowJobWebhook, event_id: str
    ) -> CDEvent:
        job = webhook.workflow_job
        return create_pipeline_run_started_event(
            event_id,
            self._source(webhook),
            self._timestamp(webhook),
            self.create_subject_id(job.id),
            pipeline_name=self._pipeline_name(webhook),
            url=job.html_url,
            custom_data=self._custom_data(
                webhook,
                started_at=_format_optional(job.started_at),
                runner_id=job.runner_id,
                runner_name=job.runner_name,
            ),
        )

    def _transform_completed(
        self, webhook: GitHubWorkflowJobCompletedWebhook, event_id: str
    ) -> CDEvent:
        job = webhook.workflow_job
        outcome = map_conclusion_to_outcome(job.conclusion)
        errors = None
        if outcome in (Outcome.ERROR, Outcome.FAILURE):
            errors = describe_conclusion(job.name, job.conclusion)

        return create_pipeline_run_finished_event(
            event_id,
            self._source(webhook),
            self._timestamp(webhook),
            self.create_subject_id(job.id),
            outcome=outcome,
            pipeline_name=self._pipeline_name(webhook),
            url=job.html_url,
            errors=errors,
            custom_data=self._custom_data(
                webhook,
                conclusion=job.conclusion,
                started_at=_format_optional(job.started_at),
                completed_at=_format_optional(job.completed_at),
                runner_id=job.runner_id,
                runner_name=job.runner_name,
                steps=[step.model_dump(mode="json") for step in job.steps],
            ),
        )

    def _transform_ping(self, webhook: GitHubPingWebhook) -> PingAcknowledgement:
        # Registration pings carry no lifecycle, so no CD Event is emitted
        return PingAcknowledgement(
            success=True,
            message="GitHub webhook ping received successfully",
            ping=PingDetails(
                zen=webhook.zen,
                hook_id=webhook.hook_id,
                repository=webhook.repository.full_name if webhook.repository else None,
                sender=webhook.sender.login if webhook.sender else None,
            ),
        )

    def create_subject_id(self, job_id: int) -> str:
        # The job id survives queued -> in_progress -> completed
        return f"github-workflow-job-{job_id}"

    def _source(self, webhook: GitHubWorkflowJobWebhook) -> str:
        return create_source_uri(
            "github", webhook.repository.owner.login, webhook.repository.name
        )

    def _timestamp(self, webhook: GitHubWorkflowJobWebhook) -> str:
        return format_timestamp(webhook.workflow_job.started_at)

    def _pipeline_name(self, webhook: GitHubWorkflowJobWebhook) -> Optional[str]:
        if webhook.workflow:
            return webhook.workflow.name
        return webhook.workflow_job.workflow_name

    def _custom_data(self, webhook: GitHubWorkflowJobWebhook, **job_fields: Any) -> Dict[str, Any]:
        job = webhook.workflow_job
        repository = webhook.repository
        github: Dict[str, Any] = {
            "action": webhook.action,
            "workflow_job": {
                "id": job.id,
                "run_id": job.run_id,
                "name": job.name,
                "workflow_name": job.workflow_name,
                "head_branch": job.head_branch,
                "head_sha": job.head_sha,
                "labels": job.labels,
                "status": job.status,
                **job_fields,
            },
            "repository": {
                "id": repository.id,
                "name": repository.name,
                "full_name": repository.full_name,
                "owner": repository.owner.login,
            },
            "sender": {
                "login": webhook.sender.login,
                "id": webhook.sender.id,
            },
        }
        if webhook.workflow:
            github["workflow"] = webhook.workflow.model_dump()
        return {"github": github}


def _format_optional(moment) -> Optional[str]:
    return format_timestamp(moment) if moment else None

from datetime import datetime
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict

WorkflowJobStatus = Literal["queued", "waiting", "in_progress", "completed"]
WorkflowJobConclusion = Literal[
    "success",
    "failure",
    "neutral",
    "cancelled",
    "skipped",
    "timed_out",
    "action_required",
]


class GitHubUser(BaseModel):
    login: str
    id: int
    node_id: Optional[str] = None
    avatar_url: Optional[str] = None
    gravatar_id: Optional[str] = None
    url: Optional[str] = None
    html_url: Optional[str] = None
    type: Optional[str] = None
    site_admin: Optional[bool] = None
    user_view_type: Optional[str] = None


class GitHubRepository(BaseModel):
    id: int
    node_id: Optional[str] = None
    name: str
    full_name: str
    private: Optional[bool] = None
    owner: GitHubUser
    html_url: Optional[str] = None
    description: Optional[str] = None
    fork: Optional[bool] = None
    url: Optional[str] = None
    clone_url: Optional[str] = None
    default_branch: Optional[str] = None
    language: Optional[str] = None
    visibility: Optional[str] = None
    topics: Optional[List[str]] = None
    archived: Optional[bool] = None
    disabled: Optional[bool] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    # Push payloads send an epoch integer here, the REST shape an ISO string
    pushed_at: Optional[Any] = None


class GitHubOrganization(BaseModel):
    login: str
    id: int
    node_id: Optional[str] = None
    url: Optional[str] = None
    avatar_url: Optional[str] = None
    description: Optional[str] = None


class GitHubInstallation(BaseModel):
    id: int
    node_id: Optional[str] = None


class GitHubWorkflow(BaseModel):
    id: int
    name: str
    path: Optional[str] = None


class GitHubWorkflowJobStep(BaseModel):
    name: str
    status: WorkflowJobStatus
    conclusion: Optional[WorkflowJobConclusion]
    number: int
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None


class GitHubWorkflowJob(BaseModel):
    id: int
    run_id: int
    workflow_name: Optional[str] = None
    head_branch: Optional[str] = None
    run_url: str
    run_attempt: int
    node_id: str
    head_sha: str
    url: str
    html_url: str
    status: WorkflowJobStatus
    # Null until the job completes
    conclusion: Optional[WorkflowJobConclusion]
    created_at: datetime
    # Null while queued, populated once a runner picks the job up
    started_at: Optional[datetime]
    completed_at: Optional[datetime]
    name: str
    steps: List[GitHubWorkflowJobStep]
    check_run_url: str
    labels: List[str]
    runner_id: Optional[int]
    runner_name: Optional[str]
    runner_group_id: Optional[int]
    runner_group_name: Optional[str]


class GitHubWorkflowJobWebhook(BaseModel):
    """workflow_job delivery, any action"""

    action: WorkflowJobStatus
    workflow_job: GitHubWorkflowJob
    workflow: Optional[GitHubWorkflow] = None
    repository: GitHubRepository
    sender: GitHubUser
    installation: Optional[GitHubInstallation] = None
    organization: Optional[GitHubOrganization] = None


class GitHubWorkflowJobQueuedWebhook(GitHubWorkflowJobWebhook):
    action: Literal["queued"]


class GitHubWorkflowJobWaitingWebhook(GitHubWorkflowJobWebhook):
    action: Literal["waiting"]


class GitHubWorkflowJobInProgressWebhook(GitHubWorkflowJobWebhook):
    action: Literal["in_progress"]


class GitHubWorkflowJobCompletedWebhook(GitHubWorkflowJobWebhook):
    action: Literal["completed"]


class GitHubHookLastResponse(BaseModel):
    code: Optional[int] = None
    status: Optional[str] = None
    message: Optional[str] = None


class GitHubHookConfig(BaseModel):
    model_config = ConfigDict(extra="allow")

    content_type: Optional[str] = None
    insecure_ssl: Optional[str] = None
    url: Optional[str] = None


class GitHubHook(BaseModel):
    type: str
    id: int
    name: str
    active: bool
    events: List[str]
    config: GitHubHookConfig
    updated_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    app_id: Optional[int] = None
    deliveries_url: Optional[str] = None
    ping_url: Optional[str] = None
    last_response: Optional[GitHubHookLastResponse] = None


class GitHubPingWebhook(BaseModel):
    """Sent once when a webhook is first registered"""

    zen: str
    hook_id: int
    hook: GitHubHook
    # Absent for organization and app level hooks
    repository: Optional[GitHubRepository] = None
    sender: Optional[GitHubUser] = None
    organization: Optional[GitHubOrganization] = None


WORKFLOW_JOB_WEBHOOKS: Dict[str, type] = {
    "queued": GitHubWorkflowJobQueuedWebhook,
    "waiting": GitHubWorkflowJobWaitingWebhook,
    "in_progress": GitHubWorkflowJobInProgressWebhook,
    "completed": GitHubWorkflowJobCompletedWebhook,
}

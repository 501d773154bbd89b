import copy
from typing import Any, Dict, Optional
from unittest.mock import patch

import pytest
from fastapi.testclient import TestClient

from cdevents_adapter.api.webhook_routes import (
    get_event_publisher,
    get_event_validator,
    get_webhook_log,
)
from cdevents_adapter.main import app
from cdevents_adapter.services.event_publisher import EventPublisher
from cdevents_adapter.services.event_validator import EventValidatorClient
from cdevents_adapter.services.webhook_log import WebhookLogStore

GITHUB_REPOSITORY = {
    "id": 987654321,
    "node_id": "R_kgDOExample",
    "name": "test-repo",
    "full_name": "owner/test-repo",
    "private": False,
    "owner": {"login": "owner", "id": 12345, "type": "User"},
    "html_url": "https://github.com/owner/test-repo",
}

GITHUB_SENDER = {"login": "octocat", "id": 583231, "type": "User"}

JIRA_USER = {
    "self": "https://example.atlassian.net/rest/api/2/user?accountId=5b10a2844c20165700ede21g",
    "accountId": "5b10a2844c20165700ede21g",
    "displayName": "Jane Developer",
    "emailAddress": "jane@example.com",
    "active": True,
}

JIRA_STATUSES = {
    "To Do": ("1", "new", "To Do"),
    "In Progress": ("3", "indeterminate", "In Progress"),
    "Done": ("10001", "done", "Done"),
}


@pytest.fixture
def workflow_job_payload():
    """Build a workflow_job delivery for a given action"""

    def _build(
        action: str = "queued",
        conclusion: Optional[str] = None,
        job_id: int = 123456789,
        job_name: str = "build",
        workflow_name: str = "CI/CD Pipeline",
        **job_overrides: Any,
    ) -> Dict[str, Any]:
        started = action != "queued" and action != "waiting"
        job = {
            "id": job_id,
            "run_id": 5555555,
            "workflow_name": workflow_name,
            "head_branch": "main",
            "run_url": "https://api.github.com/repos/owner/test-repo/actions/runs/5555555",
            "run_attempt": 1,
            "node_id": "CR_kwDOExample",
            "head_sha": "d6fde92930d4715a2b49857d24b940956b26d2d3",
            "url": f"https://api.github.com/repos/owner/test-repo/actions/jobs/{job_id}",
            "html_url": f"https://github.com/owner/test-repo/actions/runs/5555555/job/{job_id}",
            "status": action,
            "conclusion": conclusion,
            "created_at": "2024-01-15T10:00:00Z",
            "started_at": "2024-01-15T10:00:05Z" if started else None,
            "completed_at": "2024-01-15T10:05:30Z" if action == "completed" else None,
            "name": job_name,
            "steps": [],
            "check_run_url": f"https://api.github.com/repos/owner/test-repo/check-runs/{job_id}",
            "labels": ["ubuntu-latest"],
            "runner_id": 7 if started else None,
            "runner_name": "GitHub Actions 7" if started else None,
            "runner_group_id": 1 if started else None,
            "runner_group_name": "GitHub Actions" if started else None,
        }
        job.update(job_overrides)
        return {
            "action": action,
            "workflow_job": job,
            "repository": copy.deepcopy(GITHUB_REPOSITORY),
            "sender": copy.deepcopy(GITHUB_SENDER),
        }

    return _build


@pytest.fixture
def ping_payload() -> Dict[str, Any]:
    return {
        "zen": "Keep it logically awesome.",
        "hook_id": 42424242,
        "hook": {
            "type": "Repository",
            "id": 42424242,
            "name": "web",
            "active": True,
            "events": ["workflow_job"],
            "config": {
                "content_type": "json",
                "insecure_ssl": "0",
                "url": "https://adapter.example.com/adapters/github/webhook",
            },
        },
        "repository": copy.deepcopy(GITHUB_REPOSITORY),
        "sender": copy.deepcopy(GITHUB_SENDER),
    }


def _jira_status(name: str) -> Dict[str, Any]:
    status_id, category_key, category_name = JIRA_STATUSES.get(
        name, ("10100", "indeterminate", "In Progress")
    )
    return {
        "name": name,
        "id": status_id,
        "statusCategory": {"id": 2, "key": category_key, "name": category_name},
    }


@pytest.fixture
def jira_payload():
    """Build a Jira webhook delivery for PROJ-123"""

    def _build(
        webhook_event: str = "jira:issue_created",
        status: str = "To Do",
        changelog: Optional[Dict[str, Any]] = None,
        **extra: Any,
    ) -> Dict[str, Any]:
        payload = {
            "timestamp": 1705312800000,
            "webhookEvent": webhook_event,
            "user": copy.deepcopy(JIRA_USER),
            "issue": {
                "self": "https://example.atlassian.net/rest/api/2/issue/10002",
                "id": "10002",
                "key": "PROJ-123",
                "fields": {
                    "summary": "Implement login page",
                    "status": _jira_status(status),
                    "issuetype": {"id": "10001", "name": "Story", "subtask": False},
                    "project": {"id": "10000", "key": "PROJ", "name": "Project"},
                    "priority": {"id": "3", "name": "Medium"},
                    "assignee": copy.deepcopy(JIRA_USER),
                    "labels": ["frontend"],
                    "created": "2024-01-15T09:00:00.000+0000",
                    "updated": "2024-01-15T10:00:00.000+0000",
                },
            },
        }
        if changelog is not None:
            payload["changelog"] = changelog
        payload.update(extra)
        return payload

    return _build


@pytest.fixture
def status_changelog():
    def _build(to_status: str, from_status: str = "In Progress") -> Dict[str, Any]:
        return {
            "id": "10500",
            "items": [
                {
                    "field": "status",
                    "fieldtype": "jira",
                    "from": "3",
                    "fromString": from_status,
                    "to": "10001",
                    "toString": to_status,
                }
            ],
        }

    return _build


@pytest.fixture
def webhook_log_dir(tmp_path):
    return tmp_path / "webhook-log"


@pytest.fixture
def mock_publish():
    with patch("cdevents_adapter.services.event_publisher.publish_cdevent") as mock:
        yield mock


@pytest.fixture
def client(webhook_log_dir, mock_publish):
    app.dependency_overrides[get_event_validator] = lambda: EventValidatorClient(url="")
    app.dependency_overrides[get_event_publisher] = lambda: EventPublisher(enabled=True)
    app.dependency_overrides[get_webhook_log] = lambda: WebhookLogStore(webhook_log_dir)
    yield TestClient(app)
    app.dependency_overrides.clear()

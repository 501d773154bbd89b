from functools import lru_cache
from typing import List, Optional

from pydantic_settings import BaseSettings

from cdevents_adapter.schemas.jira import JiraStatuses


class Settings(BaseSettings):
    PROJECT_NAME: str = "CD Events Adapter API"
    APP_VERSION: str = "1.0.0"
    LOG_LEVEL: str = "INFO"

    # Queue publishing (Celery over Redis)
    REDIS_URL: str = "redis://localhost:6379"  # Default for testing
    PUBLISH_QUEUED_EVENTS: bool = True
    CDEVENTS_QUEUE: str = "cdevents.queued"

    # Remote validation round-trip; validated in-process when unset
    VALIDATION_URL: Optional[str] = None
    VALIDATION_TIMEOUT: float = 5.0

    # Raw webhook audit log; disabled when unset
    WEBHOOK_LOG_DIR: Optional[str] = None

    # Jira status buckets, JSON lists when set from the environment
    JIRA_QUEUED_STATUSES: List[str] = [
        JiraStatuses.TODO,
        JiraStatuses.OPEN,
        JiraStatuses.SELECTED_FOR_DEVELOPMENT,
        JiraStatuses.BACKLOG,
        JiraStatuses.READY,
    ]
    JIRA_IN_PROGRESS_STATUSES: List[str] = [
        JiraStatuses.IN_PROGRESS,
        JiraStatuses.IN_REVIEW,
        JiraStatuses.TESTING,
        JiraStatuses.IN_DEVELOPMENT,
        JiraStatuses.CODE_REVIEW,
    ]
    JIRA_COMPLETED_STATUSES: List[str] = [
        JiraStatuses.DONE,
        JiraStatuses.CLOSED,
        JiraStatuses.RESOLVED,
        JiraStatuses.READY_FOR_DEPLOY,
        JiraStatuses.DEPLOYED,
        JiraStatuses.COMPLETE,
    ]

    model_config = {
        "env_file": ".env",
        "extra": "ignore",
    }


@lru_cache
def get_settings():
    return Settings()


settings = get_settings()

import json
import logging
import secrets
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Optional, Union

from pydantic import BaseModel, Field

from cdevents_adapter.core.config import settings


class WebhookLogRecord(BaseModel):
    """One raw delivery, optionally with the event it was transformed into"""

    provider: str
    event_type: str
    key: Optional[str] = None
    webhook: Any
    transformed_event: Optional[Dict[str, Any]] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)


class WebhookLogStore:
    """Writes webhook records as JSON files, one directory per provider and day"""

    def __init__(self, root: Union[str, Path, None] = None):
        root = root if root is not None else settings.WEBHOOK_LOG_DIR
        self.root = Path(root) if root else None
        self.logger = logging.getLogger(__name__)

    @property
    def enabled(self) -> bool:
        return self.root is not None

    def build_path(self, record: WebhookLogRecord, moment: Optional[datetime] = None) -> Path:
        moment = moment or datetime.now(timezone.utc)
        stamp = int(moment.timestamp() * 1000)
        # Records written in the same millisecond differ by suffix
        suffix = secrets.token_hex(4)
        # Event types such as "jira:issue_created" are not safe file names
        event = record.event_type.replace(":", "_").replace("/", "_")
        return (
            self.root
            / f"{record.provider}-webhooks"
            / moment.strftime("%Y-%m-%d")
            / f"{event}-{record.key or 'unknown'}-{stamp}-{suffix}.json"
        )

    def persist(self, record: WebhookLogRecord) -> Optional[Path]:
        """Store a record; returns its path, or None when disabled or on failure"""
        if not self.enabled:
            return None

        now = datetime.now(timezone.utc)
        entry = {
            "source": record.provider,
            "webhook": record.webhook,
            "transformedEvent": record.transformed_event,
            "metadata": {
                **record.metadata,
                "eventType": record.event_type,
                "key": record.key,
                "timestamp": now.isoformat(),
            },
        }

        try:
            body = json.dumps(entry, indent=2, default=str)
            path = self.build_path(record, now)
            path.parent.mkdir(parents=True, exist_ok=True)
            # Exclusive create never replaces an existing record
            with path.open("x") as f:
                f.write(body)
        except (OSError, TypeError, ValueError) as e:
            self.logger.warning(f"Failed to log {record.provider} webhook: {e}")
            return None

        self.logger.debug(f"Logged {record.provider} webhook to {path}")
        return path

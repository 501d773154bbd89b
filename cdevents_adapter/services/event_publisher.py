import logging
from typing import Optional

from cdevents_adapter.core.config import settings
from cdevents_adapter.schemas.cdevents import PIPELINE_RUN_QUEUED, CDEvent
from cdevents_adapter.worker import publish_cdevent


class EventPublisher:
    """Hands "work queued" events to the Celery queue"""

    def __init__(self, enabled: Optional[bool] = None):
        self.enabled = settings.PUBLISH_QUEUED_EVENTS if enabled is None else enabled
        self.logger = logging.getLogger(__name__)

    def should_publish(self, event: CDEvent) -> bool:
        return self.enabled and event.context.type == PIPELINE_RUN_QUEUED

    def publish(self, event: CDEvent) -> bool:
        """Returns whether the event was handed off; failures never propagate"""
        if not self.should_publish(event):
            return False

        try:
            publish_cdevent.apply_async(
                args=[event.to_dict()], queue=settings.CDEVENTS_QUEUE
            )
        except Exception as e:
            self.logger.warning(f"Failed to publish {event.context.id}: {e}")
            return False

        self.logger.info(f"Published {event.context.id} to {settings.CDEVENTS_QUEUE}")
        return True

import logging
from typing import Any, Dict

from celery import Celery

from cdevents_adapter.core.config import settings

logger = logging.getLogger(__name__)

celery = Celery("worker", broker=settings.REDIS_URL, backend=settings.REDIS_URL)
celery.conf.task_routes = {
    "cdevents_adapter.publish_cdevent": {"queue": settings.CDEVENTS_QUEUE},
}


@celery.task(name="cdevents_adapter.publish_cdevent")
def publish_cdevent(event: Dict[str, Any]) -> str:
    """Consume a queued CD Event"""
    context = event.get("context", {})
    logger.info(f"Received {context.get('type')} {context.get('id')}")
    return context.get("id")

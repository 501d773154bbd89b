import logging
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Request
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import JSONResponse

from cdevents_adapter.schemas.adapter import (
    AdapterErrorResponse,
    AdapterInfo,
    AdapterResponse,
    PingAcknowledgement,
)
from cdevents_adapter.services.adapter_factory import AdapterFactory
from cdevents_adapter.services.adapters.base import (
    Adapter,
    CanonicalSchemaError,
    UnsupportedEventTypeError,
    WebhookTransformError,
)
from cdevents_adapter.services.event_publisher import EventPublisher
from cdevents_adapter.services.event_validator import EventValidatorClient
from cdevents_adapter.services.webhook_log import WebhookLogRecord, WebhookLogStore

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/adapters", tags=["adapters"])


def get_event_validator() -> EventValidatorClient:
    return EventValidatorClient()


def get_event_publisher() -> EventPublisher:
    return EventPublisher()


def get_webhook_log() -> WebhookLogStore:
    return WebhookLogStore()


def get_adapter(provider: str) -> Adapter:
    try:
        return AdapterFactory.get_adapter(provider)
    except KeyError:
        raise HTTPException(status_code=404, detail=f"Unknown adapter: {provider}")


def error_response(
    message: str,
    errors: List[str],
    status_code: int = 400,
    event_type: Optional[str] = None,
    logged: Optional[bool] = None,
) -> JSONResponse:
    body = AdapterErrorResponse(
        message=message, errors=errors, event_type=event_type, logged=logged
    )
    return JSONResponse(
        status_code=status_code,
        content=body.model_dump(by_alias=True, exclude_none=True),
    )


def _record_key(payload: Dict[str, Any]) -> Optional[str]:
    issue = payload.get("issue")
    if isinstance(issue, dict) and issue.get("key"):
        return str(issue["key"])
    job = payload.get("workflow_job")
    if isinstance(job, dict) and job.get("id") is not None:
        return str(job["id"])
    if payload.get("hook_id") is not None:
        return str(payload["hook_id"])
    return None


async def _read_payload(request: Request) -> Any:
    try:
        return await request.json()
    except ValueError:
        return None


async def process_webhook(
    adapter: Adapter,
    payload: Any,
    event_type: str,
    background_tasks: BackgroundTasks,
    validator: EventValidatorClient,
    publisher: EventPublisher,
    webhook_log: WebhookLogStore,
):
    """Transform a delivery and run the best-effort side channels around it"""
    key = _record_key(payload) if isinstance(payload, dict) else None
    received = WebhookLogRecord(
        provider=adapter.name,
        event_type=event_type,
        key=key,
        webhook=payload,
        metadata={"stage": "received", "adapterVersion": adapter.version},
    )
    # File writes stay off the event loop
    logged = await run_in_threadpool(webhook_log.persist, received) is not None

    try:
        result = adapter.transform(payload, event_type)
    except UnsupportedEventTypeError as e:
        return error_response(str(e), [str(e)], event_type=event_type, logged=logged)
    except WebhookTransformError as e:
        logger.info(f"Rejected {adapter.name} {event_type} webhook: {e.cause}")
        return error_response(
            "Failed to transform webhook", [e.cause], event_type=event_type, logged=logged
        )
    except CanonicalSchemaError as e:
        return error_response(
            "Transformed event failed CD Events validation",
            e.errors,
            status_code=500,
            event_type=event_type,
            logged=logged,
        )

    if isinstance(result, PingAcknowledgement):
        return result.model_dump()

    validation = await validator.validate(result)
    background_tasks.add_task(publisher.publish, result)

    cdevent = result.to_dict()
    await run_in_threadpool(
        webhook_log.persist,
        received.model_copy(
            update={
                "transformed_event": cdevent,
                "metadata": {
                    **received.metadata,
                    "stage": "transformed",
                    "validation": validation.model_dump(),
                },
            }
        ),
    )

    message = f"Successfully transformed {event_type} event"
    if key:
        message += f" for {key}"

    return AdapterResponse(
        success=True,
        logged=logged,
        message=message,
        event_type=event_type,
        cdevent=cdevent,
        validation=validation,
    ).model_dump(by_alias=True, exclude_none=True)


@router.get("", response_model=List[AdapterInfo], response_model_by_alias=True)
async def list_adapters():
    return AdapterFactory.list_adapters()


@router.get("/{provider}/info", response_model=AdapterInfo, response_model_by_alias=True)
async def adapter_info(adapter: Adapter = Depends(get_adapter)):
    return adapter.describe()


@router.post("/{provider}/webhook")
async def generic_webhook(
    request: Request,
    background_tasks: BackgroundTasks,
    adapter: Adapter = Depends(get_adapter),
    validator: EventValidatorClient = Depends(get_event_validator),
    publisher: EventPublisher = Depends(get_event_publisher),
    webhook_log: WebhookLogStore = Depends(get_webhook_log),
):
    if not adapter.verify_signature(request.headers, await request.body()):
        raise HTTPException(status_code=401, detail="Invalid webhook signature")

    payload = await _read_payload(request)
    if not isinstance(payload, dict):
        return error_response("Failed to transform webhook", ["Request body must be a JSON object"])

    event_type = adapter.detect_event_type(payload, request.headers)
    if not event_type:
        return error_response(
            f"Could not determine {adapter.name} event type",
            ["Missing event type in headers and payload"],
            event_type="unknown",
        )

    return await process_webhook(
        adapter, payload, event_type, background_tasks, validator, publisher, webhook_log
    )


@router.post("/{provider}/events/{event_type}")
async def typed_event(
    event_type: str,
    request: Request,
    background_tasks: BackgroundTasks,
    adapter: Adapter = Depends(get_adapter),
    validator: EventValidatorClient = Depends(get_event_validator),
    publisher: EventPublisher = Depends(get_event_publisher),
    webhook_log: WebhookLogStore = Depends(get_webhook_log),
):
    if not adapter.verify_signature(request.headers, await request.body()):
        raise HTTPException(status_code=401, detail="Invalid webhook signature")

    payload = await _read_payload(request)
    if payload is None:
        return error_response("Failed to transform webhook", ["Request body is not valid JSON"])

    return await process_webhook(
        adapter, payload, event_type, background_tasks, validator, publisher, webhook_log
    )

"""CD Events v0.4.1 models, validators and event constructors"""

from datetime import datetime, timezone
from enum import Enum
from typing import Annotated, Any, Dict, List, Literal, Optional, Type, Union
from uuid import UUID

from pydantic import (
    AfterValidator,
    AnyUrl,
    BaseModel,
    ConfigDict,
    Field,
    StringConstraints,
    TypeAdapter,
    ValidationError,
)

CDEVENTS_SPEC_VERSION = "0.4.1"
DEFAULT_CUSTOM_DATA_CONTENT_TYPE = "application/json"

PIPELINE_RUN_QUEUED = "dev.cdevents.pipelinerun.queued.0.2.0"
PIPELINE_RUN_STARTED = "dev.cdevents.pipelinerun.started.0.2.0"
PIPELINE_RUN_FINISHED = "dev.cdevents.pipelinerun.finished.0.2.0"
TASK_RUN_STARTED = "dev.cdevents.taskrun.started.0.2.0"
TASK_RUN_FINISHED = "dev.cdevents.taskrun.finished.0.2.0"

GENERIC_EVENT = "generic"


class Outcome(str, Enum):
    SUCCESS = "success"
    ERROR = "error"
    FAILURE = "failure"


class SubjectType(str, Enum):
    PIPELINE_RUN = "pipelineRun"
    TASK_RUN = "taskRun"


class LinkType(str, Enum):
    PATH = "PATH"
    RELATION = "RELATION"
    END = "END"


class LinkKind(str, Enum):
    TRIGGER = "TRIGGER"
    COMPOSITION = "COMPOSITION"
    DEPENDENCY = "DEPENDENCY"


_any_url = TypeAdapter(AnyUrl)


def _check_uri(value: str) -> str:
    try:
        _any_url.validate_python(value)
    except ValidationError:
        raise ValueError(f"Invalid URI: {value}")
    # Keep the caller's spelling; AnyUrl would normalise it
    return value


NonEmptyStr = Annotated[str, StringConstraints(min_length=1)]
UriReference = Annotated[str, StringConstraints(strip_whitespace=True, min_length=1)]
Uri = Annotated[str, AfterValidator(_check_uri)]
Timestamp = Annotated[
    str, StringConstraints(pattern=r"^\d{4}-\d{2}-\d{2}T\d{2}:\d{2}:\d{2}(\.\d{3})?Z$")
]


class CDEventModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, frozen=True)


class LinkTarget(CDEventModel):
    context_id: UUID


class LinkFrom(CDEventModel):
    context_id: UUID


class Link(CDEventModel):
    """Relationship between this event and another event context"""

    link_type: LinkType
    link_kind: Optional[LinkKind] = None
    target: Optional[LinkTarget] = None
    from_: Optional[LinkFrom] = Field(default=None, alias="from")


class CDEventContext(CDEventModel):
    version: NonEmptyStr
    id: NonEmptyStr
    source: UriReference
    type: NonEmptyStr
    timestamp: Timestamp
    schema_uri: Optional[Uri] = Field(default=None, alias="schemaUri")
    chain_id: Optional[UUID] = None
    links: Optional[List[Link]] = None


class PipelineRunQueuedContext(CDEventContext):
    type: Literal["dev.cdevents.pipelinerun.queued.0.2.0"]


class PipelineRunStartedContext(CDEventContext):
    type: Literal["dev.cdevents.pipelinerun.started.0.2.0"]


class PipelineRunFinishedContext(CDEventContext):
    type: Literal["dev.cdevents.pipelinerun.finished.0.2.0"]


class TaskRunStartedContext(CDEventContext):
    type: Literal["dev.cdevents.taskrun.started.0.2.0"]


class TaskRunFinishedContext(CDEventContext):
    type: Literal["dev.cdevents.taskrun.finished.0.2.0"]


class SubjectReference(CDEventModel):
    """Points a task run at its owning pipeline run without embedding it"""

    id: NonEmptyStr
    source: Optional[UriReference] = None


class SubjectContent(CDEventModel):
    model_config = ConfigDict(extra="forbid")


class PipelineRunQueuedContent(SubjectContent):
    pipeline_name: Optional[str] = Field(default=None, alias="pipelineName")
    url: Optional[Uri] = None


class PipelineRunStartedContent(SubjectContent):
    pipeline_name: Optional[str] = Field(default=None, alias="pipelineName")
    url: Optional[Uri] = None


class PipelineRunFinishedContent(SubjectContent):
    pipeline_name: Optional[str] = Field(default=None, alias="pipelineName")
    url: Optional[Uri] = None
    outcome: Optional[Outcome] = None
    errors: Optional[str] = None


class TaskRunStartedContent(SubjectContent):
    task_name: Optional[str] = Field(default=None, alias="taskName")
    pipeline_run: Optional[SubjectReference] = Field(default=None, alias="pipelineRun")
    url: Optional[Uri] = None


class TaskRunFinishedContent(SubjectContent):
    task_name: Optional[str] = Field(default=None, alias="taskName")
    pipeline_run: Optional[SubjectReference] = Field(default=None, alias="pipelineRun")
    url: Optional[Uri] = None
    outcome: Optional[Outcome] = None
    errors: Optional[str] = None


class CDEventSubject(CDEventModel):
    id: NonEmptyStr
    source: Optional[UriReference] = None
    type: Optional[SubjectType] = None
    content: Dict[str, Any]


class PipelineRunQueuedSubject(CDEventSubject):
    type: Optional[Literal["pipelineRun"]] = None
    content: PipelineRunQueuedContent


class PipelineRunStartedSubject(CDEventSubject):
    type: Optional[Literal["pipelineRun"]] = None
    content: PipelineRunStartedContent


class PipelineRunFinishedSubject(CDEventSubject):
    type: Optional[Literal["pipelineRun"]] = None
    content: PipelineRunFinishedContent


class TaskRunStartedSubject(CDEventSubject):
    type: Optional[Literal["taskRun"]] = None
    content: TaskRunStartedContent


class TaskRunFinishedSubject(CDEventSubject):
    type: Optional[Literal["taskRun"]] = None
    content: TaskRunFinishedContent


class CDEvent(CDEventModel):
    """A CD Event: context, subject and optional provider-specific custom data"""

    context: CDEventContext
    subject: CDEventSubject
    custom_data: Optional[Any] = Field(default=None, alias="customData")
    custom_data_content_type: Optional[str] = Field(
        default=DEFAULT_CUSTOM_DATA_CONTENT_TYPE, alias="customDataContentType"
    )

    def to_dict(self) -> Dict[str, Any]:
        """Serialize to JSON-ready data, leaving out fields that were never given"""
        return self.model_dump(mode="json", by_alias=True, exclude_unset=True)


class PipelineRunQueuedEvent(CDEvent):
    context: PipelineRunQueuedContext
    subject: PipelineRunQueuedSubject


class PipelineRunStartedEvent(CDEvent):
    context: PipelineRunStartedContext
    subject: PipelineRunStartedSubject


class PipelineRunFinishedEvent(CDEvent):
    context: PipelineRunFinishedContext
    subject: PipelineRunFinishedSubject


class TaskRunStartedEvent(CDEvent):
    context: TaskRunStartedContext
    subject: TaskRunStartedSubject


class TaskRunFinishedEvent(CDEvent):
    context: TaskRunFinishedContext
    subject: TaskRunFinishedSubject


CoreCDEvent = Union[
    PipelineRunQueuedEvent,
    PipelineRunStartedEvent,
    PipelineRunFinishedEvent,
    TaskRunStartedEvent,
    TaskRunFinishedEvent,
]

_core_event_adapter = TypeAdapter(CoreCDEvent)

EVENT_SCHEMAS: Dict[str, Type[CDEvent]] = {
    PIPELINE_RUN_QUEUED: PipelineRunQueuedEvent,
    PIPELINE_RUN_STARTED: PipelineRunStartedEvent,
    PIPELINE_RUN_FINISHED: PipelineRunFinishedEvent,
    TASK_RUN_STARTED: TaskRunStartedEvent,
    TASK_RUN_FINISHED: TaskRunFinishedEvent,
}


class EventValidationResult(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    valid: bool
    event_type: Optional[str] = Field(default=None, alias="eventType")
    errors: List[str] = []


def get_event_schema(event_type: str) -> Optional[Type[CDEvent]]:
    if event_type == GENERIC_EVENT:
        return CDEvent
    return EVENT_SCHEMAS.get(event_type)


def validate_event(candidate: Any, event_type: Optional[str] = None) -> CDEvent:
    """
    Validate a candidate event.

    Without ``event_type`` the candidate must match one of the five core
    events. With a CD Event type string it must match that concrete schema,
    and ``"generic"`` checks only the shared envelope.

    Raises:
        pydantic.ValidationError: the candidate does not conform
        ValueError: ``event_type`` names no known schema
    """
    if isinstance(candidate, BaseModel):
        candidate = candidate.model_dump(mode="json", by_alias=True, exclude_unset=True)

    if event_type is None:
        return _core_event_adapter.validate_python(candidate)

    schema = get_event_schema(event_type)
    if schema is None:
        raise ValueError(f"Unknown CD Event type: {event_type}")
    return schema.model_validate(candidate)


def format_validation_errors(error: ValidationError) -> List[str]:
    messages = []
    for detail in error.errors():
        location = ".".join(str(part) for part in detail["loc"])
        messages.append(f"{location}: {detail['msg']}" if location else detail["msg"])
    return messages


def check_event(candidate: Any, event_type: Optional[str] = None) -> EventValidationResult:
    """Non-raising variant of validate_event"""
    try:
        event = validate_event(candidate, event_type)
    except ValidationError as e:
        return EventValidationResult(valid=False, errors=format_validation_errors(e))
    except ValueError as e:
        return EventValidationResult(valid=False, errors=[str(e)])
    return EventValidationResult(valid=True, event_type=event.context.type)


def format_timestamp(moment: Optional[datetime] = None) -> str:
    """Render a moment as ``YYYY-MM-DDTHH:MM:SS.mmmZ`` in UTC (now by default)"""
    if moment is None:
        moment = datetime.now(timezone.utc)
    elif moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    moment = moment.astimezone(timezone.utc)
    return moment.strftime("%Y-%m-%dT%H:%M:%S") + f".{moment.microsecond // 1000:03d}Z"


def _present(**fields: Any) -> Dict[str, Any]:
    # Absent and empty values are left out rather than sent as null
    return {name: value for name, value in fields.items() if value}


def _build_event(
    schema: Type[CDEvent],
    event_type: str,
    context_id: str,
    source: str,
    timestamp: str,
    subject_id: str,
    subject_type: SubjectType,
    content: Dict[str, Any],
    custom_data: Any = None,
) -> CDEvent:
    event: Dict[str, Any] = {
        "context": {
            "version": CDEVENTS_SPEC_VERSION,
            "id": context_id,
            "source": source,
            "type": event_type,
            "timestamp": timestamp,
        },
        "subject": {
            "id": subject_id,
            "type": subject_type.value,
            "content": content,
        },
    }
    if custom_data is not None:
        event["customData"] = custom_data
        event["customDataContentType"] = DEFAULT_CUSTOM_DATA_CONTENT_TYPE
    return schema.model_validate(event)


def create_pipeline_run_queued_event(
    context_id: str,
    source: str,
    timestamp: str,
    subject_id: str,
    pipeline_name: Optional[str] = None,
    url: Optional[str] = None,
    custom_data: Any = None,
) -> PipelineRunQueuedEvent:
    return _build_event(
        PipelineRunQueuedEvent,
        PIPELINE_RUN_QUEUED,
        context_id,
        source,
        timestamp,
        subject_id,
        SubjectType.PIPELINE_RUN,
        _present(pipelineName=pipeline_name, url=url),
        custom_data,
    )


def create_pipeline_run_started_event(
    context_id: str,
    source: str,
    timestamp: str,
    subject_id: str,
    pipeline_name: Optional[str] = None,
    url: Optional[str] = None,
    custom_data: Any = None,
) -> PipelineRunStartedEvent:
    return _build_event(
        PipelineRunStartedEvent,
        PIPELINE_RUN_STARTED,
        context_id,
        source,
        timestamp,
        subject_id,
        SubjectType.PIPELINE_RUN,
        _present(pipelineName=pipeline_name, url=url),
        custom_data,
    )


def create_pipeline_run_finished_event(
    context_id: str,
    source: str,
    timestamp: str,
    subject_id: str,
    outcome: Optional[Outcome] = None,
    pipeline_name: Optional[str] = None,
    url: Optional[str] = None,
    errors: Optional[str] = None,
    custom_data: Any = None,
) -> PipelineRunFinishedEvent:
    return _build_event(
        PipelineRunFinishedEvent,
        PIPELINE_RUN_FINISHED,
        context_id,
        source,
        timestamp,
        subject_id,
        SubjectType.PIPELINE_RUN,
        _present(pipelineName=pipeline_name, url=url, outcome=outcome, errors=errors),
        custom_data,
    )


def create_task_run_started_event(
    context_id: str,
    source: str,
    timestamp: str,
    subject_id: str,
    task_name: Optional[str] = None,
    pipeline_run: Union[SubjectReference, Dict[str, Any], None] = None,
    url: Optional[str] = None,
    custom_data: Any = None,
) -> TaskRunStartedEvent:
    return _build_event(
        TaskRunStartedEvent,
        TASK_RUN_STARTED,
        context_id,
        source,
        timestamp,
        subject_id,
        SubjectType.TASK_RUN,
        _present(taskName=task_name, pipelineRun=pipeline_run, url=url),
        custom_data,
    )


def create_task_run_finished_event(
    context_id: str,
    source: str,
    timestamp: str,
    subject_id: str,
    outcome: Optional[Outcome] = None,
    task_name: Optional[str] = None,
    pipeline_run: Union[SubjectReference, Dict[str, Any], None] = None,
    url: Optional[str] = None,
    errors: Optional[str] = None,
    custom_data: Any = None,
) -> TaskRunFinishedEvent:
    return _build_event(
        TaskRunFinishedEvent,
        TASK_RUN_FINISHED,
        context_id,
        source,
        timestamp,
        subject_id,
        SubjectType.TASK_RUN,
        _present(
            taskName=task_name,
            pipelineRun=pipeline_run,
            url=url,
            outcome=outcome,
            errors=errors,
        ),
        custom_data,
    )

import logging
import random
import string
import time
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Mapping, Optional, Type, Union

from pydantic import BaseModel, ValidationError

from cdevents_adapter.schemas.adapter import AdapterInfo, PingAcknowledgement
from cdevents_adapter.schemas.cdevents import CDEvent, format_validation_errors, validate_event

logger = logging.getLogger(__name__)

TransformResult = Union[CDEvent, PingAcknowledgement]

_ID_ALPHABET = string.ascii_lowercase + string.digits


class AdapterError(ValueError):
    """Base class for errors raised while transforming a webhook"""


class UnsupportedEventTypeError(AdapterError):
    def __init__(self, event_type: str):
        self.event_type = event_type
        super().__init__(f"Unsupported event type: {event_type}")


class WebhookTransformError(AdapterError):
    """The provider payload did not match its schema"""

    def __init__(self, cause: str):
        self.cause = cause
        super().__init__(f"Failed to transform webhook: {cause}")


class CanonicalSchemaError(AdapterError):
    """An adapter produced an event that is not a valid CD Event"""

    def __init__(self, errors: List[str]):
        self.errors = errors
        super().__init__(f"Transformed event failed CD Events validation: {'; '.join(errors)}")


class Adapter(ABC):
    name: str
    version: str
    supported_events: List[str]
    description: str = ""

    @abstractmethod
    def get_webhook_schema(self, event_type: str) -> Optional[Type[BaseModel]]:
        """Return the payload schema for an event type, for docs and tooling"""
        pass

    @abstractmethod
    def _transform(
        self, payload: Dict[str, Any], event_type: str, event_id: str
    ) -> TransformResult:
        """Parse the payload for ``event_type`` and map it onto a CD Event"""
        pass

    @property
    @abstractmethod
    def endpoints(self) -> Dict[str, str]:
        pass

    def validate_webhook(self, payload: Any) -> bool:
        """Cheap structural check used to reject a delivery before transforming it"""
        return payload is not None

    def detect_event_type(
        self, payload: Dict[str, Any], headers: Mapping[str, str]
    ) -> Optional[str]:
        """Event type of a delivery posted to the generic webhook endpoint"""
        return None

    def verify_signature(self, headers: Mapping[str, str], body: bytes) -> bool:
        # Signature verification is not implemented; every delivery is accepted
        return True

    def transform(
        self,
        payload: Dict[str, Any],
        event_type: str,
        event_id: Optional[str] = None,
    ) -> TransformResult:
        """
        Convert a webhook payload into a CD Event.

        Args:
            payload: Raw JSON body of the delivery
            event_type: Provider event type, one of ``supported_events``
            event_id: Context id to use instead of a generated one

        Raises:
            UnsupportedEventTypeError: ``event_type`` is not supported
            WebhookTransformError: the payload does not match the provider schema
            CanonicalSchemaError: the mapped event is not a valid CD Event
        """
        if not self.is_event_type_supported(event_type):
            raise UnsupportedEventTypeError(event_type)

        try:
            result = self._transform(
                payload, event_type, event_id or self.generate_event_id()
            )
            if isinstance(result, CDEvent):
                validate_event(result)
        except ValidationError as e:
            # Provider payload errors are already WebhookTransformError here
            logger.error(f"{self.name} adapter produced an invalid CD Event: {e}")
            raise CanonicalSchemaError(format_validation_errors(e)) from e

        if isinstance(result, CDEvent):
            logger.debug(
                f"{self.name} {event_type} -> {result.context.type} ({result.subject.id})"
            )
        return result

    def parse(self, schema: Type[BaseModel], payload: Any) -> Any:
        try:
            return schema.model_validate(payload)
        except ValidationError as e:
            raise WebhookTransformError("; ".join(format_validation_errors(e))) from e

    def describe(self) -> AdapterInfo:
        return AdapterInfo(
            name=self.name,
            version=self.version,
            supported_events=list(self.supported_events),
            endpoints=self.endpoints,
            description=self.description,
        )

    def is_event_type_supported(self, event_type: str) -> bool:
        return event_type in self.supported_events

    def generate_event_id(self) -> str:
        suffix = "".join(random.choices(_ID_ALPHABET, k=9))
        return f"{self.name}-{int(time.time() * 1000)}-{suffix}"


def create_source_uri(
    provider: str, organization: Optional[str] = None, repository: Optional[str] = None
) -> str:
    source = f"https://{provider}.com"
    if organization:
        source += f"/{organization}"
        if repository:
            source += f"/{repository}"
    return source

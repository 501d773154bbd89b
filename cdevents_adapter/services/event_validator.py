import logging
from typing import Optional

import httpx

from cdevents_adapter.core.config import settings
from cdevents_adapter.schemas.adapter import ValidationOutcome
from cdevents_adapter.schemas.cdevents import CDEvent, check_event


class EventValidatorClient:
    """Round-trips a transformed event through the validation endpoint"""

    def __init__(self, url: Optional[str] = None, timeout: Optional[float] = None):
        self.url = url if url is not None else settings.VALIDATION_URL
        self.timeout = timeout if timeout is not None else settings.VALIDATION_TIMEOUT
        self.logger = logging.getLogger(__name__)

    async def validate(self, event: CDEvent) -> ValidationOutcome:
        """
        Validate an event, never raising.

        Without a configured URL the event is checked in-process.
        """
        if not self.url:
            result = check_event(event)
            return ValidationOutcome(valid=result.valid, errors=result.errors)

        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.post(self.url, json=event.to_dict())
        except httpx.HTTPError as e:
            self.logger.warning(f"Validation request to {self.url} failed: {e}")
            return ValidationOutcome(valid=False, errors=[f"Validation request failed: {e}"])

        try:
            body = response.json()
        except ValueError:
            body = None

        if not response.is_success:
            errors = body.get("errors") if isinstance(body, dict) else None
            self.logger.warning(
                f"Validation endpoint returned {response.status_code} for {event.context.id}"
            )
            return ValidationOutcome(
                valid=False,
                errors=[str(error) for error in errors]
                if errors
                else [f"Validation endpoint returned {response.status_code}"],
            )

        if not isinstance(body, dict):
            return ValidationOutcome(
                valid=False, errors=["Validation endpoint returned a non-JSON response"]
            )

        return ValidationOutcome(
            valid=bool(body.get("valid")),
            errors=[str(error) for error in body.get("errors") or []],
        )

from enum import Enum
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field


class AdapterProvider(str, Enum):
    GITHUB = "github"
    JIRA = "jira"


class AdapterInfo(BaseModel):
    """Self-description of an adapter, used for discovery only"""

    model_config = ConfigDict(populate_by_name=True)

    name: str
    version: str
    supported_events: List[str] = Field(alias="supportedEvents")
    endpoints: Dict[str, str]
    description: str


class PingDetails(BaseModel):
    zen: str
    hook_id: int
    repository: Optional[str] = None
    sender: Optional[str] = None


class PingAcknowledgement(BaseModel):
    """Returned instead of a CD Event for webhook registration pings"""

    success: bool = True
    message: str
    ping: PingDetails


class ValidationOutcome(BaseModel):
    """Result of the post-transform validation round-trip"""

    valid: bool
    errors: List[str] = []


class AdapterResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    success: bool
    logged: Optional[bool] = None
    message: str
    event_type: Optional[str] = Field(default=None, alias="eventType")
    cdevent: Optional[Dict[str, Any]] = None
    validation: Optional[ValidationOutcome] = None
    errors: Optional[List[str]] = None


class AdapterErrorResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    success: Literal[False] = False
    logged: Optional[bool] = None
    event_type: Optional[str] = Field(default=None, alias="eventType")
    message: str
    errors: List[str]

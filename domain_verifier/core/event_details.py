"""Typed detail payloads attached to telemetry events.

Each event type has a known shape, discriminated by ``kind``. ``generic``
carries heterogeneous diagnostic context as a plain string-keyed map.
"""

from datetime import datetime
from typing import Annotated, Any, Dict, List, Literal, Optional, Union
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter


class _Details(BaseModel):
    model_config = ConfigDict(frozen=True)


class StartedDetails(_Details):
    kind: Literal["started"] = "started"
    attempt_id: UUID
    max_attempts: int
    next_retry_at: datetime


class SuccessDetails(_Details):
    kind: Literal["success"] = "success"
    attempt_id: UUID
    attempt: int
    verified_at: datetime


class DnsDetails(_Details):
    """Domain not yet verified; the TXT record the tenant still has to publish."""

    kind: Literal["dns"] = "dns"
    attempt_id: UUID
    attempt: int
    hostname: str
    next_retry_at: Optional[datetime] = None
    txt_name: Optional[str] = None
    txt_value: Optional[str] = None


class AuthorityErrorDetails(_Details):
    kind: Literal["authority_error"] = "authority_error"
    attempt_id: UUID
    attempt: int
    hostname: str
    error: str
    status_code: Optional[int] = None
    next_retry_at: Optional[datetime] = None


class EnvironmentErrorDetails(_Details):
    kind: Literal["environment_error"] = "environment_error"
    attempt_id: UUID
    reason: str
    missing: List[str] = Field(default_factory=list)
    invalid: List[str] = Field(default_factory=list)
    warnings: List[str] = Field(default_factory=list)


class TimeoutDetails(_Details):
    kind: Literal["timeout"] = "timeout"
    attempt_id: UUID
    attempt: int
    max_attempts: int
    hostname: str


class FailedDetails(_Details):
    kind: Literal["failed"] = "failed"
    attempt_id: UUID
    attempt: int
    max_attempts: int
    final_error: str


class GenericDetails(_Details):
    kind: Literal["generic"] = "generic"
    data: Dict[str, Any] = Field(default_factory=dict)


EventDetails = Annotated[
    Union[
        StartedDetails,
        SuccessDetails,
        DnsDetails,
        AuthorityErrorDetails,
        EnvironmentErrorDetails,
        TimeoutDetails,
        FailedDetails,
        GenericDetails,
    ],
    Field(discriminator="kind"),
]

_adapter = TypeAdapter(EventDetails)


def dump_details(details: EventDetails) -> Dict[str, Any]:
    """Serialize to a JSON-safe dict."""
    return details.model_dump(mode="json")


def load_details(raw: Optional[Dict[str, Any]]) -> EventDetails:
    """Rebuild the typed payload. Untagged legacy maps become ``generic``."""
    if not raw:
        return GenericDetails()
    if "kind" not in raw:
        return GenericDetails(data=dict(raw))
    return _adapter.validate_python(raw)

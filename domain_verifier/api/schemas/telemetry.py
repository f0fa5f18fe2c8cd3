from datetime import datetime
from typing import Any, Dict, List, Optional
from uuid import UUID

from pydantic import BaseModel, Field

from domain_verifier.core.event_details import dump_details
from domain_verifier.core.models import TelemetryEvent


class TelemetryEventResponse(BaseModel):
    event_id: UUID
    domain_id: UUID
    event_type: str
    severity: str
    message: str
    details: Dict[str, Any]
    timestamp: datetime
    resolved: bool
    resolved_at: Optional[datetime]
    resolved_by: Optional[str]

    @classmethod
    def from_event(cls, event: TelemetryEvent) -> "TelemetryEventResponse":
        return cls(
            event_id=event.event_id,
            domain_id=event.domain_id,
            event_type=event.event_type.value,
            severity=event.severity.value,
            message=event.message,
            details=dump_details(event.details),
            timestamp=event.timestamp,
            resolved=event.resolved,
            resolved_at=event.resolved_at,
            resolved_by=event.resolved_by,
        )


class FailureSummaryResponse(BaseModel):
    domain_id: UUID
    hostname: str
    total_failures: int
    last_failure: Optional[datetime]
    failure_types: Dict[str, int]
    actionable_errors: List[str]
    suggested_actions: List[str]
    can_retry: bool
    next_retry_at: Optional[datetime]


class TelemetryStatsResponse(BaseModel):
    total_events: int
    failures_by_type: Dict[str, int]
    failures_by_severity: Dict[str, int]
    recent_failures: List[TelemetryEventResponse]
    domains_with_issues: int
    average_resolution_time: Optional[float] = None


class ResolveRequest(BaseModel):
    actor: str = Field(..., min_length=1, max_length=255)


class ResolveAllResponse(BaseModel):
    domain_id: UUID
    resolved: int

# domain_verifier/api/routes/telemetry.py
"""Verification telemetry API routes."""

from typing import List
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException

from domain_verifier.api.container import get_ledger
from domain_verifier.api.schemas.telemetry import (
    FailureSummaryResponse,
    ResolveAllResponse,
    ResolveRequest,
    TelemetryEventResponse,
    TelemetryStatsResponse,
)
from domain_verifier.core.errors import DomainNotFound, TelemetryEventNotFound

router = APIRouter(prefix="/telemetry", tags=["telemetry"])


@router.get("/stats", response_model=TelemetryStatsResponse)
def get_stats(ledger=Depends(get_ledger)):
    stats = ledger.stats()
    return TelemetryStatsResponse(
        total_events=stats.total_events,
        failures_by_type=stats.failures_by_type,
        failures_by_severity=stats.failures_by_severity,
        recent_failures=[TelemetryEventResponse.from_event(e) for e in stats.recent_failures],
        domains_with_issues=stats.domains_with_issues,
        average_resolution_time=stats.average_resolution_time,
    )


@router.get("/domains/{domain_id}/summary", response_model=FailureSummaryResponse)
def get_failure_summary(
    domain_id: UUID,
    ledger=Depends(get_ledger),
):
    try:
        summary = ledger.summarize_failures(domain_id)
    except DomainNotFound:
        raise HTTPException(status_code=404, detail="Domain not found")

    return FailureSummaryResponse(
        domain_id=summary.domain_id,
        hostname=summary.hostname,
        total_failures=summary.total_failures,
        last_failure=summary.last_failure,
        failure_types=summary.failure_types,
        actionable_errors=summary.actionable_errors,
        suggested_actions=summary.suggested_actions,
        can_retry=summary.can_retry,
        next_retry_at=summary.next_retry_at,
    )


@router.get("/domains/{domain_id}/events", response_model=List[TelemetryEventResponse])
def get_domain_events(
    domain_id: UUID,
    ledger=Depends(get_ledger),
):
    return [TelemetryEventResponse.from_event(e) for e in ledger.get_domain_events(domain_id)]


@router.post("/events/{event_id}/resolve", response_model=TelemetryEventResponse)
def resolve_event(
    event_id: UUID,
    request: ResolveRequest,
    ledger=Depends(get_ledger),
):
    try:
        event = ledger.resolve(event_id, request.actor)
    except TelemetryEventNotFound:
        raise HTTPException(status_code=404, detail="Event not found")
    return TelemetryEventResponse.from_event(event)


@router.post("/domains/{domain_id}/resolve", response_model=ResolveAllResponse)
def resolve_domain_events(
    domain_id: UUID,
    request: ResolveRequest,
    ledger=Depends(get_ledger),
):
    resolved = ledger.resolve_all(domain_id, request.actor)
    return ResolveAllResponse(domain_id=domain_id, resolved=resolved)

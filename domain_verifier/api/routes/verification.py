# domain_verifier/api/routes/verification.py
"""Domain verification API routes."""

from dataclasses import replace
from typing import List, Optional
from uuid import UUID, uuid4

from fastapi import APIRouter, Depends, HTTPException

from domain_verifier.api.container import (
    get_domain_repository,
    get_scheduler,
)
from domain_verifier.api.schemas.verification import (
    AttemptResponse,
    DomainResponse,
    RegisterDomainRequest,
    StartVerificationRequest,
    SweepResponse,
    VerificationStatusResponse,
)
from domain_verifier.core.errors import (
    DomainNotFound,
    VerificationAlreadyInProgress,
    VerificationConcurrencyError,
    VerificationValidationError,
)
from domain_verifier.core.models import Domain

router = APIRouter(tags=["verification"])


# ============================================
# DOMAINS
# ============================================

@router.post("/domains", response_model=DomainResponse, status_code=201)
def register_domain(
    request: RegisterDomainRequest,
    repo=Depends(get_domain_repository),
):
    domain = Domain(
        domain_id=uuid4(),
        hostname=request.hostname.strip().lower(),
        site_id=request.site_id,
        provider=request.provider,
    )
    try:
        repo.create(domain)
    except VerificationConcurrencyError as e:
        raise HTTPException(status_code=409, detail=str(e))

    return DomainResponse.from_domain(domain)


@router.get("/domains/{domain_id}", response_model=DomainResponse)
def get_domain(
    domain_id: UUID,
    repo=Depends(get_domain_repository),
):
    domain = repo.get(domain_id)
    if not domain:
        raise HTTPException(status_code=404, detail="Domain not found")
    return DomainResponse.from_domain(domain)


# ============================================
# VERIFICATION
# ============================================

@router.post(
    "/domains/{domain_id}/verification",
    response_model=AttemptResponse,
    status_code=201,
)
def start_verification(
    domain_id: UUID,
    request: Optional[StartVerificationRequest] = None,
    scheduler=Depends(get_scheduler),
):
    policy = None
    if request and (request.max_attempts or request.initial_delay_seconds is not None):
        overrides = {}
        if request.max_attempts:
            overrides["max_attempts"] = request.max_attempts
        if request.initial_delay_seconds is not None:
            overrides["initial_delay_seconds"] = request.initial_delay_seconds
        try:
            policy = replace(scheduler.policy, **overrides)
        except VerificationValidationError as e:
            raise HTTPException(status_code=400, detail=str(e))

    try:
        attempt = scheduler.start_attempt(domain_id, policy=policy)
    except DomainNotFound:
        raise HTTPException(status_code=404, detail="Domain not found")
    except VerificationAlreadyInProgress as e:
        raise HTTPException(status_code=409, detail=str(e))

    return AttemptResponse.from_attempt(attempt)


@router.get(
    "/domains/{domain_id}/verification",
    response_model=VerificationStatusResponse,
)
def get_verification_status(
    domain_id: UUID,
    scheduler=Depends(get_scheduler),
):
    status = scheduler.get_status(domain_id)
    return VerificationStatusResponse(
        status=status.status,
        attempt=AttemptResponse.from_attempt(status.attempt) if status.attempt else None,
        next_retry_at=status.next_retry_at,
        error=status.error,
    )


@router.delete("/domains/{domain_id}/verification")
def cancel_verification(
    domain_id: UUID,
    scheduler=Depends(get_scheduler),
):
    try:
        attempt = scheduler.cancel(domain_id)
    except VerificationConcurrencyError as e:
        raise HTTPException(status_code=409, detail=str(e))

    if not attempt:
        return {"cancelled": False}
    return {"cancelled": True, "attempt_id": str(attempt.attempt_id)}


@router.get("/verification/active", response_model=List[AttemptResponse])
def list_active_verifications(
    limit: int = 100,
    scheduler=Depends(get_scheduler),
):
    return [AttemptResponse.from_attempt(a) for a in scheduler.list_active(limit)]


@router.post("/verification/sweep", response_model=SweepResponse)
def sweep_due_verifications(
    scheduler=Depends(get_scheduler),
):
    result = scheduler.process_all_due()
    return SweepResponse(
        processed=result.processed,
        verified=result.verified,
        failed=result.failed,
        retried=result.retried,
        errors=result.errors,
    )

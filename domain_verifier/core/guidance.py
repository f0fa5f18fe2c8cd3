# domain_verifier/core/guidance.py
"""Static remediation guidance per failure type."""

from dataclasses import dataclass
from typing import Optional, Tuple

from domain_verifier.core.models import EventType, Severity


@dataclass(frozen=True)
class Guidance:
    actionable: bool
    message: str
    actions: Tuple[str, ...]
    severity: Severity
    retryable: bool = True


GUIDANCE_TABLE = {
    EventType.ENVIRONMENT_ERROR: Guidance(
        actionable=True,
        message="Verification authority credentials or configuration are missing or invalid",
        actions=(
            "Check the VERCEL_TOKEN environment variable",
            "Verify VERCEL_PROJECT_ID is correct",
            "Ensure VERCEL_TEAM_ID is set if using a team account",
            "Contact the system administrator to restore the authority configuration",
        ),
        severity=Severity.CRITICAL,
        retryable=False,
    ),
    EventType.AUTHORITY_ERROR: Guidance(
        actionable=True,
        message="Verification authority returned an error during domain verification",
        actions=(
            "Check the verification authority's service status",
            "Verify API token permissions",
            "Retry verification after a few minutes",
            "Contact the authority's support if the issue persists",
        ),
        severity=Severity.ERROR,
    ),
    EventType.DNS_ERROR: Guidance(
        actionable=True,
        message="DNS configuration issue detected",
        actions=(
            "Verify DNS records are correctly configured",
            "Check the TXT record for domain verification",
            "Ensure DNS propagation is complete (can take up to 48 hours)",
            "Contact the domain registrar if DNS changes are not taking effect",
        ),
        severity=Severity.WARNING,
    ),
    EventType.VERIFICATION_TIMEOUT: Guidance(
        actionable=True,
        message="Domain verification timed out after maximum attempts",
        actions=(
            "Check DNS configuration manually",
            "Verify the domain is not blocked or restricted",
            "Start a fresh verification attempt",
            "Contact support for manual verification assistance",
        ),
        severity=Severity.ERROR,
    ),
    EventType.VERIFICATION_FAILED: Guidance(
        actionable=True,
        message="Domain verification failed",
        actions=(
            "Review DNS configuration",
            "Check domain status with the domain registrar",
            "Verify the domain is not expired or suspended",
            "Retry verification",
        ),
        severity=Severity.ERROR,
    ),
}


def get_guidance(event_type: EventType, message: Optional[str] = None) -> Guidance:
    """Look up guidance; unknown types echo the event message."""
    guidance = GUIDANCE_TABLE.get(event_type)
    if guidance is not None:
        return guidance
    return Guidance(
        actionable=False,
        message=message or event_type.value,
        actions=(),
        severity=Severity.WARNING,
    )

"""Classified result of a single authority check."""

from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional

from domain_verifier.verification.dns import DnsInstructions, VerificationInfo


class OutcomeKind(Enum):
    VERIFIED = "verified"
    NOT_YET_VERIFIED = "not_yet_verified"
    AUTHORITY_UNAVAILABLE = "authority_unavailable"  # transient, retryable
    ENVIRONMENT_UNAVAILABLE = "environment_unavailable"  # terminal


@dataclass(frozen=True)
class CheckOutcome:
    kind: OutcomeKind
    reason: Optional[str] = None

    # NOT_YET_VERIFIED
    verification_info: Optional[VerificationInfo] = None
    instructions: Optional[DnsInstructions] = None

    # AUTHORITY_UNAVAILABLE
    status_code: Optional[int] = None

    # ENVIRONMENT_UNAVAILABLE
    missing: List[str] = field(default_factory=list)
    invalid: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)

    @classmethod
    def verified(cls) -> "CheckOutcome":
        return cls(OutcomeKind.VERIFIED)

    @classmethod
    def not_yet_verified(cls, info: Optional[VerificationInfo] = None,
                         instructions: Optional[DnsInstructions] = None) -> "CheckOutcome":
        return cls(
            OutcomeKind.NOT_YET_VERIFIED,
            reason="Domain not yet verified",
            verification_info=info,
            instructions=instructions,
        )

    @classmethod
    def authority_unavailable(cls, reason: str,
                              status_code: Optional[int] = None) -> "CheckOutcome":
        return cls(OutcomeKind.AUTHORITY_UNAVAILABLE, reason=reason, status_code=status_code)

    @classmethod
    def environment_unavailable(cls, reason: str, missing=None, invalid=None,
                                warnings=None) -> "CheckOutcome":
        return cls(
            OutcomeKind.ENVIRONMENT_UNAVAILABLE,
            reason=reason,
            missing=list(missing or []),
            invalid=list(invalid or []),
            warnings=list(warnings or []),
        )

    @property
    def retryable(self) -> bool:
        return self.kind in (OutcomeKind.NOT_YET_VERIFIED, OutcomeKind.AUTHORITY_UNAVAILABLE)

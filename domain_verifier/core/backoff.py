# domain_verifier/core/backoff.py
"""Exponential backoff with additive jitter."""

import random
from dataclasses import dataclass
from datetime import timedelta
from typing import Optional

from domain_verifier.core.errors import VerificationValidationError


@dataclass(frozen=True)
class BackoffPolicy:
    max_attempts: int = 10
    initial_delay_seconds: float = 30.0
    max_delay_seconds: float = 300.0
    backoff_multiplier: float = 1.5
    jitter_seconds: float = 5.0

    def __post_init__(self):
        if self.max_attempts < 1:
            raise VerificationValidationError("max_attempts must be >= 1")
        if self.initial_delay_seconds < 0:
            raise VerificationValidationError("initial_delay_seconds must be >= 0")
        if self.max_delay_seconds < self.initial_delay_seconds:
            raise VerificationValidationError("max_delay_seconds must be >= initial_delay_seconds")
        if self.backoff_multiplier <= 1:
            raise VerificationValidationError("backoff_multiplier must be > 1")
        if self.jitter_seconds < 0:
            raise VerificationValidationError("jitter_seconds must be >= 0")

    def base_delay(self, attempt_number: int) -> float:
        """Capped exponential delay in seconds, without jitter."""
        if attempt_number < 1:
            raise VerificationValidationError("attempt_number must be >= 1")
        exponential = self.initial_delay_seconds * (
            self.backoff_multiplier ** (attempt_number - 1)
        )
        return min(exponential, self.max_delay_seconds)

    def next_delay(
        self,
        attempt_number: int,
        rng: Optional[random.Random] = None,
    ) -> timedelta:
        """
        Delay before check number ``attempt_number``.

        delay = min(initial * multiplier^(n-1), max) + uniform(0, jitter)
        """
        base = self.base_delay(attempt_number)
        jitter = (rng or random).uniform(0, self.jitter_seconds) if self.jitter_seconds else 0.0
        return timedelta(seconds=base + jitter)


# 30s, 45s, 67.5s ... capped at 5 minutes; tolerates slow DNS propagation.
DEFAULT_BACKOFF_POLICY = BackoffPolicy()


def next_delay(
    attempt_number: int,
    policy: BackoffPolicy = DEFAULT_BACKOFF_POLICY,
    rng: Optional[random.Random] = None,
) -> timedelta:
    return policy.next_delay(attempt_number, rng=rng)

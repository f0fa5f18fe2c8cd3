# domain_verifier/verification/checker.py
"""One classified check of a domain against the verification authority."""

import logging

from domain_verifier.core.errors import (
    AuthorityConfigurationError,
    AuthorityRequestError,
)
from domain_verifier.core.models import Domain
from domain_verifier.verification.authority_client import AuthorityClient
from domain_verifier.verification.dns import (
    extract_verification_info,
    generate_dns_instructions,
)
from domain_verifier.verification.outcomes import CheckOutcome

logger = logging.getLogger(__name__)


class VerificationChecker:
    """
    Wraps an authority client and converts every result into a CheckOutcome.

    Nothing raised by the client escapes ``check``:
    - configuration errors  -> ENVIRONMENT_UNAVAILABLE (terminal)
    - request errors        -> AUTHORITY_UNAVAILABLE (retryable)
    - anything unexpected   -> AUTHORITY_UNAVAILABLE (retryable)
    """

    def __init__(self, client: AuthorityClient):
        self._client = client

    def check(self, domain: Domain) -> CheckOutcome:
        if domain.provider != self._client.provider:
            return CheckOutcome.environment_unavailable(
                f"Domain provider '{domain.provider}' is not served by "
                f"the '{self._client.provider}' authority"
            )

        try:
            status = self._client.check_status(domain.hostname)
        except AuthorityConfigurationError as e:
            logger.error(f"[checker] {domain.hostname} - authority misconfigured: {e}")
            return CheckOutcome.environment_unavailable(
                str(e), missing=e.missing, invalid=e.invalid, warnings=e.warnings
            )
        except AuthorityRequestError as e:
            logger.warning(f"[checker] {domain.hostname} - authority unavailable: {e}")
            return CheckOutcome.authority_unavailable(str(e), status_code=e.status_code)
        except Exception as e:
            logger.error(
                f"[checker] {domain.hostname} - unexpected authority error: {e}",
                exc_info=True,
            )
            return CheckOutcome.authority_unavailable(f"Unexpected authority error: {e}")

        if status.verified:
            return CheckOutcome.verified()

        info = extract_verification_info(status.verification)
        return CheckOutcome.not_yet_verified(
            info=info,
            instructions=generate_dns_instructions(domain.hostname, info),
        )

# domain_verifier/core/errors.py

# -----------------------------
# Base Errors
# -----------------------------

class VerificationError(Exception):
    """Base class for all domain verification errors."""
    pass


# -----------------------------
# Validation / Domain Errors
# -----------------------------

class VerificationValidationError(VerificationError, ValueError):
    """Invalid input or malformed policy."""
    pass


class VerificationAlreadyInProgress(VerificationError):
    """A pending attempt already exists for the domain."""

    def __init__(self, domain_id, attempt_id=None):
        super().__init__(f"Verification already in progress for domain {domain_id}")
        self.domain_id = domain_id
        self.attempt_id = attempt_id


class DomainNotFound(VerificationError):
    pass


class AttemptNotFound(VerificationError):
    pass


class TelemetryEventNotFound(VerificationError):
    pass


# -----------------------------
# Persistence Errors
# -----------------------------

class VerificationPersistenceError(VerificationError):
    pass


class VerificationConcurrencyError(VerificationPersistenceError):
    """Compare-and-swap lost: the record changed since it was read."""
    pass


# -----------------------------
# Authority Errors
# -----------------------------

class AuthorityError(Exception):
    """Raised by authority clients."""
    pass


class AuthorityConfigurationError(AuthorityError):
    """Our own credentials or configuration are broken; retrying cannot help."""

    def __init__(self, message, missing=None, invalid=None, warnings=None):
        super().__init__(message)
        self.missing = list(missing or [])
        self.invalid = list(invalid or [])
        self.warnings = list(warnings or [])


class AuthorityRequestError(AuthorityError):
    """The call itself failed (timeout, rate limit, 5xx)."""

    def __init__(self, message, status_code=None):
        super().__init__(message)
        self.status_code = status_code

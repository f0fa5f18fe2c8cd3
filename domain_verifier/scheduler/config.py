#domain_verifier\scheduler\config.py

from pydantic_settings import BaseSettings, SettingsConfigDict

from domain_verifier.core.backoff import DEFAULT_BACKOFF_POLICY, BackoffPolicy


class VerificationSettings(BaseSettings):
    """Backoff and sweep settings (VERIFICATION_* environment variables)."""

    model_config = SettingsConfigDict(
        env_prefix="VERIFICATION_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    max_attempts: int = DEFAULT_BACKOFF_POLICY.max_attempts
    initial_delay_seconds: float = DEFAULT_BACKOFF_POLICY.initial_delay_seconds
    max_delay_seconds: float = DEFAULT_BACKOFF_POLICY.max_delay_seconds
    backoff_multiplier: float = DEFAULT_BACKOFF_POLICY.backoff_multiplier
    jitter_seconds: float = DEFAULT_BACKOFF_POLICY.jitter_seconds

    poll_interval_seconds: float = 30.0
    sweep_limit: int = 100
    max_workers: int = 4

    def backoff_policy(self) -> BackoffPolicy:
        return BackoffPolicy(
            max_attempts=self.max_attempts,
            initial_delay_seconds=self.initial_delay_seconds,
            max_delay_seconds=self.max_delay_seconds,
            backoff_multiplier=self.backoff_multiplier,
            jitter_seconds=self.jitter_seconds,
        )

#domain_verifier\verification\config.py

import re
from dataclasses import dataclass, field
from typing import List, Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


_ID_PATTERN = re.compile(r"^[a-zA-Z0-9_-]+$")

# Minimum plausible lengths for each credential.
_MIN_LENGTHS = {
    "vercel_token": 20,
    "vercel_project_id": 5,
    "vercel_team_id": 5,
    "vercel_org_id": 5,
}


@dataclass
class EnvironmentValidation:
    is_valid: bool = True
    missing: List[str] = field(default_factory=list)
    invalid: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)

    def summary(self) -> str:
        parts = []
        if self.missing:
            parts.append(f"missing: {', '.join(self.missing)}")
        if self.invalid:
            parts.append(f"invalid: {', '.join(self.invalid)}")
        return "; ".join(parts) or "ok"


class AuthoritySettings(BaseSettings):
    """Verification authority (Vercel) credentials from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    vercel_token: Optional[str] = None
    vercel_project_id: Optional[str] = None
    vercel_team_id: Optional[str] = None
    vercel_org_id: Optional[str] = None

    vercel_api_url: str = "https://api.vercel.com"
    request_timeout_seconds: float = 10.0

    def validate_environment(self) -> EnvironmentValidation:
        """Check required and optional credentials; never raises."""
        result = EnvironmentValidation()

        for key in ("vercel_token", "vercel_project_id"):
            value = getattr(self, key)
            if not value:
                result.missing.append(key.upper())
            elif not _is_valid_value(key, value):
                result.invalid.append(key.upper())

        for key in ("vercel_team_id", "vercel_org_id"):
            value = getattr(self, key)
            if value and not _is_valid_value(key, value):
                result.invalid.append(key.upper())

        result.is_valid = not result.missing and not result.invalid

        if self.vercel_token and not self.vercel_team_id and not self.vercel_org_id:
            result.warnings.append(
                "VERCEL_TEAM_ID or VERCEL_ORG_ID recommended for team projects"
            )
        if self.vercel_token and len(self.vercel_token) < _MIN_LENGTHS["vercel_token"]:
            result.warnings.append(
                "VERCEL_TOKEN appears to be too short - verify it's a valid API token"
            )

        return result


def _is_valid_value(key: str, value: str) -> bool:
    return len(value) >= _MIN_LENGTHS.get(key, 1) and bool(_ID_PATTERN.match(value))

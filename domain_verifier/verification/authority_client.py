#domain_verifier\verification\authority_client.py

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import requests

from domain_verifier.core.errors import (
    AuthorityConfigurationError,
    AuthorityRequestError,
)
from domain_verifier.verification.config import AuthoritySettings

logger = logging.getLogger(__name__)


@dataclass
class AuthorityStatus:
    verified: bool
    verification: List[Dict[str, Any]] = field(default_factory=list)


class AuthorityClient(ABC):
    """Reports whether a hostname's ownership proof is satisfied."""

    provider: str = "vercel"

    @abstractmethod
    def check_status(self, hostname: str) -> AuthorityStatus:
        """
        Raises AuthorityConfigurationError when our own setup is broken,
        AuthorityRequestError when the call fails.
        Must enforce its own timeout.
        """
        raise NotImplementedError


class VercelAuthorityClient(AuthorityClient):
    provider = "vercel"

    def __init__(self, settings: Optional[AuthoritySettings] = None, session=None):
        self._settings = settings or AuthoritySettings()
        self._session = session or requests.Session()

    def check_status(self, hostname: str) -> AuthorityStatus:
        validation = self._settings.validate_environment()
        if not validation.is_valid:
            raise AuthorityConfigurationError(
                f"Vercel environment configuration is missing or invalid ({validation.summary()})",
                missing=validation.missing,
                invalid=validation.invalid,
                warnings=validation.warnings,
            )

        base_url = self._settings.vercel_api_url.rstrip("/")
        url = f"{base_url}/v9/projects/{self._settings.vercel_project_id}/domains/{hostname}"
        params = {}
        team_id = self._settings.vercel_team_id or self._settings.vercel_org_id
        if team_id:
            params["teamId"] = team_id

        try:
            response = self._session.get(
                url,
                headers={"Authorization": f"Bearer {self._settings.vercel_token}"},
                params=params,
                timeout=self._settings.request_timeout_seconds,
            )
        except requests.Timeout as e:
            raise AuthorityRequestError(f"Vercel request timed out: {e}") from e
        except requests.RequestException as e:
            raise AuthorityRequestError(f"Vercel request failed: {e}") from e

        if response.status_code in (401, 403):
            raise AuthorityConfigurationError(
                f"Vercel rejected credentials [{response.status_code}]: {response.text}",
                invalid=["VERCEL_TOKEN"],
            )

        if response.status_code != 200:
            raise AuthorityRequestError(
                f"Vercel domain lookup failed [{response.status_code}]: {response.text}",
                status_code=response.status_code,
            )

        try:
            payload = response.json()
        except ValueError as e:
            raise AuthorityRequestError(f"Vercel returned invalid JSON: {e}") from e

        logger.debug(f"[authority] {hostname} verified={payload.get('verified')}")

        return AuthorityStatus(
            verified=payload.get("verified") is True,
            verification=payload.get("verification") or [],
        )

"""
Scheduling API authentication using staff credentials (user token issue).
"""

from __future__ import annotations

import logging
from typing import Optional

import pendulum
import requests
from pendulum import DateTime

from ..config import AppConfig
from ..domain.exceptions import AuthError, MissingCredentialsError
from .http import error_details, upstream_headers

logger = logging.getLogger(__name__)


class TokenProvider:
    """
    Issues and memoizes an access token for the scheduling API.

    The token is kept in memory until ``token_ttl_minutes`` have passed since
    it was issued, then a new one is requested on the next call. Concurrent
    callers may both issue a token; the last one issued wins and either is
    valid.
    """

    TOKEN_PATH = "/usertoken/issue"

    def __init__(
        self,
        base_url: str,
        api_key: str,
        site_id: str,
        username: str,
        password: str,
        token_ttl_minutes: int = 60,
        timeout_seconds: float = 30.0,
    ):
        """
        Initialize the token provider.

        Args:
            base_url: Scheduling API base URL
            api_key: Developer API key
            site_id: Business site identifier
            username: Staff username used to issue the token
            password: Staff password
            token_ttl_minutes: How long an issued token is reused
            timeout_seconds: Request timeout for the issue call
        """
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.site_id = site_id
        self.username = username
        self.password = password
        self.token_ttl_minutes = token_ttl_minutes
        self.timeout_seconds = timeout_seconds

        self._token: Optional[str] = None
        self._expires_at: Optional[DateTime] = None

    @classmethod
    def from_config(cls, config: AppConfig) -> "TokenProvider":
        return cls(
            base_url=config.upstream.base_url,
            api_key=config.upstream.api_key,
            site_id=config.upstream.site_id,
            username=config.credentials.username,
            password=config.credentials.password,
            token_ttl_minutes=config.credentials.token_ttl_minutes,
            timeout_seconds=config.upstream.timeout_seconds,
        )

    @property
    def has_valid_token(self) -> bool:
        return (
            self._token is not None
            and self._expires_at is not None
            and pendulum.now("UTC") < self._expires_at
        )

    def get_access_token(self, force_refresh: bool = False) -> str:
        """
        Get a valid access token, using the cached one or issuing a new one.

        Args:
            force_refresh: Issue a new token even if a cached one is valid

        Returns:
            Access token string

        Raises:
            MissingCredentialsError: If API key, site id, username or password is empty
            AuthError: If the token request fails
        """
        if not force_refresh and self.has_valid_token:
            return self._token  # type: ignore[return-value]

        return self._issue_token()

    def invalidate(self, token: Optional[str] = None) -> None:
        """
        Drop the cached token so a new one is issued next time.

        When ``token`` is given, the cache is only dropped if it holds that
        token.
        """
        if token is not None and token != self._token:
            return
        if self._token is not None:
            logger.info("Access token invalidated")
        self._token = None
        self._expires_at = None

    def _missing_credentials(self) -> list[str]:
        fields = {
            "api_key": self.api_key,
            "site_id": self.site_id,
            "username": self.username,
            "password": self.password,
        }
        return [name for name, value in fields.items() if not value]

    def _issue_token(self) -> str:
        missing = self._missing_credentials()
        if missing:
            raise MissingCredentialsError(missing)

        url = f"{self.base_url}{self.TOKEN_PATH}"
        logger.debug("Issuing access token for %s", self.username)

        try:
            response = requests.post(
                url,
                headers=upstream_headers(self.api_key, self.site_id),
                json={"Username": self.username, "Password": self.password},
                timeout=self.timeout_seconds,
            )
        except requests.exceptions.RequestException as exc:
            raise AuthError(f"Token request failed: {exc}") from exc

        if not response.ok:
            code, message = error_details(response)
            logger.warning("Token request rejected (%s, %s)", response.status_code, code)
            raise AuthError(
                f"Authentication failed: {message}",
                http_status=response.status_code,
                upstream_code=code,
            )

        try:
            payload = response.json()
        except ValueError as exc:
            raise AuthError("Token response is not valid JSON", http_status=response.status_code) from exc

        token = payload.get("AccessToken") if isinstance(payload, dict) else None
        if not token:
            raise AuthError("Token response missing AccessToken", http_status=response.status_code)

        self._token = token
        self._expires_at = pendulum.now("UTC").add(minutes=self.token_ttl_minutes)
        logger.info("Access token issued, valid until %s", self._expires_at.to_iso8601_string())

        return token

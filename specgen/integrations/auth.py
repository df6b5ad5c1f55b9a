"""
Credential providers for the external services.

Three schemes are supported:
- GitHub App: a self-signed RS256 assertion is exchanged for an
  installation access token.
- Atlassian OAuth2 client credentials: client id/secret are exchanged for a
  bearer token.
- Atlassian Basic auth: base64(email:api_token), never refreshed.

Cached tokens are reused while they are more than five minutes away from
expiry. Concurrent callers share one in-flight refresh.
"""

import asyncio
import base64
import logging
from abc import ABC, abstractmethod
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, Optional

import httpx
import jwt

from specgen.config import Settings, get_settings
from specgen.errors import AuthenticationFailure, ConfigurationError
from specgen.models import AuthScheme, Credential

logger = logging.getLogger(__name__)

GUARD_BAND = timedelta(minutes=5)
JWT_CLOCK_SKEW = timedelta(seconds=60)
JWT_LIFETIME = timedelta(minutes=10)
DEFAULT_OAUTH_EXPIRES_IN = 3600

Clock = Callable[[], datetime]


def utcnow() -> datetime:
    return datetime.now(tz=timezone.utc)


def _require(value: Optional[str], message: str) -> str:
    if value is None or not str(value).strip():
        raise ConfigurationError(message)
    return str(value)


class CredentialProvider(ABC):
    """Produces a valid credential for one auth scheme."""

    scheme: AuthScheme

    @abstractmethod
    async def get_credential(self) -> Credential:
        ...

    async def close(self) -> None:
        pass


class RefreshingCredentialProvider(CredentialProvider):
    """Caches a token and refreshes it through a token endpoint.

    Refreshes are single-flight: callers arriving while a refresh is running
    await the same task and observe its result or its failure.
    """

    def __init__(
        self,
        clock: Optional[Clock] = None,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self._clock = clock or utcnow
        self._timeout = timeout
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None
        self._cached: Optional[Credential] = None
        self._inflight: Optional[asyncio.Task] = None

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(timeout=self._timeout, transport=self._transport)
        return self._client

    async def close(self) -> None:
        if self._client and not self._client.is_closed:
            await self._client.aclose()
            self._client = None

    def is_fresh(self, credential: Credential) -> bool:
        if credential.expires_at is None:
            return False
        return self._clock() < credential.expires_at - GUARD_BAND

    async def get_credential(self) -> Credential:
        cached = self._cached
        if cached is not None and self.is_fresh(cached):
            return cached

        if self._inflight is None:
            self._inflight = asyncio.ensure_future(self._run_refresh())
        return await asyncio.shield(self._inflight)

    async def _run_refresh(self) -> Credential:
        try:
            credential = await self._refresh()
            self._cached = credential
            logger.info(f"Refreshed {self.scheme.value} credential (expires {credential.expires_at})")
            return credential
        finally:
            self._inflight = None

    @abstractmethod
    async def _refresh(self) -> Credential:
        ...

    async def _post_token_request(self, url: str, **kwargs: Any) -> Dict[str, Any]:
        """POST to a token endpoint; any failure becomes AuthenticationFailure."""
        client = await self._get_client()
        try:
            response = await client.post(url, **kwargs)
        except httpx.HTTPError as e:
            raise AuthenticationFailure(f"Token endpoint {url} unreachable: {e}") from e

        if not response.is_success:
            raise AuthenticationFailure(
                f"Token endpoint {url} rejected the request: "
                f"{response.status_code} {response.reason_phrase} - {response.text}"
            )

        try:
            data = response.json()
        except ValueError as e:
            raise AuthenticationFailure(f"Token endpoint {url} returned invalid JSON") from e
        if not isinstance(data, dict):
            raise AuthenticationFailure(f"Token endpoint {url} returned an unexpected payload")
        return data


class GitHubAppCredentialProvider(RefreshingCredentialProvider):
    """
    Installation access tokens for a GitHub App.

    Usage:
        provider = GitHubAppCredentialProvider(
            app_id="12345",
            private_key=pem,
            installation_id="67890",
        )
        credential = await provider.get_credential()
    """

    scheme = AuthScheme.APP_JWT

    def __init__(
        self,
        app_id: Optional[str],
        private_key: Optional[str],
        installation_id: Optional[str],
        base_url: str = "https://api.github.com",
        api_version: str = "2022-11-28",
        **kwargs: Any,
    ):
        super().__init__(**kwargs)
        self.app_id = _require(app_id, "Invalid GitHub App ID")
        self.private_key = _require(private_key, "Invalid GitHub App Private Key")
        self.installation_id = _require(installation_id, "Invalid GitHub App Installation ID")
        self.base_url = base_url.rstrip("/")
        self.api_version = api_version

        try:
            self.build_assertion()
        except (ValueError, TypeError, jwt.PyJWTError) as e:
            raise ConfigurationError(f"GitHub App private key is not a usable RSA key: {e}") from e

    def build_assertion(self) -> str:
        """Self-signed app JWT, backdated for clock skew."""
        now = self._clock()
        payload = {
            "iat": int((now - JWT_CLOCK_SKEW).timestamp()),
            "exp": int((now + JWT_LIFETIME).timestamp()),
            "iss": self.app_id,
        }
        return jwt.encode(payload, self.private_key, algorithm="RS256")

    async def _refresh(self) -> Credential:
        url = f"{self.base_url}/app/installations/{self.installation_id}/access_tokens"
        data = await self._post_token_request(
            url,
            headers={
                "Authorization": f"Bearer {self.build_assertion()}",
                "Accept": "application/vnd.github+json",
                "X-GitHub-Api-Version": self.api_version,
            },
        )

        token = data.get("token")
        if not token:
            raise AuthenticationFailure("GitHub App authentication failed: no token in response")

        expires_at_str = data.get("expires_at")
        try:
            expires_at = datetime.fromisoformat(expires_at_str.replace("Z", "+00:00"))
        except (AttributeError, ValueError):
            # Installation tokens live for one hour
            expires_at = self._clock() + timedelta(hours=1)

        return Credential(scheme=self.scheme, bearer_value=token, expires_at=expires_at)


class AtlassianOAuthCredentialProvider(RefreshingCredentialProvider):
    """Atlassian 2LO tokens via the client-credentials grant."""

    scheme = AuthScheme.OAUTH2_CLIENT_CREDENTIALS

    def __init__(
        self,
        client_id: Optional[str],
        client_secret: Optional[str],
        token_url: str = "https://auth.atlassian.com/oauth/token",
        **kwargs: Any,
    ):
        super().__init__(**kwargs)
        if not (client_id and client_id.strip()) or not (client_secret and client_secret.strip()):
            raise ConfigurationError("Invalid Atlassian Client ID or Client Secret")
        self.client_id = client_id
        self.client_secret = client_secret
        self.token_url = token_url

    async def _refresh(self) -> Credential:
        data = await self._post_token_request(
            self.token_url,
            data={
                "grant_type": "client_credentials",
                "client_id": self.client_id,
                "client_secret": self.client_secret,
            },
            headers={"Accept": "application/json"},
        )

        token = data.get("access_token")
        if not token:
            raise AuthenticationFailure("Atlassian authentication failed: no access_token in response")

        try:
            expires_in = int(data.get("expires_in") or DEFAULT_OAUTH_EXPIRES_IN)
        except (TypeError, ValueError):
            expires_in = DEFAULT_OAUTH_EXPIRES_IN

        return Credential(
            scheme=self.scheme,
            bearer_value=token,
            expires_at=self._clock() + timedelta(seconds=expires_in),
        )


class AtlassianBasicCredentialProvider(CredentialProvider):
    """Static Basic credential; no network call, no expiry."""

    scheme = AuthScheme.BASIC

    def __init__(self, email: Optional[str], api_token: Optional[str]):
        if not (email and email.strip()) or not (api_token and api_token.strip()):
            raise ConfigurationError("Invalid Atlassian email or api token.")
        self.email = email
        self.api_token = api_token

    async def get_credential(self) -> Credential:
        encoded = base64.b64encode(f"{self.email}:{self.api_token}".encode("utf-8")).decode("ascii")
        return Credential(scheme=self.scheme, bearer_value=encoded)


def build_github_credentials(settings: Optional[Settings] = None, **kwargs: Any) -> GitHubAppCredentialProvider:
    """Create the GitHub App provider from settings."""
    settings = settings or get_settings()
    creds = settings.github_app_credentials()
    return GitHubAppCredentialProvider(
        app_id=creds["app_id"],
        private_key=creds["private_key"],
        installation_id=creds["installation_id"],
        base_url=settings.github_api_base_url,
        api_version=settings.github_api_version,
        timeout=settings.http_timeout,
        **kwargs,
    )


def build_atlassian_credentials(settings: Optional[Settings] = None, **kwargs: Any) -> CredentialProvider:
    """Create the Atlassian provider for the configured auth mode."""
    settings = settings or get_settings()
    creds = settings.atlassian_credentials()
    if settings.atlassian_auth_mode == "basic":
        return AtlassianBasicCredentialProvider(creds["email"], creds["api_token"])
    if settings.atlassian_auth_mode == "oauth":
        return AtlassianOAuthCredentialProvider(
            client_id=creds["client_id"],
            client_secret=creds["client_secret"],
            token_url=settings.atlassian_token_url,
            timeout=settings.http_timeout,
            **kwargs,
        )
    raise ConfigurationError(f"Unknown Atlassian auth mode: {settings.atlassian_auth_mode}")

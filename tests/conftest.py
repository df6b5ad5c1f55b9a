"""
Pytest Configuration and Fixtures

Shared fixtures for the specgen test suite: an RSA key for GitHub App
signing, a controllable clock, static credentials and settings that never
read the developer's environment.
"""

from datetime import datetime, timedelta, timezone
from typing import Callable, List

import httpx
import pytest
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa

from specgen.config import Settings
from specgen.integrations.auth import CredentialProvider
from specgen.models import AuthScheme, Credential


class FakeClock:
    """Manually advanced UTC clock."""

    def __init__(self, start: datetime = datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc)):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


class StaticCredentials(CredentialProvider):
    """Always hands out the same bearer token."""

    scheme = AuthScheme.APP_JWT

    def __init__(self, token: str = "test-token"):
        self.token = token
        self.calls = 0

    async def get_credential(self) -> Credential:
        self.calls += 1
        return Credential(scheme=self.scheme, bearer_value=self.token)


class RecordingTransport(httpx.MockTransport):
    """MockTransport that keeps every request it served."""

    def __init__(self, handler: Callable[[httpx.Request], httpx.Response]):
        self.requests: List[httpx.Request] = []

        def _record(request: httpx.Request) -> httpx.Response:
            self.requests.append(request)
            return handler(request)

        super().__init__(_record)


@pytest.fixture(scope="session")
def rsa_private_key() -> str:
    key = rsa.generate_private_key(public_exponent=65537, key_size=2048)
    return key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.NoEncryption(),
    ).decode("ascii")


@pytest.fixture(scope="session")
def rsa_public_key(rsa_private_key: str) -> str:
    key = serialization.load_pem_private_key(rsa_private_key.encode("ascii"), password=None)
    return key.public_key().public_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PublicFormat.SubjectPublicKeyInfo,
    ).decode("ascii")


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def static_credentials() -> StaticCredentials:
    return StaticCredentials()


@pytest.fixture
def settings(rsa_private_key: str) -> Settings:
    return Settings(
        _env_file=None,
        github_app_id="12345",
        github_app_private_key=rsa_private_key,
        github_app_installation_id="67890",
        atlassian_auth_mode="oauth",
        atlassian_cloud_id="cloud-1",
        atlassian_client_id="client-id",
        atlassian_client_secret="client-secret",
        atlassian_site_url="https://acme.atlassian.net",
        together_api_key="together-key",
        openai_api_key="openai-key",
    )

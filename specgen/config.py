"""Application configuration using Pydantic Settings."""

import json
import os
import logging
from functools import lru_cache
from typing import Any, Dict, Optional

import boto3
from botocore.exceptions import BotoCoreError, ClientError
from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Environment
    environment: str = "development"
    debug: bool = False
    log_level: str = "INFO"

    # Where credential material comes from: "env" or "aws"
    secret_manager: str = "env"

    # GitHub App
    github_app_id: Optional[str] = None
    github_app_private_key: Optional[str] = None
    github_app_installation_id: Optional[str] = None
    github_api_base_url: str = "https://api.github.com"
    github_api_version: str = "2022-11-28"

    # Atlassian - "oauth" (client credentials) or "basic" (email + API token)
    atlassian_auth_mode: str = "oauth"
    atlassian_cloud_id: Optional[str] = None
    atlassian_client_id: Optional[str] = None
    atlassian_client_secret: Optional[str] = None
    atlassian_email: Optional[str] = None
    atlassian_api_token: Optional[str] = None
    atlassian_token_url: str = "https://auth.atlassian.com/oauth/token"
    atlassian_api_base_url: str = "https://api.atlassian.com/ex"
    atlassian_site_url: Optional[str] = None  # e.g. https://acme.atlassian.net
    confluence_parent_page_id: Optional[str] = None

    # LLM providers
    together_api_key: Optional[str] = None
    openai_api_key: Optional[str] = None
    aws_region: str = "us-east-1"
    llm_timeout: float = 120.0
    llm_temperature: float = 0.7

    # Gateway
    http_timeout: float = 30.0
    github_page_size: int = 100
    github_max_pages: int = 10
    jira_page_size: int = 50
    jira_max_pages: int = 4

    # Document generation
    sample_file_count: int = 3
    document_language: str = "English"

    @field_validator("atlassian_auth_mode", "secret_manager", mode="before")
    @classmethod
    def lower_mode(cls, v):
        if isinstance(v, str):
            return v.strip().lower()
        return v

    @field_validator("github_app_private_key", mode="before")
    @classmethod
    def unescape_private_key(cls, v):
        # PEM keys pasted into .env files usually carry literal "\n"
        if isinstance(v, str) and "\\n" in v:
            return v.replace("\\n", "\n")
        return v

    def is_production(self) -> bool:
        """Check if running in production."""
        return self.environment.lower() == "production"

    def github_app_credentials(self) -> Dict[str, Optional[str]]:
        """GitHub App id, private key and installation id from env or secrets manager."""
        creds = {
            "app_id": self.github_app_id,
            "private_key": self.github_app_private_key,
            "installation_id": self.github_app_installation_id,
        }
        return _merge_secret(creds, self, "GITHUB_APP_SECRET")

    def atlassian_credentials(self) -> Dict[str, Optional[str]]:
        """Atlassian OAuth and Basic credential material from env or secrets manager."""
        creds = {
            "client_id": self.atlassian_client_id,
            "client_secret": self.atlassian_client_secret,
            "email": self.atlassian_email,
            "api_token": self.atlassian_api_token,
        }
        return _merge_secret(creds, self, "ATLASSIAN_SECRET")


def load_integration_secret(secret_name: str, settings: Optional[Settings] = None) -> Optional[Dict[str, Any]]:
    """Load a JSON secret from AWS Secrets Manager when SECRET_MANAGER=aws.

    The environment variable named ``secret_name`` holds the secret id.
    """
    settings = settings or get_settings()
    if settings.secret_manager != "aws":
        return None
    secret_id = os.environ.get(secret_name)
    if not secret_id:
        return None
    client = boto3.client("secretsmanager", region_name=settings.aws_region)
    try:
        response = client.get_secret_value(SecretId=secret_id)
    except (BotoCoreError, ClientError) as e:
        logger.warning(f"Could not load secret {secret_name}: {e}")
        return None
    secret_string = response.get("SecretString")
    if not secret_string:
        return None
    try:
        return json.loads(secret_string)
    except json.JSONDecodeError:
        return {"value": secret_string}


def _merge_secret(
    creds: Dict[str, Optional[str]],
    settings: Settings,
    secret_name: str,
) -> Dict[str, Optional[str]]:
    secret_data = load_integration_secret(secret_name, settings)
    if secret_data:
        for key in creds:
            creds[key] = creds[key] or secret_data.get(key)
    if creds.get("private_key") and "\\n" in creds["private_key"]:
        creds["private_key"] = creds["private_key"].replace("\\n", "\n")
    return creds


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()

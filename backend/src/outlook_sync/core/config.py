"""Configuration management for Outlook Sync.

Process-level settings use Pydantic Settings for type-safe, environment-based
configuration. Per-agent options (the surface a host hands to the agent) are
validated by ``AgentOptions``.
"""

from datetime import datetime
from functools import lru_cache
from typing import Any

from dotenv import load_dotenv
from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .exceptions import ConfigurationError

load_dotenv(override=True)

FOLDERS = ("inbox", "sent", "drafts", "deleted")
CONTENT_TYPES = ("HTML", "Text")

# Graph well-known folder names
WELL_KNOWN_FOLDERS: dict[str, str] = {
    "inbox": "inbox",
    "sent": "sentitems",
    "drafts": "drafts",
    "deleted": "deleteditems",
}


class Settings(BaseSettings):
    """Application settings with environment variable support."""

    app_name: str = Field("outlook-sync", alias="OUTLOOK_SYNC_APP_NAME")
    version: str = Field("0.0.0-dev", alias="OUTLOOK_SYNC_VERSION")
    environment: str = Field("development", alias="OUTLOOK_SYNC_ENVIRONMENT")

    # Logging
    log_level: str = Field("INFO", alias="OUTLOOK_SYNC_LOG_LEVEL")
    log_format: str = Field("text", alias="OUTLOOK_SYNC_LOG_FORMAT")

    # Microsoft identity platform / Graph
    login_base_url: str = Field("https://login.microsoftonline.com", alias="OUTLOOK_SYNC_LOGIN_BASE_URL")
    graph_base_url: str = Field("https://graph.microsoft.com/v1.0", alias="OUTLOOK_SYNC_GRAPH_BASE_URL")
    graph_scope: str = Field("https://graph.microsoft.com/.default", alias="OUTLOOK_SYNC_GRAPH_SCOPE")
    default_token_ttl: int = Field(3600, alias="OUTLOOK_SYNC_DEFAULT_TOKEN_TTL")
    token_debug: bool = Field(False, alias="OUTLOOK_SYNC_TOKEN_DEBUG")

    # HTTP
    http_timeout: float = Field(30.0, alias="OUTLOOK_SYNC_HTTP_TIMEOUT")

    model_config = SettingsConfigDict(env_file=".env", extra="ignore", populate_by_name=True)

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if v.upper() not in valid_levels:
            raise ValueError(f"Log level must be one of {valid_levels}")
        return v.upper()

    @field_validator("log_format")
    @classmethod
    def validate_log_format(cls, v: str) -> str:
        if v.lower() not in ("text", "json"):
            raise ValueError("Log format must be 'text' or 'json'")
        return v.lower()

    def token_url(self, tenant_id: str) -> str:
        return f"{self.login_base_url.rstrip('/')}/{tenant_id}/oauth2/v2.0/token"


@lru_cache(maxsize=1)
def get_settings_instance() -> Settings:
    """Get the cached settings instance."""
    return Settings()


def parse_since(value: str | None) -> datetime | None:
    """Parse an ISO-8601 ``since`` value; empty means no lower bound.

    Raises ConfigurationError when the value is present but unparsable.
    """
    if value is None:
        return None
    text = str(value).strip()
    if not text:
        return None
    try:
        return datetime.fromisoformat(text)
    except ValueError as e:
        raise ConfigurationError(
            f"'since' must be an ISO-8601 timestamp, got {text!r}",
            details={"field": "since", "value": text},
        ) from e


def _present(value: Any) -> bool:
    if value is None:
        return False
    if isinstance(value, str):
        return bool(value.strip())
    if isinstance(value, (list, tuple)):
        return any(_present(v) for v in value)
    return True


class AgentOptions(BaseModel):
    """Options a host supplies to an OutlookAgent.

    Fields mirror the agent's configuration surface. Templated fields
    (``to``, ``subject``, ``body``...) arrive already rendered.
    """

    model_config = ConfigDict(extra="ignore")

    mode: str = "receive"
    auth_method: str = "oauth"
    client_id: str = ""
    client_secret: str = Field("", repr=False)
    tenant_id: str = ""
    refresh_token: str = Field("", repr=False)
    access_token: str = Field("", repr=False)
    mailbox: str = ""
    folder: str = "inbox"
    since: str = ""
    mark_as_read: bool = False
    to: str | list[str] = ""
    cc: str | list[str] = ""
    bcc: str | list[str] = ""
    subject: str = ""
    body: str = ""
    content_type: str = "HTML"

    def collect_errors(self) -> list[str]:
        errors: list[str] = []
        if not _present(self.mode):
            errors.append("Mode is required")
        elif self.mode not in ("receive", "send"):
            errors.append("Mode must be 'receive' or 'send'")

        if self.auth_method == "oauth":
            if not _present(self.client_id):
                errors.append("Client ID is required for OAuth")
            if not _present(self.client_secret):
                errors.append("Client Secret is required for OAuth")
            if not _present(self.tenant_id):
                errors.append("Tenant ID is required for OAuth")
        elif not _present(self.access_token):
            errors.append("Access token is required")

        if self.mode == "send":
            if not _present(self.to):
                errors.append("Recipient (to) is required for send mode")
            if not _present(self.subject):
                errors.append("Subject is required for send mode")
            if not _present(self.body):
                errors.append("Body is required for send mode")

        if self.mode == "receive":
            if self.folder not in FOLDERS:
                errors.append("Folder must be 'inbox', 'sent', 'drafts', or 'deleted'")
            try:
                parse_since(self.since)
            except ConfigurationError as e:
                errors.append(e.message)

        if _present(self.content_type) and self.content_type not in CONTENT_TYPES:
            errors.append("Content type must be 'HTML' or 'Text'")
        return errors

    @classmethod
    def load(cls, options: dict[str, Any]) -> "AgentOptions":
        """Build and validate options, raising one ConfigurationError listing every problem."""
        raw = {k: v for k, v in (options or {}).items() if v is not None}
        try:
            parsed = cls.model_validate(raw)
        except ValueError as e:
            raise ConfigurationError(f"Invalid agent options: {e}", details={"errors": [str(e)]}) from e
        errors = parsed.collect_errors()
        if errors:
            raise ConfigurationError("Invalid agent options: " + "; ".join(errors), details={"errors": errors})
        return parsed

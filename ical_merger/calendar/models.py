"""Data models for calendar sources and fetch results."""

from datetime import datetime, timezone
from enum import Enum
from typing import Optional
from urllib.parse import urlparse

from pydantic import BaseModel, ConfigDict, Field, field_validator


class AuthType(str, Enum):
    """Supported authentication types for ICS sources."""

    NONE = "none"
    BASIC = "basic"
    BEARER = "bearer"


class SourceAuth(BaseModel):
    """Authentication configuration for ICS sources."""

    type: AuthType = AuthType.NONE
    username: Optional[str] = None
    password: Optional[str] = None
    bearer_token: Optional[str] = None

    model_config = ConfigDict(frozen=True)

    def get_headers(self) -> dict[str, str]:
        """Get HTTP headers for authentication."""
        headers = {}

        if self.type == AuthType.BASIC and self.username and self.password:
            import base64

            credentials = f"{self.username}:{self.password}"
            encoded = base64.b64encode(credentials.encode()).decode()
            headers["Authorization"] = f"Basic {encoded}"

        elif self.type == AuthType.BEARER and self.bearer_token:
            headers["Authorization"] = f"Bearer {self.bearer_token}"

        return headers


class CalendarSource(BaseModel):
    """One remote ICS feed contributing to a merged calendar."""

    url: str = Field(..., description="ICS calendar URL")
    name: Optional[str] = Field(default=None, description="Human-readable name for logs")
    auth: SourceAuth = Field(default_factory=SourceAuth, description="Authentication configuration")
    custom_headers: dict[str, str] = Field(default_factory=dict, description="Custom HTTP headers")
    timeout: Optional[int] = Field(
        default=None, gt=0, description="HTTP read timeout in seconds (defaults to request_timeout)"
    )

    # Per-source event transformations applied while merging
    hide_details: bool = Field(
        default=False, description="Replace summaries with 'Busy' and strip private fields"
    )
    summary_prefix: Optional[str] = Field(
        default=None, description="Text prepended to every event summary"
    )

    model_config = ConfigDict(frozen=True)

    @field_validator("url")
    @classmethod
    def _require_http_url(cls, value: str) -> str:
        parsed = urlparse(value)
        if parsed.scheme not in ("http", "https") or not parsed.hostname:
            raise ValueError(f"source url must be an absolute http(s) URL, got {value!r}")
        return value

    @property
    def display_name(self) -> str:
        return self.name or self.url


class CalendarConfig(BaseModel):
    """Source configuration for one servable calendar."""

    urls: list[CalendarSource] = Field(..., min_length=1, description="Feeds to merge")
    name: Optional[str] = Field(default=None, description="Value for X-WR-CALNAME")

    model_config = ConfigDict(frozen=True)

    @field_validator("urls", mode="before")
    @classmethod
    def _coerce_plain_urls(cls, value: object) -> object:
        # Allow `urls: [https://...]` as shorthand for `urls: [{url: https://...}]`
        if isinstance(value, (list, tuple)):
            return [{"url": item} if isinstance(item, str) else item for item in value]
        return value


class FetchResponse(BaseModel):
    """Successful response from an ICS fetch."""

    content: str
    status_code: int
    source_url: str
    headers: dict[str, str] = Field(default_factory=dict)
    fetch_time: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    etag: Optional[str] = None
    last_modified: Optional[str] = None

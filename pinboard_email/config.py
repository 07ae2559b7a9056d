"""Mail crawler configuration loaded from environment variables."""

from __future__ import annotations

from pydantic import Field, SecretStr
from pydantic_settings import BaseSettings

from pinboard_connector import CrawlerConfig


class Pop3Config(BaseSettings):
    """POP3 server connection settings."""

    model_config = {"env_prefix": "POP3_"}

    host: str = Field(description="POP3 server hostname")
    port: int = Field(default=995, description="POP3 server port")
    use_ssl: bool = Field(default=True, description="Wrap the connection in TLS")
    username: str = Field(description="POP3 login username")
    password: SecretStr = Field(description="POP3 login password")
    timeout_seconds: float | None = Field(
        default=None,
        gt=0,
        description="Socket timeout per blocking call; block indefinitely if unset",
    )


class MailCrawlerConfig(CrawlerConfig):
    """Mail crawler config.

    Extends CrawlerConfig (inherits timings, storage, health_port, logging).
    """

    pop3: Pop3Config = Field(default_factory=Pop3Config)

"""
Configuration management for scdgraph.

All settings come from environment variables (or a .env file) and have
defaults that work against a local Neo4j started with docker.

Environment:
    NEO4J_URI, NEO4J_USER, NEO4J_PASSWORD, NEO4J_DATABASE,
    NEO4J_MAX_CONNECTION_POOL_SIZE, NEO4J_MAX_TRANSACTION_RETRY_TIME,
    NEO4J_CONNECTION_TIMEOUT, NEO4J_CONNECT_RETRIES, NEO4J_CONNECT_RETRY_DELAY
    SCDGRAPH_LOG_LEVEL, SCDGRAPH_LOG_FORMAT

Invariants:
    - The password is never logged
    - Timeouts and retry policy belong to the driver; the settings here only
      pass them through
"""

from __future__ import annotations

import logging
from typing import Literal, Optional

from pydantic import Field, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)


class Neo4jSettings(BaseSettings):
    """Neo4j connection settings."""

    uri: str = Field(default="bolt://localhost:7687")
    user: str = Field(default="neo4j")
    password: SecretStr = Field(default=SecretStr("password"))
    database: Optional[str] = Field(default=None, description="None = server default database")

    # Passed straight to the driver
    max_connection_pool_size: int = Field(default=10, ge=1)
    max_transaction_retry_time: float = Field(default=3.0, ge=0)
    connection_timeout: float = Field(default=30.0, gt=0)

    # Connectivity check on connect()
    connect_retries: int = Field(default=3, ge=1)
    connect_retry_delay: float = Field(default=5.0, ge=0)

    model_config = SettingsConfigDict(env_prefix="NEO4J_", env_file=".env", extra="ignore")


class LoggingSettings(BaseSettings):
    """Logging settings."""

    log_level: str = Field(default="INFO")
    log_format: Literal["json", "text"] = Field(default="text")

    model_config = SettingsConfigDict(env_prefix="SCDGRAPH_", env_file=".env", extra="ignore")


class Settings(BaseSettings):
    """Complete package settings.

    Example:
        >>> settings = Settings()
        >>> settings.validate_settings()
        >>> settings.log_config()
    """

    neo4j: Neo4jSettings = Field(default_factory=Neo4jSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)

    def validate_settings(self) -> None:
        """Validate configuration consistency.

        Raises:
            ValueError: If configuration is invalid.
        """
        scheme = self.neo4j.uri.split("://", 1)[0]
        if scheme not in ("bolt", "bolt+s", "bolt+ssc", "neo4j", "neo4j+s", "neo4j+ssc"):
            raise ValueError(f"Unsupported NEO4J_URI scheme '{scheme}'")
        if not isinstance(logging.getLevelName(self.logging.log_level.upper()), int):
            raise ValueError(f"Invalid SCDGRAPH_LOG_LEVEL '{self.logging.log_level}'")

    def log_config(self) -> None:
        """Log configuration (redacting secrets)."""
        logger.info(
            "scdgraph configuration loaded",
            extra={
                "neo4j_uri": self.neo4j.uri,
                "neo4j_user": self.neo4j.user,
                "neo4j_database": self.neo4j.database,
                "max_connection_pool_size": self.neo4j.max_connection_pool_size,
                "connect_retries": self.neo4j.connect_retries,
                "log_level": self.logging.log_level,
                "log_format": self.logging.log_format,
            },
        )

"""Pydantic models for SQLBridge configuration."""

from typing import Any, Dict, Optional

from pydantic import (
    BaseModel,
    Field,
    field_validator,
    model_validator,
    AliasChoices,
    ConfigDict,
)
from pydantic_settings import BaseSettings, SettingsConfigDict


DEFAULT_DRIVER = "mysql+pymysql"


class ConnectionConfig(BaseModel):
    """Connection configuration for a single database."""

    model_config = ConfigDict(populate_by_name=True)

    driver: str = Field(default=DEFAULT_DRIVER, description="SQLAlchemy URL scheme")
    server: Optional[str] = Field(default=None, validation_alias=AliasChoices("server", "host"))
    port: Optional[int] = None
    database: Optional[str] = None
    user: Optional[str] = Field(default=None, validation_alias=AliasChoices("user", "username"))
    password: Optional[str] = Field(default=None, validation_alias=AliasChoices("password", "pwd"))
    use_trusted_connection: bool = Field(
        default=False,
        validation_alias=AliasChoices("use_trusted_connection", "useTrustedConnection"),
    )
    default_schema: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("default_schema", "schema")
    )
    timeout: int = Field(default=600, ge=1, le=86400, description="Connection timeout in seconds")
    path: Optional[str] = None  # For SQLite
    options: Dict[str, Any] = Field(default_factory=dict)

    @field_validator('port')
    def validate_port(cls, v):
        """Validate port number range."""
        if v is not None and (v < 1 or v > 65535):
            raise ValueError("Port must be between 1 and 65535")
        return v

    @property
    def is_sqlite(self) -> bool:
        return self.driver.split('+', 1)[0] == 'sqlite'

    @model_validator(mode='after')
    def validate_connection_config(self):
        """Validate driver-specific required fields."""
        if self.is_sqlite:
            if not (self.path or self.database):
                raise ValueError("SQLite connections require a 'path' or 'database' field")
            if not self.path:
                object.__setattr__(self, "path", self.database)
            return self

        for field in ('server', 'database'):
            if not getattr(self, field):
                raise ValueError(f"{self.driver} connections require '{field}' field")
        if not self.use_trusted_connection and not self.user:
            raise ValueError("A 'user' is required unless use_trusted_connection is set")
        return self

    def with_credentials(self, user: str, password: Optional[str]) -> "ConnectionConfig":
        """Return a copy of this configuration logging in with other credentials."""
        return self.model_copy(
            update={'user': user, 'password': password, 'use_trusted_connection': False}
        )


class SQLBridgeConfig(BaseModel):
    """Main configuration model for SQLBridge."""
    connections: Dict[str, ConnectionConfig]
    default_connection: Optional[str] = None
    default_isolation_level: str = Field(default="READ_COMMITTED")

    @field_validator('default_isolation_level')
    def validate_isolation_level(cls, v):
        """Only accept isolation level names known to the transaction controller."""
        from sqlbridge.db.transactions import IsolationLevel
        from sqlbridge.exceptions import InvalidIsolationLevelError

        try:
            return IsolationLevel.parse(v).name
        except InvalidIsolationLevelError as e:
            raise ValueError(e.message) from e

    @model_validator(mode='after')
    def validate_default_connection(self):
        """Ensure default_connection exists in connections."""
        if self.default_connection and self.default_connection not in self.connections:
            raise ValueError(f"default_connection '{self.default_connection}' not found in connections")
        return self

    @model_validator(mode='after')
    def set_default_connection(self):
        """Set default connection if not specified."""
        if not self.default_connection and self.connections:
            self.default_connection = next(iter(self.connections))
        return self


class EnvironmentSettings(BaseSettings):
    """Environment-specific settings."""
    model_config = SettingsConfigDict(env_prefix="SQLBRIDGE_", case_sensitive=False)

    log_level: str = Field(default="INFO")
    debug: bool = Field(default=False)
    config_file: Optional[str] = Field(default=None)

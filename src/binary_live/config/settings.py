"""Configuration settings using Pydantic for validation."""

from typing import List, Optional, Any
from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict
import os
import re


DEFAULT_API_URL = "wss://ws.binaryws.com/websockets/v3"


class ConnectionConfig(BaseModel):
    """Websocket session configuration."""
    api_url: str = Field(default=DEFAULT_API_URL, description="Streaming API websocket endpoint")
    language: str = Field(default="en", description="Language tag sent as the ?l= query parameter")
    terminate_on_error: bool = Field(default=True, description="Exit the process on a transport error")

    @field_validator('language')
    @classmethod
    def validate_language(cls, v):
        if not v or not v.strip():
            raise ValueError("Language tag must not be empty")
        return v.strip().lower()

    @field_validator('api_url')
    @classmethod
    def validate_api_url(cls, v):
        if not v.startswith(('ws://', 'wss://')):
            raise ValueError("api_url must be a ws:// or wss:// URL")
        return v


class RequestConfig(BaseModel):
    """Request/response correlation configuration."""
    timeout_seconds: Optional[float] = Field(
        default=None,
        description="Reject pending requests after this many seconds; None keeps them forever",
    )

    @field_validator('timeout_seconds')
    @classmethod
    def validate_timeout(cls, v):
        if v is not None and v <= 0:
            raise ValueError("timeout_seconds must be positive")
        return v


class RestConfig(BaseModel):
    """One-shot REST API configuration."""
    base_url: str = Field(default="https://api.binary.com", description="REST API base URL")
    token: Optional[str] = Field(default=None, description="Bearer token for REST calls")
    request_timeout_seconds: int = Field(default=30, description="HTTP request timeout")


class RetryConfig(BaseModel):
    """Retry configuration for REST calls."""
    max_attempts: int = Field(default=3, description="Maximum retry attempts")
    initial_backoff_seconds: float = Field(default=1.0, description="Initial backoff delay")
    max_backoff_seconds: float = Field(default=30.0, description="Maximum backoff delay")
    backoff_multiplier: float = Field(default=2.0, description="Backoff multiplier")
    jitter: bool = Field(default=True, description="Add jitter to backoff")


class LoggingConfig(BaseModel):
    """Logging configuration."""
    level: str = Field(default="INFO", description="Log level")
    format: str = Field(default="text", description="Log format: json or text")
    output: str = Field(default="stdout", description="Log output destination")

    @field_validator('format')
    @classmethod
    def validate_format(cls, v):
        if v.lower() not in ['json', 'text']:
            raise ValueError("Log format must be 'json' or 'text'")
        return v.lower()


class MonitorConfig(BaseModel):
    """Feeds the bundled tick monitor subscribes to."""
    symbols: List[str] = Field(default=["R_100"], description="Tick symbols to stream")
    token: Optional[str] = Field(default=None, description="Authorization token")
    balance: bool = Field(default=False, description="Subscribe to balance updates")
    transactions: bool = Field(default=False, description="Subscribe to transactions")
    portfolio: bool = Field(default=False, description="Subscribe to all open contracts")


class LiveApiSettings(BaseSettings):
    """Main client settings."""

    service_name: str = Field(default="binary-live", description="Service name")

    connection: ConnectionConfig = Field(default_factory=ConnectionConfig)
    request: RequestConfig = Field(default_factory=RequestConfig)
    rest: RestConfig = Field(default_factory=RestConfig)
    retry: RetryConfig = Field(default_factory=RetryConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    monitor: MonitorConfig = Field(default_factory=MonitorConfig)

    model_config = SettingsConfigDict(
        env_prefix="LIVE_",
        env_file=".env",
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
        case_sensitive=False,
        extra="ignore",
    )


def substitute_env_vars(obj: Any) -> Any:
    """
    Recursively substitute environment variables in configuration objects.

    Supports syntax:
    - ${VAR_NAME} - Required variable (raises error if not found)
    - ${VAR_NAME:-default} - Optional variable with default value

    Raises:
        ValueError: If required environment variable is not found
    """
    if isinstance(obj, dict):
        return {key: substitute_env_vars(value) for key, value in obj.items()}
    elif isinstance(obj, list):
        return [substitute_env_vars(item) for item in obj]
    elif isinstance(obj, str):
        def replace_env_var(match):
            var_expr = match.group(1)

            if ':-' in var_expr:
                var_name, default_value = var_expr.split(':-', 1)
                return os.getenv(var_name.strip(), default_value)
            else:
                var_name = var_expr.strip()
                value = os.getenv(var_name)
                if value is None:
                    raise ValueError(f"Required environment variable '{var_name}' is not set")
                return value

        return re.sub(r'\$\{([^}]+)\}', replace_env_var, obj)
    else:
        return obj


def load_settings(config_file: Optional[str] = None) -> LiveApiSettings:
    """
    Load settings from config file and environment variables.

    The config file supports environment variable substitution using ${VAR_NAME} syntax.

    Args:
        config_file: Path to YAML configuration file

    Returns:
        LiveApiSettings: Validated configuration object

    Raises:
        ValueError: If required environment variables are missing
        FileNotFoundError: If config file doesn't exist
    """
    if config_file and os.path.exists(config_file):
        import yaml

        with open(config_file, 'r') as f:
            raw_config = yaml.safe_load(f) or {}

        config_data = substitute_env_vars(raw_config)
        return LiveApiSettings(**config_data)

    elif config_file:
        raise FileNotFoundError(f"Configuration file not found: {config_file}")

    return LiveApiSettings()

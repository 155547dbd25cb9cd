"""Configuration for the live API client."""

from .settings import (
    ConnectionConfig,
    LiveApiSettings,
    LoggingConfig,
    MonitorConfig,
    RequestConfig,
    RestConfig,
    RetryConfig,
    load_settings,
)

__all__ = [
    "ConnectionConfig",
    "LiveApiSettings",
    "LoggingConfig",
    "MonitorConfig",
    "RequestConfig",
    "RestConfig",
    "RetryConfig",
    "load_settings",
]

"""Configuration and logging for blobauth."""

from blobauth.core.config import BlobAuthConfig, ConfigManager, LoggingConfig, StorageConfig
from blobauth.core.logging_config import setup_logging

__all__ = [
    "BlobAuthConfig",
    "ConfigManager",
    "LoggingConfig",
    "StorageConfig",
    "setup_logging",
]

"""
Configuration module for od2duck.
"""

from .settings import (
    Config,
    ConfigurationError,
    ProcessingConfig,
    SourceConfig,
    StorageConfig,
)

__all__ = [
    'Config',
    'ConfigurationError',
    'ProcessingConfig',
    'SourceConfig',
    'StorageConfig',
]

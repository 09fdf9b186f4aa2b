"""Configuration module for pagewise.

Provides typed settings and the SQLite database factory.
"""

from .database import (
    DatabaseConfig,
    Database,
    connect,
)
from .settings import Settings, DEFAULT_FALLBACK_ANSWER

__all__ = [
    'DatabaseConfig',
    'Database',
    'connect',
    'Settings',
    'DEFAULT_FALLBACK_ANSWER',
]

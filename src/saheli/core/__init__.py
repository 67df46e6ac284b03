"""
Core module for Saheli

Contains configuration management, logging, persistence, identity
and the shared error taxonomy.
"""

from .config import ConfigurationManager, ConfigurationError
from .database import DatabaseManager, DatabaseError
from .identity import AuthSession

__all__ = [
    'ConfigurationManager',
    'ConfigurationError',
    'DatabaseManager',
    'DatabaseError',
    'AuthSession'
]

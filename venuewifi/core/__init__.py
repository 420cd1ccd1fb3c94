"""
VenueWifi Core
==============

Core utilities and shared functionality for VenueWifi modules.
"""

from .config import Config, get_setting
from .database import Database
from .errors import (
    VenueWifiError, ValidationError, AuthError, NotFoundError,
    UpstreamError, PersistenceError,
)
from .logging_service import LoggingService, logger, db_log
from .storage import StorageUrlResolver, PublicUrlCache, resolve_storage_url

__all__ = [
    'Config', 'get_setting', 'Database', 'LoggingService', 'logger', 'db_log',
    'VenueWifiError', 'ValidationError', 'AuthError', 'NotFoundError',
    'UpstreamError', 'PersistenceError',
    'StorageUrlResolver', 'PublicUrlCache', 'resolve_storage_url',
]

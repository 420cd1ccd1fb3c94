"""
Centralized logging service for the VenueWifi console.
Provides structured logging with database storage and easy integration.
"""

import json
import logging
from datetime import datetime, timedelta

from flask import request, has_request_context

from .database import Database

console = logging.getLogger(__name__)


def get_request_ip():
    """First address in X-Forwarded-For, falling back to the socket peer"""
    if not has_request_context():
        return None
    forwarded = request.headers.get('X-Forwarded-For', '')
    if forwarded:
        first = forwarded.split(',')[0].strip()
        return first or None
    return request.remote_addr


class LoggingService:
    """Centralized logging service for application-wide logging"""

    @staticmethod
    def _get_request_context():
        """Extract request context information"""
        if not has_request_context():
            return None, None, None

        try:
            ip_address = get_request_ip()
            user_agent = request.headers.get('User-Agent', '')
            request_path = request.path

            return ip_address, user_agent, request_path
        except Exception:
            return None, None, None

    @staticmethod
    def log(level, source, message, details=None, user_id=None):
        """
        Log a message to the database

        Args:
            level (str): Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
            source (str): Source component (wifi, campaigns, auth, etc.)
            message (str): Main log message
            details (str/dict): Additional details (will be JSON-encoded if dict)
            user_id (str): Optional user identifier
        """
        try:
            ip_address, user_agent, request_path = LoggingService._get_request_context()

            if isinstance(details, dict):
                details = json.dumps(details, indent=2, default=str)

            timestamp = datetime.now().isoformat()

            with Database.connect() as conn:
                cursor = conn.cursor()
                cursor.execute("""
                    INSERT INTO app_logs
                    (timestamp, level, source, message, details, ip_address, user_agent, request_path, user_id)
                    VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                """, (
                    timestamp, level.upper(), source, message, details,
                    ip_address, user_agent, request_path,
                    str(user_id) if user_id is not None else None
                ))
                conn.commit()

        except Exception as e:
            # Fallback to console logging if database fails
            console.log(getattr(logging, level.upper(), logging.INFO), f"[{source}] {message}")
            console.warning(f"Logging service error: {e}")

    @staticmethod
    def debug(source, message, details=None, user_id=None):
        """Log debug message"""
        LoggingService.log('DEBUG', source, message, details, user_id)

    @staticmethod
    def info(source, message, details=None, user_id=None):
        """Log info message"""
        LoggingService.log('INFO', source, message, details, user_id)

    @staticmethod
    def warning(source, message, details=None, user_id=None):
        """Log warning message"""
        LoggingService.log('WARNING', source, message, details, user_id)

    @staticmethod
    def error(source, message, details=None, user_id=None):
        """Log error message"""
        LoggingService.log('ERROR', source, message, details, user_id)

    @staticmethod
    def log_security_event(message, details=None):
        """Log security-related events (failed auth, admin changes)"""
        LoggingService.warning('security', message, details)

    @staticmethod
    def recent(source=None, limit=50):
        """Most recent log rows, optionally for one source"""
        try:
            with Database.connect() as conn:
                cursor = conn.cursor()
                if source:
                    cursor.execute(
                        'SELECT * FROM app_logs WHERE source = ? ORDER BY id DESC LIMIT ?',
                        (source, limit)
                    )
                else:
                    cursor.execute('SELECT * FROM app_logs ORDER BY id DESC LIMIT ?', (limit,))
                return [dict(row) for row in cursor.fetchall()]
        except Exception as e:
            console.error(f"Failed to read app logs: {e}")
            return []

    @staticmethod
    def cleanup_old_logs(days_to_keep=30):
        """Clean up old log entries"""
        try:
            cutoff_iso = (datetime.now() - timedelta(days=days_to_keep)).isoformat()

            with Database.connect() as conn:
                cursor = conn.cursor()
                cursor.execute("DELETE FROM app_logs WHERE timestamp < ?", (cutoff_iso,))
                deleted_count = cursor.rowcount
                conn.commit()

            LoggingService.info('system', f"Cleaned up {deleted_count} old log entries")
            return deleted_count

        except Exception as e:
            LoggingService.error('system', f"Failed to cleanup old logs: {e}")
            return 0


def db_log(level, source, message, details=None, user_id=None):
    """Shorthand used by modules: persist a log line without ever raising"""
    LoggingService.log(level, source, message, details, user_id)


# Convenience instance for easy importing
logger = LoggingService()

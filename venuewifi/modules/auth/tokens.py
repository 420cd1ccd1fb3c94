"""
Bearer-token authentication for the admin console API.

Tokens are only ever stored as SHA-256 hashes; the raw value is returned once
when it is issued.
"""

import hashlib
import logging
import secrets
import sqlite3
from datetime import datetime
from functools import wraps

from flask import request, g

from ...core.config import get_setting
from ...core.database import Database, row_to_dict
from ...core.errors import AuthError
from ...core.logging_service import logger as db_logger

logger = logging.getLogger(__name__)

ADMIN_ROLES = ('admin', 'manager')


def hash_token(token):
    """Hash a bearer token using SHA-256"""
    return hashlib.sha256(token.encode()).hexdigest()


def generate_token():
    """New bearer token in vw_<random> format"""
    return f"vw_{secrets.token_urlsafe(32)}"


def normalize_email(email):
    return (email or '').strip().lower()


def get_or_create_user(email):
    """Return the users row for email, creating it on first use"""
    email = normalize_email(email)
    with Database.connect() as conn:
        cursor = conn.cursor()
        cursor.execute('SELECT id, email, created_at FROM users WHERE email = ?', (email,))
        row = cursor.fetchone()
        if row:
            return row_to_dict(row)
        cursor.execute('INSERT INTO users (email) VALUES (?)', (email,))
        conn.commit()
        return {'id': cursor.lastrowid, 'email': email, 'created_at': None}


def get_user(user_id):
    with Database.connect() as conn:
        cursor = conn.cursor()
        cursor.execute('SELECT id, email, created_at FROM users WHERE id = ?', (user_id,))
        return row_to_dict(cursor.fetchone())


def issue_token(email):
    """Mint a token for email (creating the user if needed)

    Returns:
        dict: {'user_id', 'email', 'token', 'token_prefix'} - the raw token is not stored
    """
    user = get_or_create_user(email)
    token = generate_token()
    token_prefix = token[:10] + "..."

    with Database.connect() as conn:
        conn.execute('''
            INSERT INTO access_tokens (user_id, token_hash, token_prefix)
            VALUES (?, ?, ?)
        ''', (user['id'], hash_token(token), token_prefix))
        conn.commit()

    logger.info(f"Issued token {token_prefix} for {user['email']}")
    return {'user_id': user['id'], 'email': user['email'], 'token': token, 'token_prefix': token_prefix}


def revoke_tokens(user_id):
    with Database.connect() as conn:
        cursor = conn.cursor()
        cursor.execute('UPDATE access_tokens SET is_active = 0 WHERE user_id = ?', (user_id,))
        conn.commit()
        return cursor.rowcount


def validate_token(token):
    """User dict for an active token, or None"""
    if not token:
        return None

    try:
        with Database.connect() as conn:
            cursor = conn.cursor()
            cursor.execute('''
                SELECT t.id AS token_id, u.id, u.email
                FROM access_tokens t
                JOIN users u ON u.id = t.user_id
                WHERE t.token_hash = ? AND t.is_active = 1
            ''', (hash_token(token),))
            row = cursor.fetchone()
            if not row:
                return None

            cursor.execute(
                'UPDATE access_tokens SET last_used_at = ? WHERE id = ?',
                (datetime.now().isoformat(), row['token_id'])
            )
            conn.commit()
            return {'id': row['id'], 'email': row['email']}
    except sqlite3.Error as e:
        logger.error(f"Error validating token: {e}")
        return None


def _bearer_token():
    header = request.headers.get('Authorization', '')
    if header.lower().startswith('bearer '):
        return header[7:].strip()
    return ''


def authenticate_request(missing_message='Missing authorization token.',
                         invalid_message='Invalid token.'):
    """Resolve the caller from the Authorization header or raise AuthError (401)"""
    token = _bearer_token()
    if not token:
        raise AuthError(missing_message)
    user = validate_token(token)
    if not user:
        db_logger.log_security_event('Rejected bearer token', {'path': request.path})
        raise AuthError(invalid_message)
    g.current_user = user
    return user


def _allowlist():
    raw = get_setting('ADMIN_ALLOWLIST', '') or ''
    return {normalize_email(email) for email in raw.split(',') if email.strip()}


def get_admin_profile(user_id, active_only=True):
    query = 'SELECT * FROM admin_profiles WHERE user_id = ?'
    if active_only:
        query += ' AND revoked_at IS NULL'
    with Database.connect() as conn:
        cursor = conn.cursor()
        cursor.execute(query, (user_id,))
        return row_to_dict(cursor.fetchone())


def is_admin(user):
    """True when user has an unrevoked admin/manager profile.

    ADMIN_ALLOWLIST is consulted only if the profile lookup itself fails.
    """
    if not user:
        return False
    try:
        profile = get_admin_profile(user['id'])
    except sqlite3.Error as e:
        logger.error(f"Admin lookup failed, falling back to allowlist: {e}")
        return normalize_email(user.get('email')) in _allowlist()
    return bool(profile and profile.get('role') in ADMIN_ROLES)


def has_active_admin():
    with Database.connect() as conn:
        cursor = conn.cursor()
        cursor.execute('SELECT id FROM admin_profiles WHERE revoked_at IS NULL LIMIT 1')
        return cursor.fetchone() is not None


def grant_admin(user_id, email, created_by, role='admin', full_name=None):
    """Create or reinstate an unrevoked admin profile for user_id"""
    with Database.connect() as conn:
        conn.execute('''
            INSERT INTO admin_profiles (user_id, email, full_name, role, created_by)
            VALUES (?, ?, ?, ?, ?)
            ON CONFLICT(user_id) DO UPDATE SET
                email = excluded.email, role = excluded.role,
                created_by = excluded.created_by, revoked_at = NULL, revoked_by = NULL
        ''', (user_id, normalize_email(email), full_name, role, created_by))
        conn.commit()


def revoke_admin(target_user_id, revoked_by):
    """Returns True if an active profile was revoked, False if already revoked/absent"""
    with Database.connect() as conn:
        cursor = conn.cursor()
        cursor.execute('''
            UPDATE admin_profiles SET revoked_at = ?, revoked_by = ?
            WHERE user_id = ? AND revoked_at IS NULL
        ''', (datetime.now().isoformat(), revoked_by, target_user_id))
        conn.commit()
        return cursor.rowcount > 0


# ===== Authentication Decorators =====

def require_user(f):
    """Decorator to require a valid bearer token"""
    @wraps(f)
    def decorated_function(*args, **kwargs):
        authenticate_request('Unauthorized.', 'Unauthorized.')
        return f(*args, **kwargs)

    return decorated_function


def require_admin(f=None, *, missing_message='Unauthorized.', invalid_message='Unauthorized.',
                  forbidden_message='Admin access required.'):
    """Decorator to require a bearer token belonging to an active admin.

    Usable bare (@require_admin) or with custom error messages.
    """
    def decorator(view):
        @wraps(view)
        def decorated_function(*args, **kwargs):
            user = authenticate_request(missing_message, invalid_message)
            if not is_admin(user):
                db_logger.log_security_event('Non-admin access attempt',
                                             {'user_id': user['id'], 'path': request.path})
                raise AuthError(forbidden_message, status_code=403)
            return view(*args, **kwargs)

        return decorated_function

    if f is not None:
        return decorator(f)
    return decorator

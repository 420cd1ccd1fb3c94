"""
Auth Module
===========

Provides:
- Hashed bearer tokens for the admin console API
- Admin bootstrap / invite / revoke endpoints
- `flask venuewifi issue-token EMAIL` to mint a token from the command line
"""

from flask import Blueprint

auth_bp = Blueprint('admin', __name__, url_prefix='/api/admin')

from . import routes  # noqa: E402,F401
from .tokens import (  # noqa: E402
    issue_token, authenticate_request, is_admin, require_user, require_admin,
)

__all__ = [
    'auth_bp', 'issue_token', 'authenticate_request', 'is_admin',
    'require_user', 'require_admin',
]

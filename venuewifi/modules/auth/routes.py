"""
Admin Routes
============

POST-only endpoints that manage who may use the console. Every endpoint
except bootstrap requires the caller to already be an unrevoked admin.
"""

import re
import logging

import click
from flask import request, jsonify, g
from flask.cli import AppGroup

from . import auth_bp
from .tokens import (
    authenticate_request, require_admin, has_active_admin, grant_admin,
    revoke_admin, get_or_create_user, issue_token, normalize_email,
)
from ...core.config import get_setting
from ...core.errors import ValidationError, UpstreamError
from ...core.logging_service import logger as db_logger
from ..email.email_service import email_service

logger = logging.getLogger(__name__)

_VALID_EMAIL = re.compile(r'^[^\s@]+@[^\s@]+\.[^\s@]+$')

venuewifi_cli = AppGroup('venuewifi', help='VenueWifi console administration.')


def _json_body():
    return request.get_json(silent=True) or {}


@auth_bp.route('/bootstrap', methods=['POST'])
def bootstrap():
    """Make the caller the first admin. Refused once any active admin exists."""
    user = authenticate_request('Unauthorized.', 'Unauthorized.')

    if has_active_admin():
        return jsonify({'ok': False, 'status': 'already_exists'}), 403

    grant_admin(user['id'], user['email'], created_by=user['id'])
    db_logger.log_security_event('Admin bootstrapped', {'user_id': user['id'], 'email': user['email']})
    return jsonify({'ok': True, 'status': 'bootstrapped'})


@auth_bp.route('/invite', methods=['POST'])
@require_admin
def invite():
    email = normalize_email(_json_body().get('email'))
    if not email or not _VALID_EMAIL.match(email):
        raise ValidationError('Valid email is required.')

    invited = get_or_create_user(email)

    app_url = get_setting('APP_URL', '') or ''
    venue = get_setting('VENUE_NAME', 'Batesford Pub')
    result = email_service.send(
        to=email,
        subject=f"You've been invited to the {venue} guest Wi-Fi console",
        html=(f"<p>You now have admin access to the {venue} guest Wi-Fi console.</p>"
              f"<p><a href=\"{app_url}\">Open the console</a></p>"),
        text=f"You now have admin access to the {venue} guest Wi-Fi console: {app_url}",
    )
    if not result['success']:
        raise UpstreamError('Invite failed.', status_code=500)

    grant_admin(invited['id'], email, created_by=g.current_user['id'])
    db_logger.log_security_event('Admin invited', {
        'invited_user_id': invited['id'], 'email': email, 'by': g.current_user['id'],
    })
    return jsonify({'ok': True, 'user_id': invited['id']})


@auth_bp.route('/revoke', methods=['POST'])
@require_admin
def revoke():
    raw_target = str(_json_body().get('target_user_id') or '').strip()
    if not raw_target:
        raise ValidationError('target_user_id is required.')
    try:
        target_user_id = int(raw_target)
    except ValueError:
        raise ValidationError('target_user_id must be a user id.')

    if target_user_id == g.current_user['id']:
        raise ValidationError('Cannot revoke your own access.')

    if not revoke_admin(target_user_id, g.current_user['id']):
        return jsonify({'ok': True, 'status': 'already_revoked'})

    db_logger.log_security_event('Admin revoked', {
        'target_user_id': target_user_id, 'by': g.current_user['id'],
    })
    return jsonify({'ok': True, 'status': 'revoked'})


# ===== CLI =====

@venuewifi_cli.command('issue-token')
@click.argument('email')
def issue_token_command(email):
    """Mint a bearer token for EMAIL (the raw token is shown once)."""
    issued = issue_token(email)
    click.echo(f"user_id: {issued['user_id']}")
    click.echo(f"token:   {issued['token']}")


@venuewifi_cli.command('cleanup-logs')
@click.option('--days', default=30, show_default=True, help='Keep log rows newer than this.')
def cleanup_logs_command(days):
    """Delete app_logs rows older than --days."""
    deleted = db_logger.cleanup_old_logs(days)
    click.echo(f"Deleted {deleted} log entries")

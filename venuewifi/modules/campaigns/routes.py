"""
Campaigns Routes
================

Send and preview endpoints for email campaigns. All routes require a bearer
token belonging to an admin or manager.
"""

import logging
from flask import request, jsonify, g

from . import campaigns_bp
from .sender import send_campaign, send_campaign_test, send_template_email, preview_template
from ..auth.tokens import require_admin
from ...core.errors import ValidationError
from ...core.logging_service import db_log

logger = logging.getLogger(__name__)


@campaigns_bp.route('/send', methods=['POST'])
@require_admin(missing_message='Missing authorization token.', invalid_message='Invalid token.',
               forbidden_message='Not an admin.')
def send():
    """Bulk send a campaign to its segment, or send a single test copy"""
    data = request.get_json(silent=True) or {}
    campaign_id = data.get('campaignId')
    if not campaign_id:
        raise ValidationError('Missing campaignId.')

    if data.get('mode') == 'test':
        result = send_campaign_test(campaign_id, data.get('testEmail'))
        return jsonify({'ok': True, 'messageId': result['message_id']})

    db_log('info', 'campaigns', f"Bulk send requested for campaign {campaign_id}",
           user_id=g.current_user['id'])
    result = send_campaign(campaign_id)
    return jsonify({'ok': True, 'sent': result['sent'], 'failed': result['failed']})


@campaigns_bp.route('/send-email', methods=['POST'])
@require_admin
def send_email():
    """Send a stored template to one guest (mode=single) or a test address (mode=test)"""
    data = request.get_json(silent=True)
    if data is None:
        raise ValidationError('Invalid JSON body.')

    result = send_template_email(
        template_id=data.get('template_id'),
        mode=data.get('mode'),
        guest_id=data.get('guest_id'),
        to_email=data.get('to_email'),
        to_name=data.get('to_name'),
        subject_override=data.get('subject_override'),
        caller_email=g.current_user.get('email'),
    )
    return jsonify(result)


@campaigns_bp.route('/preview', methods=['POST'])
@require_admin
def preview():
    """Render a template with sample guest data"""
    data = request.get_json(silent=True) or {}
    if not data.get('template_id'):
        raise ValidationError('template_id is required.')

    overrides = {
        key: data[key] for key in ('hero_image_path', 'footer_image_path') if key in data
    }
    rendered = preview_template(data['template_id'], overrides)
    return jsonify(rendered)

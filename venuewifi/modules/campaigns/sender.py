"""
Campaign send orchestration.

Each recipient is rendered and sent one at a time; every attempt ends in
exactly one recorded outcome ('sent' or 'failed') and failures never abort
the rest of the run.
"""

import logging
from datetime import datetime

from ...core.config import get_setting
from ...core.errors import NotFoundError, PersistenceError, UpstreamError, ValidationError
from ...core.logging_service import db_log
from ..email.email_service import email_service
from . import models
from .renderer import get_first_name, render_email, render_text
from .segments import select_recipients

logger = logging.getLogger(__name__)

SOCIAL_KEYS = ('facebook', 'instagram', 'tiktok', 'x', 'linkedin')

DEFAULT_VISIT_COUNT = 3

SAMPLE_GUEST = {
    'full_name': 'Alex Guest',
    'email': 'guest@example.com',
    'visit_count': DEFAULT_VISIT_COUNT,
    'last_seen_at': None,
}


def _format_date(value, fallback):
    """'2026-10-19 08:30:00' -> '19 Oct 2026'"""
    if not value:
        return fallback
    if isinstance(value, datetime):
        return value.strftime('%d %b %Y')
    try:
        return datetime.fromisoformat(str(value).replace('Z', '+00:00')).strftime('%d %b %Y')
    except ValueError:
        return fallback


def _is_enabled(settings, network):
    return str(settings.get(f'{network}_enabled', 'true')).lower() not in ('false', '0', 'no', '')


def build_variables(settings, recipient):
    """Merge tag values for one recipient.

    Args:
        settings: venue settings from models.get_settings()
        recipient: dict with full_name, email and optionally visit_count,
            last_seen_at or a pre-computed first_name
    """
    recipient = recipient or {}
    today = datetime.now().strftime('%d %b %Y')
    visit_count = recipient.get('visit_count')

    variables = {
        'first_name': recipient.get('first_name') or get_first_name(recipient.get('full_name')),
        'email': recipient.get('email') or '',
        'venue_name': get_setting('VENUE_NAME') or 'Batesford Pub',
        'venue_address': settings.get('venue_address', ''),
        'website_link': settings.get('website_link', ''),
        'booking_link': settings.get('booking_link', ''),
        'visit_count': str(visit_count if visit_count is not None else DEFAULT_VISIT_COUNT),
        'last_visit_date': _format_date(recipient.get('last_seen_at'), today),
    }
    for network in SOCIAL_KEYS:
        link = settings.get(f'{network}_link')
        if link and _is_enabled(settings, network):
            variables[f'{network}_link'] = link
    return variables


def _campaign_template(campaign):
    """Template-shaped dict for a campaign, falling back to its linked template"""
    template = {}
    if campaign.get('template_id'):
        template = models.get_template(campaign['template_id']) or {}
    return {
        'subject': campaign.get('subject') or template.get('subject', ''),
        'body_html': campaign.get('html_body') or template.get('body_html', ''),
        'body_text': template.get('body_text', ''),
        'hero_image_path': template.get('hero_image_path'),
        'footer_image_path': template.get('footer_image_path'),
    }


def _send_one(campaign, template, branding, variables, to_email):
    rendered = render_email(template, branding, variables)
    return email_service.send(
        to=to_email,
        subject=rendered['subject'],
        html=rendered['html'],
        text=render_text(template, variables) or None,
        from_email=campaign.get('from_email'),
        from_name=campaign.get('from_name'),
        reply_to=campaign.get('reply_to'),
    )


def send_campaign(campaign_id):
    """Send a campaign to every contact in its segment.

    Returns:
        dict: {'sent': int, 'failed': int, 'run_id': int or None}
    """
    campaign = models.get_campaign(campaign_id)
    if not campaign:
        raise NotFoundError('Campaign not found.')

    eligible = select_recipients(campaign.get('segment_json') or {})
    if not eligible:
        models.set_campaign_status(campaign_id, 'sent')
        logger.info(f"Campaign {campaign_id} has no eligible recipients")
        return {'sent': 0, 'failed': 0, 'run_id': None}

    models.set_campaign_status(campaign_id, 'sending')
    run_id = None
    try:
        run_id = models.create_run(campaign_id, 'bulk', recipient_count=len(eligible))
        queued = [
            (models.add_recipient(run_id, contact['email'], contact_id=contact['id'],
                                  recipient_name=contact.get('full_name'), recipient_type='contact'),
             contact)
            for contact in eligible
        ]
        template = _campaign_template(campaign)
    except Exception as e:
        logger.error(f"Campaign {campaign_id}: could not open run: {e}")
        db_log('error', 'campaigns', f"Campaign {campaign_id} run setup failed", {'error': str(e)})
        if run_id:
            models.finish_run(run_id, 'failed', 0, 0)
        models.set_campaign_status(campaign_id, 'failed')
        raise PersistenceError('Campaign send could not be started.') from e

    branding = models.get_branding()
    settings = models.get_settings()

    sent_count = 0
    failed_count = 0
    for recipient_id, contact in queued:
        try:
            result = _send_one(campaign, template, branding,
                               build_variables(settings, contact), contact['email'])
        except Exception as e:
            logger.error(f"Campaign {campaign_id}: error sending to {contact['email']}: {e}")
            result = {'success': False, 'error': str(e), 'message_id': None}

        if result['success']:
            sent_count += 1
            models.update_recipient(recipient_id, 'sent', provider_message_id=result.get('message_id'))
        else:
            failed_count += 1
            models.update_recipient(recipient_id, 'failed', error=result.get('error'))

    status = 'failed' if failed_count else 'sent'
    models.finish_run(run_id, status, sent_count, failed_count)
    models.set_campaign_status(campaign_id, status)

    logger.info(f"Campaign {campaign_id} finished: {sent_count} sent, {failed_count} failed")
    db_log('info' if not failed_count else 'warning', 'campaigns', f"Campaign {campaign_id} sent",
           {'run_id': run_id, 'sent': sent_count, 'failed': failed_count})
    return {'sent': sent_count, 'failed': failed_count, 'run_id': run_id}


def send_campaign_test(campaign_id, test_email):
    """Send one copy of a campaign to test_email without touching its status"""
    campaign = models.get_campaign(campaign_id)
    if not campaign:
        raise NotFoundError('Campaign not found.')
    if not test_email:
        raise ValidationError('Missing test email.')

    variables = build_variables(models.get_settings(),
                                {'first_name': 'Guest', 'email': test_email})
    result = _send_one(campaign, _campaign_template(campaign), models.get_branding(),
                       variables, test_email)
    if not result['success']:
        raise UpstreamError(result.get('error') or 'Send failed.', status_code=500)
    return {'message_id': result.get('message_id')}


def _resolve_recipient(mode, guest_id, to_email, to_name):
    email = (to_email or '').strip().lower()
    name = (to_name or '').strip()
    profile = {}
    if mode == 'single' and guest_id:
        profile = models.get_guest_profile(guest_id) or {}
        email = email or (profile.get('email') or '')
        name = name or (profile.get('full_name') or '')
    return email, name, profile


def send_template_email(template_id, mode, guest_id=None, to_email=None, to_name=None,
                        subject_override=None, caller_email=None):
    """Send a stored template to a single guest or a test address.

    Creates a one-off campaign, a run and a recipient row so the send shows
    up in history like any bulk send.
    """
    if not template_id or not mode:
        raise ValidationError('template_id and mode are required.')
    if mode not in ('test', 'single'):
        raise ValidationError("mode must be 'test' or 'single'.")
    if mode == 'test' and not to_email:
        raise ValidationError('to_email is required for test mode.')
    if mode == 'single' and not guest_id and not to_email:
        raise ValidationError('guest_id or to_email is required.')

    template = models.get_template(template_id)
    if not template:
        raise NotFoundError('Template not found.')

    email, name, profile = _resolve_recipient(mode, guest_id, to_email, to_name)
    if not email:
        raise ValidationError('Recipient email could not be resolved.')

    first_name = get_first_name(name or (caller_email if mode == 'test' else None))
    variables = build_variables(models.get_settings(), {
        'first_name': first_name,
        'email': email,
        'visit_count': profile.get('visit_count'),
        'last_seen_at': profile.get('last_seen_at'),
    })

    if subject_override and subject_override.strip():
        template = dict(template, subject=subject_override.strip())
    rendered = render_email(template, models.get_branding(), variables)
    text = render_text(template, variables)

    label = 'Test' if mode == 'test' else 'Single'
    campaign_id = models.save_campaign({
        'name': f"{template.get('name') or 'Template'} - {label} - {datetime.now().strftime('%d/%m/%Y')}",
        'template_id': template['id'],
        'subject': rendered['subject'],
        'status': 'sending',
    })
    run_id = models.create_run(campaign_id, mode, recipient_count=1)
    recipient_id = models.add_recipient(
        run_id, email,
        guest_id=guest_id if mode == 'single' else None,
        recipient_name=name or None,
        recipient_type='test' if mode == 'test' else 'guest',
    )

    result = email_service.send(to=email, subject=rendered['subject'],
                                html=rendered['html'], text=text or None)

    if not result['success']:
        models.update_recipient(recipient_id, 'failed', error=result.get('error'))
        models.finish_run(run_id, 'failed', 0, 1)
        models.set_campaign_status(campaign_id, 'failed')
        db_log('error', 'campaigns', 'Template email send failed',
               {'template_id': template_id, 'to': email, 'error': result.get('error')})
        raise UpstreamError(
            'Email send failed.',
            provider_status=result.get('status_code'),
            provider_response=result.get('response') or result.get('error'),
        )

    models.update_recipient(recipient_id, 'sent', provider_message_id=result.get('message_id'))
    models.finish_run(run_id, 'sent', 1, 0)
    models.set_campaign_status(campaign_id, 'sent')

    return {
        'success': True,
        'run_id': run_id,
        'to': email,
        'mode': mode,
        'simulated': bool(result.get('simulated')),
    }


def preview_template(template_id, overrides=None):
    """Render a template against sample guest data"""
    template = models.get_template(template_id)
    if not template:
        raise NotFoundError('Template not found.')
    variables = build_variables(models.get_settings(), SAMPLE_GUEST)
    return render_email(template, models.get_branding(), variables, overrides)

"""
Campaigns Models
================

sqlite CRUD for templates, campaigns, runs and per-recipient delivery
records, plus the branding and venue settings used as merge-tag values.
"""

import json
import logging
from datetime import datetime

from ...core.database import Database, row_to_dict
from ...core.logging_service import db_log

logger = logging.getLogger(__name__)

CAMPAIGN_STATUSES = ('draft', 'scheduled', 'sending', 'sent', 'failed')

# brand_assets.key -> branding field used by the renderer
BRAND_ASSET_KEYS = {
    'logo': 'logo_path',
    'hero_default': 'default_hero_path',
    'footer_banner': 'footer_banner_path',
}

DEFAULT_SETTINGS = {
    'venue_address': '700 Ballarat Road, Batesford VIC 3213',
    'website_link': 'https://www.thebatesfordhotel.com.au/',
    'booking_link': 'https://www.thebatesfordhotel.com.au/',
    'facebook_link': 'https://www.facebook.com/',
    'instagram_link': 'https://www.instagram.com/',
    'tiktok_link': 'https://www.tiktok.com/',
    'x_link': 'https://x.com/',
    'linkedin_link': 'https://www.linkedin.com/',
    'facebook_enabled': 'true',
    'instagram_enabled': 'true',
    'tiktok_enabled': 'true',
    'x_enabled': 'true',
    'linkedin_enabled': 'true',
}


def _now():
    return datetime.now().isoformat()


# ===================
# TEMPLATES
# ===================

def _template_row(row):
    d = row_to_dict(row)
    if d and isinstance(d.get('inline_images'), str):
        try:
            d['inline_images'] = json.loads(d['inline_images'])
        except (json.JSONDecodeError, TypeError):
            d['inline_images'] = []
    return d


def get_template(template_id):
    """Get a single template by ID"""
    with Database.connect() as conn:
        cursor = conn.cursor()
        cursor.execute('SELECT * FROM campaign_templates WHERE id = ?', (template_id,))
        return _template_row(cursor.fetchone())


def save_template(data):
    """Create or update a template. Returns the template ID."""
    inline_images = sorted(
        data.get('inline_images') or [],
        key=lambda image: image.get('sort', 0) or 0
    )
    values = (
        data.get('name', ''),
        data.get('type', 'email'),
        data.get('subject', ''),
        data.get('body_html', ''),
        data.get('body_text', ''),
        data.get('hero_image_path'),
        data.get('footer_image_path'),
        json.dumps(inline_images),
    )

    with Database.connect() as conn:
        cursor = conn.cursor()
        template_id = data.get('id')
        if template_id:
            cursor.execute('''
                UPDATE campaign_templates
                SET name = ?, type = ?, subject = ?, body_html = ?, body_text = ?,
                    hero_image_path = ?, footer_image_path = ?, inline_images = ?
                WHERE id = ?
            ''', values + (template_id,))
        else:
            cursor.execute('''
                INSERT INTO campaign_templates
                (name, type, subject, body_html, body_text, hero_image_path, footer_image_path, inline_images)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?)
            ''', values)
            template_id = cursor.lastrowid
        conn.commit()

    logger.info(f"Saved template {template_id}: {data.get('name')}")
    return template_id


# ===================
# CAMPAIGNS
# ===================

def _campaign_row(row):
    d = row_to_dict(row)
    if d and isinstance(d.get('segment_json'), str):
        try:
            d['segment_json'] = json.loads(d['segment_json']) or {}
        except (json.JSONDecodeError, TypeError):
            d['segment_json'] = {}
    return d


def get_campaign(campaign_id):
    """Get a single campaign by ID"""
    with Database.connect() as conn:
        cursor = conn.cursor()
        cursor.execute('SELECT * FROM email_campaigns WHERE id = ?', (campaign_id,))
        return _campaign_row(cursor.fetchone())


def save_campaign(data):
    """Create or update a campaign. Returns the campaign ID."""
    values = (
        data.get('name', ''),
        data.get('template_id'),
        data.get('subject', ''),
        data.get('html_body', ''),
        data.get('from_name'),
        data.get('from_email'),
        data.get('reply_to'),
        json.dumps(data.get('segment_json') or {}),
        data.get('status', 'draft'),
    )

    with Database.connect() as conn:
        cursor = conn.cursor()
        campaign_id = data.get('id')
        if campaign_id:
            cursor.execute('''
                UPDATE email_campaigns
                SET name = ?, template_id = ?, subject = ?, html_body = ?, from_name = ?,
                    from_email = ?, reply_to = ?, segment_json = ?, status = ?, updated_at = ?
                WHERE id = ?
            ''', values + (_now(), campaign_id))
        else:
            cursor.execute('''
                INSERT INTO email_campaigns
                (name, template_id, subject, html_body, from_name, from_email, reply_to, segment_json, status)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
            ''', values)
            campaign_id = cursor.lastrowid
        conn.commit()

    logger.info(f"Saved campaign {campaign_id}: {data.get('name')}")
    return campaign_id


def set_campaign_status(campaign_id, status):
    if status not in CAMPAIGN_STATUSES:
        raise ValueError(f"Unknown campaign status: {status}")
    with Database.connect() as conn:
        conn.execute(
            'UPDATE email_campaigns SET status = ?, updated_at = ? WHERE id = ?',
            (status, _now(), campaign_id)
        )
        conn.commit()
    logger.info(f"Campaign {campaign_id} status -> {status}")


# ===================
# RUNS & RECIPIENTS
# ===================

def create_run(campaign_id, run_type='bulk', recipient_count=0, status='sending'):
    """Open a run for a campaign. Returns the run ID."""
    with Database.connect() as conn:
        cursor = conn.cursor()
        cursor.execute('''
            INSERT INTO campaign_runs (campaign_id, run_type, status, recipient_count, sent_at)
            VALUES (?, ?, ?, ?, ?)
        ''', (campaign_id, run_type, status, recipient_count, _now()))
        conn.commit()
        return cursor.lastrowid


def finish_run(run_id, status, sent_count=0, failed_count=0):
    with Database.connect() as conn:
        conn.execute('''
            UPDATE campaign_runs
            SET status = ?, sent_count = ?, failed_count = ?
            WHERE id = ?
        ''', (status, sent_count, failed_count, run_id))
        conn.commit()


def get_run(run_id):
    with Database.connect() as conn:
        cursor = conn.cursor()
        cursor.execute('SELECT * FROM campaign_runs WHERE id = ?', (run_id,))
        return row_to_dict(cursor.fetchone())


def add_recipient(run_id, email, guest_id=None, contact_id=None, recipient_name=None,
                  recipient_type='guest', status='queued'):
    """Queue one recipient on a run. Returns the recipient row ID."""
    with Database.connect() as conn:
        cursor = conn.cursor()
        cursor.execute('''
            INSERT INTO campaign_recipients
            (campaign_run_id, guest_id, contact_id, email, recipient_name, recipient_type, status)
            VALUES (?, ?, ?, ?, ?, ?, ?)
        ''', (run_id, guest_id, contact_id, email, recipient_name, recipient_type, status))
        conn.commit()
        return cursor.lastrowid


def update_recipient(recipient_id, status, provider_message_id=None, error=None):
    """Record the terminal outcome (sent/failed) of one recipient"""
    try:
        with Database.connect() as conn:
            conn.execute('''
                UPDATE campaign_recipients
                SET status = ?, provider_message_id = ?, error = ?, sent_at = ?
                WHERE id = ?
            ''', (status, provider_message_id, error, _now(), recipient_id))
            conn.commit()
    except Exception as e:
        logger.error(f"Error recording outcome for recipient {recipient_id}: {e}")
        db_log('error', 'campaigns', 'Error recording recipient outcome',
               {'recipient_id': recipient_id, 'error': str(e)})


def get_run_recipients(run_id):
    with Database.connect() as conn:
        cursor = conn.cursor()
        cursor.execute(
            'SELECT * FROM campaign_recipients WHERE campaign_run_id = ? ORDER BY id',
            (run_id,)
        )
        return [row_to_dict(row) for row in cursor.fetchall()]


# ===================
# BRANDING & SETTINGS
# ===================

def get_branding():
    """Branding defaults for the renderer, built from the brand_assets table"""
    branding = {field: None for field in BRAND_ASSET_KEYS.values()}
    try:
        with Database.connect() as conn:
            cursor = conn.cursor()
            cursor.execute('SELECT key, url FROM brand_assets')
            for row in cursor.fetchall():
                field = BRAND_ASSET_KEYS.get(row['key'])
                if field and row['url']:
                    branding[field] = row['url']
    except Exception as e:
        logger.error(f"Error loading brand assets: {e}")
    return branding


def set_brand_asset(key, url, label=None):
    with Database.connect() as conn:
        conn.execute('''
            INSERT INTO brand_assets (key, label, url, updated_at) VALUES (?, ?, ?, ?)
            ON CONFLICT(key) DO UPDATE SET url = excluded.url, label = excluded.label,
                updated_at = excluded.updated_at
        ''', (key, label, url, _now()))
        conn.commit()


def get_settings():
    """Venue settings merged over DEFAULT_SETTINGS"""
    settings = dict(DEFAULT_SETTINGS)
    try:
        with Database.connect() as conn:
            cursor = conn.cursor()
            cursor.execute('SELECT key, value FROM app_settings')
            for row in cursor.fetchall():
                settings[row['key']] = row['value']
    except Exception as e:
        logger.error(f"Error loading app settings: {e}")
    return settings


def set_setting(key, value):
    with Database.connect() as conn:
        conn.execute('''
            INSERT INTO app_settings (key, value, updated_at) VALUES (?, ?, ?)
            ON CONFLICT(key) DO UPDATE SET value = excluded.value, updated_at = excluded.updated_at
        ''', (key, str(value), _now()))
        conn.commit()


# ===================
# GUEST PROFILES
# ===================

def get_guest_profile(guest_id):
    """Guest identity with visit count and last seen time from wifi_connections"""
    with Database.connect() as conn:
        cursor = conn.cursor()
        cursor.execute('''
            SELECT g.id AS guest_id, g.email, g.full_name, g.mobile,
                   COUNT(c.id) AS visit_count, MAX(c.connected_at) AS last_seen_at
            FROM guests g
            LEFT JOIN wifi_connections c ON c.guest_id = g.id
            WHERE g.id = ?
            GROUP BY g.id
        ''', (guest_id,))
        return row_to_dict(cursor.fetchone())

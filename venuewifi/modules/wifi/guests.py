"""
Guest persistence for captive-portal submissions.

Every step returns an outcome dict ({'ok': bool, ..., 'error': str or None})
instead of raising. A failed write is logged and the caller carries on, since
getting the guest online matters more than the record.
"""

import logging
from datetime import datetime

from ...core.database import Database
from ...core.logging_service import db_log, get_request_ip

logger = logging.getLogger(__name__)

__all__ = ['get_request_ip', 'record_submission', 'upsert_guest', 'record_connection']


def _outcome(ok, error=None, **values):
    result = {'ok': ok, 'error': error}
    result.update(values)
    return result


def _clean(value):
    """Trimmed string, or None when blank"""
    if value is None:
        return None
    value = str(value).strip()
    return value or None


def _timestamp(now):
    return now.strftime('%Y-%m-%d %H:%M:%S')


def record_submission(payload, device, user_agent=None, ip_address=None, now=None):
    """Insert the raw contact_submissions row for a splash-page POST"""
    now = now or datetime.now()
    try:
        with Database.connect() as conn:
            cursor = conn.cursor()
            cursor.execute('''
                INSERT INTO contact_submissions
                (full_name, email, phone, consent, client_mac, ap_mac, ssid, redirect_url,
                 user_agent, device_type, os_family, ip_address,
                 unifi_site, unifi_ap, unifi_id, unifi_t, created_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            ''', (
                payload.get('name'),
                payload.get('email'),
                payload.get('mobile'),
                bool(payload.get('marketing_opt_in') or False),
                payload.get('client_mac'),
                payload.get('ap_mac'),
                payload.get('ssid'),
                payload.get('redirect_url'),
                user_agent,
                device.get('device_type'),
                device.get('os_family'),
                ip_address,
                payload.get('unifi_site'),
                payload.get('unifi_ap') or payload.get('ap_mac'),
                payload.get('unifi_id') or payload.get('client_mac'),
                payload.get('unifi_t'),
                _timestamp(now),
            ))
            conn.commit()
            return _outcome(True, submission_id=cursor.lastrowid)
    except Exception as e:
        logger.warning(f"Contact submission insert failed: {e}")
        db_log('warning', 'wifi', 'Contact submission insert failed', {
            'error': str(e),
            'unifi_site': payload.get('unifi_site'),
            'unifi_id': payload.get('unifi_id'),
        })
        return _outcome(False, str(e), submission_id=None)


def upsert_guest(email, name=None, mobile=None, now=None):
    """Find or create the guest for a normalized email.

    Existing guests only have full_name/mobile overwritten by non-empty values.
    """
    normalized = str(email or '').strip().lower()
    if not normalized:
        return _outcome(False, 'no email supplied', guest_id=None, created=False)

    now = _timestamp(now or datetime.now())
    name = _clean(name)
    mobile = _clean(mobile)

    try:
        with Database.connect() as conn:
            cursor = conn.cursor()
            cursor.execute('SELECT id FROM guests WHERE email = ?', (normalized,))
            row = cursor.fetchone()

            if row:
                updates = {}
                if name:
                    updates['full_name'] = name
                if mobile:
                    updates['mobile'] = mobile
                if updates:
                    assignments = ', '.join(f'{column} = ?' for column in updates)
                    cursor.execute(
                        f'UPDATE guests SET {assignments}, updated_at = ? WHERE id = ?',
                        list(updates.values()) + [now, row['id']]
                    )
                    conn.commit()
                return _outcome(True, guest_id=row['id'], created=False)

            cursor.execute('''
                INSERT OR IGNORE INTO guests (email, full_name, mobile, created_at, updated_at)
                VALUES (?, ?, ?, ?, ?)
            ''', (normalized, name, mobile, now, now))
            conn.commit()

            cursor.execute('SELECT id FROM guests WHERE email = ?', (normalized,))
            row = cursor.fetchone()
            return _outcome(bool(row), None if row else 'guest not found after insert',
                            guest_id=row['id'] if row else None, created=True)
    except Exception as e:
        logger.warning(f"Guest upsert failed for {normalized}: {e}")
        db_log('warning', 'wifi', 'Guest upsert failed', {'email': normalized, 'error': str(e)})
        return _outcome(False, str(e), guest_id=None, created=False)


def record_connection(guest_id, device, user_agent=None, now=None):
    """Insert one wifi_connections event; weekday is 0=Sunday..6=Saturday"""
    now = now or datetime.now()
    try:
        with Database.connect() as conn:
            cursor = conn.cursor()
            cursor.execute('''
                INSERT INTO wifi_connections
                (guest_id, connected_at, user_agent, device_type, os_family, weekday, hour)
                VALUES (?, ?, ?, ?, ?, ?, ?)
            ''', (
                guest_id,
                _timestamp(now),
                user_agent,
                device.get('device_type'),
                device.get('os_family'),
                now.isoweekday() % 7,
                now.hour,
            ))
            conn.commit()
            return _outcome(True, connection_id=cursor.lastrowid)
    except Exception as e:
        logger.warning(f"wifi_connections insert failed for guest {guest_id}: {e}")
        db_log('warning', 'wifi', 'Connection insert failed', {'guest_id': guest_id, 'error': str(e)})
        return _outcome(False, str(e), connection_id=None)

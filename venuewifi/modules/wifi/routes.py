"""
Wifi Routes
===========

POST /api/wifi/connect - called by the splash page. Unauthenticated; CORS
restricted to the known app origins.
"""

import re
import logging
from datetime import datetime

from flask import request, jsonify

from . import wifi_bp
from .controller import UnifiController, ControllerError
from .device_detector import classify_device
from .guests import get_request_ip, record_submission, upsert_guest, record_connection
from ...core.config import get_setting
from ...core.errors import ValidationError, VenueWifiError
from ...core.logging_service import db_log

logger = logging.getLogger(__name__)

MAC_REGEX = re.compile(r'^([0-9A-Fa-f]{2}([-:])){5}([0-9A-Fa-f]{2})$')


def is_valid_mac(value):
    return bool(value) and isinstance(value, str) and bool(MAC_REGEX.fullmatch(value))


def _debug_enabled(payload):
    setting = get_setting('UNIFI_DEBUG', False)
    return payload.get('debug') is True or setting is True or str(setting).lower() == 'true'


def _persist(payload, user_agent, now):
    """Best-effort records for the visit; failures are logged, never raised"""
    device = classify_device(user_agent)
    submission = record_submission(payload, device, user_agent, get_request_ip(), now)

    guest = {'ok': False, 'guest_id': None}
    if str(payload.get('email') or '').strip():
        guest = upsert_guest(payload['email'], payload.get('name'), payload.get('mobile'), now)

    connection = None
    if guest.get('guest_id'):
        connection = record_connection(guest['guest_id'], device, user_agent, now)

    return {'submission': submission, 'guest': guest, 'connection': connection}


@wifi_bp.route('/connect', methods=['POST'])
def connect():
    payload = request.get_json(silent=True)
    if not isinstance(payload, dict):
        raise ValidationError('Invalid JSON body.')

    logger.info(f"Wifi connect: client_mac={payload.get('client_mac')} "
                f"unifi_id={payload.get('unifi_id')} ssid={payload.get('ssid')}")

    if not is_valid_mac(payload.get('client_mac')):
        raise ValidationError('client_mac is required and must be a valid MAC address.')

    site = str(payload.get('unifi_site') or get_setting('UNIFI_SITE_NAME', '') or '').strip()
    if not site:
        raise ValidationError('unifi_site is required.')

    debug_enabled = _debug_enabled(payload)
    debug = {} if debug_enabled else None

    _persist(payload, request.headers.get('User-Agent'), datetime.now())

    controller = UnifiController.from_config()
    if controller is None:
        raise VenueWifiError('Missing UniFi configuration.', 500)

    try:
        controller.authorize_device(site, str(payload.get('unifi_id') or payload['client_mac']), debug)
    except ControllerError as e:
        db_log('error', 'wifi', f"UniFi {e.stage} failed", {
            'error': e.message, 'unifi_error': e.unifi_error, 'url': e.url,
            'client_mac': payload.get('client_mac'),
        })
        body = {'error': e.message, 'unifi_error': e.unifi_error, 'unifi_url': e.url}
        if debug_enabled:
            body['debug'] = debug
        return jsonify(body), e.status_code

    body = {'success': True}
    if debug_enabled:
        body['debug'] = debug
    return jsonify(body)

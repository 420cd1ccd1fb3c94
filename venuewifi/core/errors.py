"""
Errors
======

Error taxonomy shared by every module, and the JSON error handlers that
turn them into API responses.
"""

import logging

from flask import Blueprint, jsonify

logger = logging.getLogger(__name__)

errors_bp = Blueprint('errors', __name__)


class VenueWifiError(Exception):
    """Base error: carries the HTTP status and any extra response fields"""
    status_code = 500

    def __init__(self, message, status_code=None, **extra):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code
        self.extra = extra

    def to_dict(self):
        payload = {'error': self.message}
        payload.update({k: v for k, v in self.extra.items() if v is not None})
        return payload


class ValidationError(VenueWifiError):
    """Missing or malformed required field"""
    status_code = 400


class AuthError(VenueWifiError):
    """Missing/invalid token (401) or caller lacking admin rights (403)"""
    status_code = 401


class NotFoundError(VenueWifiError):
    status_code = 404


class UpstreamError(VenueWifiError):
    """An outbound call (email provider, wireless controller) failed"""
    status_code = 502

    def __init__(self, message, status_code=None, stage=None, url=None, detail=None, **extra):
        super().__init__(message, status_code, **extra)
        self.stage = stage
        self.url = url
        self.detail = detail


class PersistenceError(VenueWifiError):
    status_code = 500


@errors_bp.app_errorhandler(VenueWifiError)
def handle_venuewifi_error(e):
    if e.status_code >= 500:
        logger.error(f"{type(e).__name__}: {e.message}")
    return jsonify(e.to_dict()), e.status_code


@errors_bp.app_errorhandler(405)
def handle_method_not_allowed(e):
    return jsonify({'error': 'Method not allowed.'}), 405

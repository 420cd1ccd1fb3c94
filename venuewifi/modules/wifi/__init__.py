"""
Wifi Module
===========

Captive-portal backend: records guest contact details and visits, then asks
the UniFi controller to authorize the guest's device.
"""

from flask import Blueprint

wifi_bp = Blueprint('wifi', __name__, url_prefix='/api/wifi')

from . import routes  # noqa: E402,F401

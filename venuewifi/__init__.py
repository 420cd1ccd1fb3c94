"""
VenueWifi - Guest Wi-Fi Marketing Console
=========================================

Flask backend for a pub/hotel guest Wi-Fi console:
- Captive-portal connect endpoint that records guests and authorizes their
  device on the UniFi controller
- Email campaigns rendered from templates and sent via Resend or SMTP2GO
- Bearer-token admin API (bootstrap, invite, revoke)

Usage:
    from flask import Flask
    from venuewifi import VenueWifi

    app = Flask(__name__)
    VenueWifi(app)
"""

import os
import logging

from flask_cors import CORS

__version__ = '0.1.0'

logger = logging.getLogger(__name__)

CORS_ALLOW_HEADERS = ['Authorization', 'Content-Type', 'X-Client-Info', 'apikey']


class VenueWifi:
    """Flask extension wiring every VenueWifi module into an app.

    Args:
        app: Flask app (or call init_app later)
        config: optional dict of settings applied to app.config before init
    """

    def __init__(self, app=None, config=None):
        self.app = None
        self.config = config or {}
        self._registered = []
        if app is not None:
            self.init_app(app)

    def init_app(self, app):
        from .core.config import Config
        from .core.database import Database
        from .core.errors import errors_bp
        from .modules.auth import auth_bp
        from .modules.auth.routes import venuewifi_cli
        from .modules.campaigns import campaigns_bp
        from .modules.email import email_service
        from .modules.wifi import wifi_bp

        self.app = app
        app.config.update(self.config)

        if not app.config.get('APP_DB') and app.config.get('DB_DIR'):
            app.config['APP_DB'] = os.path.join(app.config['DB_DIR'], 'venuewifi.db')

        # Config class values are defaults; anything already on the app wins
        for key in dir(Config):
            if key.isupper() and app.config.get(key) in (None, ''):
                app.config[key] = getattr(Config, key)

        Database.init_db(app.config['APP_DB'])
        email_service.init_app(app)

        CORS(app, resources={r"/api/*": {
            "origins": app.config['CORS_ORIGINS'],
            "methods": ['POST', 'OPTIONS'],
            "allow_headers": CORS_ALLOW_HEADERS,
            "max_age": 86400,
        }})

        app.register_blueprint(errors_bp)
        for name, blueprint in (('auth', auth_bp), ('campaigns', campaigns_bp), ('wifi', wifi_bp)):
            app.register_blueprint(blueprint)
            self._registered.append(name)

        app.cli.add_command(venuewifi_cli)

        app.extensions['venuewifi'] = self
        logger.info(f"VenueWifi initialised with modules: {', '.join(self._registered)}")

    def get_registered_modules(self):
        return list(self._registered)


__all__ = ['VenueWifi', '__version__']

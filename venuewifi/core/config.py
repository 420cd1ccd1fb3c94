import os
from dotenv import load_dotenv

load_dotenv(override=True)

class Config:
    """
    Base configuration for the VenueWifi console.
    Deployments provide credentials and paths via environment variables.
    """
    SECRET_KEY = os.getenv('FLASK_SECRET_KEY')

    # Get DB_DIR from environment, or use a default if not set
    DB_DIR = os.getenv('DB_DIR', os.path.join(os.getcwd(), 'databases'))

    # Relational store (sqlite file holding guests, campaigns, admins and logs)
    APP_DB = os.getenv('APP_DB', os.path.join(DB_DIR, 'venuewifi.db'))

    # Object storage for campaign images
    STORAGE_PUBLIC_URL = os.getenv('STORAGE_PUBLIC_URL') or os.getenv('SUPABASE_URL', '')
    STORAGE_BUCKET = os.getenv('STORAGE_BUCKET', 'campaign-assets')

    # Email provider settings
    EMAIL_PROVIDER = os.getenv('EMAIL_PROVIDER', 'resend')
    RESEND_API_KEY = os.getenv('RESEND_API_KEY')
    SMTP2GO_API_KEY = os.getenv('SMTP2GO_API_KEY')
    EMAIL_FROM = os.getenv('EMAIL_FROM') or os.getenv('RESEND_FROM')
    DEFAULT_FROM_NAME = os.getenv('DEFAULT_FROM_NAME', 'Batesford Pub')
    DEFAULT_FROM_EMAIL = os.getenv('DEFAULT_FROM_EMAIL', 'hello@thebatesfordhotel.com.au')
    VENUE_NAME = os.getenv('VENUE_NAME', 'Batesford Pub')

    # Wireless controller (UniFi) settings
    UNIFI_BASE_URL = os.getenv('UNIFI_BASE_URL')
    UNIFI_USERNAME = os.getenv('UNIFI_USERNAME')
    UNIFI_PASSWORD = os.getenv('UNIFI_PASSWORD')
    UNIFI_SITE_NAME = os.getenv('UNIFI_SITE_NAME', '')
    UNIFI_TIMEOUT_MS = int(os.getenv('UNIFI_TIMEOUT_MS', '8000'))
    UNIFI_DEBUG = os.getenv('UNIFI_DEBUG') == 'true'

    # Admin access
    # Comma separated emails, only consulted when the admin lookup itself fails
    ADMIN_ALLOWLIST = os.getenv('ADMIN_ALLOWLIST', '')
    APP_URL = os.getenv('APP_URL', '')

    # Origins allowed to call the /api endpoints from the browser
    CORS_ORIGINS = [
        origin.strip() for origin in os.getenv('CORS_ORIGINS', '').split(',') if origin.strip()
    ] or [
        r'https://[^/]+\.netlify\.app$',
        r'https?://localhost(:\d+)?$',
        r'https?://127\.0\.0\.1(:\d+)?$',
    ]

    # Table names
    LOGS_TABLE = 'app_logs'

    # Port for local server (optional)
    port = int(os.getenv('PORT', '5000'))


def get_setting(key, default=None):
    """Resolve a config value: app.config > Config class > env var."""
    try:
        from flask import current_app
        val = current_app.config.get(key)
        if val is not None and val != '':
            return val
    except RuntimeError:
        pass
    val = getattr(Config, key, None)
    if val is not None and val != '':
        return val
    return os.getenv(key, default)

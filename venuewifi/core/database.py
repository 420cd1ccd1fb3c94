import os
import sqlite3
import threading

from .config import get_setting


SCHEMA = [
    # Guest identities and captive-portal activity
    '''
    CREATE TABLE IF NOT EXISTS contact_submissions (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        full_name TEXT,
        email TEXT,
        phone TEXT,
        consent BOOLEAN DEFAULT 0,
        client_mac TEXT,
        ap_mac TEXT,
        ssid TEXT,
        redirect_url TEXT,
        user_agent TEXT,
        device_type TEXT,
        os_family TEXT,
        ip_address TEXT,
        unifi_site TEXT,
        unifi_ap TEXT,
        unifi_id TEXT,
        unifi_t TEXT,
        created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
    )
    ''',
    '''
    CREATE TABLE IF NOT EXISTS contact_tags (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        contact_id INTEGER NOT NULL,
        tag TEXT NOT NULL,
        FOREIGN KEY (contact_id) REFERENCES contact_submissions(id)
    )
    ''',
    '''
    CREATE TABLE IF NOT EXISTS guests (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        email TEXT UNIQUE NOT NULL,
        full_name TEXT,
        mobile TEXT,
        created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
        updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
    )
    ''',
    '''
    CREATE TABLE IF NOT EXISTS wifi_connections (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        guest_id INTEGER NOT NULL,
        connected_at TIMESTAMP NOT NULL,
        user_agent TEXT,
        device_type TEXT,
        os_family TEXT,
        weekday INTEGER,
        hour INTEGER,
        FOREIGN KEY (guest_id) REFERENCES guests(id)
    )
    ''',
    # Campaign content and delivery records
    '''
    CREATE TABLE IF NOT EXISTS campaign_templates (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        name TEXT NOT NULL DEFAULT '',
        type TEXT NOT NULL DEFAULT 'email',
        subject TEXT NOT NULL DEFAULT '',
        body_html TEXT NOT NULL DEFAULT '',
        body_text TEXT NOT NULL DEFAULT '',
        hero_image_path TEXT,
        footer_image_path TEXT,
        inline_images TEXT NOT NULL DEFAULT '[]',
        created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
    )
    ''',
    '''
    CREATE TABLE IF NOT EXISTS email_campaigns (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        name TEXT NOT NULL DEFAULT '',
        template_id INTEGER,
        subject TEXT NOT NULL DEFAULT '',
        html_body TEXT NOT NULL DEFAULT '',
        from_name TEXT,
        from_email TEXT,
        reply_to TEXT,
        segment_json TEXT NOT NULL DEFAULT '{}',
        status TEXT NOT NULL DEFAULT 'draft',
        created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
        updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
        FOREIGN KEY (template_id) REFERENCES campaign_templates(id)
    )
    ''',
    '''
    CREATE TABLE IF NOT EXISTS campaign_runs (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        campaign_id INTEGER NOT NULL,
        run_type TEXT NOT NULL DEFAULT 'bulk',
        status TEXT NOT NULL DEFAULT 'sending',
        recipient_count INTEGER DEFAULT 0,
        sent_count INTEGER DEFAULT 0,
        failed_count INTEGER DEFAULT 0,
        sent_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
        FOREIGN KEY (campaign_id) REFERENCES email_campaigns(id)
    )
    ''',
    '''
    CREATE TABLE IF NOT EXISTS campaign_recipients (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        campaign_run_id INTEGER NOT NULL,
        guest_id INTEGER,
        contact_id INTEGER,
        email TEXT NOT NULL,
        recipient_name TEXT,
        recipient_type TEXT NOT NULL DEFAULT 'guest',
        status TEXT NOT NULL DEFAULT 'queued',
        provider_message_id TEXT,
        error TEXT,
        sent_at TIMESTAMP,
        FOREIGN KEY (campaign_run_id) REFERENCES campaign_runs(id)
    )
    ''',
    '''
    CREATE TABLE IF NOT EXISTS brand_assets (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        key TEXT UNIQUE NOT NULL,
        label TEXT,
        url TEXT NOT NULL DEFAULT '',
        updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
    )
    ''',
    '''
    CREATE TABLE IF NOT EXISTS app_settings (
        key TEXT PRIMARY KEY,
        value TEXT NOT NULL DEFAULT '',
        updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
    )
    ''',
    '''
    CREATE TABLE IF NOT EXISTS email_logs (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        recipient TEXT NOT NULL,
        subject TEXT NOT NULL,
        provider TEXT,
        status TEXT NOT NULL,
        error_message TEXT,
        sent_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
    )
    ''',
    # Admin console users
    '''
    CREATE TABLE IF NOT EXISTS users (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        email TEXT UNIQUE NOT NULL,
        created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
    )
    ''',
    '''
    CREATE TABLE IF NOT EXISTS access_tokens (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        user_id INTEGER NOT NULL,
        token_hash TEXT UNIQUE NOT NULL,
        token_prefix TEXT NOT NULL,
        is_active BOOLEAN DEFAULT 1,
        created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
        last_used_at TIMESTAMP,
        FOREIGN KEY (user_id) REFERENCES users(id)
    )
    ''',
    '''
    CREATE TABLE IF NOT EXISTS admin_profiles (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        user_id INTEGER UNIQUE NOT NULL,
        email TEXT,
        full_name TEXT,
        role TEXT NOT NULL DEFAULT 'admin',
        created_by INTEGER,
        created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
        revoked_at TIMESTAMP,
        revoked_by INTEGER,
        FOREIGN KEY (user_id) REFERENCES users(id)
    )
    ''',
    '''
    CREATE TABLE IF NOT EXISTS app_logs (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        timestamp TEXT NOT NULL,
        level TEXT NOT NULL,
        source TEXT NOT NULL,
        message TEXT NOT NULL,
        details TEXT,
        ip_address TEXT,
        user_agent TEXT,
        request_path TEXT,
        user_id TEXT
    )
    ''',
    'CREATE INDEX IF NOT EXISTS idx_contact_submissions_created ON contact_submissions(created_at)',
    'CREATE INDEX IF NOT EXISTS idx_contact_tags_tag ON contact_tags(tag)',
    'CREATE INDEX IF NOT EXISTS idx_wifi_connections_guest ON wifi_connections(guest_id)',
    'CREATE INDEX IF NOT EXISTS idx_campaign_recipients_run ON campaign_recipients(campaign_run_id)',
    'CREATE INDEX IF NOT EXISTS idx_access_tokens_hash ON access_tokens(token_hash)',
    'CREATE INDEX IF NOT EXISTS idx_logs_timestamp ON app_logs(timestamp DESC)',
]


class Database:
    _lock = threading.Lock()

    @staticmethod
    def path():
        """Get the database path from config or environment"""
        return get_setting('APP_DB', 'venuewifi.db')

    @staticmethod
    def connect(path=None):
        conn = sqlite3.connect(path or Database.path())
        conn.row_factory = sqlite3.Row
        return conn

    @classmethod
    def init_db(cls, path=None):
        """Create every table used by the console (idempotent)."""
        db_path = path or cls.path()
        with cls._lock:
            db_dir = os.path.dirname(db_path)
            if db_dir:
                os.makedirs(db_dir, exist_ok=True)

            with sqlite3.connect(db_path) as conn:
                cursor = conn.cursor()
                for statement in SCHEMA:
                    cursor.execute(statement)
                conn.commit()
        return db_path


def row_to_dict(row):
    """Convert a sqlite3.Row to a plain dict (None passes through)"""
    if row is None:
        return None
    return dict(row)

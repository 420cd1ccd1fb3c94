"""
Email Service Module
====================

Transactional email delivery for campaign sends, supporting Resend and SMTP2GO.
Provider is selected via EMAIL_PROVIDER config ('resend' or 'smtp2go').

When the selected provider has no credentials configured, sends are skipped
and reported as simulated so the render/persist path can still be exercised.
"""

import re
import logging
from typing import Optional, Dict, Any

import requests
import resend

from ...core.database import Database

logger = logging.getLogger(__name__)

SMTP2GO_SEND_URL = 'https://api.smtp2go.com/v3/email/send'

_VALID_EMAIL = re.compile(r'^[^\s@]+@[^\s@]+\.[^\s@]+$')


class EmailService:
    """
    Configuration (set in Flask app.config):
        EMAIL_PROVIDER: 'resend' (default) or 'smtp2go'
        RESEND_API_KEY: Resend API key
        SMTP2GO_API_KEY: SMTP2GO API key
        EMAIL_FROM: Full sender for Resend, e.g. 'Batesford Pub <hello@...>'
        DEFAULT_FROM_NAME / DEFAULT_FROM_EMAIL: sender used when a campaign has none
    """

    def __init__(self, app=None):
        self.provider = 'resend'
        self.api_key = None
        self.sender = None
        self.default_from_name = 'Batesford Pub'
        self.default_from_email = 'hello@thebatesfordhotel.com.au'
        self.timeout = 15

        if app is not None:
            self.init_app(app)

    def init_app(self, app):
        """Initialize email service with Flask app configuration"""
        self.provider = (app.config.get('EMAIL_PROVIDER') or 'resend').lower()
        logger.info(f"=== INITIALIZING EMAIL SERVICE (provider: {self.provider}) ===")

        self.default_from_name = app.config.get('DEFAULT_FROM_NAME') or self.default_from_name
        self.default_from_email = app.config.get('DEFAULT_FROM_EMAIL') or self.default_from_email
        self.sender = app.config.get('EMAIL_FROM')

        if self.provider == 'smtp2go':
            self.api_key = app.config.get('SMTP2GO_API_KEY')
        else:
            self.api_key = app.config.get('RESEND_API_KEY')
            if self.api_key:
                resend.api_key = self.api_key

        if not self.api_key:
            logger.warning(f"No API key configured for {self.provider} - sends will be simulated")
        else:
            logger.info(f"{self.provider} client initialized")

    @property
    def is_configured(self):
        if self.provider == 'smtp2go':
            return bool(self.api_key)
        return bool(self.api_key and (self.sender or self.default_from_email))

    def _log_email(self, recipient, subject, status, error_message=None):
        """Log email attempt to database"""
        try:
            with Database.connect() as conn:
                conn.execute("""
                    INSERT INTO email_logs (recipient, subject, provider, status, error_message)
                    VALUES (?, ?, ?, ?, ?)
                """, (recipient, subject or '', self.provider, status, error_message))
                conn.commit()
        except Exception as e:
            logger.error(f"Failed to log email to database: {e}")

    def _format_sender(self, from_email=None, from_name=None):
        if from_email or from_name or not self.sender:
            name = from_name or self.default_from_name
            email = from_email or self.default_from_email
            return f"{name} <{email}>"
        return self.sender

    def send(self, to: str, subject: str, html: str, text: Optional[str] = None,
             from_email: Optional[str] = None, from_name: Optional[str] = None,
             reply_to: Optional[str] = None) -> Dict[str, Any]:
        """
        Send one email through the configured provider.

        Returns:
            dict: {'success', 'message_id', 'error', 'simulated', 'status_code', 'response'}
        """
        result = {
            'success': False,
            'message_id': None,
            'error': None,
            'simulated': False,
            'status_code': None,
            'response': None,
        }

        if not to or not _VALID_EMAIL.match(to):
            result['error'] = f"Invalid recipient address: {to!r}"
            logger.warning(result['error'])
            self._log_email(to or '', subject, 'failed', result['error'])
            return result

        if not self.is_configured:
            logger.info(f"Simulated send to {to}: {subject}")
            result.update(success=True, simulated=True)
            self._log_email(to, subject, 'simulated')
            return result

        sender = self._format_sender(from_email, from_name)
        logger.info(f"Sending email from: {sender} to: {to} via {self.provider}")

        try:
            if self.provider == 'smtp2go':
                result.update(self._send_via_smtp2go(to, subject, html, text, sender, reply_to))
            else:
                result.update(self._send_via_resend(to, subject, html, text, sender, reply_to))
        except Exception as e:
            logger.error(f"Error sending to {to}: {e}")
            result.update(
                success=False,
                error=str(e),
                status_code=getattr(e, 'code', None),
            )

        if result['success']:
            self._log_email(to, subject, 'sent')
        else:
            self._log_email(to, subject, 'failed', result['error'])
        return result

    def _send_via_resend(self, to, subject, html, text, sender, reply_to):
        """Send a single email via the Resend SDK"""
        params = {
            'from': sender,
            'to': [to],
            'subject': subject,
            'html': html,
        }
        if text:
            params['text'] = text
        if reply_to:
            params['reply_to'] = reply_to

        r = resend.Emails.send(params)
        logger.debug(f"Resend response: {r}")

        if r and r.get('id'):
            return {'success': True, 'message_id': r['id']}
        return {
            'success': False,
            'error': (r or {}).get('message') or 'Resend send failed',
            'response': str(r),
        }

    def _send_via_smtp2go(self, to, subject, html, text, sender, reply_to):
        """Send a single email via the SMTP2GO REST API"""
        payload = {
            'api_key': self.api_key,
            'to': [to],
            'sender': sender,
            'subject': subject,
            'html_body': html,
        }
        if text:
            payload['text_body'] = text
        if reply_to:
            payload['reply_to'] = reply_to

        response = requests.post(SMTP2GO_SEND_URL, json=payload, timeout=self.timeout)
        try:
            data = response.json()
        except ValueError:
            data = {}
        failures = (data.get('data') or {}).get('failures') or []

        if not response.ok or failures:
            message = failures[0].get('message') if failures and isinstance(failures[0], dict) else None
            return {
                'success': False,
                'error': message or 'SMTP2GO send failed',
                'status_code': response.status_code,
                'response': response.text[:2000],
            }

        return {
            'success': True,
            'message_id': (data.get('data') or {}).get('email_id'),
            'status_code': response.status_code,
        }


# Global email service instance
email_service = EmailService()

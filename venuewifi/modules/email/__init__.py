"""
Email Module
============

Provides transactional email sending via Resend or SMTP2GO.
"""

from .email_service import EmailService, email_service

__all__ = ['EmailService', 'email_service']

"""
Campaigns Module
================

Provides:
- Table-based HTML email rendering with merge tags and inline image tokens
- Segment-based bulk sends with per-recipient delivery records
- Single-guest and test sends of a stored template
"""

from flask import Blueprint

campaigns_bp = Blueprint('campaigns', __name__, url_prefix='/api/campaigns')

from . import routes  # noqa: E402,F401

"""
Audience segmentation for bulk campaigns.

A segment is stored on the campaign as JSON:

    {"lastSeenDays": 30, "returningOnly": true, "hasEmail": true,
     "hasMobile": false, "includeTags": ["vip"], "excludeTags": ["staff"]}
"""

import logging
from datetime import datetime, timedelta

from ...core.database import Database, row_to_dict

logger = logging.getLogger(__name__)


def normalize_tags(value):
    """'vip, locals,,' -> ['vip', 'locals']; lists are cleaned the same way"""
    if not value:
        return []
    if isinstance(value, str):
        value = value.split(',')
    return [str(tag).strip() for tag in value if str(tag).strip()]


def build_segment_summary(segment):
    segment = segment or {}
    parts = []
    if segment.get('lastSeenDays'):
        parts.append(f"Seen in last {segment['lastSeenDays']} days")
    if segment.get('returningOnly'):
        parts.append('Returning guests only')
    if segment.get('hasEmail'):
        parts.append('Has email')
    if segment.get('hasMobile'):
        parts.append('Has mobile')
    include_tags = normalize_tags(segment.get('includeTags'))
    if include_tags:
        parts.append(f"Tagged: {', '.join(include_tags)}")
    exclude_tags = normalize_tags(segment.get('excludeTags'))
    if exclude_tags:
        parts.append(f"Exclude: {', '.join(exclude_tags)}")
    return ' | '.join(parts)


def filter_contacts(contacts, segment, include_ids=None, exclude_ids=None):
    """Apply the in-memory passes of a segment to an already fetched contact list.

    Order matters: tag membership first, then the returning-only count is
    taken over what survived, then contacts without an email are dropped.

    Args:
        contacts: list of dicts with at least 'id' and 'email'
        segment: segment dict (see module docstring)
        include_ids: contact ids carrying one of the include tags, or None
        exclude_ids: contact ids carrying one of the exclude tags, or None

    Returns:
        list: eligible contacts in their original order
    """
    segment = segment or {}
    filtered = list(contacts or [])

    if include_ids is not None:
        include_ids = set(include_ids)
        filtered = [c for c in filtered if c.get('id') in include_ids]

    if exclude_ids:
        exclude_ids = set(exclude_ids)
        filtered = [c for c in filtered if c.get('id') not in exclude_ids]

    if segment.get('returningOnly'):
        counts = {}
        for contact in filtered:
            if contact.get('email'):
                key = contact['email'].lower()
                counts[key] = counts.get(key, 0) + 1
        filtered = [
            c for c in filtered
            if c.get('email') and counts[c['email'].lower()] > 1
        ]

    return [c for c in filtered if c.get('email')]


def _tagged_contact_ids(cursor, tags):
    placeholders = ', '.join('?' for _ in tags)
    cursor.execute(
        f'SELECT DISTINCT contact_id FROM contact_tags WHERE tag IN ({placeholders})',
        [tag.replace(',', '') for tag in tags]
    )
    return {row['contact_id'] for row in cursor.fetchall()}


def select_recipients(segment, now=None):
    """Load the eligible contacts for a segment from contact_submissions"""
    segment = segment or {}
    now = now or datetime.now()

    query = 'SELECT id, full_name, email, phone, created_at FROM contact_submissions WHERE 1 = 1'
    params = []
    if segment.get('lastSeenDays'):
        since = now - timedelta(days=int(segment['lastSeenDays']))
        query += ' AND created_at >= ?'
        params.append(since.strftime('%Y-%m-%d %H:%M:%S'))
    if segment.get('hasEmail'):
        query += " AND email IS NOT NULL AND email != ''"
    if segment.get('hasMobile'):
        query += " AND phone IS NOT NULL AND phone != ''"
    query += ' ORDER BY id'

    include_tags = normalize_tags(segment.get('includeTags'))
    exclude_tags = normalize_tags(segment.get('excludeTags'))

    with Database.connect() as conn:
        cursor = conn.cursor()
        cursor.execute(query, params)
        contacts = [row_to_dict(row) for row in cursor.fetchall()]
        include_ids = _tagged_contact_ids(cursor, include_tags) if include_tags else None
        exclude_ids = _tagged_contact_ids(cursor, exclude_tags) if exclude_tags else None

    eligible = filter_contacts(contacts, segment, include_ids, exclude_ids)
    logger.info(f"Segment [{build_segment_summary(segment) or 'everyone'}]: "
                f"{len(eligible)} of {len(contacts)} contacts eligible")
    return eligible

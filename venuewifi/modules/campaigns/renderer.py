"""
Campaign Renderer
=================

Turns a stored template (subject + HTML body + optional hero/footer images)
into a complete, table-based HTML email for a single recipient.

Rendering is best-effort: malformed merge tags or image tokens degrade to
literal text or nothing, so an authoring mistake never aborts a send.
"""

import re
import logging

from ...core.storage import resolve_storage_url

logger = logging.getLogger(__name__)

DEFAULT_BRAND_NAME = 'Batesford Pub'

RESERVED_TOKENS = ('brand_logo_url', 'hero_image_url', 'footer_banner_url')

FOOTER_TEXT = '{{venue_address}} | {{website_link}}'

# (variable, label, simpleicons slug)
SOCIAL_NETWORKS = [
    ('facebook_link', 'Facebook', 'facebook'),
    ('instagram_link', 'Instagram', 'instagram'),
    ('tiktok_link', 'TikTok', 'tiktok'),
    ('x_link', 'X', 'x'),
    ('linkedin_link', 'LinkedIn', 'linkedin'),
]

_HTTP_URL = re.compile(r'^https?://', re.IGNORECASE)

# Inline image tokens: [[image:path="..." alt="..."]], brackets possibly entity-encoded
_OPEN = r'(?:\[|&#91;|&lbrack;|&amp;#91;|&amp;lbrack;)'
_CLOSE = r'(?:\]|&#93;|&rbrack;|&amp;#93;|&amp;rbrack;)'
_INLINE_IMAGE_TOKEN = re.compile(_OPEN + _OPEN + r'image:(.*?)' + _CLOSE + _CLOSE,
                                 re.IGNORECASE | re.DOTALL)
_PATH_ATTR = re.compile(r'\bpath\s*=\s*(?:"([^"]+)"|\'([^\']+)\')', re.IGNORECASE)
_ALT_ATTR = re.compile(r'\balt\s*=\s*(?:"([^"]*)"|\'([^\']*)\')', re.IGNORECASE)
_QUOTE_ENTITIES = [
    (re.compile(r'&amp;quot;|&amp;#34;|&quot;|&#34;', re.IGNORECASE), '"'),
    (re.compile(r'&amp;#39;|&amp;apos;|&#39;|&apos;|&#x27;', re.IGNORECASE), "'"),
]

_IMG_TAG = re.compile(r'<img\b[^>]*>', re.IGNORECASE)
_SRC_ATTR = re.compile(r'(?<![\w-])src\s*=\s*(?:"([^"]*)"|\'([^\']*)\'|([^\s"\'>]+))', re.IGNORECASE)


def escape_html(value):
    return (str(value)
            .replace('&', '&amp;')
            .replace('<', '&lt;')
            .replace('>', '&gt;')
            .replace('"', '&quot;'))


def get_first_name(full_name):
    """First word of a name, or "there" when nothing usable is supplied"""
    if not full_name or not str(full_name).strip():
        return 'there'
    return str(full_name).strip().split()[0]


def strip_empty_images(html):
    """Remove <img> tags whose src is missing or empty"""
    def _keep(match):
        src = _SRC_ATTR.search(match.group(0))
        if not src:
            return ''
        value = next((g for g in src.groups() if g is not None), '')
        return match.group(0) if value.strip() else ''

    return _IMG_TAG.sub(_keep, html or '')


def apply_tokens(text, tokens):
    """Replace literal {{name}} tokens; unknown tokens are left untouched"""
    if not text:
        return ''
    for key, value in tokens.items():
        text = text.replace(f'{{{{{key}}}}}', value)
    return strip_empty_images(text)


def strip_inline_image_tokens(text):
    """Drop [[image:...]] tokens entirely (used for plain-text bodies)"""
    return _INLINE_IMAGE_TOKEN.sub('', text or '')


def _safe_resolve(resolver, path):
    try:
        return resolver(path) or ''
    except Exception as e:
        logger.warning(f"Could not resolve storage path {path!r}: {e}")
        return ''


def replace_inline_image_tokens(html, resolver=None):
    """Expand [[image:path="P" alt="A"]] into a 600px-wide <img> block.

    A token with no path, or a path that does not resolve to a URL, is
    removed so it can never produce an empty src.
    """
    resolver = resolver or resolve_storage_url

    def _expand(match):
        attrs = match.group(1)
        for pattern, replacement in _QUOTE_ENTITIES:
            attrs = pattern.sub(replacement, attrs)

        path_match = _PATH_ATTR.search(attrs)
        if not path_match:
            return ''
        path = path_match.group(1) or path_match.group(2)
        alt_match = _ALT_ATTR.search(attrs)
        alt_text = ''
        if alt_match:
            alt_text = alt_match.group(1) if alt_match.group(1) is not None else alt_match.group(2)

        url = _safe_resolve(resolver, path.strip())
        if not url:
            return ''
        url = url.replace('"', '%22')
        return (
            '<br />'
            f'<img src="{url}" alt="{escape_html(alt_text)}" width="600" '
            'style="display:block;width:100%;max-width:600px;height:auto;border:0;line-height:0;margin:12px 0;" />'
            '<br />'
        )

    return _INLINE_IMAGE_TOKEN.sub(_expand, html or '')


def _social_row(variables):
    links = []
    for key, label, slug in SOCIAL_NETWORKS:
        url = (variables.get(key) or '').strip()
        if url and _HTTP_URL.match(url):
            links.append(
                f'<a href="{escape_html(url)}" style="display:inline-block;margin:0 6px;">'
                f'<img src="https://cdn.simpleicons.org/{slug}/1a472a" alt="{label}" width="28" height="28" '
                'style="display:block;width:28px;height:28px;border:0;" /></a>'
            )
    if not links:
        return ''
    return f'''<tr>
              <td align="center" style="padding:0 24px 24px;border-top:1px solid #efe6d8;">
                <p style="margin:16px 0 10px;font-family:'Source Sans 3', Arial, sans-serif;font-size:12px;font-weight:600;color:#1f2a24;">Follow us</p>
                {''.join(links)}
              </td>
            </tr>'''


def build_email_shell(body_html, logo_url='', hero_url='', footer_url='', footer_text='',
                      social_row='', brand_name=DEFAULT_BRAND_NAME):
    """Wrap a rendered body in the fixed 600px single-column email layout"""
    brand = escape_html(brand_name)
    logo_row = f'''<tr>
              <td style="padding:24px 24px 8px;">
                <img src="{logo_url}" alt="{brand}" width="180" style="display:block;max-width:180px;height:auto;border:0;" />
              </td>
            </tr>''' if logo_url else ''
    hero_row = f'''<tr>
              <td style="padding:0 24px 16px;">
                <img src="{hero_url}" alt="" width="600" style="display:block;width:100%;max-width:600px;height:auto;border:0;line-height:0;" />
              </td>
            </tr>''' if hero_url else ''
    footer_image_row = f'''<tr>
              <td style="padding:16px 24px 0;">
                <img src="{footer_url}" alt="" width="600" style="display:block;width:100%;max-width:600px;height:auto;border:0;line-height:0;" />
              </td>
            </tr>''' if footer_url else ''

    return f'''<!doctype html>
<html>
  <head>
    <meta charset="UTF-8" />
    <meta name="viewport" content="width=device-width, initial-scale=1.0" />
    <title>{brand}</title>
  </head>
  <body style="margin:0;padding:0;background-color:#f6f3ed;">
    <table role="presentation" cellpadding="0" cellspacing="0" width="100%" style="background-color:#f6f3ed;">
      <tr>
        <td align="center" style="padding:24px 12px;">
          <table role="presentation" cellpadding="0" cellspacing="0" width="600" style="width:600px;max-width:600px;background-color:#ffffff;border:1px solid #e6dfd3;">
            {logo_row}
            {hero_row}
            <tr>
              <td style="padding:0 24px 8px;font-family:'Source Sans 3', Arial, sans-serif;font-size:16px;line-height:24px;color:#1f2a24;">
                {body_html}
              </td>
            </tr>
            {footer_image_row}
            <tr>
              <td style="padding:12px 24px 24px;font-family:'Source Sans 3', Arial, sans-serif;font-size:12px;line-height:18px;color:#6b7a71;">
                {footer_text}
              </td>
            </tr>
            {social_row}
          </table>
        </td>
      </tr>
    </table>
  </body>
</html>'''


def _first_present(*values):
    for value in values:
        if value is not None:
            return value
    return ''


def render_email(template, branding, variables, overrides=None, resolver=None):
    """Render a template for one recipient.

    Args:
        template: dict with subject, body_html, hero_image_path, footer_image_path
        branding: dict with logo_path, default_hero_path, footer_banner_path
        variables: merge tag values, e.g. {'first_name': 'Sam', 'venue_name': ...}
        overrides: optional per-call hero_image_path / footer_image_path
        resolver: callable mapping a storage path or URL to a public URL

    Returns:
        {'subject': str, 'html': str}
    """
    template = template or {}
    branding = branding or {}
    overrides = overrides or {}
    resolver = resolver or resolve_storage_url

    hero_path = _first_present(overrides.get('hero_image_path'),
                               template.get('hero_image_path'),
                               branding.get('default_hero_path'))
    footer_path = _first_present(overrides.get('footer_image_path'),
                                 template.get('footer_image_path'),
                                 branding.get('footer_banner_path'))

    logo_url = _safe_resolve(resolver, branding.get('logo_path') or '')
    hero_url = _safe_resolve(resolver, hero_path)
    footer_url = _safe_resolve(resolver, footer_path)

    tokens = {key: '' if value is None else str(value) for key, value in (variables or {}).items()}
    tokens.update({
        'brand_logo_url': logo_url,
        'hero_image_url': hero_url,
        'footer_banner_url': footer_url,
    })

    body = template.get('body_html') or ''
    # Body already places the image itself, so the shell row is skipped
    has_logo_token = '{{brand_logo_url}}' in body
    has_hero_token = '{{hero_image_url}}' in body
    has_footer_token = '{{footer_banner_url}}' in body

    resolved_body = apply_tokens(replace_inline_image_tokens(body, resolver), tokens)
    footer_text = apply_tokens(FOOTER_TEXT, tokens)

    html = build_email_shell(
        resolved_body,
        logo_url='' if has_logo_token else logo_url,
        hero_url='' if has_hero_token else hero_url,
        footer_url='' if has_footer_token else footer_url,
        footer_text=footer_text,
        social_row=_social_row(tokens),
        brand_name=tokens.get('venue_name') or DEFAULT_BRAND_NAME,
    )

    return {
        'subject': apply_tokens(template.get('subject') or '', tokens),
        'html': strip_empty_images(html),
    }


def render_text(template, variables):
    """Plain-text alternative: merge tags applied, image tokens removed"""
    tokens = {key: '' if value is None else str(value) for key, value in (variables or {}).items()}
    body_text = strip_inline_image_tokens((template or {}).get('body_text') or '')
    return apply_tokens(body_text, tokens)

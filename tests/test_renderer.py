"""
Email render pipeline and storage URL resolution.
"""

import re

from venuewifi.core.storage import StorageUrlResolver, PublicUrlCache
from venuewifi.modules.campaigns.renderer import (
    render_email, render_text, apply_tokens, strip_empty_images,
    replace_inline_image_tokens, strip_inline_image_tokens, get_first_name,
)

BASE = "https://storage.test/storage/v1/object/public/campaign-assets"

EMPTY_SRC = re.compile(r"<img[^>]*\ssrc=(\"\"|'')", re.IGNORECASE)


def resolver():
    return StorageUrlResolver("https://storage.test", "campaign-assets", PublicUrlCache())


def render(body, branding=None, variables=None, overrides=None, **template):
    template.setdefault("subject", "Hello {{first_name}}")
    template["body_html"] = body
    return render_email(template, branding or {}, variables or {"first_name": "Sam"},
                        overrides, resolver())


# ---------------------------------------------------------------------------
# Storage resolver
# ---------------------------------------------------------------------------

def test_resolver_builds_public_url_once():
    cache = PublicUrlCache()
    r = StorageUrlResolver("https://storage.test/", "campaign-assets", cache)

    assert r.resolve("promo/summer menu.png") == f"{BASE}/promo/summer%20menu.png"
    assert r.resolve("promo/summer menu.png") == f"{BASE}/promo/summer%20menu.png"
    assert len(cache) == 1


def test_resolver_passes_absolute_urls_through():
    cache = PublicUrlCache()
    r = StorageUrlResolver("https://storage.test", "campaign-assets", cache)

    assert r.resolve("https://cdn.example.com/a.png") == "https://cdn.example.com/a.png"
    assert r.resolve("data:image/png;base64,AAAA") == "data:image/png;base64,AAAA"
    assert r.resolve("") == ""
    assert r.resolve(None) == ""
    assert len(cache) == 0


def test_resolver_without_base_cannot_resolve():
    cache = PublicUrlCache()
    r = StorageUrlResolver("", "campaign-assets", cache)
    assert r.resolve("promo/a.png") == ""
    assert "promo/a.png" not in cache


def test_cache_is_shared_between_resolvers():
    cache = PublicUrlCache()
    StorageUrlResolver("https://storage.test", "campaign-assets", cache).resolve("a.png")
    assert StorageUrlResolver("", "campaign-assets", cache).resolve("a.png") == f"{BASE}/a.png"


# ---------------------------------------------------------------------------
# Rendering
# ---------------------------------------------------------------------------

def test_render_is_deterministic():
    body = '<p>Hi {{first_name}}</p>[[image:path="promo/a.png" alt="A"]]'
    branding = {"logo_path": "brand/logo.png", "default_hero_path": "brand/hero.jpg"}
    assert render(body, branding) == render(body, branding)


def test_render_returns_complete_document_and_subject():
    out = render("<p>Hi {{first_name}}</p>")
    assert out["subject"] == "Hello Sam"
    assert out["html"].startswith("<!doctype html>")
    assert out["html"].rstrip().endswith("</html>")
    assert "<p>Hi Sam</p>" in out["html"]
    assert 'width="600"' in out["html"]


def test_unknown_tokens_are_left_alone():
    out = render("<p>{{not_a_variable}} {{ first_name }}</p>")
    assert "{{not_a_variable}}" in out["html"]
    assert "{{ first_name }}" in out["html"]


def test_logo_row_rendered_from_branding():
    out = render("<p>Body</p>", {"logo_path": "brand/logo.png"})
    assert out["html"].count(f"{BASE}/brand/logo.png") == 1


def test_logo_token_in_body_suppresses_shell_row():
    body = '<p><img src="{{brand_logo_url}}" alt="logo" /></p>'
    out = render(body, {"logo_path": "brand/logo.png"})
    assert out["html"].count(f"{BASE}/brand/logo.png") == 1
    assert f'<p><img src="{BASE}/brand/logo.png" alt="logo" /></p>' in out["html"]


def test_hero_path_precedence():
    branding = {"default_hero_path": "brand/hero.jpg"}

    assert f"{BASE}/brand/hero.jpg" in render("<p/>", branding)["html"]
    templated = render("<p/>", branding, hero_image_path="tpl/hero.jpg")["html"]
    assert f"{BASE}/tpl/hero.jpg" in templated
    assert f"{BASE}/brand/hero.jpg" not in templated
    overridden = render("<p/>", branding, overrides={"hero_image_path": "override.jpg"},
                        hero_image_path="tpl/hero.jpg")["html"]
    assert f"{BASE}/override.jpg" in overridden
    assert f"{BASE}/tpl/hero.jpg" not in overridden


def test_no_image_rows_without_paths():
    out = render("<p>Plain</p>")
    assert "<img" not in out["html"]


def test_inline_image_token_expands_to_single_img():
    out = render('<p>Specials</p>[[image:path="promo/a.png" alt="Fish & Chips"]]')
    html = out["html"]
    assert html.count("<img") == 1
    assert f'<img src="{BASE}/promo/a.png" alt="Fish &amp; Chips" width="600"' in html
    assert "[[image" not in html


def test_inline_image_token_attribute_order_and_quotes():
    html = replace_inline_image_tokens("[[image:alt='Beer' path='taps/ipa.png']]", resolver())
    assert f'src="{BASE}/taps/ipa.png"' in html
    assert 'alt="Beer"' in html


def test_inline_image_token_entity_encoded():
    body = "&#91;&#91;image:path=&quot;taps/ipa.png&quot; alt=&quot;Beer&quot;&#93;&#93;"
    html = replace_inline_image_tokens(body, resolver())
    assert html.count("<img") == 1
    assert f'src="{BASE}/taps/ipa.png"' in html
    assert "&#91;" not in html


def test_inline_image_token_without_path_is_removed():
    out = render('<p>A</p>[[image:alt="No path"]]<p>B</p>')
    assert "<img" not in out["html"]
    assert "[[image" not in out["html"]
    assert "<p>A</p><p>B</p>" in out["html"]


def test_inline_image_token_unresolvable_path_is_removed():
    html = replace_inline_image_tokens('[[image:path="a.png"]]',
                                       StorageUrlResolver("", "campaign-assets", PublicUrlCache()))
    assert html == ""


def test_inline_image_resolver_errors_degrade():
    def broken(path):
        raise RuntimeError("storage down")

    assert replace_inline_image_tokens('x[[image:path="a.png"]]y', broken) == "xy"


def test_empty_src_never_emitted():
    body = '<p><img src="{{hero_image_url}}" /></p><img src="{{footer_banner_url}}"><img alt="x">'
    out = render(body)
    assert not EMPTY_SRC.search(out["html"])
    assert "<img" not in out["html"]


def test_strip_empty_images_keeps_real_sources():
    html = '<img data-src="" src="a.png"><img src=""><img src=\'\'><img>'
    assert strip_empty_images(html) == '<img data-src="" src="a.png">'


def test_apply_tokens_is_literal():
    assert apply_tokens("{{a}}{{b}}{{a}}", {"a": "1", "b": "$2"}) == "1$21"
    assert apply_tokens("", {"a": "1"}) == ""


def test_social_row_only_for_http_links():
    variables = {"first_name": "Sam", "facebook_link": "https://facebook.com/batesford",
                 "instagram_link": "ftp://nope", "x_link": ""}
    html = render("<p/>", variables=variables)["html"]
    assert "Follow us" in html
    assert 'href="https://facebook.com/batesford"' in html
    assert "ftp://nope" not in html
    assert "Follow us" not in render("<p/>")["html"]


def test_footer_text_substituted():
    variables = {"venue_address": "700 Ballarat Road", "website_link": "https://batesford.test"}
    html = render("<p/>", variables=variables)["html"]
    assert "700 Ballarat Road | https://batesford.test" in html


def test_render_never_raises_on_garbage():
    out = render_email({"body_html": "[[image:path=]] {{ [[image {{x", "subject": None},
                       None, None, None, resolver())
    assert out["subject"] == ""
    assert out["html"].startswith("<!doctype html>")


def test_render_text_strips_image_tokens():
    template = {"body_text": 'Hi {{first_name}} [[image:path="a.png"]]'}
    assert render_text(template, {"first_name": "Sam"}) == "Hi Sam "
    assert strip_inline_image_tokens('a[[image:path="x"]]b') == "ab"


def test_first_name():
    assert get_first_name("Sam Smith") == "Sam"
    assert get_first_name("  Jo  ") == "Jo"
    assert get_first_name("") == "there"
    assert get_first_name(None) == "there"


def test_inline_image_token_spanning_lines():
    out = render('<p>Menu</p>[[image:path="a.png"\nalt="Menu"]]')
    assert "[[image" not in out["html"]
    assert f'<img src="{BASE}/a.png" alt="Menu"' in out["html"]
    assert strip_inline_image_tokens('x[[image:path="a.png"\r\nalt="b"]]y') == "xy"

"""
Storage Utility
===============

Resolves object-storage paths (campaign images, brand assets) to public URLs.
Resolved URLs are cached per path for the lifetime of the process.
"""

import re
import threading
from urllib.parse import quote

from .config import get_setting

_ABSOLUTE_URL = re.compile(r'^https?://', re.IGNORECASE)


def is_absolute_url(value):
    """True for http(s):// URLs and data: URIs"""
    return bool(_ABSOLUTE_URL.match(value)) or value.startswith('data:')


class PublicUrlCache:
    """Append-only map of storage path -> public URL shared across requests."""

    def __init__(self):
        self._urls = {}
        self._lock = threading.Lock()

    def get(self, path):
        return self._urls.get(path)

    def set(self, path, url):
        with self._lock:
            self._urls.setdefault(path, url)
        return self._urls[path]

    def clear(self):
        with self._lock:
            self._urls.clear()

    def __contains__(self, path):
        return path in self._urls

    def __len__(self):
        return len(self._urls)


class StorageUrlResolver:
    """Builds public object URLs for a storage bucket.

    Args:
        public_base: Storage host, e.g. "https://xyz.supabase.co"
        bucket: Bucket holding the assets (default "campaign-assets")
        cache: PublicUrlCache to share; a fresh one is created if omitted
    """

    def __init__(self, public_base='', bucket='campaign-assets', cache=None):
        self.public_base = (public_base or '').rstrip('/')
        self.bucket = bucket
        self.cache = cache if cache is not None else PublicUrlCache()

    def public_url(self, path):
        if not path:
            return ''
        cached = self.cache.get(path)
        if cached is not None:
            return cached
        if not self.public_base:
            return ''
        object_key = quote(path.lstrip('/'), safe='/')
        url = f"{self.public_base}/storage/v1/object/public/{self.bucket}/{object_key}"
        return self.cache.set(path, url)

    def resolve(self, path_or_url):
        """Return a usable image URL for a storage path or absolute URL ('' if none)"""
        if not path_or_url:
            return ''
        path_or_url = path_or_url.strip()
        if not path_or_url:
            return ''
        if is_absolute_url(path_or_url):
            return path_or_url
        return self.public_url(path_or_url)

    __call__ = resolve


# Process-wide cache, shared by every resolver built from app config
url_cache = PublicUrlCache()


def get_resolver():
    """Resolver for the current app config, backed by the shared cache"""
    return StorageUrlResolver(
        public_base=get_setting('STORAGE_PUBLIC_URL', ''),
        bucket=get_setting('STORAGE_BUCKET', 'campaign-assets'),
        cache=url_cache,
    )


def resolve_storage_url(path_or_url):
    """Resolve a storage path or absolute URL using the configured bucket"""
    return get_resolver().resolve(path_or_url)

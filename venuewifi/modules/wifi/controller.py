"""
UniFi Controller Client
=======================

Drives the wireless controller's HTTP API to let a guest device online:

    login -> verify session -> authorize-guest

Each step has its own result type and raises ControllerError (carrying the
stage and the URL that was called) on failure. The session cookie lives only
for one authorize_device() call.
"""

import re
import logging
from dataclasses import dataclass
from typing import Optional
from urllib.parse import quote

import requests

from ...core.config import get_setting
from ...core.errors import UpstreamError

logger = logging.getLogger(__name__)

LOGIN_ENDPOINTS = ('/api/auth/login', '/api/login')
SITES_ENDPOINT = '/api/self/sites'
GUEST_MINUTES = 480

JSON_HEADERS = {
    'Content-Type': 'application/json',
    'Accept': 'application/json',
}

_COOKIE_SPLIT = re.compile(r',(?=\s*[^;,\s=]+=)')


class ControllerError(UpstreamError):
    """A controller call failed; stage is one of login, verify, authorize"""

    def __init__(self, message, stage, url=None, unifi_error=None, status_code=None):
        super().__init__(message, status_code, stage=stage, url=url)
        self.unifi_error = unifi_error if unifi_error is not None else message


@dataclass
class LoginResult:
    cookie: str
    endpoint: str
    status: int
    body: str


@dataclass
class SessionCheck:
    url: str
    status: int
    body: str

    @property
    def established(self):
        return self.status == 200 and 'LoginRequired' not in self.body


@dataclass
class AuthorizeResult:
    url: str
    status: int
    body: str
    ok: bool


def extract_cookies(set_cookie):
    """Collapse a (possibly comma-joined) Set-Cookie header into a Cookie header.

    'a=1; Path=/, b=2; HttpOnly' -> 'a=1; b=2'
    """
    if not set_cookie:
        return None
    cookies = []
    for part in _COOKIE_SPLIT.split(set_cookie):
        pair = part.split(';')[0].strip()
        if '=' in pair and pair not in cookies:
            cookies.append(pair)
    return '; '.join(cookies) or None


def _truncate(text, limit=2000):
    if not text:
        return ''
    return f"{text[:limit]}..." if len(text) > limit else text


class UnifiController:
    """
    Args:
        base_url: Controller URL, e.g. "https://unifi.example.com:8443"
        username / password: Local controller account
        timeout_ms: Per-request timeout (default 8000)
    """

    def __init__(self, base_url, username, password, timeout_ms=8000):
        self.base_url = (base_url or '').rstrip('/')
        self.username = username
        self.password = password
        self.timeout = (timeout_ms or 8000) / 1000.0

    @classmethod
    def from_config(cls):
        """Controller built from UNIFI_* settings, or None if any are missing"""
        base_url = get_setting('UNIFI_BASE_URL')
        username = get_setting('UNIFI_USERNAME')
        password = get_setting('UNIFI_PASSWORD')
        if not base_url or not username or not password:
            return None
        return cls(base_url, username, password, int(get_setting('UNIFI_TIMEOUT_MS', 8000)))

    # ---- login ----

    def _post_login(self, endpoint):
        url = f"{self.base_url}{endpoint}"
        try:
            response = requests.post(
                url,
                json={'username': self.username, 'password': self.password, 'remember': True},
                headers=JSON_HEADERS,
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            logger.warning(f"UniFi fetch failed: {url}: {e}")
            raise ControllerError(f"UniFi login failed: {e}", 'login', url)
        return url, response

    def login(self):
        """Log in, falling back to the legacy endpoint once"""
        url, response = self._post_login(LOGIN_ENDPOINTS[0])
        endpoint = LOGIN_ENDPOINTS[0]
        if not response.ok:
            url, response = self._post_login(LOGIN_ENDPOINTS[1])
            endpoint = LOGIN_ENDPOINTS[1]

        body = _truncate(response.text)
        if not response.ok:
            raise ControllerError(
                f"UniFi authentication failed ({endpoint}) status={response.status_code} body={body}",
                'login', url,
            )

        cookie = extract_cookies(response.headers.get('Set-Cookie'))
        if not cookie:
            raise ControllerError('UniFi authentication did not return a session cookie.', 'login', url)

        return LoginResult(cookie=cookie, endpoint=endpoint, status=response.status_code, body=body)

    # ---- verify ----

    def verify_session(self, cookie):
        """Check the cookie against the site list; raises if not established"""
        url = f"{self.base_url}{SITES_ENDPOINT}"
        message = 'UniFi session not established (proxy/cookie issue)'
        try:
            response = requests.get(
                url,
                headers={'Accept': 'application/json', 'Cookie': cookie},
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            logger.warning(f"UniFi fetch failed: {url}: {e}")
            raise ControllerError(message, 'verify', url,
                                  unifi_error=f"UniFi session verify failed: {e}")

        check = SessionCheck(url=url, status=response.status_code, body=_truncate(response.text, 300))
        logger.info(f"UniFi session verify: status={check.status}")
        if not check.established:
            raise ControllerError(message, 'verify', url, unifi_error=check.body)
        return check

    # ---- authorize ----

    def authorize_guest(self, cookie, site, mac, minutes=GUEST_MINUTES):
        """Send authorize-guest for mac; ok only when meta.rc == 'ok'"""
        url = f"{self.base_url}/api/s/{quote(site, safe='')}/cmd/stamgr"
        try:
            response = requests.post(
                url,
                json={'cmd': 'authorize-guest', 'mac': mac, 'minutes': minutes},
                headers=dict(JSON_HEADERS, Cookie=cookie),
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            logger.warning(f"UniFi fetch failed: {url}: {e}")
            raise ControllerError(f"UniFi authorize failed: {e}", 'authorize', url)

        body = _truncate(response.text)
        try:
            parsed = response.json() if response.text else None
        except ValueError:
            parsed = None
        meta = parsed.get('meta') if isinstance(parsed, dict) else None
        rc = meta.get('rc') if isinstance(meta, dict) else None

        logger.info(f"UniFi authorize: {url} status={response.status_code} rc={rc}")
        return AuthorizeResult(url=url, status=response.status_code, body=body,
                               ok=response.ok and rc == 'ok')

    def authorize_device(self, site, mac, debug: Optional[dict] = None):
        """Full login -> verify -> authorize sequence for one device.

        When a debug dict is supplied it is filled with unifi_login and
        unifi_authorize diagnostics as the steps run.
        """
        login = self.login()
        if debug is not None:
            debug['unifi_login'] = {'endpoint': login.endpoint, 'status': login.status, 'body': login.body}

        self.verify_session(login.cookie)

        try:
            result = self.authorize_guest(login.cookie, site, mac)
        except ControllerError as e:
            if debug is not None:
                debug['unifi_authorize'] = {'error': e.message, 'url': e.url}
            raise

        if debug is not None:
            debug['unifi_authorize'] = {'status': result.status, 'body': result.body}
        if not result.ok:
            raise ControllerError('UniFi authorization failed.', 'authorize', result.url)
        return result

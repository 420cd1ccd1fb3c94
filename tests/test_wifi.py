"""
Captive-portal connect flow: device classification, guest persistence and
the UniFi controller client.
"""

import json
from datetime import datetime
from unittest.mock import patch, MagicMock

import pytest
import requests

from venuewifi.core.database import Database
from venuewifi.modules.wifi.controller import UnifiController, ControllerError, extract_cookies
from venuewifi.modules.wifi.device_detector import classify_device
from venuewifi.modules.wifi.guests import upsert_guest, record_connection
from venuewifi.modules.wifi.routes import is_valid_mac

IPHONE_UA = ("Mozilla/5.0 (iPhone; CPU iPhone OS 17_0 like Mac OS X) "
             "AppleWebKit/605.1.15 (KHTML, like Gecko) Version/17.0 Mobile/15E148 Safari/604.1")
ANDROID_UA = ("Mozilla/5.0 (Linux; Android 14; Pixel 8) AppleWebKit/537.36 "
              "(KHTML, like Gecko) Chrome/120.0 Mobile Safari/537.36")

BASE = "https://unifi.test:8443"

PAYLOAD = {
    "client_mac": "AA:BB:CC:DD:EE:FF",
    "unifi_site": "default",
    "name": "Sam Smith",
    "email": "Sam@Example.com ",
    "mobile": "0400 000 000",
    "marketing_opt_in": True,
    "ssid": "Batesford Guest",
}


def response(status=200, body=None, cookie=None):
    resp = MagicMock()
    resp.status_code = status
    resp.ok = 200 <= status < 300
    resp.text = json.dumps(body) if isinstance(body, (dict, list)) else (body or "")
    resp.headers = {"Set-Cookie": cookie} if cookie else {}
    if isinstance(body, (dict, list)):
        resp.json.return_value = body
    else:
        resp.json.side_effect = ValueError("not json")
    return resp


LOGIN_OK = response(200, {"ok": True}, cookie="TOKEN=abc; Path=/; HttpOnly")
SITES_OK = response(200, {"data": [{"name": "default"}]})
AUTHORIZE_OK = response(200, {"meta": {"rc": "ok"}, "data": []})


def count(table):
    with Database.connect() as conn:
        return conn.execute(f"SELECT COUNT(*) FROM {table}").fetchone()[0]


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

@pytest.mark.parametrize("ua, expected", [
    (IPHONE_UA, ("mobile", "ios")),
    ("Mozilla/5.0 (iPad; CPU OS 17_0 like Mac OS X)", ("tablet", "ios")),
    (ANDROID_UA, ("mobile", "android")),
    ("Mozilla/5.0 (Linux; Android 13; SM-X200) AppleWebKit/537.36", ("tablet", "android")),
    ("Mozilla/5.0 (Windows NT 10.0; Win64; x64)", ("desktop", "windows")),
    ("Mozilla/5.0 (Macintosh; Intel Mac OS X 14_0)", ("desktop", "macos")),
    ("Mozilla/5.0 (X11; Linux x86_64)", ("desktop", "linux")),
    ("curl/8.0", ("unknown", "unknown")),
    (None, ("unknown", "unknown")),
])
def test_classify_device(ua, expected):
    device = classify_device(ua)
    assert (device["device_type"], device["os_family"]) == expected


@pytest.mark.parametrize("mac, valid", [
    ("AA:BB:CC:DD:EE:FF", True),
    ("aa-bb-cc-dd-ee-ff", True),
    ("AA:BB:CC:DD:EE", False),
    ("AA:BB:CC:DD:EE:FF\n", False),
    (" AA:BB:CC:DD:EE:FF", False),
    ("not-a-mac", False),
    ("", False),
    (None, False),
])
def test_is_valid_mac(mac, valid):
    assert is_valid_mac(mac) is valid


def test_extract_cookies():
    header = "TOKEN=abc; Path=/; Expires=Wed, 21 Oct 2026 07:28:00 GMT, csrf=xyz; HttpOnly, TOKEN=abc"
    assert extract_cookies(header) == "TOKEN=abc; csrf=xyz"
    assert extract_cookies("") is None
    assert extract_cookies(None) is None


# ---------------------------------------------------------------------------
# Guest persistence
# ---------------------------------------------------------------------------

def test_upsert_guest_is_idempotent(ctx):
    first = upsert_guest(" Sam@Example.com", "Sam")
    second = upsert_guest("sam@example.com", "Sam Smith", "0400")
    third = upsert_guest("SAM@example.com", "", None)

    assert first["created"] is True and second["created"] is False
    assert first["guest_id"] == second["guest_id"] == third["guest_id"]
    assert count("guests") == 1

    with Database.connect() as conn:
        row = conn.execute("SELECT email, full_name, mobile FROM guests").fetchone()
    assert tuple(row) == ("sam@example.com", "Sam Smith", "0400")


def test_upsert_guest_without_email(ctx):
    result = upsert_guest("   ")
    assert result["ok"] is False
    assert result["guest_id"] is None


def test_connection_weekday_starts_on_sunday(ctx):
    guest_id = upsert_guest("jo@example.com")["guest_id"]
    sunday = datetime(2026, 10, 18, 19, 45)
    record_connection(guest_id, classify_device(IPHONE_UA), IPHONE_UA, now=sunday)
    record_connection(guest_id, classify_device(IPHONE_UA), IPHONE_UA, now=datetime(2026, 10, 24, 9, 0))

    with Database.connect() as conn:
        rows = conn.execute("SELECT weekday, hour, device_type, connected_at FROM wifi_connections "
                            "ORDER BY id").fetchall()
    assert (rows[0]["weekday"], rows[0]["hour"], rows[0]["device_type"]) == (0, 19, "mobile")
    assert rows[0]["connected_at"] == "2026-10-18 19:45:00"
    assert rows[1]["weekday"] == 6


def test_record_connection_failure_is_reported(ctx):
    ctx.config["APP_DB"] = "/nonexistent/dir/venuewifi.db"
    result = record_connection(1, {}, None)
    assert result["ok"] is False
    assert result["error"]


# ---------------------------------------------------------------------------
# /api/wifi/connect
# ---------------------------------------------------------------------------

def test_connect_rejects_invalid_json(client):
    resp = client.post("/api/wifi/connect", data="{nope", content_type="application/json")
    assert resp.status_code == 400
    assert resp.get_json() == {"error": "Invalid JSON body."}


@pytest.mark.parametrize("mac", ["AA:BB:CC:DD:EE", "not-a-mac", "AA:BB:CC:DD:EE:FF\n", None])
def test_connect_rejects_bad_mac_without_persisting(app, client, mac):
    resp = client.post("/api/wifi/connect", json=dict(PAYLOAD, client_mac=mac))
    assert resp.status_code == 400
    assert resp.get_json() == {"error": "client_mac is required and must be a valid MAC address."}
    with app.app_context():
        assert count("contact_submissions") == 0


def test_connect_requires_site(client):
    resp = client.post("/api/wifi/connect", json=dict(PAYLOAD, unifi_site=""))
    assert resp.status_code == 400
    assert resp.get_json() == {"error": "unifi_site is required."}


def test_connect_without_controller_config_still_records_guest(app, client):
    resp = client.post("/api/wifi/connect", json=PAYLOAD, headers={"User-Agent": IPHONE_UA})
    assert resp.status_code == 500
    assert resp.get_json() == {"error": "Missing UniFi configuration."}

    with app.app_context():
        assert count("contact_submissions") == 1
        assert count("guests") == 1
        assert count("wifi_connections") == 1
        with Database.connect() as conn:
            row = conn.execute("SELECT * FROM contact_submissions").fetchone()
        assert row["device_type"] == "mobile"
        assert row["unifi_id"] == "AA:BB:CC:DD:EE:FF"
        assert row["consent"] == 1


def test_connect_without_email_skips_guest(app, client):
    resp = client.post("/api/wifi/connect", json=dict(PAYLOAD, email=""))
    assert resp.status_code == 500
    with app.app_context():
        assert count("contact_submissions") == 1
        assert count("guests") == 0
        assert count("wifi_connections") == 0


@pytest.fixture
def unifi_client(unifi_app):
    return unifi_app.test_client()


def test_connect_success(unifi_client):
    with patch("venuewifi.modules.wifi.controller.requests.post",
               side_effect=[LOGIN_OK, AUTHORIZE_OK]) as post, \
            patch("venuewifi.modules.wifi.controller.requests.get", return_value=SITES_OK) as get:
        resp = unifi_client.post("/api/wifi/connect", json=PAYLOAD)

    assert resp.status_code == 200
    assert resp.get_json() == {"success": True}

    login_call, authorize_call = post.call_args_list
    assert login_call.args[0] == f"{BASE}/api/auth/login"
    assert login_call.kwargs["timeout"] == 5.0
    assert get.call_args.kwargs["headers"]["Cookie"] == "TOKEN=abc"
    assert authorize_call.args[0] == f"{BASE}/api/s/default/cmd/stamgr"
    assert authorize_call.kwargs["json"] == {"cmd": "authorize-guest", "mac": "AA:BB:CC:DD:EE:FF",
                                             "minutes": 480}
    assert authorize_call.kwargs["headers"]["Cookie"] == "TOKEN=abc"


def test_connect_prefers_unifi_id(unifi_client):
    with patch("venuewifi.modules.wifi.controller.requests.post",
               side_effect=[LOGIN_OK, AUTHORIZE_OK]) as post, \
            patch("venuewifi.modules.wifi.controller.requests.get", return_value=SITES_OK):
        unifi_client.post("/api/wifi/connect", json=dict(PAYLOAD, unifi_id="11:22:33:44:55:66"))

    assert post.call_args_list[1].kwargs["json"]["mac"] == "11:22:33:44:55:66"


def test_connect_authorize_rejected(unifi_client):
    rejected = response(200, {"meta": {"rc": "error", "msg": "api.err.UnknownStation"}})
    with patch("venuewifi.modules.wifi.controller.requests.post", side_effect=[LOGIN_OK, rejected]), \
            patch("venuewifi.modules.wifi.controller.requests.get", return_value=SITES_OK):
        resp = unifi_client.post("/api/wifi/connect", json=dict(PAYLOAD, debug=True))

    assert resp.status_code == 502
    body = resp.get_json()
    assert body["error"] == "UniFi authorization failed."
    assert body["unifi_url"] == f"{BASE}/api/s/default/cmd/stamgr"
    assert body["debug"]["unifi_login"]["endpoint"] == "/api/auth/login"
    assert "UnknownStation" in body["debug"]["unifi_authorize"]["body"]


def test_connect_login_failure(unifi_client):
    denied = response(401, {"error": "denied"})
    with patch("venuewifi.modules.wifi.controller.requests.post", side_effect=[denied, denied]) as post:
        resp = unifi_client.post("/api/wifi/connect", json=PAYLOAD)

    assert resp.status_code == 502
    body = resp.get_json()
    assert body["error"].startswith("UniFi authentication failed (/api/login) status=401")
    assert body["unifi_url"] == f"{BASE}/api/login"
    assert "debug" not in body
    assert [c.args[0] for c in post.call_args_list] == [f"{BASE}/api/auth/login", f"{BASE}/api/login"]


def test_connect_transport_error(unifi_client):
    with patch("venuewifi.modules.wifi.controller.requests.post",
               side_effect=requests.ConnectionError("connection refused")):
        resp = unifi_client.post("/api/wifi/connect", json=PAYLOAD)

    assert resp.status_code == 502
    body = resp.get_json()
    assert body["error"].startswith("UniFi login failed")
    assert body["unifi_url"] == f"{BASE}/api/auth/login"


# ---------------------------------------------------------------------------
# Controller client
# ---------------------------------------------------------------------------

@pytest.fixture
def controller():
    return UnifiController(BASE + "/", "portal", "secret", timeout_ms=5000)


def test_login_falls_back_to_legacy_endpoint(controller):
    with patch("venuewifi.modules.wifi.controller.requests.post",
               side_effect=[response(404, "Not Found"), LOGIN_OK]):
        result = controller.login()
    assert result.endpoint == "/api/login"
    assert result.cookie == "TOKEN=abc"


def test_login_without_cookie(controller):
    with patch("venuewifi.modules.wifi.controller.requests.post", return_value=response(200, {"ok": True})):
        with pytest.raises(ControllerError) as exc:
            controller.login()
    assert exc.value.message == "UniFi authentication did not return a session cookie."
    assert exc.value.stage == "login"


def test_verify_session_login_required(controller):
    with patch("venuewifi.modules.wifi.controller.requests.get",
               return_value=response(200, {"meta": {"rc": "error", "msg": "api.err.LoginRequired"}})):
        with pytest.raises(ControllerError) as exc:
            controller.verify_session("TOKEN=abc")
    assert exc.value.message == "UniFi session not established (proxy/cookie issue)"
    assert "LoginRequired" in exc.value.unifi_error
    assert exc.value.url == f"{BASE}/api/self/sites"


def test_authorize_guest_non_json_body(controller):
    with patch("venuewifi.modules.wifi.controller.requests.post", return_value=response(502, "Bad Gateway")):
        result = controller.authorize_guest("TOKEN=abc", "my site", "AA:BB:CC:DD:EE:FF")
    assert result.ok is False
    assert result.url == f"{BASE}/api/s/my%20site/cmd/stamgr"


def test_from_config_requires_credentials(ctx):
    assert UnifiController.from_config() is None


def test_connect_coerces_non_string_fields(unifi_app, unifi_client):
    with patch("venuewifi.modules.wifi.controller.requests.post",
               side_effect=[LOGIN_OK, AUTHORIZE_OK]) as post, \
            patch("venuewifi.modules.wifi.controller.requests.get", return_value=SITES_OK):
        resp = unifi_client.post("/api/wifi/connect", json=dict(PAYLOAD, unifi_site=42, email=12345))

    assert resp.status_code == 200
    assert post.call_args_list[1].args[0] == f"{BASE}/api/s/42/cmd/stamgr"
    with unifi_app.app_context():
        assert count("contact_submissions") == 1

import io

import pytest
from fastapi.testclient import TestClient
from PIL import Image

import logic
from main import create_app
from quote_board import QuoteBoard, STATUS_MISSING_KEY, STATUS_OK
from tests.helpers import FakeReadwise


@pytest.fixture()
def client(board):
    return TestClient(create_app(board=board, auto_refresh=False))


def test_health(client):
    r = client.get("/_health")
    assert r.status_code == 200
    assert r.text == "OK"

    r = client.get("/")
    assert r.json() == {"ok": True, "status": "idle", "refresher": False}


def test_quote_state_before_and_after_refresh(client, fake):
    r = client.get("/api/quote")
    assert r.status_code == 200
    assert r.json()["quote"] is None
    assert r.json()["has_api_key"] is True

    r = client.post("/api/quote/refresh")
    assert r.status_code == 200
    body = r.json()
    assert body["status"] == STATUS_OK
    assert body["quote"]["text"].startswith("Highlight number")
    assert body["color_index"] == 1

    assert client.get("/api/quote").json() == body
    assert len(fake.page_calls) == 1


def test_credential_update(client, fake):
    r = client.post("/api/credential", json={"api_key": "other-token"})
    assert r.status_code == 200
    body = r.json()
    assert body["changed"] is True
    assert body["state"]["status"] == STATUS_OK
    assert body["state"]["color_index"] == 0
    assert fake.count_calls[-1].headers["Authorization"] == "Token other-token"

    r = client.post("/api/credential", json={"api_key": " other-token "})
    assert r.json()["changed"] is False
    assert len(fake.page_calls) == 1

    r = client.post("/api/credential", json={"api_key": ""})
    body = r.json()
    assert body["changed"] is True
    assert body["state"]["status"] == STATUS_MISSING_KEY
    assert body["state"]["quote"] is None
    assert body["state"]["has_api_key"] is False


def test_api_key_protects_write_endpoints(client, monkeypatch):
    monkeypatch.setattr(logic, "APP_API_KEY", "s3cret")

    assert client.post("/api/quote/refresh").status_code == 401
    assert client.post("/api/credential", json={"api_key": "x"}).status_code == 401
    assert client.get("/api/quote").status_code == 200

    r = client.post("/api/quote/refresh", headers={"x-api-key": "s3cret"})
    assert r.status_code == 200


def test_quote_png(client):
    client.post("/api/quote/refresh")
    r = client.get("/api/quote.png", params={"width": 320, "height": 200})
    assert r.status_code == 200
    assert r.headers["content-type"] == "image/png"
    assert r.headers["cache-control"] == "no-store"
    assert r.content.startswith(b"\x89PNG\r\n\x1a\n")
    assert Image.open(io.BytesIO(r.content)).size == (320, 200)

    r = client.get("/api/quote.png", params={"width": 1, "height": 99999})
    assert Image.open(io.BytesIO(r.content)).size == (64, 4096)


def test_quote_png_without_quote_shows_message(fake):
    board = QuoteBoard(fake.service(api_key=""), persist_key=False)
    client = TestClient(create_app(board=board, auto_refresh=False))
    r = client.get("/api/quote.png")
    assert r.status_code == 200
    assert Image.open(io.BytesIO(r.content)).size == (logic.DISPLAY_WIDTH_PX, logic.DISPLAY_HEIGHT_PX)


def test_ui_shows_escaped_quote():
    fake = FakeReadwise([{"text": "a < b & c", "title": "Maths <1>", "author": "Ann"}])
    board = QuoteBoard(fake.service(), persist_key=False)
    client = TestClient(create_app(board=board, auto_refresh=False))

    r = client.post("/ui/refresh", follow_redirects=False)
    assert r.status_code == 303
    assert r.headers["location"] == "/ui"

    page = client.get("/ui").text
    assert "a &lt; b &amp; c" in page
    assert "Maths &lt;1&gt;" in page
    assert "— Ann" in page
    assert 'http-equiv="refresh" content="10"' in page
    assert 'action="/ui/refresh"' in page


def test_ui_without_key_shows_message(fake):
    board = QuoteBoard(fake.service(api_key=""), persist_key=False)
    client = TestClient(create_app(board=board, auto_refresh=False))
    assert "Readwise API key required" in client.get("/ui").text


def test_settings_page_hint(client):
    page = client.get("/ui/settings").text
    assert "✓ API key configured" in page
    assert 'name="READWISE_API_KEY"' in page
    client.post("/api/credential", json={"api_key": ""})
    assert "⚠ API key required" in client.get("/ui/settings").text


def test_settings_save_updates_key_and_interval(client, fake):
    r = client.post(
        "/ui/settings/save",
        data={"READWISE_API_KEY": " saved-token ", "QUOTE_REFRESH_SECONDS": "7", "CARD_TEXT_SIZE": "40"},
        follow_redirects=False,
    )
    assert r.status_code == 303
    assert r.headers["location"] == "/ui/settings"
    assert logic.SETTINGS["QUOTE_REFRESH_SECONDS"] == 5
    assert logic.SETTINGS["CARD_TEXT_SIZE"] == 40
    assert logic.SETTINGS["CARD_ALIGN_TEXT"] == "center"
    assert logic.refresh_seconds() == 5
    assert fake.count_calls[-1].headers["Authorization"] == "Token saved-token"

    state = client.get("/api/quote").json()
    assert state["status"] == STATUS_OK
    assert state["color_index"] == 0


def test_settings_save_with_empty_key_keeps_current(client, board):
    client.post("/ui/settings/save", data={"READWISE_API_KEY": ""}, follow_redirects=False)
    assert board.service.api_key == "secret-token"

    client.post("/ui/settings/save", data={"clear_api_key": "1"}, follow_redirects=False)
    assert board.service.api_key == ""
    assert board.status == STATUS_MISSING_KEY


def test_settings_need_password_when_set(client, monkeypatch, board):
    monkeypatch.setattr(logic, "UI_PASS", "pw")

    assert 'name="pass"' in client.get("/ui/settings").text

    r = client.post("/ui/settings/save", data={"READWISE_API_KEY": "nope"}, follow_redirects=False)
    assert "Wrong password." in r.text
    assert board.service.api_key == "secret-token"

    r = client.post(
        "/ui/settings/save",
        data={"pass": "pw", "remember": "on", "READWISE_API_KEY": "allowed-token"},
        follow_redirects=False,
    )
    assert r.status_code == 303
    assert logic.COOKIE_NAME in r.headers["set-cookie"]
    assert board.service.api_key == "allowed-token"


def test_logout_clears_cookie(client):
    r = client.get("/ui/logout", follow_redirects=False)
    assert r.status_code == 303
    assert logic.COOKIE_NAME in r.headers["set-cookie"]


def test_settings_save_rejects_infinite_numbers(client):
    r = client.post(
        "/ui/settings/save",
        data={"QUOTE_REFRESH_SECONDS": "inf", "CARD_TEXT_SIZE": "1.0e999", "CARD_MARGIN": "9" * 400},
        follow_redirects=False,
    )
    assert r.status_code == 303
    assert logic.SETTINGS["QUOTE_REFRESH_SECONDS"] == 10
    assert logic.SETTINGS["CARD_TEXT_SIZE"] == 32
    assert logic.SETTINGS["CARD_MARGIN"] == 40

    assert client.get("/ui/settings").status_code == 200
    assert client.get("/api/quote.png").status_code == 200

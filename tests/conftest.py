import os

import pytest

os.environ["MONGO_URI"] = ""
os.environ["QUOTE_AUTO_REFRESH"] = "false"
os.environ.setdefault("API_KEY", "")
os.environ.setdefault("UI_PASS", "")
os.environ.setdefault("READWISE_API_KEY", "")

import logic  # noqa: E402
from quote_board import QuoteBoard  # noqa: E402
from tests.helpers import FakeReadwise, make_highlights  # noqa: E402


@pytest.fixture(autouse=True)
def isolated_settings():
    saved = dict(logic.SETTINGS)
    logic.SETTINGS.clear()
    yield
    logic.SETTINGS.clear()
    logic.SETTINGS.update(saved)


@pytest.fixture()
def fake():
    books = {
        100: {"title": "Book 0", "author": "Author 0"},
        101: {"title": "Book 1", "author": "Author 1"},
        102: {"title": "Book 2", "author": "Author 2"},
    }
    return FakeReadwise(make_highlights(45), books=books)


@pytest.fixture()
def service(fake):
    return fake.service()


@pytest.fixture()
def board(service):
    return QuoteBoard(service, interval_fn=lambda: 0.01, persist_key=False)

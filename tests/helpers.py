import random
import re
from typing import Callable, Optional

import httpx

from sources.readwise import ReadwiseService

BASE_URL = "https://readwise.test/api/v2"
BOOK_PATH = re.compile(r"/books/(\d+)/$")


def make_highlights(n: int) -> list[dict]:
    return [
        {
            "id": i,
            "text": f"Highlight number {i}",
            "title": f"Book {i % 3}",
            "author": f"Author {i % 3}",
            "book_id": 100 + (i % 3),
            "location": i * 10,
        }
        for i in range(n)
    ]


class FakeReadwise:
    """In-memory stand-in for the Readwise v2 API, served through httpx.MockTransport."""

    def __init__(self, highlights: Optional[list[dict]] = None, count: Optional[int] = None, books: Optional[dict] = None):
        self.highlights = list(highlights or [])
        self.count = len(self.highlights) if count is None else count
        self.books = dict(books or {})
        self.count_status = 200
        self.page_status = 200
        self.book_status = 200
        self.count_body: Optional[bytes] = None
        self.page_body: Optional[bytes] = None
        self.book_body: Optional[bytes] = None
        self.page_error: Optional[Exception] = None
        self.book_error: Optional[Exception] = None
        self.on_page: Optional[Callable[[httpx.Request], None]] = None
        self.requests: list[httpx.Request] = []

    # ---- request log ---------------------------------------------------- #
    @property
    def count_calls(self) -> list[httpx.Request]:
        return [r for r in self.requests if r.url.path.endswith("/highlights/") and "page" not in r.url.params]

    @property
    def page_calls(self) -> list[httpx.Request]:
        return [r for r in self.requests if r.url.path.endswith("/highlights/") and "page" in r.url.params]

    @property
    def book_calls(self) -> list[httpx.Request]:
        return [r for r in self.requests if BOOK_PATH.search(r.url.path)]

    # ---- responses ------------------------------------------------------ #
    def _raw(self, status: int, body: Optional[bytes], payload) -> httpx.Response:
        if body is not None:
            return httpx.Response(status, content=body)
        if status != 200:
            return httpx.Response(status, json={"detail": "nope"})
        return httpx.Response(200, json=payload)

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        params = request.url.params
        path = request.url.path

        if path.endswith("/highlights/"):
            page_size = int(params.get("page_size", "1000"))
            if "page" not in params:
                return self._raw(self.count_status, self.count_body,
                                 {"count": self.count, "next": None, "results": self.highlights[:page_size]})
            if self.on_page is not None:
                self.on_page(request)
            if self.page_error is not None:
                raise self.page_error
            page = int(params["page"])
            start = (page - 1) * page_size
            results = self.highlights[start:start + page_size]
            return self._raw(self.page_status, self.page_body,
                             {"count": self.count, "next": None, "previous": None, "results": results})

        m = BOOK_PATH.search(path)
        if m:
            if self.book_error is not None:
                raise self.book_error
            book = self.books.get(int(m.group(1)))
            if book is None and self.book_body is None and self.book_status == 200:
                return httpx.Response(404, json={"detail": "Not found."})
            return self._raw(self.book_status, self.book_body, book)

        return httpx.Response(404)

    def service(self, api_key: str = "secret-token", **kw) -> ReadwiseService:
        kw.setdefault("base_url", BASE_URL)
        kw.setdefault("rng", random.Random(7))
        kw.setdefault("log_fn", lambda *a: None)
        return ReadwiseService(api_key, transport=httpx.MockTransport(self.handler), **kw)

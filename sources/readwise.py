# sources/readwise.py
# Random highlight from a Readwise library (https://readwise.io/api/v2).
# Readwise has no "random" endpoint: we cache the library size, pick a random
# page, then a random highlight on that page.

import math
import os
import random
from typing import Callable, Optional

import httpx
from pydantic import BaseModel, ConfigDict

from sources.base import (
    CredentialMissing,
    DecodeError,
    ReadwiseError,
    auth_headers,
    clean_key,
    get_model,
)

BASE_URL = os.getenv("READWISE_BASE_URL", "https://readwise.io/api/v2").rstrip("/")
PAGE_SIZE = int(os.getenv("READWISE_PAGE_SIZE", "20"))
TIMEOUT = float(os.getenv("READWISE_TIMEOUT", "10"))

UNKNOWN_AUTHOR = "Unknown Author"
UNKNOWN_SOURCE = "Unknown Source"
EMPTY_LIBRARY_TEXT = "No highlights available in your library."
EMPTY_PAGE_TEXT = "Could not fetch a random highlight."


def _default_log(*args):
    print("[readwise]", *args, flush=True)


# ---- Wire models ---------------------------------------------------------- #

class HighlightItem(BaseModel):
    model_config = ConfigDict(frozen=True, extra="ignore")

    text: str
    title: Optional[str] = None
    author: Optional[str] = None
    book_id: Optional[int] = None


class HighlightPage(BaseModel):
    model_config = ConfigDict(frozen=True, extra="ignore")

    count: int
    results: list[HighlightItem]


class BookDetails(BaseModel):
    model_config = ConfigDict(frozen=True, extra="ignore")

    title: str
    author: str


class Quote(BaseModel):
    model_config = ConfigDict(frozen=True)

    text: str
    author: str
    source: str

    @property
    def is_placeholder(self) -> bool:
        return not self.author and not self.source


def total_pages(count: int, page_size: int = PAGE_SIZE) -> int:
    if page_size < 1:
        raise ValueError("page_size must be >= 1")
    return max(1, math.ceil(count / page_size))


# ---- Count cache ---------------------------------------------------------- #

class HighlightCountCache:
    """Library size for one API key, fetched at most once until reset."""

    def __init__(self, log_fn: Callable[..., None] | None = None):
        self._log = log_fn or _default_log
        self._count: Optional[int] = None
        self._key: Optional[str] = None

    @property
    def value(self) -> Optional[int]:
        return self._count

    def get(self, api_key: str) -> Optional[int]:
        if self._count is not None and self._key == clean_key(api_key):
            return self._count
        return None

    def reset(self) -> None:
        self._count = None
        self._key = None

    async def ensure(self, client: httpx.AsyncClient, api_key: str) -> int:
        key = clean_key(api_key)
        if not key:
            raise CredentialMissing()
        cached = self.get(key)
        if cached is not None:
            return cached

        self._log("fetching total highlights count")
        page = await get_model(
            client,
            "/highlights/",
            HighlightPage,
            what="highlights count",
            params={"page_size": 1},
        )
        if page.count < 0:
            raise DecodeError(f"negative highlights count: {page.count}")
        self._count, self._key = page.count, key
        self._log(f"total highlights count cached: {page.count}")
        return page.count


# ---- Sampler -------------------------------------------------------------- #

class ReadwiseService:
    """Picks one random highlight and turns it into a ``Quote``.

    The service owns the API key and the count cache. It never stores the
    quote it returns; publishing is up to the caller.
    """

    def __init__(
        self,
        api_key: str = "",
        *,
        base_url: str = BASE_URL,
        page_size: int = PAGE_SIZE,
        timeout: float = TIMEOUT,
        transport: httpx.AsyncBaseTransport | None = None,
        rng: random.Random | None = None,
        log_fn: Callable[..., None] | None = None,
    ):
        if page_size < 1:
            raise ValueError("page_size must be >= 1")
        self._api_key = clean_key(api_key)
        self.base_url = base_url.rstrip("/")
        self.page_size = page_size
        self.timeout = timeout
        self._transport = transport
        self._rng = rng or random.Random()
        self._log = log_fn or _default_log
        self.count_cache = HighlightCountCache(self._log)

    @property
    def api_key(self) -> str:
        return self._api_key

    @property
    def has_api_key(self) -> bool:
        return bool(self._api_key)

    def update_api_key(self, value: Optional[str]) -> bool:
        """Swap the API key. Returns False (and changes nothing) if it is the same."""
        key = clean_key(value)
        if key == self._api_key:
            return False
        self._api_key = key
        self.count_cache.reset()
        self._log("api key changed, count cache cleared" if key else "api key removed")
        return True

    def _client(self, api_key: str) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self.base_url,
            headers=auth_headers(api_key),
            timeout=self.timeout,
            transport=self._transport,
        )

    async def fetch_book_details(self, client: httpx.AsyncClient, book_id: int) -> Optional[BookDetails]:
        # Enrichment only: every failure here means "no details".
        try:
            return await get_model(client, f"/books/{book_id}/", BookDetails, what=f"book {book_id}")
        except ReadwiseError as e:
            self._log(f"no details for book {book_id}: {e}")
            return None

    async def fetch_random_quote(self) -> Quote:
        """Fetch one random highlight.

        Raises ``CredentialMissing``, ``CredentialInvalid``, ``TransportError``
        or ``DecodeError``. An empty library or an empty page is not an error:
        a placeholder quote with empty author and source is returned instead.
        """
        api_key = self._api_key
        if not api_key:
            raise CredentialMissing()

        async with self._client(api_key) as client:
            count = await self.count_cache.ensure(client, api_key)
            if count == 0:
                self._log("library is empty")
                return Quote(text=EMPTY_LIBRARY_TEXT, author="", source="")

            pages = total_pages(count, self.page_size)
            page_no = self._rng.randint(1, pages)
            self._log(f"fetching page {page_no}/{pages}")
            page = await get_model(
                client,
                "/highlights/",
                HighlightPage,
                what=f"highlights page {page_no}",
                params={"page": page_no, "page_size": self.page_size},
            )
            if not page.results:
                self._log(f"page {page_no} came back empty")
                return Quote(text=EMPTY_PAGE_TEXT, author="", source="")

            item = self._rng.choice(page.results)
            author, title = item.author, item.title
            if (author is None or title is None) and item.book_id is not None:
                book = await self.fetch_book_details(client, item.book_id)
                if book is not None:
                    author = author if author is not None else book.author
                    title = title if title is not None else book.title

        return Quote(
            text=item.text,
            author=author if author is not None else UNKNOWN_AUTHOR,
            source=title if title is not None else UNKNOWN_SOURCE,
        )

# quote_board.py
# Holds the quote currently on screen and refreshes it in the background.
# The Readwise service only returns quotes; what gets shown is decided here.

import asyncio
from typing import Callable, Optional

from pydantic import BaseModel

from logic import BACKGROUND_COLORS, log, now_str, refresh_seconds, set_setting
from sources.base import CredentialInvalid, CredentialMissing, ReadwiseError, clean_key
from sources.readwise import Quote, ReadwiseService

STATUS_IDLE = "idle"
STATUS_OK = "ok"
STATUS_EMPTY = "empty"
STATUS_MISSING_KEY = "missing_key"
STATUS_INVALID_KEY = "invalid_key"
STATUS_UNAVAILABLE = "unavailable"

MESSAGES = {
    STATUS_IDLE: "Loading quote...",
    STATUS_OK: "",
    STATUS_EMPTY: "",
    STATUS_MISSING_KEY: "Readwise API key required. Add it under Settings.",
    STATUS_INVALID_KEY: "Readwise did not accept the API key. Check it under Settings.",
    STATUS_UNAVAILABLE: "Could not load a quote from Readwise right now. Trying again soon.",
}


def classify_error(exc: ReadwiseError) -> str:
    # TransportError, DecodeError and anything else: try again later
    if isinstance(exc, CredentialMissing):
        return STATUS_MISSING_KEY
    if isinstance(exc, CredentialInvalid):
        return STATUS_INVALID_KEY
    return STATUS_UNAVAILABLE


class BoardState(BaseModel):
    quote: Optional[Quote] = None
    status: str = STATUS_IDLE
    message: str = MESSAGES[STATUS_IDLE]
    color_index: int = 0
    updated_at: Optional[str] = None
    has_api_key: bool = False


class QuoteBoard:
    """
    Last known quote plus the status of the last refresh.
    Refreshes are serialized; a result fetched under an API key that has
    since been replaced is dropped.
    """

    def __init__(
        self,
        service: ReadwiseService,
        *,
        interval_fn: Callable[[], float] = refresh_seconds,
        persist_key: bool = True,
        key_fn: Optional[Callable[[], str]] = None,
    ):
        self.service = service
        self.quote: Optional[Quote] = None
        self.status = STATUS_IDLE if service.has_api_key else STATUS_MISSING_KEY
        self.color_index = 0
        self.updated_at: Optional[str] = None
        self._interval_fn = interval_fn
        self._persist_key = persist_key
        self._key_fn = key_fn
        self._lock = asyncio.Lock()
        self._task: Optional[asyncio.Task] = None

    # ---- State ----------------------------------------------------------- #
    def state(self) -> BoardState:
        return BoardState(
            quote=self.quote,
            status=self.status,
            message=MESSAGES.get(self.status, ""),
            color_index=self.color_index,
            updated_at=self.updated_at,
            has_api_key=self.service.has_api_key,
        )

    def background_rgb(self) -> tuple[int, int, int]:
        return BACKGROUND_COLORS[self.color_index % len(BACKGROUND_COLORS)]

    # ---- Actions --------------------------------------------------------- #
    async def refresh(self, advance_color: bool = True) -> BoardState:
        async with self._lock:
            key = self.service.api_key
            quote: Optional[Quote] = None
            try:
                quote = await self.service.fetch_random_quote()
                status = STATUS_EMPTY if quote.is_placeholder else STATUS_OK
            except ReadwiseError as e:
                status = classify_error(e)
                log(f"quote refresh failed ({status}):", e)

            if self.service.api_key != key:
                log("api key changed during refresh, result dropped")
                return self.state()

            self.status = status
            if quote is not None:
                self.quote = quote
                self.updated_at = now_str()
                if advance_color:
                    self.color_index = (self.color_index + 1) % len(BACKGROUND_COLORS)
            return self.state()

    def set_api_key(self, value: Optional[str], persist: bool = True) -> bool:
        changed = self.service.update_api_key(value)
        if not changed:
            return False
        self.quote = None
        self.updated_at = None
        self.status = STATUS_IDLE if self.service.has_api_key else STATUS_MISSING_KEY
        if persist and self._persist_key:
            set_setting("READWISE_API_KEY", self.service.api_key)
        return True

    def sync_api_key(self) -> bool:
        """Apply a key changed in the settings store (e.g. by another instance)."""
        if self._key_fn is None:
            return False
        stored = clean_key(self._key_fn())
        if stored == self.service.api_key:
            return False
        log("🔑 Readwise API key changed in settings, switching.")
        return self.set_api_key(stored, persist=False)

    # ---- Background refresher -------------------------------------------- #
    async def _loop(self):
        first = True
        while True:
            try:
                self.sync_api_key()
                await self.refresh(advance_color=not first)
            except Exception as e:
                log("refresher error:", repr(e))
            first = False
            await asyncio.sleep(max(0.0, float(self._interval_fn())))

    def start_refresher(self) -> None:
        """Call from a running event loop (app startup)."""
        if self._task is not None and not self._task.done():
            return
        self._task = asyncio.create_task(self._loop(), name="quote-refresher")
        log("✅ Quote refresher started.")

    async def stop_refresher(self) -> None:
        task, self._task = self._task, None
        if task is None:
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        log("🛑 Quote refresher stopped.")

    @property
    def refresher_running(self) -> bool:
        return self._task is not None and not self._task.done()

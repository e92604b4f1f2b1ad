# main.py
import math
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import APIRouter, FastAPI, Form, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import HTMLResponse, PlainTextResponse, RedirectResponse

# --- Local Modules ---
import logic
from logic import (
    log, SETTINGS, SET_KEYS, COOKIE_NAME, QUOTE_AUTO_REFRESH,
    _save_settings, clamp_refresh_seconds, readwise_api_key, refresh_seconds,
    require_ui_auth, ui_auth_state, issue_cookie,
)
from quote_board import QuoteBoard
from routes_quote import router as quote_router
from sources.readwise import ReadwiseService
from ui_html import html_page, quote_stage_html, refresh_meta, settings_html_form

NO_CACHE = {
    "Cache-Control": "no-store, no-cache, must-revalidate",
    "Pragma": "no-cache",
    "Expires": "0",
}

ui = APIRouter()

# --- Routes: Health / Root ----------------------------------------------------
@ui.get("/_health", response_class=PlainTextResponse)
def health():
    return "OK"

@ui.get("/")
def ok(request: Request):
    board: QuoteBoard = request.app.state.board
    return {"ok": True, "status": board.status, "refresher": board.refresher_running}

# --- Routes: Quote screen -----------------------------------------------------
@ui.get("/ui", response_class=HTMLResponse)
def ui_quote(request: Request):
    board: QuoteBoard = request.app.state.board
    content = quote_stage_html(board.state(), board.background_rgb())
    page = html_page(
        "Readwise Display",
        content,
        head=refresh_meta(refresh_seconds()),
        show_logout=require_ui_auth(request) and _ui_pass_set(),
        wrap=False,
    )
    page.headers.update(NO_CACHE)
    return page

@ui.post("/ui/refresh")
async def ui_refresh(request: Request):
    await request.app.state.board.refresh()
    return RedirectResponse("/ui", status_code=303)

@ui.get("/ui/logout")
def ui_logout():
    r = RedirectResponse("/ui", status_code=303)
    r.delete_cookie(COOKIE_NAME, path="/")
    return r

# --- Routes: Settings ---------------------------------------------------------
def _ui_pass_set() -> bool:
    return bool(logic.UI_PASS)

@ui.get("/ui/settings", response_class=HTMLResponse)
def ui_settings(request: Request):
    board: QuoteBoard = request.app.state.board
    authed = require_ui_auth(request)
    content = "<h3 class='title'>Settings</h3>" + settings_html_form(
        board.service.has_api_key, auth_required=not authed
    )
    page = html_page("Settings", content, show_logout=authed and _ui_pass_set())
    page.headers.update(NO_CACHE)
    return page

@ui.post("/ui/settings/save", response_class=HTMLResponse)
async def ui_settings_save(
    request: Request,
    pass_: Optional[str] = Form(None, alias="pass"),
    remember: bool = Form(False),
):
    authed, set_cookie = ui_auth_state(request, pass_, remember)
    if not authed:
        return html_page("Settings", "<div class='card'>Wrong password.</div>")

    form = await request.form()
    for key, default, typ, _ in SET_KEYS:
        val = form.get(key)
        if val is None or str(val).strip() == "":
            SETTINGS[key] = default
        elif key == "QUOTE_REFRESH_SECONDS":
            SETTINGS[key] = clamp_refresh_seconds(val)
        elif typ == "number":
            try:
                num = int(val) if "." not in val else float(val)
                if not math.isfinite(num):
                    num = default
            except (ValueError, OverflowError):
                num = default
            SETTINGS[key] = num
        else:
            SETTINGS[key] = str(val)
    _save_settings(dict(SETTINGS))

    board: QuoteBoard = request.app.state.board
    if form.get("clear_api_key"):
        changed = board.set_api_key("")
    else:
        new_key = str(form.get("READWISE_API_KEY") or "").strip()
        changed = board.set_api_key(new_key) if new_key else False
    if changed and board.service.has_api_key:
        log("🔑 Readwise API key updated, loading a fresh quote.")
        await board.refresh(advance_color=False)

    resp = RedirectResponse("/ui/settings", status_code=303)
    if set_cookie:
        issue_cookie(resp)
    return resp

# --- App ----------------------------------------------------------------------
def build_board() -> QuoteBoard:
    return QuoteBoard(ReadwiseService(readwise_api_key()), key_fn=readwise_api_key)

def create_app(board: Optional[QuoteBoard] = None, auto_refresh: bool = QUOTE_AUTO_REFRESH) -> FastAPI:
    @asynccontextmanager
    async def lifespan(app: FastAPI):
        log("🧩 Starte Readwise-Display …")
        if auto_refresh:
            app.state.board.start_refresher()
        yield
        await app.state.board.stop_refresher()
        log("👋 App shutdown.")

    app = FastAPI(title="Readwise Display", lifespan=lifespan)
    app.state.board = board or build_board()
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.include_router(quote_router)
    app.include_router(ui)
    return app

app = create_app()

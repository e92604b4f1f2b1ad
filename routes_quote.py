# routes_quote.py
from typing import Optional

from fastapi import APIRouter, Request
from fastapi.responses import Response
from pydantic import BaseModel

from logic import (
    check_api_key,
    render_quote_card,
    image_to_png_bytes,
    log,
    DISPLAY_WIDTH_PX,
    DISPLAY_HEIGHT_PX,
)
from quote_board import BoardState, QuoteBoard

router = APIRouter()


class CredentialPayload(BaseModel):
    api_key: str = ""


class CredentialResult(BaseModel):
    changed: bool
    state: BoardState


def _board(request: Request) -> QuoteBoard:
    return request.app.state.board


def render_state_png(board: QuoteBoard, width: int, height: int) -> bytes:
    st = board.state()
    if st.quote is not None:
        img = render_quote_card(st.quote.text, st.quote.author, st.quote.source,
                                color_index=st.color_index, width_px=width, height_px=height)
    else:
        img = render_quote_card(st.message or "Loading quote...", color_index=st.color_index,
                                width_px=width, height_px=height)
    return image_to_png_bytes(img)


@router.get("/api/quote", response_model=BoardState)
async def get_quote(request: Request):
    return _board(request).state()


@router.post("/api/quote/refresh", response_model=BoardState)
async def refresh_quote(request: Request):
    check_api_key(request)
    return await _board(request).refresh()


@router.get("/api/quote.png")
async def quote_png(request: Request, width: Optional[int] = None, height: Optional[int] = None):
    w = min(max(int(width or DISPLAY_WIDTH_PX), 64), 4096)
    h = min(max(int(height or DISPLAY_HEIGHT_PX), 64), 4096)
    png = render_state_png(_board(request), w, h)
    return Response(content=png, media_type="image/png", headers={"Cache-Control": "no-store"})


@router.post("/api/credential", response_model=CredentialResult)
async def update_credential(p: CredentialPayload, request: Request):
    check_api_key(request)
    board = _board(request)
    changed = board.set_api_key(p.api_key)
    if changed and board.service.has_api_key:
        log("🔑 Readwise API key updated via API, loading a fresh quote.")
        state = await board.refresh(advance_color=False)
    else:
        state = board.state()
    return CredentialResult(changed=changed, state=state)

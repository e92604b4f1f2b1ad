# logic.py — settings, auth and quote-card rendering for the display

import os, io, sys, time, hmac, hashlib
from datetime import datetime, timedelta
from zoneinfo import ZoneInfo
from typing import List, Optional

from PIL import Image, ImageDraw, ImageFont
from fastapi import HTTPException, Request, Response
from pymongo import MongoClient

# ----------------- Konfiguration -----------------

APP_API_KEY = os.getenv("API_KEY", "")

UI_PASS = os.getenv("UI_PASS", "")
COOKIE_NAME = "ui_token"
UI_REMEMBER_DAYS = int(os.getenv("UI_REMEMBER_DAYS", "30"))
COOKIE_SECRET = os.getenv("COOKIE_SECRET", "") or APP_API_KEY or UI_PASS or "change_me"

TZ = ZoneInfo(os.getenv("TIMEZONE", "Europe/Zurich"))
DISPLAY_WIDTH_PX = int(os.getenv("DISPLAY_WIDTH_PX", "800"))
DISPLAY_HEIGHT_PX = int(os.getenv("DISPLAY_HEIGHT_PX", "480"))

QUOTE_AUTO_REFRESH = os.getenv("QUOTE_AUTO_REFRESH", "true").lower() in ("1","true","yes","on")
REFRESH_MIN_S, REFRESH_MAX_S, REFRESH_STEP_S = 5, 300, 5

MONGO_URI = os.getenv("MONGO_URI", "")

# Hintergrundfarben der Anzeige (dunkel, weisser Text)
BACKGROUND_COLORS = [
    (26, 26, 51),
    (38, 26, 38),
    (26, 38, 51),
    (31, 31, 46),
]

def log(*a):
    print("[display]", *a, file=sys.stdout, flush=True)

# ----------------- Zeit/Format -----------------

def now_str(fmt: str = "%d.%m.%Y %H:%M") -> str:
    return datetime.now(TZ).strftime(fmt)

# ----------------- Settings -----------------

_mongo_client = None

def _get_settings_collection():
    global _mongo_client
    if not MONGO_URI:
        return None
    try:
        if _mongo_client is None:
            log("🔍 Verbinde mit MongoDB …")
            _mongo_client = MongoClient(MONGO_URI, serverSelectionTimeoutMS=3000)
        db = _mongo_client.get_database("display")
        return db["settings"]
    except Exception as e:
        log("❌ MongoDB settings connection error:", repr(e))
        return None

def _load_settings() -> dict:
    try:
        coll = _get_settings_collection()
        if coll is None:
            return {}
        doc = coll.find_one({"_id": "settings"})
        return doc["data"] if doc and "data" in doc else {}
    except Exception as e:
        log("❌ settings laden fehlgeschlagen:", repr(e))
        return {}

def _save_settings(data: dict):
    try:
        coll = _get_settings_collection()
        if coll is None:
            log("⚠️ MongoDB nicht konfiguriert, settings nur im Speicher.")
            return
        coll.update_one({"_id": "settings"}, {"$set": {"data": data}}, upsert=True)
        log("✅ settings in MongoDB gespeichert:", sorted(data))
    except Exception as e:
        log("❌ settings speichern fehlgeschlagen:", repr(e))

_last_reload = 0.0
_reload_interval = 3  # Sekunden

def _reload_settings_if_changed():
    global _last_reload
    if not MONGO_URI:
        return
    now = time.time()
    if now - _last_reload < _reload_interval:
        return
    _last_reload = now
    new_data = _load_settings()
    if new_data and new_data != SETTINGS:
        SETTINGS.clear()
        SETTINGS.update(new_data)
        log("♻️ Settings neu geladen:", sorted(SETTINGS))

SETTINGS: dict = _load_settings()

def cfg_get(name: str, default=None):
    _reload_settings_if_changed()
    if name in SETTINGS:
        return SETTINGS[name]
    return default

def cfg_get_int(name: str, default: int) -> int:
    try:
        return int(cfg_get(name, default))
    except (TypeError, ValueError, OverflowError):
        return default

def cfg_get_bool(name: str, default: bool) -> bool:
    v = str(cfg_get(name, default)).lower()
    return v in ("1","true","yes","on","y","t")

def set_setting(name: str, value) -> None:
    SETTINGS[name] = value
    _save_settings(dict(SETTINGS))

def readwise_api_key() -> str:
    return str(cfg_get("READWISE_API_KEY", os.getenv("READWISE_API_KEY", "")) or "").strip()

def clamp_refresh_seconds(value) -> int:
    try:
        secs = int(float(value))
    except (TypeError, ValueError, OverflowError):
        secs = 10
    secs = max(REFRESH_MIN_S, min(REFRESH_MAX_S, secs))
    return secs - (secs % REFRESH_STEP_S)

def refresh_seconds() -> int:
    return clamp_refresh_seconds(cfg_get("QUOTE_REFRESH_SECONDS", os.getenv("QUOTE_REFRESH_SECONDS", "10")))

# ----------------- Fonts & Text Helpers -----------------

def _safe_font(path_or_name: str, size: int) -> ImageFont.ImageFont:
    try:
        return ImageFont.truetype(path_or_name, size=size)
    except OSError:
        pass
    for cand in (
        "DejaVuSans.ttf",
        "/usr/share/fonts/truetype/dejavu/DejaVuSans.ttf",
        "Arial.ttf",
    ):
        try:
            return ImageFont.truetype(cand, size=size)
        except OSError:
            continue
    # Letzter Ausweg (Pillow >= 10.1 kann skalieren)
    try:
        return ImageFont.load_default(size=size)
    except TypeError:
        return ImageFont.load_default()

def _text_length(text: str, font: ImageFont.ImageFont) -> int:
    try:
        return int(font.getlength(text))
    except AttributeError:
        bbox = font.getbbox(text)
        return bbox[2] - bbox[0]

def _wrap(text: str, font: ImageFont.ImageFont, max_px: int) -> List[str]:
    words = (text or "").split()
    if not words:
        return [""]
    lines: List[str] = []
    cur = words[0]
    for w in words[1:]:
        t = f"{cur} {w}"
        if _text_length(t, font) <= max_px:
            cur = t
        else:
            lines.append(cur)
            cur = w
    lines.append(cur)
    return lines

def _line_height(font: ImageFont.ImageFont, mult: float = 1.2) -> int:
    try:
        ascent, descent = font.getmetrics()
    except AttributeError:
        bbox = font.getbbox("Ag")
        ascent, descent = bbox[3], 0
    return max(1, int((ascent + descent) * mult))

def _x_for_align(text: str, font: ImageFont.ImageFont, width: int, align: str, margin: int) -> int:
    tl = _text_length(text, font)
    if align == "center":
        return margin + max(0, (width - 2 * margin - tl) // 2)
    if align == "right":
        return width - margin - tl
    return margin

# ----------------- Card Config -----------------

class CardCfg:
    def __init__(self):
        self.text_size = max(6, cfg_get_int("CARD_TEXT_SIZE", 32))
        self.min_text_size = max(6, min(self.text_size, cfg_get_int("CARD_MIN_TEXT_SIZE", 14)))
        self.author_size = max(6, cfg_get_int("CARD_AUTHOR_SIZE", 20))
        self.source_size = max(6, cfg_get_int("CARD_SOURCE_SIZE", 16))
        self.margin = max(0, cfg_get_int("CARD_MARGIN", 40))
        self.align = str(cfg_get("CARD_ALIGN_TEXT", "center")).lower()
        self.font_name = cfg_get("CARD_FONT", "DejaVuSans.ttf")
        self.gap = 24

# ----------------- Render -----------------

def _fit_quote(text: str, cfg: CardCfg, max_w: int, max_h: int) -> tuple[ImageFont.ImageFont, List[str]]:
    # Schrift verkleinern bis der Text passt
    size = cfg.text_size
    while True:
        font = _safe_font(cfg.font_name, size)
        lines = _wrap(text, font, max_w)
        if _line_height(font) * len(lines) <= max_h or size <= cfg.min_text_size:
            return font, lines
        size = max(cfg.min_text_size, size - 2)

def render_quote_card(
    text: str,
    author: str = "",
    source: str = "",
    color_index: int = 0,
    width_px: int = DISPLAY_WIDTH_PX,
    height_px: int = DISPLAY_HEIGHT_PX,
    cfg: Optional[CardCfg] = None,
) -> Image.Image:
    cfg = cfg or CardCfg()
    bg = BACKGROUND_COLORS[color_index % len(BACKGROUND_COLORS)]
    img = Image.new("RGB", (width_px, height_px), color=bg)
    draw = ImageDraw.Draw(img)

    max_w = max(1, width_px - 2 * cfg.margin)
    font_author = _safe_font(cfg.font_name, cfg.author_size)
    font_source = _safe_font(cfg.font_name, cfg.source_size)
    footer: list[tuple[str, ImageFont.ImageFont, tuple]] = []
    if author:
        footer.append((f"— {author}", font_author, (255, 255, 255)))
    if source:
        footer.append((source, font_source, (204, 204, 204)))
    footer_h = sum(_line_height(f) for _, f, _ in footer) + (cfg.gap if footer else 0)

    font_text, lines = _fit_quote(text, cfg, max_w, height_px - 2 * cfg.margin - footer_h)
    lh_text = _line_height(font_text)
    block_h = lh_text * len(lines) + footer_h
    y = max(cfg.margin, (height_px - block_h) // 2)

    for ln in lines:
        draw.text((_x_for_align(ln, font_text, width_px, cfg.align, cfg.margin), y), ln, fill=(255, 255, 255), font=font_text)
        y += lh_text
    if footer:
        y += cfg.gap
    for ln, font, fill in footer:
        draw.text((_x_for_align(ln, font, width_px, "center", cfg.margin), y), ln, fill=fill, font=font)
        y += _line_height(font)
    return img

def image_to_png_bytes(img: Image.Image) -> bytes:
    buf = io.BytesIO()
    img.save(buf, format="PNG", optimize=True)
    return buf.getvalue()

# ----------------- Security -----------------

def check_api_key(req: Request):
    if not APP_API_KEY:
        return
    key = req.headers.get("x-api-key") or req.query_params.get("key")
    if key != APP_API_KEY:
        raise HTTPException(401, "invalid api key")

def sign_token(ts: str) -> str:
    sig = hmac.new(COOKIE_SECRET.encode(), ts.encode(), hashlib.sha256).hexdigest()[:32]
    return f"{ts}.{sig}"

def verify_token(token: str) -> bool:
    try:
        ts, _sig = token.split(".")
        if not hmac.compare_digest(sign_token(ts), token):
            return False
        created = datetime.fromtimestamp(int(ts), tz=TZ)
        return (datetime.now(TZ) - created) < timedelta(days=UI_REMEMBER_DAYS)
    except (ValueError, OverflowError, OSError):
        return False

def require_ui_auth(request: Request) -> bool:
    if not UI_PASS:
        return True
    if APP_API_KEY and (request.headers.get("x-api-key") or request.query_params.get("key")) == APP_API_KEY:
        return True
    tok = request.cookies.get(COOKIE_NAME)
    return bool(tok and verify_token(tok))

def issue_cookie(resp: Response):
    token = sign_token(str(int(time.time())))
    resp.set_cookie(
        key=COOKIE_NAME,
        value=token,
        max_age=UI_REMEMBER_DAYS * 24 * 3600,
        httponly=True,
        secure=True,
        samesite="lax",
        path="/"
    )

def ui_auth_state(request: Request, pass_: Optional[str], remember: bool) -> tuple[bool, bool]:
    if require_ui_auth(request):
        return True, False
    if pass_ is not None and pass_ == UI_PASS:
        return True, bool(remember)
    return False, False

# ----------------- Settings Export -----------------

SET_KEYS = [
    ("QUOTE_REFRESH_SECONDS", 10, "number", None),
    ("CARD_TEXT_SIZE", 32, "number", None),
    ("CARD_MIN_TEXT_SIZE", 14, "number", None),
    ("CARD_AUTHOR_SIZE", 20, "number", None),
    ("CARD_SOURCE_SIZE", 16, "number", None),
    ("CARD_MARGIN", 40, "number", None),
    ("CARD_ALIGN_TEXT", "center", "select", ["left", "center", "right"]),
]

def settings_effective() -> dict:
    eff = {}
    for key, default, _, _ in SET_KEYS:
        eff[key] = cfg_get(key, default)
    eff["QUOTE_REFRESH_SECONDS"] = refresh_seconds()
    return eff

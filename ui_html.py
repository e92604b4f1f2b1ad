from html import escape

from fastapi.responses import HTMLResponse

from logic import REFRESH_MAX_S, REFRESH_MIN_S, REFRESH_STEP_S, SET_KEYS, settings_effective

HTML_BASE = r"""
<!doctype html>
<html lang="en">
<meta charset="utf-8">
<meta name="viewport" content="width=device-width, initial-scale=1, viewport-fit=cover">
{head}
<title>{title}</title>
<style>
  :root{
    --bg:#0b0f14; --card:#121821; --muted:#98a2b3; --text:#e6edf3; --line:#1e2a38;
    --accent:#3b82f6; --accent-2:#8b5cf6; --warn:#f59e0b; --ok:#22c55e; --radius:18px;
    --shadow:0 6px 26px rgba(0,0,0,.35);
  }
  *{box-sizing:border-box; -webkit-tap-highlight-color:transparent}
  html,body{height:100%}
  body{
    margin:0; font-family: ui-sans-serif, system-ui, -apple-system, Segoe UI, Roboto, Helvetica, Arial;
    color:var(--text); line-height:1.4; background:var(--bg);
    min-height:100vh; display:flex; flex-direction:column;
  }
  .wrap{max-width:920px; margin:0 auto; padding:clamp(16px,3vw,28px); flex:1; width:100%}
  header.top{border-bottom:1px solid var(--line); z-index:10}
  .top-inner{display:flex; align-items:center; gap:14px; padding:12px clamp(12px,3vw,24px)}
  .title{font-weight:700; font-size:1.1rem; letter-spacing:.2px}
  .spacer{flex:1}
  .link{color:var(--muted); text-decoration:none; font-size:.95rem; margin-left:16px}
  .link:hover{color:var(--text); text-decoration:underline}
  .card{border:1px solid var(--line); background:var(--card);
        border-radius:var(--radius); box-shadow:var(--shadow);
        padding:clamp(16px,2.8vw,22px); margin:14px 0 22px; width:100%}
  .grid{display:grid; grid-template-columns:1fr 1fr; gap:16px}
  @media (max-width:760px){ .grid{grid-template-columns:1fr} }
  .row{display:flex; flex-wrap:wrap; align-items:center; gap:12px}
  label{font-weight:600; color:var(--muted); display:block; margin:10px 0 6px}
  input[type=text], input[type=password], input[type=number], select{
    width:100%; border:1px solid var(--line); background:transparent; color:var(--text);
    padding:12px 14px; border-radius:12px; outline:none
  }
  button{
    appearance:none; border:none; cursor:pointer; font-weight:700;
    padding:13px 22px; border-radius:12px;
    background:linear-gradient(135deg, var(--accent), var(--accent-2)); color:#fff;
  }
  button.secondary{background:transparent; color:var(--text); border:1px solid var(--line)}
  .hint{font-size:.85rem; font-weight:600}
  .hint.warn{color:var(--warn)} .hint.ok{color:var(--ok)}
  .form-actions{display:flex; justify-content:flex-end; margin-top:18px}

  /* Quote screen */
  .stage{flex:1; display:flex; flex-direction:column; align-items:center; justify-content:center;
         gap:40px; padding:40px 24px; text-align:center; color:#fff; cursor:pointer}
  .stage blockquote{margin:0; font-size:clamp(20px,4vw,32px); font-weight:300; max-width:900px}
  .stage .author{font-size:20px; font-weight:500}
  .stage .source{font-size:16px; font-style:italic; opacity:.8}
  .stage .muted{opacity:.7}
  .stage form{margin:0}
</style>
<body>
  <header class="top">
    <div class="top-inner wrap">
      <div class="title">Readwise Display</div>
      <div class="spacer"></div>
      <nav class="nav">
        <a class="link" href="/ui">Quote</a>
        <a class="link" href="/ui/settings">Settings</a>
        {logout}
      </nav>
    </div>
  </header>
  {content}
</body>
</html>
"""

def html_page(title: str, content: str, *, head: str = "", show_logout: bool = False, wrap: bool = True) -> HTMLResponse:
    logout = '<a class="link" href="/ui/logout" title="Logout">Logout</a>' if show_logout else ""
    body = f'<main class="wrap">{content}</main>' if wrap else content
    return HTMLResponse(
        HTML_BASE.replace("{head}", head)
        .replace("{title}", escape(title))
        .replace("{logout}", logout)
        .replace("{content}", body)
    )

def _rgb_css(rgb: tuple[int, int, int]) -> str:
    return "rgb({}, {}, {})".format(*rgb)

def quote_stage_html(state, background: tuple[int, int, int]) -> str:
    """Full-screen quote. Clicking anywhere loads the next one."""
    q = state.quote
    if q is not None:
        parts = [f"<blockquote>{escape(q.text)}</blockquote>"]
        meta = []
        if q.author:
            meta.append(f'<div class="author">— {escape(q.author)}</div>')
        if q.source:
            meta.append(f'<div class="source">{escape(q.source)}</div>')
        if meta:
            parts.append("<div>" + "".join(meta) + "</div>")
        if state.message and state.status != "ok":
            parts.append(f'<div class="muted">{escape(state.message)}</div>')
    else:
        parts = [f'<div class="muted">{escape(state.message or "Loading quote...")}</div>']

    return f"""
    <form class="stage" method="post" action="/ui/refresh" style="background:{_rgb_css(background)}"
          onclick="this.submit()">
      {''.join(parts)}
      <noscript><button type="submit" class="secondary">Next</button></noscript>
    </form>
    """

def refresh_meta(seconds: int) -> str:
    return f'<meta http-equiv="refresh" content="{int(seconds)}">'

def settings_html_form(has_api_key: bool, auth_required: bool = False) -> str:
    eff = settings_effective()
    rows = []
    for key, default, typ, opts in SET_KEYS:
        val = eff.get(key, default)
        label = key.replace("CARD_", "Card ").replace("QUOTE_", "").replace("_", " ").title()
        if key == "QUOTE_REFRESH_SECONDS":
            field = (
                f'<input type="number" name="{key}" value="{val}" '
                f'min="{REFRESH_MIN_S}" max="{REFRESH_MAX_S}" step="{REFRESH_STEP_S}">'
            )
        elif typ == "select":
            options = "".join([f'<option value="{o}"{" selected" if str(val)==str(o) else ""}>{o}</option>' for o in opts])
            field = f'<select name="{key}">{options}</select>'
        else:
            field = f'<input type="number" step="any" name="{key}" value="{escape(str(val))}">'
        rows.append(f"<div><label>{label}</label>{field}</div>")

    if has_api_key:
        hint = '<span class="hint ok">✓ API key configured</span>'
    else:
        hint = '<span class="hint warn">⚠ API key required</span>'

    auth = ""
    if auth_required:
        auth = """
        <div class="row" style="margin-top:14px; gap:10px">
          <label for="pass">UI password</label>
          <input id="pass" type="password" name="pass" style="max-width:220px">
          <label><input type="checkbox" name="remember"> Stay signed in</label>
        </div>
        """

    return f"""
    <section class="card">
      <form method="post" action="/ui/settings/save">
        <label for="api_key">Readwise API key</label>
        <div class="row" style="flex-wrap:nowrap">
          <input id="api_key" type="password" name="READWISE_API_KEY" value=""
                 placeholder="leave empty to keep the current key" autocomplete="off">
          <button type="button" class="secondary" onclick="
            const f=document.getElementById('api_key');
            f.type = f.type==='password' ? 'text' : 'password';
            this.textContent = f.type==='password' ? 'Show' : 'Hide';">Show</button>
        </div>
        <div class="row" style="margin-top:6px">
          {hint}
          <label style="margin:0"><input type="checkbox" name="clear_api_key" value="1"> Remove key</label>
        </div>
        <p class="hint" style="color:var(--muted)">Get your key at readwise.io/access_token</p>
        <div class="grid">
          {''.join(rows)}
        </div>
        {auth}
        <div class="form-actions">
          <button type="submit">Save</button>
        </div>
      </form>
    </section>
    """

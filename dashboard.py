# dashboard.py
import html

from fastapi import FastAPI, Request
from fastapi.responses import HTMLResponse, JSONResponse, PlainTextResponse

from models import log_event
from plot import GIB, STATE_LABELS

# ---------- Shared UI ----------
BASE_STYLE = """
  body { font-family: Arial, sans-serif; margin: 0; background: #f9f9f9; color: #333; }
  h1 { background: #2e7d32; color: white; padding: 15px; margin: 0; }
  h2 { margin-top: 30px; color: #2e7d32; }
  .container { padding: 20px; }
  .navbar { background: #1b5e20; padding: 10px 20px; display: flex; gap: 20px; }
  .navbar a { color: white; text-decoration: none; font-weight: bold; }
  .navbar a:hover { text-decoration: underline; }
  table { border-collapse: collapse; width: 100%; margin-top: 10px; background: white; }
  th, td { border: 1px solid #ddd; padding: 8px; text-align: left; }
  th { background-color: #2e7d32; color: white; }
  tr:nth-child(even) { background-color: #f2f2f2; }
  a { color: #1b5e20; }
  .cards { display: grid; grid-template-columns: repeat(auto-fit,minmax(220px,1fr)); gap: 16px; margin-top: 20px; }
  .card { background: white; border: 1px solid #ddd; border-radius: 6px; padding: 12px; }
  .muted { color: #555; }
"""


def page(title: str, body_html: str) -> str:
    return f"""
    <html>
    <head>
      <title>{title}</title>
      <style>{BASE_STYLE}</style>
    </head>
    <body>
      <h1>{title}</h1>
      <div class="navbar">
        <a href="/">Plots</a>
        <a href="/status">JSON status</a>
      </div>
      <div class="container">
        {body_html}
      </div>
    </body>
    </html>
    """


def plot_rows(records) -> str:
    rows = """
      <table>
        <tr><th>ID</th><th>Plot ID</th><th>State</th><th>Phase</th><th>Started</th><th>Duration</th><th>Tmp Dir</th><th>Dst Dir</th></tr>
    """
    for r in records:
        rows += (f"<tr><td><a href='/plot/{r['id']}'>{r['id']}</a></td><td>{html.escape(r['plot_id'] or '-')}</td>"
                 f"<td>{STATE_LABELS.get(r['state'], r['state'])}</td><td>{html.escape(r['phase'])}</td>"
                 f"<td>{r['start_time'][:19]}</td><td>{r['duration_seconds']:.0f}s</td>"
                 f"<td>{html.escape(r['scratch_dir'])}</td><td>{html.escape(r['dest_dir'])}</td></tr>")
    return rows + "</table>"


def space_cards(dirs) -> str:
    cards = "".join(f"<div class='card'><b>{html.escape(d)}</b><p>{free / GIB:.1f} GiB free</p></div>"
                    for d, free in sorted(dirs.items()))
    return f"<div class='cards'>{cards}</div>" if cards else "<p class='muted'>No directories configured.</p>"


def create_app(scheduler) -> FastAPI:
    app = FastAPI(title="plotctl")

    @app.middleware("http")
    async def log_query(request: Request, call_next):
        log_event(f"New query: {request.url.path}")
        return await call_next(request)

    # ---------- Status (wire contract) ----------
    @app.get("/status")
    def status():
        try:
            body = scheduler.snapshot().to_dict()
        except Exception as e:
            log_event(f"Failed to encode status: {e}")
            return JSONResponse({"error": str(e)}, status_code=500)
        return JSONResponse(body)

    # ---------- Home ----------
    @app.get("/", response_class=HTMLResponse)
    def home():
        snap = scheduler.snapshot().to_dict()
        body = f"<h2>Active plots ({len(snap['actives'])})</h2>"
        body += plot_rows(snap["actives"]) if snap["actives"] else "<p class='muted'>No active plots.</p>"
        body += f"<h2>Archived plots ({len(snap['archived'])})</h2>"
        body += plot_rows(reversed(snap["archived"])) if snap["archived"] else "<p class='muted'>No archived plots.</p>"
        body += "<h2>Scratch directories</h2>" + space_cards(snap["scratch_dirs"])
        body += "<h2>Destination directories</h2>" + space_cards(snap["dest_dirs"])
        return page("Plot Manager", body)

    # ---------- Plot detail ----------
    @app.get("/plot/{plot_id}", response_class=HTMLResponse)
    def plot_detail(plot_id: int):
        plot = scheduler.find(plot_id)
        if plot is None:
            return HTMLResponse(page("Plot not found", f"<p>Plot {plot_id} not found.</p>"), status_code=404)
        r = plot.to_dict()
        tail = html.escape("\n".join(r["tail"])) or "(no output yet)"
        body = f"""
          <h2>Plot {r['id']}</h2>
          <div class="cards">
            <div class="card"><b>State</b><p>{STATE_LABELS.get(r['state'], r['state'])}</p></div>
            <div class="card"><b>Phase</b><p>{html.escape(r['phase'])}</p></div>
            <div class="card"><b>Plot ID</b><p>{html.escape(r['plot_id'] or '-')}</p></div>
            <div class="card"><b>Duration</b><p>{r['duration_seconds']:.0f}s</p></div>
          </div>

          <h3>Directories</h3>
          <table>
            <tr><th>Tmp Dir</th><td>{html.escape(r['scratch_dir'])}</td></tr>
            <tr><th>Dst Dir</th><td>{html.escape(r['dest_dir'])}</td></tr>
            <tr><th>Started</th><td>{r['start_time']}</td></tr>
            <tr><th>Finished</th><td>{r['end_time'] or '-'}</td></tr>
          </table>

          <h3>Log tail</h3>
          <pre>{tail}</pre>

          <p><a href="/plot/{r['id']}/log">Download log tail</a></p>
        """
        return page(f"Plot {r['id']} Detail", body)

    @app.get("/plot/{plot_id}/log", response_class=PlainTextResponse)
    def plot_log(plot_id: int):
        plot = scheduler.find(plot_id)
        if plot is None:
            return PlainTextResponse("(no such plot)", status_code=404)
        lines = plot.to_dict()["tail"]
        return PlainTextResponse("\n".join(lines) + "\n" if lines else "(no output)")

    return app

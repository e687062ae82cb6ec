"""Share link routes: container page, JSON view and single-file download."""
import logging
from html import escape

from fastapi import APIRouter, Depends
from fastapi.responses import HTMLResponse, JSONResponse, RedirectResponse

from sharebox.dependencies import get_retrieval
from sharebox.errors import ExpiredError, NotFoundError, ShareboxError
from sharebox.schemas.container import ContainerViewResponse
from sharebox.services.retrieval import ContainerView, RetrievalService

logger = logging.getLogger(__name__)

router = APIRouter(tags=["share"])


def format_bytes(size: int, decimals: int = 2) -> str:
    if not size:
        return "0 Bytes"
    units = ["Bytes", "KB", "MB", "GB", "TB"]
    value = float(size)
    i = 0
    while value >= 1024 and i < len(units) - 1:
        value /= 1024
        i += 1
    return f"{round(value, decimals):g} {units[i]}"


def _page(title: str, body_html: str, status_code: int = 200) -> HTMLResponse:
    html = f"""<!doctype html><html><head>
<meta charset="utf-8"><meta name="viewport" content="width=device-width,initial-scale=1">
<title>{escape(title)} | Sharebox</title>
<style>
  body{{font-family:-apple-system,BlinkMacSystemFont,"Segoe UI",Roboto,sans-serif;line-height:1.6;color:#1a202c;background:#f7fafc;margin:0}}
  .wrap{{max-width:760px;margin:60px auto;padding:0 20px}}
  h1{{font-size:30px;margin:0 0 10px}}
  p,li{{color:#4a5568}}
  a{{color:#667eea}}
  .card{{background:#fff;border-radius:16px;box-shadow:0 4px 18px rgba(0,0,0,.06);padding:28px;margin-top:20px}}
  .file{{display:flex;justify-content:space-between;padding:10px 0;border-bottom:1px solid #edf2f7}}
  .corrupt{{color:#c53030}}
</style></head><body>
<div class="wrap">
  <h1>{escape(title)}</h1>
  <div class="card">{body_html}</div>
</div></body></html>"""
    return HTMLResponse(html, status_code=status_code, media_type="text/html; charset=utf-8")


def _container_page(view: ContainerView) -> HTMLResponse:
    rows = []
    for f in view.files:
        name = escape(f.original_name)
        size = format_bytes(f.size_bytes)
        if f.corrupt:
            rows.append(
                f'<div class="file"><span>{name} ({size})</span>'
                f'<span class="corrupt">Unavailable: please ask the sender to re-upload</span></div>'
            )
        else:
            rows.append(
                f'<div class="file"><span>{name} ({size})</span>'
                f'<a href="{escape(f.download_url)}">Download</a></div>'
            )
    expires = view.expires_at.strftime("%Y-%m-%d %H:%M UTC")
    body = f"<p>{len(view.files)} file(s). Available until {expires}.</p>{''.join(rows)}"
    return _page(view.display_name, body)


@router.get("/share/{public_id}", response_class=HTMLResponse)
async def share_page(public_id: str, retrieval: RetrievalService = Depends(get_retrieval)):
    """Render a container, or an error page. Never a stack trace."""
    try:
        view = await retrieval.resolve(public_id)
    except NotFoundError:
        return _page("Link not found", "<p>This share link does not exist.</p>", status_code=404)
    except ExpiredError:
        return _page("Link Expired", "<p>This share link has expired and its files are no longer available.</p>", status_code=410)
    except Exception:
        logger.exception(f"Failed to render share page {public_id}")
        return _page("Server Error", "<p>Something went wrong. Please try again later.</p>", status_code=500)
    return _container_page(view)


@router.get("/api/share/{public_id}", response_model=ContainerViewResponse)
async def get_share(public_id: str, retrieval: RetrievalService = Depends(get_retrieval)):
    """Container view as JSON."""
    try:
        view = await retrieval.resolve(public_id)
    except ShareboxError as e:
        return JSONResponse({"error": e.message}, status_code=e.status_code)
    return ContainerViewResponse.model_validate(view)


@router.get("/action/download/{file_id}")
async def download_file(file_id: str, retrieval: RetrievalService = Depends(get_retrieval)):
    """Redirect to the blob URL with the dated download filename."""
    try:
        url = await retrieval.resolve_single_file(file_id)
    except ShareboxError as e:
        return JSONResponse({"error": e.message}, status_code=e.status_code)
    return RedirectResponse(url, status_code=307)

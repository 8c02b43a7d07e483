"""FastAPI dashboard for papertrack."""

from __future__ import annotations

from pathlib import Path
from typing import Optional

from fastapi import FastAPI, File, Form, HTTPException, Request, UploadFile, status
from fastapi.responses import HTMLResponse, RedirectResponse, Response
from fastapi.templating import Jinja2Templates
from markupsafe import Markup

from papertrack.codecs import FILE_SUFFIX
from papertrack.library import Library
from papertrack.models import ITEM_TYPES, PRIORITIES, STATUSES
from papertrack.scheduling import AsyncioHost
from papertrack.services import CollectingNotifier
from papertrack.settings import Settings, get_settings
from papertrack.transfer import EXPORT_FORMATS, ImportRejected, default_export_name, export_text, import_bytes

TEMPLATE_DIR = Path(__file__).resolve().parent / "templates"

MEDIA_TYPES = {
    "csv": "text/csv",
    "json": "application/json",
    "bibtex": "application/x-bibtex",
}


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    """Factory used by uvicorn."""
    settings = settings or get_settings()
    app = FastAPI(title="papertrack Dashboard")
    templates = Jinja2Templates(directory=str(TEMPLATE_DIR))
    notifier = CollectingNotifier(auto_confirm=True)
    library = Library.from_settings(settings, host=AsyncioHost(), notifier=notifier)
    app.state.library = library

    def home_redirect() -> RedirectResponse:
        return RedirectResponse("/", status_code=status.HTTP_303_SEE_OTHER)

    def require_record(record_id: int) -> None:
        if library.store.find(record_id) is None:
            raise HTTPException(status_code=404, detail=f"Paper with id {record_id} not found")

    @app.get("/", response_class=HTMLResponse)
    async def home(request: Request) -> HTMLResponse:
        library.flush()
        return templates.TemplateResponse(
            request,
            "index.html",
            {
                "library_html": Markup(library.view.page()),
                "records": library.store.records(),
                "messages": notifier.drain(),
                "item_types": ITEM_TYPES,
                "statuses": STATUSES,
                "priorities": PRIORITIES,
                "formats": EXPORT_FORMATS,
            },
        )

    @app.post("/papers")
    async def create_paper(
        title: str = Form(""),
        authors: str = Form(""),
        year: str = Form(""),
        journal: str = Form(""),
        doi: str = Form(""),
        item_type: str = Form("article"),
        status_value: str = Form("to-read", alias="status"),
        priority: str = Form("medium"),
    ) -> RedirectResponse:
        library.add(
            {
                "item_type": item_type,
                "title": title,
                "authors": authors,
                "year": year,
                "journal": journal,
                "doi": doi,
                "status": status_value,
                "priority": priority,
            }
        )
        library.flush()
        return home_redirect()

    @app.post("/papers/{record_id}")
    async def update_paper(
        record_id: int,
        field: str = Form(...),
        value: str = Form(""),
    ) -> RedirectResponse:
        require_record(record_id)
        library.store.update(record_id, field, value)
        library.flush()
        return home_redirect()

    @app.post("/papers/{record_id}/delete")
    async def delete_paper(record_id: int) -> RedirectResponse:
        require_record(record_id)
        library.store.delete(record_id)
        library.flush()
        return home_redirect()

    @app.post("/papers/{record_id}/pdf")
    async def attach_pdf(record_id: int, file: UploadFile = File(...)) -> RedirectResponse:
        require_record(record_id)
        data = await file.read()
        library.store.attach_pdf(record_id, data, file.filename or "attachment.pdf")
        library.flush()
        return home_redirect()

    @app.get("/papers/{record_id}/pdf")
    async def open_pdf(record_id: int) -> Response:
        require_record(record_id)
        data = library.store.open_pdf(record_id)
        if data is None:
            raise HTTPException(status_code=404, detail="No PDF attached")
        return Response(content=data, media_type="application/pdf")

    @app.get("/export/{fmt}")
    async def export(fmt: str) -> Response:
        fmt = fmt.lower()
        if fmt not in EXPORT_FORMATS:
            raise HTTPException(status_code=404, detail=f"Unknown export format {fmt!r}")
        library.flush()
        filename = default_export_name(fmt)
        return Response(
            content=export_text(library.store.records(), fmt),
            media_type=MEDIA_TYPES[fmt],
            headers={"Content-Disposition": f'attachment; filename="{filename}"'},
        )

    @app.post("/import")
    async def import_upload(file: UploadFile = File(...)) -> RedirectResponse:
        data = await file.read()
        try:
            import_bytes(library, file.filename or f"upload.{FILE_SUFFIX['csv']}", data)
        except ImportRejected as exc:
            notifier.notify(str(exc))
        library.flush()
        return home_redirect()

    return app

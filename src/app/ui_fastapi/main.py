from pathlib import Path
import sys
import logging
from typing import List, Optional

from fastapi import FastAPI, Request, Form, UploadFile, File
from fastapi.responses import HTMLResponse, JSONResponse, RedirectResponse, Response
from fastapi.staticfiles import StaticFiles
from fastapi.templating import Jinja2Templates

# ==========================================================
# AÑADIR src/ AL PYTHONPATH (desde src/app/ui_fastapi/main.py)
# ==========================================================

BASE_DIR = Path(__file__).resolve().parent          # .../src/app/ui_fastapi
SRC_DIR = BASE_DIR.parent.parent                    # .../src

if str(SRC_DIR) not in sys.path:
    sys.path.append(str(SRC_DIR))

# ==========================================================
# IMPORTS DEL MOTOR DOSECHECK
# ==========================================================

from core.constraint import ConstraintDraft, MetricType, format_number
from dosecheck import config as dc_config
from dosecheck.config_overrides import get_effective_config
from dosecheck.engine import DoseCheckSession, SessionRegistry
from dosecheck.reporting import ConstraintImportError

logger = logging.getLogger("app.ui_fastapi")

SESSION_COOKIE = "dosecheck_session"

# ==========================================================
# FASTAPI APP
# ==========================================================

app = FastAPI(title="RadOnc DoseCheck")

app.mount(
    "/static",
    StaticFiles(directory=str(BASE_DIR / "static")),
    name="static",
)

templates = Jinja2Templates(directory=str(BASE_DIR / "templates"))
templates.env.filters["num"] = format_number

_EFFECTIVE_CFG = get_effective_config()
registry = SessionRegistry(tolerance_cfg=_EFFECTIVE_CFG["tolerance"])


dc_config.setup_logging()


# ==========================================================
# Helpers
# ==========================================================

def _session_for(request: Request) -> tuple:
    return registry.get_or_create(request.cookies.get(SESSION_COOKIE))


def _with_cookie(response: Response, session_id: str) -> Response:
    response.set_cookie(SESSION_COOKIE, session_id, httponly=True, samesite="lax")
    return response


def _back_home(session_id: str) -> Response:
    return _with_cookie(RedirectResponse("/", status_code=303), session_id)


def _render_home(
    request: Request,
    session_id: str,
    session: DoseCheckSession,
    errors: Optional[List[str]] = None,
    status_code: int = 200,
) -> Response:
    summary = session.summary()
    response = templates.TemplateResponse(
        request,
        "index.html",
        {
            "rows": session.rows(),
            "summary": summary,
            "sites": session.list_sites(),
            "site_filter": session.site_filter,
            "tight_band": session.tight_band,
            "tight_label": _EFFECTIVE_CFG["tolerance"].get("tight_label", "Tight caution band"),
            "draft": session.draft,
            "site_options": dc_config.SITE_OPTIONS,
            "unit_options": dc_config.UNIT_OPTIONS,
            "metric_options": dc_config.METRIC_OPTIONS,
            "placeholder": _EFFECTIVE_CFG["reporting"].get("placeholder", "—"),
            "disclaimer": _EFFECTIVE_CFG["reporting"].get("disclaimer", ""),
            "errors": errors or [],
        },
        status_code=status_code,
    )
    return _with_cookie(response, session_id)


def _download(content: str, media_type: str, filename: str) -> Response:
    headers = {"Content-Disposition": f'attachment; filename="{filename}"'}
    return Response(content=content, media_type=media_type, headers=headers)


# ==========================================================
# GET /  → Panel principal
# ==========================================================

@app.get("/", response_class=HTMLResponse)
async def home(request: Request):
    session_id, session = _session_for(request)
    return _render_home(request, session_id, session)


# ==========================================================
# Filtro / tolerancia / medidas
# ==========================================================

@app.post("/filter")
async def set_filter(request: Request, site: str = Form("All")):
    session_id, session = _session_for(request)
    session.set_site_filter(site)
    return _back_home(session_id)


@app.post("/tolerance")
async def set_tolerance(request: Request, tight: Optional[str] = Form(None)):
    # Checkbox HTML: solo llega si está marcado
    session_id, session = _session_for(request)
    session.set_tight_band(tight is not None)
    return _back_home(session_id)


@app.post("/measure/{constraint_id}")
async def set_measurement(request: Request, constraint_id: str, value: str = Form("")):
    session_id, session = _session_for(request)
    session.set_measurement(constraint_id, value)
    return _back_home(session_id)


# ==========================================================
# Restricciones: add / delete / reset / demo
# ==========================================================

@app.post("/constraints", response_class=HTMLResponse)
async def add_constraint(
    request: Request,
    site: str = Form(""),
    oar: str = Form(""),
    metric_type: str = Form("Dmax"),
    param: str = Form(""),
    limit: str = Form(""),
    unit: str = Form(""),
    note: str = Form(""),
):
    session_id, session = _session_for(request)

    draft = ConstraintDraft(
        site=site.strip() or None,
        organ=oar.strip() or None,
        metric_type=MetricType.parse(metric_type),
        param=param.strip() or None,
        limit=limit.strip() or None,
        unit=unit.strip() or None,
        note=note.strip() or None,
    )
    session.draft = draft

    if session.add_constraint() is None:
        # Borrador inválido: se mantiene en el formulario y se muestran los problemas
        return _render_home(request, session_id, session, errors=draft.validate(), status_code=422)
    return _back_home(session_id)


@app.post("/constraints/{constraint_id}/delete")
async def delete_constraint(request: Request, constraint_id: str):
    session_id, session = _session_for(request)
    session.remove_constraint(constraint_id)
    return _back_home(session_id)


@app.post("/reset")
async def reset(request: Request):
    session_id, session = _session_for(request)
    session.reset_to_defaults()
    return _back_home(session_id)


@app.post("/demo")
async def demo_values(request: Request):
    session_id, session = _session_for(request)
    session.load_demo_values()
    return _back_home(session_id)


# ==========================================================
# Export / import
# ==========================================================

@app.get("/export/json")
async def export_json(request: Request):
    session_id, session = _session_for(request)
    response = _download(
        session.export_json(),
        "application/json",
        _EFFECTIVE_CFG["reporting"].get("json_filename", "dose_constraints.json"),
    )
    return _with_cookie(response, session_id)


@app.get("/export/markdown")
async def export_markdown(request: Request):
    session_id, session = _session_for(request)
    response = _download(
        session.export_markdown(_EFFECTIVE_CFG["reporting"]),
        "text/markdown; charset=utf-8",
        _EFFECTIVE_CFG["reporting"].get("markdown_filename", "dose_constraints.md"),
    )
    return _with_cookie(response, session_id)


@app.get("/export/csv")
async def export_csv(request: Request):
    session_id, session = _session_for(request)
    response = _download(
        session.export_csv(_EFFECTIVE_CFG["reporting"]),
        "text/csv",
        _EFFECTIVE_CFG["reporting"].get("csv_filename", "dose_constraints.csv"),
    )
    return _with_cookie(response, session_id)


@app.post("/import/json", response_class=HTMLResponse)
async def import_json(request: Request, file: UploadFile = File(...)):
    session_id, session = _session_for(request)
    raw = await file.read()
    try:
        session.import_constraints(raw.decode("utf-8"))
    except (ConstraintImportError, UnicodeDecodeError) as e:
        logger.warning("Import rechazado: %s", e)
        return _render_home(request, session_id, session, errors=[str(e)], status_code=400)
    return _back_home(session_id)


# ==========================================================
# API JSON – resumen para widgets
# ==========================================================

@app.get("/api/summary")
async def api_summary(request: Request):
    session_id, session = _session_for(request)
    payload = {
        "site": session.site_filter,
        "caution_fraction": session.caution_fraction,
        "summary": session.summary().as_dict(),
        "rows": [
            {
                "id": row.constraint.id,
                "status": row.status.value,
                "measured": row.measured,
                "margin": row.margin,
            }
            for row in session.rows()
        ],
    }
    return _with_cookie(JSONResponse(payload), session_id)


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="127.0.0.1", port=8000)

import io
import logging
import re
from contextlib import asynccontextmanager
from typing import Any, Dict, List, Optional

import qrcode
from fastapi import Body, Depends, FastAPI, Query, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, StreamingResponse
from pydantic import Field, NonNegativeInt
from pymongo.database import Database
from pymongo.errors import PyMongoError
from slowapi import Limiter
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from slowapi.util import get_remote_address
from starlette.exceptions import HTTPException as StarletteHTTPException

from analytics import AnalyticsService
from config import (
    CORS_ORIGIN,
    DEFAULT_RATE_LIMIT,
    LOG_LEVEL,
    PORT,
    PUBLIC_BASE_URL,
    RATE_LIMIT_ENABLED,
    SUBMISSION_RATE_LIMIT,
)
from database import ensure_indexes, get_db
from errors import FormServiceError, InvalidRequest, NotPublished, PersistenceError
from form_builder import add_field, duplicate_field, move_field, remove_field, update_field
from forms import FormService
from ingestion import SubmissionService
from schemas import CamelModel, FormIn
from steps import form_steps
from validation import validate_form_values

logging.basicConfig(level=LOG_LEVEL, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    try:
        ensure_indexes(get_db())
    except PyMongoError as e:
        logger.warning("could not ensure indexes at startup: %s", e)
    yield


app = FastAPI(title="Form Builder API", lifespan=lifespan)

limiter = Limiter(key_func=get_remote_address, default_limits=[DEFAULT_RATE_LIMIT], enabled=RATE_LIMIT_ENABLED)
app.state.limiter = limiter

app.add_middleware(SlowAPIMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=[o.strip() for o in CORS_ORIGIN.split(",")],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# --- Error handling ---

def _error_location(loc) -> str:
    parts = [str(p) for p in loc]
    if parts and parts[0] in ("body", "query", "path"):
        parts = parts[1:]
    return ".".join(parts) or "body"


def _error_message(err: Dict[str, Any]) -> str:
    if err.get("type") == "union_tag_invalid":
        return "Invalid field type"
    msg = str(err.get("msg", "Invalid value"))
    return msg[len("Value error, "):] if msg.startswith("Value error, ") else msg


@app.exception_handler(FormServiceError)
async def form_service_error_handler(request: Request, exc: FormServiceError):
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.exception_handler(RequestValidationError)
async def request_shape_error_handler(request: Request, exc: RequestValidationError):
    details = [{"field": _error_location(e.get("loc", ())), "message": _error_message(e)} for e in exc.errors()]
    return JSONResponse(status_code=400, content=InvalidRequest("Invalid request", details).to_dict())


@app.exception_handler(PyMongoError)
async def persistence_error_handler(request: Request, exc: PyMongoError):
    logger.error("storage failure on %s %s", request.method, request.url.path, exc_info=exc)
    err = PersistenceError()
    return JSONResponse(status_code=err.status_code, content=err.to_dict())


@app.exception_handler(RateLimitExceeded)
def rate_limit_handler(request: Request, exc: RateLimitExceeded):
    return JSONResponse(
        status_code=429,
        content={"success": False, "error": "Too many requests from this IP, please try again later."},
    )


@app.exception_handler(StarletteHTTPException)
async def http_error_handler(request: Request, exc: StarletteHTTPException):
    return JSONResponse(status_code=exc.status_code, content={"success": False, "error": str(exc.detail)})


# --- Helpers ---

def ok(data: Any) -> Dict[str, Any]:
    return {"success": True, "data": data}


def dump(model) -> Dict[str, Any]:
    return model.model_dump(by_alias=True, mode="json")


def form_service(db: Database = Depends(get_db)) -> FormService:
    return FormService(db)


def submission_service(db: Database = Depends(get_db)) -> SubmissionService:
    return SubmissionService(db)


def analytics_service(db: Database = Depends(get_db)) -> AnalyticsService:
    return AnalyticsService(db)


def public_form_url(form_id: str) -> str:
    return f"{PUBLIC_BASE_URL.rstrip('/')}/form/{form_id}"


def safe_filename(name: str) -> str:
    return re.sub(r"[^A-Za-z0-9._-]+", "-", name).strip("-") or "export.csv"


# --- Models ---

class SubmissionFieldIn(CamelModel):
    field_id: str = Field(..., min_length=1)
    value: Any = None
    field_type: Optional[str] = None  # ignored; the form definition is authoritative


class SubmissionIn(CamelModel):
    form_id: str = Field(..., min_length=1)
    fields: List[SubmissionFieldIn]


class PreviewIn(CamelModel):
    fields: List[SubmissionFieldIn] = Field(default_factory=list)
    step: Optional[NonNegativeInt] = None


class NewFieldIn(CamelModel):
    type: str


class MoveFieldIn(CamelModel):
    source: NonNegativeInt = Field(..., alias="from")
    destination: NonNegativeInt = Field(..., alias="to")


# --- Routes ---

@app.get("/health")
@limiter.exempt
def health(db: Database = Depends(get_db)):
    response = {"status": "OK", "database": "Not Available", "collections": []}
    try:
        db.command("ping")
        response["database"] = "Connected"
        response["collections"] = db.list_collection_names()
    except PyMongoError as e:
        response["database"] = f"Error: {str(e)[:80]}"
    return response


# ---------- Forms ----------

@app.get("/api/forms")
def list_forms(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    status: Optional[str] = Query(None, pattern="^(draft|published)$"),
    search: Optional[str] = None,
    service: FormService = Depends(form_service),
):
    forms, pagination = service.list(page=page, limit=limit, status=status, search=search)
    return ok({"forms": forms, "pagination": pagination})


@app.post("/api/forms", status_code=201)
def create_form(payload: FormIn, service: FormService = Depends(form_service)):
    return ok(dump(service.create(payload)))


@app.get("/api/forms/{form_id}")
def get_form(form_id: str, service: FormService = Depends(form_service)):
    return ok(dump(service.get(form_id)))


@app.put("/api/forms/{form_id}")
def update_form(form_id: str, payload: FormIn, service: FormService = Depends(form_service)):
    return ok(dump(service.update(form_id, payload)))


@app.delete("/api/forms/{form_id}")
def delete_form(form_id: str, service: FormService = Depends(form_service)):
    service.delete(form_id)
    return {"success": True, "message": "Form deleted successfully"}


@app.post("/api/forms/{form_id}/duplicate", status_code=201)
def duplicate_form(form_id: str, service: FormService = Depends(form_service)):
    return ok(dump(service.duplicate(form_id)))


@app.patch("/api/forms/{form_id}/publish")
def publish_form(form_id: str, service: FormService = Depends(form_service)):
    return ok(dump(service.publish(form_id)))


@app.patch("/api/forms/{form_id}/unpublish")
def unpublish_form(form_id: str, service: FormService = Depends(form_service)):
    return ok(dump(service.unpublish(form_id)))


@app.get("/api/forms/{form_id}/steps")
def get_form_steps(form_id: str, service: FormService = Depends(form_service)):
    form = service.get(form_id)
    steps = [
        {"index": s["index"], "name": s["name"], "fieldIds": [f.id for f in s["fields"]]}
        for s in form_steps(form)
    ]
    return ok(steps)


@app.post("/api/forms/{form_id}/preview/validate")
def preview_validate(form_id: str, payload: PreviewIn, service: FormService = Depends(form_service)):
    """Run the submission validator without storing anything. Works on drafts."""
    form = service.get(form_id)
    step_count = len(form_steps(form))
    if payload.step is not None and payload.step >= step_count:
        raise InvalidRequest(f"Step {payload.step} out of range (form has {step_count})")
    errors = validate_form_values(form, [(f.field_id, f.value) for f in payload.fields], step=payload.step)
    return ok({"valid": not errors, "errors": errors, "step": payload.step, "stepCount": step_count})


@app.get("/api/forms/{form_id}/qr")
def form_qr(form_id: str, service: FormService = Depends(form_service)):
    form = service.get(form_id)
    if form.status != "published":
        raise NotPublished()
    img = qrcode.make(public_form_url(form.id))
    buf = io.BytesIO()
    img.save(buf, format="PNG")
    buf.seek(0)
    return StreamingResponse(buf, media_type="image/png")


# ---------- Builder: field list edits ----------

@app.post("/api/forms/{form_id}/fields", status_code=201)
def builder_add_field(form_id: str, payload: NewFieldIn, service: FormService = Depends(form_service)):
    form = service.get(form_id)
    return ok(dump(service.replace_fields(form_id, add_field(form.fields, payload.type))))


@app.patch("/api/forms/{form_id}/fields/{field_id}")
def builder_update_field(
    form_id: str,
    field_id: str,
    changes: Dict[str, Any] = Body(...),
    service: FormService = Depends(form_service),
):
    form = service.get(form_id)
    return ok(dump(service.replace_fields(form_id, update_field(form.fields, field_id, changes))))


@app.delete("/api/forms/{form_id}/fields/{field_id}")
def builder_remove_field(form_id: str, field_id: str, service: FormService = Depends(form_service)):
    form = service.get(form_id)
    return ok(dump(service.replace_fields(form_id, remove_field(form.fields, field_id))))


@app.post("/api/forms/{form_id}/fields/{field_id}/duplicate", status_code=201)
def builder_duplicate_field(form_id: str, field_id: str, service: FormService = Depends(form_service)):
    form = service.get(form_id)
    return ok(dump(service.replace_fields(form_id, duplicate_field(form.fields, field_id))))


@app.post("/api/forms/{form_id}/fields/move")
def builder_move_field(form_id: str, payload: MoveFieldIn, service: FormService = Depends(form_service)):
    form = service.get(form_id)
    return ok(dump(service.replace_fields(form_id, move_field(form.fields, payload.source, payload.destination))))


# ---------- Submissions ----------

@app.post("/api/submissions", status_code=201)
@limiter.limit(SUBMISSION_RATE_LIMIT)
def create_submission(request: Request, payload: SubmissionIn, service: SubmissionService = Depends(submission_service)):
    metadata = {
        "ipAddress": request.client.host if request.client else None,
        "userAgent": request.headers.get("user-agent"),
        "referrer": request.headers.get("referer"),
    }
    submission = service.submit(payload.form_id, [(f.field_id, f.value) for f in payload.fields], metadata)
    return ok(dump(submission))


@app.get("/api/submissions/form/{form_id}")
def list_submissions(
    form_id: str,
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    sort: Optional[str] = None,
    service: SubmissionService = Depends(submission_service),
):
    submissions, pagination = service.list_for_form(form_id, page=page, limit=limit, sort=sort)
    return ok({"submissions": [dump(s) for s in submissions], "pagination": pagination})


@app.get("/api/submissions/{submission_id}")
def get_submission(submission_id: str, service: SubmissionService = Depends(submission_service)):
    return ok(dump(service.get(submission_id)))


@app.delete("/api/submissions/{submission_id}")
def delete_submission(submission_id: str, service: SubmissionService = Depends(submission_service)):
    service.delete(submission_id)
    return {"success": True, "message": "Submission deleted successfully"}


# ---------- Analytics ----------

@app.get("/api/analytics")
def analytics_overview(service: AnalyticsService = Depends(analytics_service)):
    return ok(service.overview())


@app.get("/api/analytics/dashboard")
def analytics_dashboard(period: str = "30d", service: AnalyticsService = Depends(analytics_service)):
    return ok(service.dashboard(period))


@app.get("/api/analytics/form/{form_id}")
def form_analytics(form_id: str, period: str = "30d", service: AnalyticsService = Depends(analytics_service)):
    return ok(service.form_analytics(form_id, period))


@app.get("/api/analytics/form/{form_id}/export")
def export_submissions(form_id: str, format: str = "csv", service: AnalyticsService = Depends(analytics_service)):
    if format != "csv":
        raise InvalidRequest("Unsupported export format")
    filename, lines = service.export_csv(form_id)
    return StreamingResponse(
        lines,
        media_type="text/csv",
        headers={"Content-Disposition": f'attachment; filename="{safe_filename(filename)}"'},
    )


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=PORT)

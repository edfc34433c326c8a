import os
import json
import math
import logging
from datetime import date, datetime, time, timezone
from typing import List, Literal, Optional

from dotenv import load_dotenv
from fastapi import FastAPI, Depends, HTTPException, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session
from sqlalchemy import select, func
from starlette.datastructures import UploadFile

from db import Base, engine, get_db
from models import Form, Submission
from schemas import FormCreate, FormUpdate, FormOut, SubmissionCreate, SubmissionOut, SubmissionPage
from security import verify_admin
from fields import Answer, FormDefinition, SchemaError, build_field_schema, dump_fields
from validation import validate_answers
from versioning import bump_version_if_changed, snapshot_form, submission_state_error
from csv_export import generate_csv
from uploads import UploadTooLarge, attach_file_references, discard_uploads, save_upload

load_dotenv()

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

app = FastAPI(title="Dynamic Forms API")

origins = os.getenv("ORIGINS", "http://localhost:5173").split(",")
app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

Base.metadata.create_all(bind=engine)

SORT_COLUMNS = {
    "submittedAt": Submission.submitted_at,
    "formVersion": Submission.form_version,
    "id": Submission.id,
}


def _now_utc() -> datetime:
    """Return the current UTC time as an aware datetime."""
    return datetime.now(timezone.utc)

def _get_form(db: Session, form_id: int, deleted: bool = False) -> Form:
    """Fetch a form row by id, honouring the soft-delete flag.

    Args:
        db (Session): DB session.
        form_id (int): Form ID.
        deleted (bool): Look among soft-deleted forms instead of live ones.

    Raises:
        HTTPException: 404 if no matching form exists.
    """
    row = db.get(Form, form_id)
    if not row or bool(row.is_deleted) != deleted:
        raise HTTPException(404, "Deleted form not found" if deleted else "Form not found")
    return row

def _build_fields(raw_fields) -> list:
    """Run the schema builder, mapping SchemaError to a 400."""
    try:
        return build_field_schema(raw_fields)
    except SchemaError as exc:
        logger.warning("Rejected field schema: %s", exc)
        raise HTTPException(400, str(exc))


@app.get("/health")
def health():
    """Basic readiness probe.

    Returns:
        dict: {"ok": True}
    """
    return {"ok": True}

# ------------------------
# Admin: form authoring
# ------------------------
@app.post("/admin/forms", status_code=201, response_model=FormOut, dependencies=[Depends(verify_admin)])
def create_form(payload: FormCreate, db: Session = Depends(get_db)):
    """Create a form from a raw field list.

    Args:
        payload (FormCreate): Title (required), description, fields[].
        db (Session): DB session.

    Returns:
        FormOut: The stored form at version 1.

    Raises:
        HTTPException: 400 on a blank title or an invalid field schema.
    """
    title = (payload.title or "").strip()
    if not title:
        raise HTTPException(400, "Title is required")
    fields = _build_fields(payload.fields)

    row = Form(title=title, description=(payload.description or "").strip(), fields=dump_fields(fields), version=1)
    db.add(row)
    db.commit()
    db.refresh(row)
    logger.info("Created form %s with %d field(s)", row.id, len(fields))
    return row

@app.get("/admin/forms", response_model=list[FormOut], dependencies=[Depends(verify_admin)])
def list_forms(active_only: bool = False, include_deleted: bool = False, db: Session = Depends(get_db)):
    """List forms, newest first.

    Args:
        active_only (bool): Only forms accepting submissions.
        include_deleted (bool): Also return soft-deleted forms.
        db (Session): DB session.
    """
    q = select(Form)
    if not include_deleted:
        q = q.where(Form.is_deleted == False)
    if active_only:
        q = q.where(Form.is_active == True)
    return db.execute(q.order_by(Form.created_at.desc(), Form.id.desc())).scalars().all()

@app.put("/admin/forms/{form_id}", response_model=FormOut, dependencies=[Depends(verify_admin)])
def update_form(form_id: int, payload: FormUpdate, db: Session = Depends(get_db)):
    """Partially update a form; a changed field list bumps the version.

    Args:
        form_id (int): Form ID.
        payload (FormUpdate): {title?, description?, isActive?, fields?}
        db (Session): DB session.

    Raises:
        HTTPException: 404 if form missing or deleted; 400 on blank title or invalid schema.
    """
    row = _get_form(db, form_id)

    if payload.title is not None:
        title = payload.title.strip()
        if not title:
            raise HTTPException(400, "Title cannot be empty")
        row.title = title
    if payload.description is not None:
        row.description = payload.description.strip()
    if payload.is_active is not None:
        row.is_active = payload.is_active

    if payload.fields is not None:
        new_fields = _build_fields(payload.fields)
        updated = bump_version_if_changed(FormDefinition.model_validate(row), new_fields)
        row.fields = dump_fields(updated.fields)
        row.version = updated.version

    db.commit()
    db.refresh(row)
    logger.info("Updated form %s (version %s)", row.id, row.version)
    return row

@app.delete("/admin/forms/{form_id}", dependencies=[Depends(verify_admin)])
def delete_form(form_id: int, db: Session = Depends(get_db)):
    """Soft-delete a form: hidden from lookups, deactivated, but recoverable.

    Returns:
        dict: {"message": "Form deleted successfully"}
    """
    row = _get_form(db, form_id)
    row.is_deleted = True
    row.deleted_at = _now_utc()
    row.is_active = False
    db.commit()
    logger.info("Soft-deleted form %s", form_id)
    return {"message": "Form deleted successfully"}

@app.post("/admin/forms/{form_id}/restore", dependencies=[Depends(verify_admin)])
def restore_form(form_id: int, db: Session = Depends(get_db)):
    """Undo a soft delete. The form stays inactive until re-enabled.

    Returns:
        dict: {"message", "form"}
    """
    row = _get_form(db, form_id, deleted=True)
    row.is_deleted = False
    row.deleted_at = None
    db.commit()
    db.refresh(row)
    logger.info("Restored form %s", form_id)
    return {"message": "Form restored successfully", "form": FormOut.model_validate(row).model_dump(mode="json", by_alias=True)}

# ------------------------
# Public: forms
# ------------------------
@app.get("/public/forms", response_model=list[FormOut])
def list_public_forms(db: Session = Depends(get_db)):
    """List live, active forms for respondents."""
    q = select(Form).where(Form.is_deleted == False, Form.is_active == True)
    return db.execute(q.order_by(Form.created_at.desc(), Form.id.desc())).scalars().all()

@app.get("/public/forms/{form_id}", response_model=FormOut)
def get_public_form(form_id: int, db: Session = Depends(get_db)):
    """Return one non-deleted form.

    Raises:
        HTTPException: 404 if the form is missing or soft-deleted.
    """
    return _get_form(db, form_id)

# ------------------------
# Public: submissions
# ------------------------
def _open_form(db: Session, form_id: int) -> FormDefinition:
    """Load a form that is currently accepting submissions.

    Raises:
        HTTPException: 404 if the form is missing or deleted; 400 if it is inactive.
    """
    form = FormDefinition.model_validate(_get_form(db, form_id))
    state_error = submission_state_error(form)
    if state_error:
        raise HTTPException(400, state_error)
    return form

def _store_submission(db: Session, form: FormDefinition, answers: List[Answer], ip: str):
    """Validate answers, then persist them with a snapshot of `form`.

    Returns:
        dict | JSONResponse: {"message", "submissionId"}, or 400 {"errors": [...]}.
    """
    errors = validate_answers(form, answers)
    if errors:
        logger.info("Rejected submission for form %s: %d error(s)", form.id, len(errors))
        return JSONResponse(status_code=400, content={"errors": [e.message for e in errors]})

    snapshot = snapshot_form(form)
    sub = Submission(
        form_id=form.id,
        form_version=form.version,
        form_snapshot=snapshot.model_dump(mode="json", by_alias=True, exclude_none=True),
        answers=[a.model_dump(mode="json") for a in answers],
        ip=ip,
    )
    db.add(sub)
    db.commit()
    logger.info("Accepted submission %s for form %s v%s", sub.id, form.id, form.version)
    return {"message": "Form submitted successfully", "submissionId": sub.id}

def _client_ip(request: Request) -> str:
    return request.client.host if request.client else ""

@app.post("/public/submissions", status_code=201)
def submit_form(payload: SubmissionCreate, request: Request, db: Session = Depends(get_db)):
    """Validate answers against the live form and store them with a snapshot.

    Args:
        payload (SubmissionCreate): {formId, answers[{name, value}]}
        request (Request): Used for the client IP.
        db (Session): DB session.

    Returns:
        dict: {"message", "submissionId"}; 400 {"errors": [...]} when answers fail validation.

    Raises:
        HTTPException: 404 if the form is missing or deleted; 400 if it is inactive.
    """
    form = _open_form(db, payload.form_id)
    return _store_submission(db, form, payload.answers, _client_ip(request))

@app.post("/public/submissions/upload", status_code=201)
async def submit_form_with_files(request: Request, db: Session = Depends(get_db)):
    """Multipart variant of submission intake for forms with file fields.

    Parts: ``formId``, ``answers`` (a JSON array of {name, value}) and one
    file part per file field, keyed by the field name. Stored filenames
    replace the matching answer values before validation. Files are removed
    again when the submission is rejected.

    Raises:
        HTTPException: 400 on a malformed formId/answers; 404/400 as for JSON
            intake; 413 when a file exceeds the size limit.
    """
    data = await request.form()
    try:
        form_id = int(data.get("formId") or "")
    except (TypeError, ValueError):
        raise HTTPException(400, "formId must be an integer")
    try:
        raw_answers = json.loads(data.get("answers") or "[]")
        if not isinstance(raw_answers, list):
            raise ValueError("answers must be a list")
        answers = [Answer.model_validate(a) for a in raw_answers]
    except (TypeError, ValueError):
        raise HTTPException(400, "answers must be a JSON array of {name, value} objects")

    form = _open_form(db, form_id)

    stored = {}
    try:
        for key, value in data.multi_items():
            if isinstance(value, UploadFile) and value.filename:
                stored[key] = await save_upload(key, value)
    except UploadTooLarge as exc:
        discard_uploads(stored.values())
        raise HTTPException(413, str(exc))

    answers = attach_file_references(form, answers, stored)
    result = _store_submission(db, form, answers, _client_ip(request))
    if isinstance(result, JSONResponse):
        discard_uploads(stored.values())
    return result

# ------------------------
# Admin: submissions
# ------------------------
def _answers_match(answers, needle: str) -> bool:
    """True if any string answer value, or string item of a list value, contains `needle`."""
    for answer in answers or []:
        value = answer.get("value") if isinstance(answer, dict) else None
        items = value if isinstance(value, list) else [value]
        if any(isinstance(v, str) and needle in v.casefold() for v in items):
            return True
    return False

@app.get("/admin/submissions", response_model=SubmissionPage, dependencies=[Depends(verify_admin)])
def list_submissions(
    form_id: Optional[int] = None,
    page: int = 1,
    limit: int = 10,
    search: str = "",
    date_from: Optional[date] = None,
    date_to: Optional[date] = None,
    sort_by: Literal["submittedAt", "formVersion", "id"] = "submittedAt",
    sort_order: Literal["asc", "desc"] = "desc",
    db: Session = Depends(get_db),
):
    """Paginated submission listing with filters.

    Args:
        form_id (int|None): Restrict to one form.
        page (int): 1-based page number.
        limit (int): Page size.
        search (str): Case-insensitive substring matched against answer values.
        date_from (date|None): Earliest submission day.
        date_to (date|None): Latest submission day, inclusive of the whole day.
        sort_by (str): submittedAt | formVersion | id.
        sort_order (str): asc | desc.
        db (Session): DB session.

    Returns:
        SubmissionPage: {submissions, pagination{page, limit, total, pages}}
    """
    page = max(page, 1)
    limit = max(limit, 1)

    q = select(Submission)
    if form_id is not None:
        q = q.where(Submission.form_id == form_id)
    if date_from:
        q = q.where(Submission.submitted_at >= datetime.combine(date_from, time.min))
    if date_to:
        q = q.where(Submission.submitted_at <= datetime.combine(date_to, time.max))
    column = SORT_COLUMNS[sort_by]
    order = column.asc() if sort_order == "asc" else column.desc()
    q = q.order_by(order, Submission.id.desc())

    needle = search.strip().casefold()
    if needle:
        # answers are stored as JSON text, so value matching happens in Python
        matched = [s for s in db.execute(q).scalars() if _answers_match(s.answers, needle)]
        total = len(matched)
        rows = matched[(page - 1) * limit:page * limit]
    else:
        total = db.execute(select(func.count()).select_from(q.subquery())).scalar_one()
        rows = db.execute(q.offset((page - 1) * limit).limit(limit)).scalars().all()

    return {
        "submissions": rows,
        "pagination": {"page": page, "limit": limit, "total": total, "pages": math.ceil(total / limit)},
    }

@app.get("/admin/submissions/{submission_id}", response_model=SubmissionOut, dependencies=[Depends(verify_admin)])
def get_submission(submission_id: int, db: Session = Depends(get_db)):
    """Return one submission with its frozen form snapshot.

    Raises:
        HTTPException: 404 if not found.
    """
    sub = db.get(Submission, submission_id)
    if not sub:
        raise HTTPException(404, "Submission not found")
    return sub

@app.get("/admin/forms/{form_id}/export.csv", dependencies=[Depends(verify_admin)])
def export_csv(form_id: int, db: Session = Depends(get_db)):
    """Export a form's submissions as CSV, newest first.

    Args:
        form_id (int): Form PK.
        db (Session): DB session.

    Returns:
        Response: text/csv attachment `submissions-<id>-<timestamp>.csv`.
    """
    row = _get_form(db, form_id)
    subs = db.execute(
        select(Submission).where(Submission.form_id == form_id).order_by(Submission.submitted_at.desc(), Submission.id.desc())
    ).scalars().all()
    csv_bytes = generate_csv(subs, FormDefinition.model_validate(row)).encode("utf-8")
    stamp = int(_now_utc().timestamp() * 1000)
    return Response(content=csv_bytes, media_type="text/csv",
                    headers={"Content-Disposition": f'attachment; filename="submissions-{form_id}-{stamp}.csv"'})

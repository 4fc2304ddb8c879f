"""
Submission ingestion.

`submit` gates on the form (exists, published, under its limit), validates
every value, and only then writes. The submission insert is followed by an
atomic `$inc` of the form counter, conditioned on the counter still being
under `submissionLimit` when one is set. If the increment fails or finds the
limit already taken, the insert is rolled back so the counter and the
collection stay in step.
"""
import logging
import math
from typing import Any, Dict, Iterable, List, Optional, Tuple

from pymongo import ASCENDING, DESCENDING
from pymongo.database import Database
from pymongo.errors import PyMongoError

from database import FORMS, SUBMISSIONS, create_document, increment_counter, parse_object_id, to_str_id, utcnow
from errors import LimitReached, NotFound, NotPublished, PersistenceError, ValidationFailed
from forms import FormService
from schemas import Form, Submission
from validation import is_absent, validate_form_values

logger = logging.getLogger(__name__)

SORT_KEYS = {
    "submittedAt": "metadata.submittedAt",
    "createdAt": "createdAt",
    "status": "status",
}
DEFAULT_SORT = "-submittedAt"
MAX_PAGE_SIZE = 100


def submission_from_document(doc: Dict[str, Any]) -> Submission:
    return Submission.model_validate(to_str_id(doc))


def parse_sort(sort: Optional[str]) -> List[Tuple[str, int]]:
    """'-submittedAt' -> [('metadata.submittedAt', DESCENDING)]. Unknown keys fall back to the default."""
    raw = (sort or DEFAULT_SORT).strip()
    direction = DESCENDING if raw.startswith("-") else ASCENDING
    key = SORT_KEYS.get(raw.lstrip("-+"))
    if key is None:
        return [(SORT_KEYS["submittedAt"], DESCENDING)]
    return [(key, direction)]


def check_gates(form: Form) -> None:
    if form.status != "published":
        raise NotPublished()
    limit = form.settings.submission_limit
    if limit is not None and form.submissions >= limit:
        raise LimitReached()


class SubmissionService:
    def __init__(self, db: Database):
        self.db = db
        self.collection = db[SUBMISSIONS]
        self.forms = FormService(db)

    def submit(
        self,
        form_id: str,
        field_values: Iterable[Tuple[str, Any]],
        metadata: Optional[Dict[str, Any]] = None,
    ) -> Submission:
        form = self.forms.get(form_id)
        check_gates(form)

        field_values = list(field_values)
        errors = validate_form_values(form, field_values)
        if errors:
            logger.debug("submission to form %s rejected: %s", form_id, errors)
            raise ValidationFailed(errors)

        # Store in form field order, one entry per field that carries a value
        values = dict(field_values)
        entries = [
            {"fieldId": f.id, "value": values[f.id], "fieldType": f.type}
            for f in form.fields
            if f.id in values and not is_absent(values[f.id])
        ]
        metadata = metadata or {}
        doc = {
            "formId": parse_object_id(form.id),
            "fields": entries,
            "metadata": {
                "ipAddress": metadata.get("ipAddress"),
                "userAgent": metadata.get("userAgent"),
                "referrer": metadata.get("referrer"),
                "submittedAt": utcnow(),
            },
            "status": "pending",
        }
        submission_id = create_document(self.db, SUBMISSIONS, doc)
        limit = form.settings.submission_limit
        try:
            counted = increment_counter(self.db, FORMS, doc["formId"], "submissions", 1, below=limit)
            gone = not counted and self.db[FORMS].find_one({"_id": doc["formId"]}, {"_id": 1}) is None
        except PyMongoError:
            logger.exception("counter increment failed for form %s, rolling back submission %s", form_id, submission_id)
            self._discard(submission_id)
            raise PersistenceError()
        if gone:
            # Form vanished between the gate check and the increment
            self._discard(submission_id)
            raise NotFound("Form not found")
        if not counted:
            # Another submission took the last slot after our gate check
            self._discard(submission_id)
            raise LimitReached()

        logger.info("submission %s accepted for form %s", submission_id, form_id)
        return self.get(submission_id)

    def _discard(self, submission_id: str) -> None:
        try:
            self.collection.delete_one({"_id": parse_object_id(submission_id)})
        except PyMongoError:
            logger.exception("could not roll back submission %s", submission_id)

    def get(self, submission_id: str) -> Submission:
        oid = parse_object_id(submission_id)
        doc = self.collection.find_one({"_id": oid}) if oid is not None else None
        if not doc:
            raise NotFound("Submission not found")
        return submission_from_document(doc)

    def list_for_form(
        self,
        form_id: str,
        page: int = 1,
        limit: int = 20,
        sort: Optional[str] = None,
    ) -> Tuple[List[Submission], Dict[str, int]]:
        form = self.forms.get(form_id)
        limit = max(1, min(limit, MAX_PAGE_SIZE))
        q = {"formId": parse_object_id(form.id)}
        cursor = self.collection.find(q).sort(parse_sort(sort)).skip((page - 1) * limit).limit(limit)
        items = [submission_from_document(d) for d in cursor]
        total = self.collection.count_documents(q)
        return items, {"page": page, "limit": limit, "total": total, "pages": math.ceil(total / limit)}

    def delete(self, submission_id: str) -> None:
        oid = parse_object_id(submission_id)
        doc = self.collection.find_one_and_delete({"_id": oid}) if oid is not None else None
        if not doc:
            raise NotFound("Submission not found")
        increment_counter(self.db, FORMS, doc["formId"], "submissions", -1)
        logger.info("submission %s deleted", submission_id)

"""
Form repository and lifecycle.

draft --publish--> published --unpublish--> draft

Publishing stamps `publishedAt`; unpublishing clears it and leaves fields
and the submission counter alone. Duplicates start over as drafts.
"""
import logging
import math
import re
from typing import Any, Dict, List, Optional, Sequence, Tuple

from pymongo import DESCENDING, ReturnDocument
from pymongo.database import Database

from database import FORMS, create_document, get_documents, parse_object_id, to_str_id, utcnow
from errors import NotFound
from schemas import Form, FormIn

logger = logging.getLogger(__name__)


def form_from_document(doc: Dict[str, Any]) -> Form:
    return Form.model_validate(to_str_id(doc))


def _definition(payload: FormIn, partial: bool = False) -> Dict[str, Any]:
    """Stored definition attributes. `partial` keeps only what the client sent."""
    names = {"title", "description", "fields", "settings"}
    if partial:
        names &= payload.model_fields_set
    return payload.model_dump(by_alias=True, include=names)



class FormService:
    def __init__(self, db: Database):
        self.db = db
        self.collection = db[FORMS]

    def _object_id(self, form_id: str):
        oid = parse_object_id(form_id)
        if oid is None:
            raise NotFound("Form not found")
        return oid

    def _update(self, form_id: str, update: Dict[str, Any]) -> Form:
        doc = self.collection.find_one_and_update(
            {"_id": self._object_id(form_id)}, update, return_document=ReturnDocument.AFTER
        )
        if not doc:
            raise NotFound("Form not found")
        return form_from_document(doc)

    def get(self, form_id: str) -> Form:
        doc = self.collection.find_one({"_id": self._object_id(form_id)})
        if not doc:
            raise NotFound("Form not found")
        return form_from_document(doc)

    def create(self, payload: FormIn, created_by: str = "anonymous") -> Form:
        data = _definition(payload)
        status = payload.status or "draft"
        data.update({
            "status": status,
            "submissions": 0,
            "createdBy": created_by,
            "publishedAt": utcnow() if status == "published" else None,
        })
        form_id = create_document(self.db, FORMS, data)
        logger.info("form %s created (%d fields)", form_id, len(payload.fields))
        return self.get(form_id)

    def update(self, form_id: str, payload: FormIn) -> Form:
        changes = _definition(payload, partial=True)
        changes["updatedAt"] = utcnow()
        if payload.status == "published":
            # Keep the original publish stamp if already published
            current = self.get(form_id)
            changes["status"] = "published"
            if current.status != "published":
                changes["publishedAt"] = changes["updatedAt"]
        elif payload.status == "draft":
            changes["status"] = "draft"
            changes["publishedAt"] = None
        return self._update(form_id, {"$set": changes})

    def replace_fields(self, form_id: str, fields: Sequence[Any]) -> Form:
        dumped = [f.model_dump(by_alias=True) for f in fields]
        return self._update(form_id, {"$set": {"fields": dumped, "updatedAt": utcnow()}})

    def delete(self, form_id: str) -> None:
        res = self.collection.delete_one({"_id": self._object_id(form_id)})
        if res.deleted_count == 0:
            raise NotFound("Form not found")
        logger.info("form %s deleted", form_id)

    def list(
        self,
        page: int = 1,
        limit: int = 10,
        status: Optional[str] = None,
        search: Optional[str] = None,
    ) -> Tuple[List[Dict[str, Any]], Dict[str, int]]:
        q: Dict[str, Any] = {}
        if status:
            q["status"] = status
        if search:
            pattern = re.escape(search)
            q["$or"] = [
                {"title": {"$regex": pattern, "$options": "i"}},
                {"description": {"$regex": pattern, "$options": "i"}},
            ]
        docs = get_documents(
            self.db,
            FORMS,
            q,
            sort=[("createdAt", DESCENDING)],
            skip=(page - 1) * limit,
            limit=limit,
            projection={"fields": 0},
        )
        total = self.collection.count_documents(q)
        pagination = {"page": page, "limit": limit, "total": total, "pages": math.ceil(total / limit)}
        return [to_str_id(d) for d in docs], pagination

    def publish(self, form_id: str) -> Form:
        now = utcnow()
        form = self._update(form_id, {"$set": {"status": "published", "publishedAt": now, "updatedAt": now}})
        logger.info("form %s published", form_id)
        return form

    def unpublish(self, form_id: str) -> Form:
        form = self._update(form_id, {"$set": {"status": "draft", "publishedAt": None, "updatedAt": utcnow()}})
        logger.info("form %s unpublished", form_id)
        return form

    def duplicate(self, form_id: str) -> Form:
        original = self.get(form_id)
        data = original.model_dump(by_alias=True, include={"description", "fields", "settings", "created_by"})
        data.update({
            "title": f"{original.title} (Copy)",
            "status": "draft",
            "submissions": 0,
            "publishedAt": None,
        })
        new_id = create_document(self.db, FORMS, data)
        logger.info("form %s duplicated as %s", form_id, new_id)
        return self.get(new_id)

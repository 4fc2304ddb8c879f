"""
Submission analytics and export.

Per-field response rates divide by the form's lifetime submission counter,
not by the number of submissions in the requested period.
"""
import csv
import io
import logging
import math
from collections import Counter
from datetime import date, datetime, timedelta
from typing import Any, Dict, Iterator, List, Mapping, Optional, Sequence, Tuple

from pymongo import DESCENDING
from pymongo.database import Database

from database import FORMS, SUBMISSIONS, get_documents, parse_object_id, to_str_id, utcnow
from forms import FormService
from ingestion import submission_from_document
from schemas import Form, Submission
from validation import is_absent

logger = logging.getLogger(__name__)

PERIODS = {"7d": 7, "30d": 30, "90d": 90, "1y": 365}
DEFAULT_PERIOD = "30d"
TOP_VALUES = 5

CSV_META_COLUMNS = ["Submission ID", "Submitted At", "IP Address", "User Agent", "Status"]


def resolve_period(period: Optional[str]) -> Tuple[str, int]:
    """Unknown periods fall back to 30 days."""
    if period in PERIODS:
        return period, PERIODS[period]
    return DEFAULT_PERIOD, PERIODS[DEFAULT_PERIOD]


def period_window(period: Optional[str], now: Optional[datetime] = None) -> Tuple[str, datetime, datetime]:
    key, days = resolve_period(period)
    end = now or utcnow()
    return key, end - timedelta(days=days), end


def display_value(value: Any) -> str:
    """Flatten a stored answer to the string shown in histograms and CSV cells."""
    if value is None:
        return ""
    if isinstance(value, (list, tuple)):
        return ", ".join(display_value(v) for v in value)
    if isinstance(value, Mapping):
        # File references from the upload collaborator
        return str(value.get("originalName") or value.get("filename") or value.get("url") or "")
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def daily_counts(timestamps: Sequence[datetime], start: date, end: date) -> List[Dict[str, Any]]:
    """Dense day-by-day series over [start, end], zero-filled."""
    counts: Dict[date, int] = {}
    day = start
    while day <= end:
        counts[day] = 0
        day += timedelta(days=1)
    for ts in timestamps:
        d = ts.date()
        if d in counts:
            counts[d] += 1
    return [{"date": d.isoformat(), "count": c} for d, c in counts.items()]


def field_stats(form: Form, submissions: Sequence[Submission]) -> List[Dict[str, Any]]:
    """Response count, rate and top values for each field still on the form."""
    responses: Dict[str, int] = {f.id: 0 for f in form.fields}
    values: Dict[str, Counter] = {f.id: Counter() for f in form.fields}
    for sub in submissions:
        for entry in sub.fields:
            # Answers to deleted fields only count towards totals
            if entry.field_id not in responses or is_absent(entry.value):
                continue
            responses[entry.field_id] += 1
            values[entry.field_id][display_value(entry.value)] += 1

    lifetime = form.submissions
    out = []
    for f in form.fields:
        count = responses[f.id]
        # Counter.most_common keeps first-seen order between equal counts
        top = values[f.id].most_common(TOP_VALUES)
        out.append({
            "fieldId": f.id,
            "label": f.label,
            "type": f.type,
            "responseCount": count,
            "responseRate": round(count / lifetime * 100, 2) if lifetime > 0 else 0.0,
            "topValues": [{"value": v, "count": c} for v, c in top],
        })
    return out


def compute_form_analytics(
    form: Form,
    submissions: Sequence[Submission],
    period_start: datetime,
    period_end: datetime,
) -> Dict[str, Any]:
    in_period = [s for s in submissions if period_start <= s.metadata.submitted_at <= period_end]
    days = max(1, math.ceil((period_end - period_start) / timedelta(days=1)))
    return {
        "formId": form.id,
        "title": form.title,
        "totalSubmissions": form.submissions,
        "periodSubmissions": len(in_period),
        "dailyStats": daily_counts([s.metadata.submitted_at for s in in_period], period_start.date(), period_end.date()),
        "fieldStats": field_stats(form, in_period),
        "averageSubmissionsPerDay": round(len(in_period) / days, 2),
    }


def csv_rows(form: Form, submissions: Sequence[Submission]) -> Iterator[List[str]]:
    yield CSV_META_COLUMNS + [f.label for f in form.fields]
    for sub in submissions:
        answers = {entry.field_id: entry.value for entry in sub.fields}
        yield [
            sub.id or "",
            sub.metadata.submitted_at.isoformat(),
            sub.metadata.ip_address or "",
            sub.metadata.user_agent or "",
            sub.status,
        ] + [display_value(answers.get(f.id)) for f in form.fields]


def iter_csv(rows: Iterator[List[str]]) -> Iterator[str]:
    """Encode rows one line at a time; every cell quoted, quotes doubled."""
    output = io.StringIO()
    writer = csv.writer(output, quoting=csv.QUOTE_ALL)
    for row in rows:
        writer.writerow(row)
        yield output.getvalue()
        output.seek(0)
        output.truncate(0)


class AnalyticsService:
    def __init__(self, db: Database):
        self.db = db
        self.forms = FormService(db)

    def _submissions(self, form: Form, since: Optional[datetime] = None, until: Optional[datetime] = None) -> List[Submission]:
        q: Dict[str, Any] = {"formId": parse_object_id(form.id)}
        window: Dict[str, Any] = {}
        if since is not None:
            window["$gte"] = since
        if until is not None:
            window["$lte"] = until
        if window:
            q["metadata.submittedAt"] = window
        docs = get_documents(self.db, SUBMISSIONS, q, sort=[("metadata.submittedAt", DESCENDING)])
        return [submission_from_document(d) for d in docs]

    def aggregate(self, form_id: str, period_start: datetime, period_end: datetime) -> Dict[str, Any]:
        form = self.forms.get(form_id)
        submissions = self._submissions(form, period_start, period_end)
        return compute_form_analytics(form, submissions, period_start, period_end)

    def form_analytics(self, form_id: str, period: Optional[str] = None, now: Optional[datetime] = None) -> Dict[str, Any]:
        key, start, end = period_window(period, now)
        data = self.aggregate(form_id, start, end)
        data["period"] = key
        return data

    def export_csv(self, form_id: str) -> Tuple[str, Iterator[str]]:
        """Returns (filename, line iterator) for every submission, newest first."""
        form = self.forms.get(form_id)
        submissions = self._submissions(form)
        filename = f"{form.title}-submissions-{utcnow().date().isoformat()}.csv"
        logger.info("exporting %d submissions for form %s", len(submissions), form_id)
        return filename, iter_csv(csv_rows(form, submissions))

    def _top_forms(self) -> List[Dict[str, Any]]:
        docs = get_documents(
            self.db,
            FORMS,
            sort=[("submissions", DESCENDING)],
            limit=5,
            projection={"title": 1, "submissions": 1, "createdAt": 1},
        )
        return [to_str_id(d) for d in docs]

    def _recent_submissions(self, limit: int = 10) -> List[Dict[str, Any]]:
        docs = get_documents(self.db, SUBMISSIONS, sort=[("metadata.submittedAt", DESCENDING)], limit=limit)
        form_ids = list({d["formId"] for d in docs})
        titles = {
            f["_id"]: f.get("title")
            for f in self.db[FORMS].find({"_id": {"$in": form_ids}}, {"title": 1})
        } if form_ids else {}
        return [
            {
                "id": str(d["_id"]),
                "formId": str(d["formId"]),
                "formTitle": titles.get(d["formId"]) or "Unknown Form",
                "submittedAt": d["metadata"]["submittedAt"],
                "status": d.get("status"),
            }
            for d in docs
        ]

    def _totals(self) -> Dict[str, int]:
        return {
            "totalForms": self.db[FORMS].count_documents({}),
            "publishedForms": self.db[FORMS].count_documents({"status": "published"}),
            "totalSubmissions": self.db[SUBMISSIONS].count_documents({}),
        }

    def overview(self) -> Dict[str, Any]:
        data: Dict[str, Any] = self._totals()
        data["topForms"] = self._top_forms()
        data["recentSubmissions"] = self._recent_submissions()
        return data

    def dashboard(self, period: Optional[str] = None, now: Optional[datetime] = None) -> Dict[str, Any]:
        key, start, end = period_window(period, now)
        totals = self._totals()
        totals["periodSubmissions"] = self.db[SUBMISSIONS].count_documents({"metadata.submittedAt": {"$gte": start, "$lte": end}})
        forms = totals["totalForms"]
        totals["averageSubmissionsPerForm"] = round(totals["totalSubmissions"] / forms, 2) if forms else 0.0
        return {
            "period": key,
            "overview": totals,
            "topForms": self._top_forms(),
            "recentActivity": self._recent_submissions(),
        }

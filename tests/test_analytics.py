import csv
import io
from datetime import datetime, timedelta

from analytics import compute_form_analytics, daily_counts, display_value, iter_csv, resolve_period
from schemas import Form, Submission

NOW = datetime(2024, 3, 10, 12, 0, 0)


def _form(submissions=4):
    return Form.model_validate({
        "id": "form1",
        "title": "Poll",
        "status": "published",
        "submissions": submissions,
        "fields": [
            {"id": "color", "type": "radio", "label": "Color", "options": ["Red", "Blue", "Green"]},
            {"id": "tags", "type": "checkbox", "label": "Tags", "options": ["a", "b"]},
            {"id": "note", "type": "text", "label": "Note"},
        ],
    })


def _sub(days_ago, **answers):
    return Submission.model_validate({
        "id": f"s{days_ago}{len(answers)}",
        "formId": "form1",
        "fields": [{"fieldId": k, "value": v, "fieldType": "text"} for k, v in answers.items()],
        "metadata": {"submittedAt": NOW - timedelta(days=days_ago)},
    })


def test_resolve_period_falls_back_to_30d():
    assert resolve_period("7d") == ("7d", 7)
    assert resolve_period("1y") == ("1y", 365)
    assert resolve_period("forever") == ("30d", 30)
    assert resolve_period(None) == ("30d", 30)


def test_daily_counts_is_dense():
    start = datetime(2024, 2, 27)
    series = daily_counts([datetime(2024, 3, 1, 9), datetime(2024, 3, 1, 23)], start.date(), datetime(2024, 3, 2).date())
    # 2024 is a leap year
    assert [d["date"] for d in series] == ["2024-02-27", "2024-02-28", "2024-02-29", "2024-03-01", "2024-03-02"]
    assert [d["count"] for d in series] == [0, 0, 0, 2, 0]


def test_form_analytics_shape():
    subs = [
        _sub(0, color="Red", tags=["a", "b"]),
        _sub(1, color="Red", ghost="x"),
        _sub(2, color="Blue", note=""),
        _sub(20, color="Green"),
    ]
    start = NOW - timedelta(days=7)
    data = compute_form_analytics(_form(), subs, start, NOW)

    assert data["totalSubmissions"] == 4
    assert data["periodSubmissions"] == 3
    assert len(data["dailyStats"]) == 8
    assert sum(d["count"] for d in data["dailyStats"]) == 3
    assert data["averageSubmissionsPerDay"] == round(3 / 7, 2)

    stats = {s["fieldId"]: s for s in data["fieldStats"]}
    # orphaned "ghost" answers are not broken out
    assert set(stats) == {"color", "tags", "note"}
    assert stats["color"]["responseCount"] == 3
    # divides by the lifetime counter, not by the period count
    assert stats["color"]["responseRate"] == 75.0
    assert stats["color"]["topValues"] == [{"value": "Red", "count": 2}, {"value": "Blue", "count": 1}]
    assert stats["tags"]["topValues"] == [{"value": "a, b", "count": 1}]
    assert stats["note"]["responseCount"] == 0
    assert stats["note"]["topValues"] == []


def test_response_rate_with_no_submissions():
    data = compute_form_analytics(_form(submissions=0), [], NOW - timedelta(days=30), NOW)
    assert all(s["responseRate"] == 0.0 for s in data["fieldStats"])
    assert data["periodSubmissions"] == 0
    assert len(data["dailyStats"]) == 31


def test_top_values_capped_at_five():
    form = Form.model_validate({"id": "f", "title": "T", "submissions": 10, "fields": [{"id": "n", "type": "text", "label": "N"}]})
    subs = [_sub(0, n=str(i % 7)) for i in range(10)]
    stats = compute_form_analytics(form, subs, NOW - timedelta(days=1), NOW)["fieldStats"][0]
    assert len(stats["topValues"]) == 5
    assert stats["topValues"][0] == {"value": "0", "count": 2}


def test_display_value():
    assert display_value(["x", "y"]) == "x, y"
    assert display_value(None) == ""
    assert display_value(False) == "false"
    assert display_value({"filename": "abc.png", "originalName": "me.png"}) == "me.png"


def test_csv_escaping_round_trip():
    value = 'Smith, "Jr."'
    text = "".join(iter_csv(iter([["id", value]])))
    assert '"Smith, ""Jr."""' in text
    assert next(csv.reader(io.StringIO(text))) == ["id", value]


class TestAnalyticsApi:
    FIELDS = [
        {"id": "name", "type": "text", "label": "Name"},
        {"id": "tags", "type": "checkbox", "label": "Tags", "options": ["x", "y"]},
    ]

    def _submit(self, client, form_id, **values):
        fields = [{"fieldId": k, "value": v} for k, v in values.items()]
        resp = client.post("/api/submissions", json={"formId": form_id, "fields": fields})
        assert resp.status_code == 201, resp.text

    def test_form_analytics(self, client, make_form):
        form = make_form(self.FIELDS)
        self._submit(client, form["id"], name="Ada", tags=["x", "y"])
        self._submit(client, form["id"], name="Ada")

        data = client.get(f"/api/analytics/form/{form['id']}", params={"period": "7d"}).json()["data"]
        assert data["period"] == "7d"
        assert data["totalSubmissions"] == 2
        assert data["periodSubmissions"] == 2
        assert len(data["dailyStats"]) == 8
        assert data["fieldStats"][0]["topValues"] == [{"value": "Ada", "count": 2}]
        assert data["fieldStats"][1]["responseRate"] == 50.0

        data = client.get(f"/api/analytics/form/{form['id']}", params={"period": "weird"}).json()["data"]
        assert data["period"] == "30d"
        assert len(data["dailyStats"]) == 31

    def test_missing_form(self, client):
        assert client.get("/api/analytics/form/64b7f0c2a1b2c3d4e5f60718").status_code == 404

    def test_csv_export(self, client, make_form):
        form = make_form(self.FIELDS, title="Sign up")
        self._submit(client, form["id"], name='Smith, "Jr."', tags=["x", "y"])

        resp = client.get(f"/api/analytics/form/{form['id']}/export", params={"format": "csv"})
        assert resp.status_code == 200
        assert resp.headers["content-type"].startswith("text/csv")
        assert resp.headers["content-disposition"].startswith('attachment; filename="Sign-up-submissions-')
        assert '"Smith, ""Jr."""' in resp.text

        rows = list(csv.reader(io.StringIO(resp.text)))
        assert rows[0] == ["Submission ID", "Submitted At", "IP Address", "User Agent", "Status", "Name", "Tags"]
        assert rows[1][5:] == ['Smith, "Jr."', "x, y"]
        assert rows[1][4] == "pending"

    def test_export_rejects_other_formats(self, client, make_form):
        form = make_form(self.FIELDS)
        resp = client.get(f"/api/analytics/form/{form['id']}/export", params={"format": "xlsx"})
        assert resp.status_code == 400
        assert resp.json() == {"success": False, "error": "Unsupported export format"}

    def test_overview_and_dashboard(self, client, make_form):
        form = make_form(self.FIELDS, title="Busy")
        make_form(self.FIELDS, title="Quiet", publish=False)
        self._submit(client, form["id"], name="a")

        overview = client.get("/api/analytics").json()["data"]
        assert overview["totalForms"] == 2
        assert overview["publishedForms"] == 1
        assert overview["totalSubmissions"] == 1
        assert overview["topForms"][0]["title"] == "Busy"
        assert overview["recentSubmissions"][0]["formTitle"] == "Busy"

        dash = client.get("/api/analytics/dashboard", params={"period": "7d"}).json()["data"]
        assert dash["period"] == "7d"
        assert dash["overview"]["periodSubmissions"] == 1
        assert dash["overview"]["averageSubmissionsPerForm"] == 0.5

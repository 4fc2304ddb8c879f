"""
Form definition and lifecycle through the HTTP API.
"""

FIELDS = [
    {"id": "f1", "type": "text", "label": "Name", "required": True, "order": 7},
    {"id": "f2", "type": "select", "label": "Color", "options": ["Red", "Blue"], "order": 3},
]


def _details(resp):
    body = resp.json()
    assert body["success"] is False
    return body["details"]


class TestCreate:
    def test_create_defaults_and_dense_order(self, client):
        resp = client.post("/api/forms", json={"title": "  Contact  ", "fields": FIELDS})
        assert resp.status_code == 201
        form = resp.json()["data"]
        assert form["title"] == "Contact"
        assert form["status"] == "draft"
        assert form["submissions"] == 0
        assert form["publishedAt"] is None
        assert form["settings"]["thankYouMessage"] == "Thank you for your submission!"
        assert [f["order"] for f in form["fields"]] == [0, 1]
        assert [f["id"] for f in form["fields"]] == ["f1", "f2"]

    def test_blank_title(self, client):
        resp = client.post("/api/forms", json={"title": "   ", "fields": []})
        assert resp.status_code == 400
        assert _details(resp) == [{"field": "title", "message": "Title is required"}]

    def test_unknown_field_type(self, client):
        resp = client.post("/api/forms", json={"title": "T", "fields": [{"id": "x", "type": "signature", "label": "Sign"}]})
        assert resp.status_code == 400
        assert _details(resp)[0]["message"] == "Invalid field type"

    def test_blank_label(self, client):
        resp = client.post("/api/forms", json={"title": "T", "fields": [{"id": "x", "type": "text", "label": " "}]})
        assert resp.status_code == 400
        assert any(d["message"] == "Field label is required" for d in _details(resp))

    def test_required_must_be_boolean(self, client):
        resp = client.post("/api/forms", json={"title": "T", "fields": [{"id": "x", "type": "text", "label": "A", "required": "yes"}]})
        assert resp.status_code == 400

    def test_choice_field_needs_options(self, client):
        resp = client.post("/api/forms", json={"title": "T", "fields": [{"id": "x", "type": "radio", "label": "A", "options": []}]})
        assert resp.status_code == 400

    def test_options_refused_on_text_field(self, client):
        resp = client.post("/api/forms", json={"title": "T", "fields": [{"id": "x", "type": "text", "label": "A", "options": ["a"]}]})
        assert resp.status_code == 400
        assert any("options not supported for text fields" in d["message"] for d in _details(resp))

    def test_duplicate_field_ids(self, client):
        fields = [{"id": "x", "type": "text", "label": "A"}, {"id": "x", "type": "email", "label": "B"}]
        resp = client.post("/api/forms", json={"title": "T", "fields": fields})
        assert resp.status_code == 400

    def test_non_positive_submission_limit(self, client):
        resp = client.post("/api/forms", json={"title": "T", "settings": {"submissionLimit": 0}})
        assert resp.status_code == 400


class TestLifecycle:
    def test_publish_and_unpublish(self, client, make_form):
        form = make_form(FIELDS, publish=False)
        resp = client.patch(f"/api/forms/{form['id']}/publish")
        published = resp.json()["data"]
        assert published["status"] == "published"
        assert published["publishedAt"] is not None

        resp = client.patch(f"/api/forms/{form['id']}/unpublish")
        draft = resp.json()["data"]
        assert draft["status"] == "draft"
        assert draft["publishedAt"] is None
        assert draft["fields"] == published["fields"]

    def test_publish_missing_form(self, client):
        assert client.patch("/api/forms/64b7f0c2a1b2c3d4e5f60718/publish").status_code == 404
        assert client.patch("/api/forms/not-an-id/publish").status_code == 404

    def test_duplicate_resets_state(self, client, make_form):
        form = make_form(FIELDS, settings={"isMultiStep": True, "steps": ["One", "Two"]})
        client.post("/api/submissions", json={"formId": form["id"], "fields": [{"fieldId": "f1", "value": "Ada"}]})

        resp = client.post(f"/api/forms/{form['id']}/duplicate")
        assert resp.status_code == 201
        copy = resp.json()["data"]
        assert copy["id"] != form["id"]
        assert copy["title"] == "Contact (Copy)"
        assert copy["status"] == "draft"
        assert copy["submissions"] == 0
        assert copy["publishedAt"] is None
        assert copy["fields"] == form["fields"]
        assert copy["settings"] == form["settings"]

    def test_update_replaces_definition(self, client, make_form):
        form = make_form(FIELDS, publish=False)
        body = {"title": "Renamed", "fields": list(reversed(FIELDS)), "settings": {"submissionLimit": 5}}
        resp = client.put(f"/api/forms/{form['id']}", json=body)
        assert resp.status_code == 200
        updated = resp.json()["data"]
        assert updated["title"] == "Renamed"
        assert [f["id"] for f in updated["fields"]] == ["f2", "f1"]
        assert [f["order"] for f in updated["fields"]] == [0, 1]
        assert updated["settings"]["submissionLimit"] == 5

    def test_update_keeps_what_was_not_sent(self, client, make_form):
        form = make_form(FIELDS, settings={"submissionLimit": 5, "isMultiStep": True, "steps": ["A"]}, publish=False)
        client.put(f"/api/forms/{form['id']}", json={"title": "T", "description": "About"})

        resp = client.put(f"/api/forms/{form['id']}", json={"title": "Renamed"})
        assert resp.status_code == 200
        updated = resp.json()["data"]
        assert updated["title"] == "Renamed"
        assert updated["description"] == "About"
        assert updated["settings"]["submissionLimit"] == 5
        assert updated["settings"]["isMultiStep"] is True
        assert [f["id"] for f in updated["fields"]] == ["f1", "f2"]

    def test_delete(self, client, make_form):
        form = make_form(FIELDS)
        assert client.delete(f"/api/forms/{form['id']}").json()["success"] is True
        assert client.get(f"/api/forms/{form['id']}").status_code == 404


class TestListing:
    def test_list_filters_and_paginates(self, client, make_form):
        make_form(FIELDS, title="Alpha survey")
        make_form(FIELDS, title="Beta poll", publish=False)
        make_form(FIELDS, title="Gamma survey", publish=False)

        body = client.get("/api/forms", params={"search": "SURVEY"}).json()["data"]
        assert {f["title"] for f in body["forms"]} == {"Alpha survey", "Gamma survey"}
        assert all("fields" not in f for f in body["forms"])

        body = client.get("/api/forms", params={"status": "draft", "limit": 1}).json()["data"]
        assert body["pagination"] == {"page": 1, "limit": 1, "total": 2, "pages": 2}
        assert len(body["forms"]) == 1


class TestBuilderRoutes:
    def test_field_edits_keep_order_dense(self, client, make_form):
        form = make_form(FIELDS, publish=False)
        fid = form["id"]

        fields = client.post(f"/api/forms/{fid}/fields", json={"type": "checkbox"}).json()["data"]["fields"]
        assert fields[-1]["options"] == ["Option 1"]

        fields = client.post(f"/api/forms/{fid}/fields/f1/duplicate").json()["data"]["fields"]
        assert fields[-1]["label"] == "Name (Copy)"

        fields = client.post(f"/api/forms/{fid}/fields/move", json={"from": 3, "to": 0}).json()["data"]["fields"]
        assert fields[0]["label"] == "Name (Copy)"

        fields = client.delete(f"/api/forms/{fid}/fields/f2").json()["data"]["fields"]
        assert [f["order"] for f in fields] == list(range(len(fields)))
        assert "f2" not in [f["id"] for f in fields]

    def test_update_field_refuses_unsupported(self, client, make_form):
        form = make_form(FIELDS, publish=False)
        resp = client.patch(f"/api/forms/{form['id']}/fields/f1", json={"fileTypes": ["image/png"]})
        assert resp.status_code == 400

    def test_steps_endpoint(self, client, make_form):
        fields = [{"id": f"q{i}", "type": "text", "label": f"Q{i}"} for i in range(7)]
        form = make_form(fields, settings={"isMultiStep": True, "steps": ["A", "B", "C"]})
        steps = client.get(f"/api/forms/{form['id']}/steps").json()["data"]
        assert [len(s["fieldIds"]) for s in steps] == [3, 3, 1]
        assert steps[2] == {"index": 2, "name": "C", "fieldIds": ["q6"]}


def test_qr_only_for_published_forms(client, make_form):
    draft = make_form(FIELDS, publish=False)
    assert client.get(f"/api/forms/{draft['id']}/qr").status_code == 400

    live = make_form(FIELDS)
    resp = client.get(f"/api/forms/{live['id']}/qr")
    assert resp.status_code == 200
    assert resp.headers["content-type"] == "image/png"
    assert resp.content.startswith(b"\x89PNG")

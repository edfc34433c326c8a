import io, csv
from datetime import datetime
from types import SimpleNamespace

from csv_export import generate_csv, render_cell
from fields import FormDefinition, build_field_schema

HDR = {"x-api-key": "test-key"}

def _form():
    return FormDefinition(title="T", fields=build_field_schema([
        {"label": "Email", "name": "email", "type": "email", "order": 1},
        {"label": "Name", "name": "name", "type": "text", "order": 0},
        {"label": "Agree", "name": "agree", "type": "checkbox", "order": 2},
    ]))

def test_render_cell():
    assert render_cell(None) == ""
    assert render_cell(["a", "b"]) == "a; b"
    assert render_cell({"k": 1}) == '{"k": 1}'
    assert render_cell(True) == "true"
    assert render_cell(3) == "3"

def test_generate_csv_columns_follow_field_order():
    sub = SimpleNamespace(id=7, submitted_at=datetime(2024, 5, 1, 12, 0), ip="1.2.3.4",
                          answers=[{"name": "agree", "value": True}, {"name": "name", "value": "Ann, Jr."}])
    rows = list(csv.reader(io.StringIO(generate_csv([sub], _form()))))
    assert rows[0] == ["Submission ID", "Submitted At", "IP Address", "Name", "Email", "Agree"]
    assert rows[1] == ["7", "2024-05-01T12:00:00", "1.2.3.4", "Ann, Jr.", "", "true"]

def test_generate_csv_without_submissions():
    assert generate_csv([], _form()) == "No submissions found"

def test_export_csv_after_submit(client):
    fid = client.post("/admin/forms", json={"title": "Export Form", "fields": [
        {"label": "Name", "name": "name", "type": "text", "required": True, "order": 0},
        {"label": "Topics", "name": "topics", "type": "text", "order": 1},
    ]}, headers=HDR).json()["id"]

    r = client.post("/public/submissions", json={"formId": fid, "answers": [{"name": "name", "value": "Dee"}]})
    assert r.status_code == 201

    r = client.get(f"/admin/forms/{fid}/export.csv", headers=HDR)
    assert r.status_code == 200
    assert "text/csv" in r.headers.get("content-type", "")
    assert f"submissions-{fid}-" in r.headers["content-disposition"]

    reader = csv.reader(io.StringIO(r.content.decode("utf-8")))
    header = next(reader)
    assert header == ["Submission ID", "Submitted At", "IP Address", "Name", "Topics"]
    row = next(reader)
    assert row[2] == "testclient"
    assert row[3:] == ["Dee", ""]

def test_export_unknown_form_is_404(client):
    assert client.get("/admin/forms/999999/export.csv", headers=HDR).status_code == 404

def test_render_cell_drops_trailing_zero_on_whole_floats():
    assert render_cell(1.0) == "1"
    assert render_cell(2.5) == "2.5"
    assert render_cell([1.0, 2.0]) == "1; 2"

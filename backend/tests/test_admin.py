from schemas import CamelModel, FormCreate

HDR = {"x-api-key": "test-key"}

def _create(client, fields, title="Admin Test"):
    r = client.post("/admin/forms", json={"title": title, "description": "desc", "fields": fields}, headers=HDR)
    assert r.status_code == 201, r.text
    return r.json()

def test_create_form_normalizes_and_orders_fields(client):
    form = _create(client, [
        {"label": "Email Address", "type": "email", "order": 1, "_dragId": "tmp-2"},
        {"label": "Full Name", "type": "text", "required": True, "order": 0},
    ])
    assert form["version"] == 1
    assert form["isActive"] is True
    assert [f["name"] for f in form["fields"]] == ["full_name", "email_address"]
    assert "_dragId" not in form["fields"][1]

def test_create_form_rejects_duplicate_names(client):
    r = client.post("/admin/forms", json={"title": "Dup", "fields": [
        {"label": "Name", "type": "text"},
        {"label": "name", "name": "name", "type": "text"},
    ]}, headers=HDR)
    assert r.status_code == 400
    assert "unique" in r.json()["detail"]

def test_create_form_rejects_unknown_type_and_blank_title(client):
    r = client.post("/admin/forms", json={"title": "Bad", "fields": [{"label": "X", "type": "color"}]}, headers=HDR)
    assert r.status_code == 400
    r = client.post("/admin/forms", json={"title": "   ", "fields": []}, headers=HDR)
    assert r.status_code == 400

def test_update_bumps_version_only_on_field_changes(client, contact_fields):
    form = _create(client, contact_fields)
    fid = form["id"]

    r = client.put(f"/admin/forms/{fid}", json={"title": "Renamed", "isActive": False}, headers=HDR)
    assert r.json()["version"] == 1
    assert r.json()["title"] == "Renamed"
    assert r.json()["isActive"] is False

    r = client.put(f"/admin/forms/{fid}", json={"fields": contact_fields}, headers=HDR)
    assert r.json()["version"] == 1

    changed = [dict(contact_fields[0], required=False), contact_fields[1]]
    r = client.put(f"/admin/forms/{fid}", json={"fields": changed}, headers=HDR)
    assert r.json()["version"] == 2
    assert r.json()["fields"][0]["required"] is False

def test_soft_delete_and_restore(client, contact_fields):
    fid = _create(client, contact_fields, title="Deletable")["id"]

    assert client.delete(f"/admin/forms/{fid}", headers=HDR).status_code == 200
    assert client.get(f"/public/forms/{fid}").status_code == 404
    assert fid not in [f["id"] for f in client.get("/admin/forms", headers=HDR).json()]

    listed = client.get("/admin/forms", params={"include_deleted": "true"}, headers=HDR).json()
    deleted = next(f for f in listed if f["id"] == fid)
    assert deleted["isDeleted"] is True and deleted["deletedAt"] is not None
    assert deleted["isActive"] is False

    r = client.post(f"/admin/forms/{fid}/restore", headers=HDR)
    assert r.status_code == 200
    assert r.json()["form"]["isDeleted"] is False
    assert client.get(f"/public/forms/{fid}").status_code == 200
    assert client.post(f"/admin/forms/{fid}/restore", headers=HDR).status_code == 404

def test_missing_form_is_404(client):
    assert client.put("/admin/forms/999999", json={"title": "x"}, headers=HDR).status_code == 404
    assert client.delete("/admin/forms/999999", headers=HDR).status_code == 404

def test_admin_routes_require_api_key(client):
    from main import app
    from security import verify_admin

    override = app.dependency_overrides.pop(verify_admin)
    try:
        assert client.get("/admin/forms").status_code == 401
        assert client.get("/admin/forms", headers={"x-api-key": "wrong"}).status_code == 401
    finally:
        app.dependency_overrides[verify_admin] = override

def test_form_payloads_share_the_camel_case_model():
    assert issubclass(FormCreate, CamelModel)
    payload = FormCreate.model_validate({"title": "T", "fields": [{"label": "A", "type": "text"}]})
    assert payload.model_dump(by_alias=True) == {"title": "T", "description": None, "fields": [{"label": "A", "type": "text"}]}

from fields import FormDefinition, build_field_schema
from versioning import bump_version_if_changed, fields_changed, snapshot_form, submission_state_error

RAW = [
    {"label": "Name", "name": "name", "type": "text", "required": True, "order": 0},
    {"label": "Plan", "name": "plan", "type": "select", "options": ["basic", "pro"], "order": 1,
     "conditionalFields": {"pro": [{"label": "Seats", "name": "seats", "type": "number", "validation": {"min": 1}}]}},
]

def _form(**kw):
    return FormDefinition(id=1, title="Signup", description="desc", fields=build_field_schema(RAW), **kw)

def test_identical_fields_keep_version():
    form = _form()
    once = bump_version_if_changed(form, build_field_schema(RAW))
    twice = bump_version_if_changed(once, build_field_schema(RAW))
    assert once.version == 1
    assert twice.version == 1

def test_required_flag_change_bumps_once():
    changed = [dict(f) for f in RAW]
    changed[0]["required"] = False
    updated = bump_version_if_changed(_form(), build_field_schema(changed))
    assert updated.version == 2
    assert updated.fields[0].required is False

def test_nested_change_bumps_version():
    changed = [dict(f) for f in RAW]
    changed[1] = dict(changed[1], conditionalFields={"pro": [{"label": "Seats", "name": "seats", "type": "number", "validation": {"min": 2}}]})
    assert bump_version_if_changed(_form(), build_field_schema(changed)).version == 2

def test_reordering_fields_is_a_change():
    current = build_field_schema(RAW)
    assert fields_changed(current, list(reversed(current)))

def test_bump_returns_new_form_and_leaves_input_alone():
    form = _form(version=4)
    updated = bump_version_if_changed(form, [])
    assert updated.version == 5
    assert updated.fields == []
    assert form.version == 4
    assert len(form.fields) == 2

def test_snapshot_copies_content():
    form = _form()
    snap = snapshot_form(form)
    assert snap.title == "Signup"
    assert snap.description == "desc"
    assert snap.fields == form.fields

def test_snapshot_is_isolated_from_later_edits():
    form = _form()
    snap = snapshot_form(form)
    form.fields.pop()
    form.fields[0].label = "Renamed"
    form.fields[0].required = False
    assert [f.name for f in snap.fields] == ["name", "plan"]
    assert snap.fields[0].label == "Name"
    assert snap.fields[0].required is True

def test_state_error_for_unavailable_forms():
    assert submission_state_error(_form()) is None
    assert submission_state_error(_form(is_active=False)) == "Form is not active"
    assert submission_state_error(_form(is_deleted=True)) == "Form not found"
    assert submission_state_error(None) == "Form not found"

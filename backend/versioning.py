# Form versioning and submission snapshots
import logging
from typing import List, Optional

from fields import FieldSpec, FormDefinition, FormSnapshot, dump_fields, load_fields

logger = logging.getLogger(__name__)


def snapshot_form(form: FormDefinition) -> FormSnapshot:
    """Freeze the form's title, description and fields for a submission.

    The snapshot is rebuilt from the wire form of the fields, so later edits
    to ``form`` (or its field objects) never show through.
    """
    return FormSnapshot(
        title=form.title,
        description=form.description or "",
        fields=load_fields(dump_fields(form.fields)),
    )


def fields_changed(current: List[FieldSpec], new_fields: List[FieldSpec]) -> bool:
    return dump_fields(current) != dump_fields(new_fields)


def bump_version_if_changed(form: FormDefinition, new_fields: List[FieldSpec]) -> FormDefinition:
    """Replace the form's fields, bumping ``version`` when their content differs.

    Comparison is deep and order-sensitive. Title, description and activity
    changes never reach this function and never move the version.

    Two concurrent updates can both read version N and both write N+1; the
    last writer wins. Form editing assumes a single admin at a time.
    """
    version = form.version or 1
    if fields_changed(form.fields, new_fields):
        version += 1
        logger.info("Form %s fields changed, version %d -> %d", form.id, form.version, version)
    return form.model_copy(update={"fields": list(new_fields), "version": version})


def submission_state_error(form: Optional[FormDefinition]) -> Optional[str]:
    """Why a form cannot take submissions right now, or None if it can.

    Checked before any answer validation runs.
    """
    if form is None or form.is_deleted:
        return "Form not found"
    if not form.is_active:
        return "Form is not active"
    return None

# CSV rendering of form submissions
import json
from typing import Any, Iterable

import pandas as pd

from fields import branch_key

BASE_COLUMNS = ["Submission ID", "Submitted At", "IP Address"]
NO_SUBMISSIONS = "No submissions found"


def render_cell(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, list):
        return "; ".join(render_cell(v) for v in value)
    if isinstance(value, dict):
        return json.dumps(value)
    return branch_key(value)


def generate_csv(submissions: Iterable, form) -> str:
    """Render submissions as CSV, one column per top-level field of `form`.

    Args:
        submissions (Iterable[Submission]): Rows with ``id``, ``submitted_at``, ``ip``, ``answers``.
        form (FormDefinition): Supplies column order and header labels.

    Returns:
        str: CSV text, or ``"No submissions found"`` when there is nothing to export.
    """
    submissions = list(submissions)
    if not submissions:
        return NO_SUBMISSIONS

    names = [f.name for f in form.fields]
    rows = []
    for s in submissions:
        answers = {a["name"]: a.get("value") for a in (s.answers or [])}
        submitted_at = s.submitted_at.isoformat() if s.submitted_at else ""
        rows.append([str(s.id), submitted_at, s.ip or ""] + [render_cell(answers.get(n)) for n in names])

    df = pd.DataFrame(rows, columns=BASE_COLUMNS + [f.label for f in form.fields])
    return df.to_csv(index=False)

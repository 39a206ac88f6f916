# Overview: Per-company document numbers (PO-YYYYMMDD-NNN, INV-YYYYMMDD-NNNN).

from __future__ import annotations

from ..extensions import db
from ..time_utils import date_stamp


def next_document_number(*, company_id: int, column, prefix: str, pad: int, when=None) -> str:
    """
    Next free number of the form {prefix}-{YYYYMMDD}-{seq}.

    The sequence restarts every day and is derived from the highest number
    already issued for that day within the company. A concurrent writer can
    pick the same number; the unique constraint on the column rejects it and
    the caller's unit of work retries or surfaces the conflict.
    """
    stem = f"{prefix}-{date_stamp(when)}-"
    model = column.class_

    existing = (
        db.session.query(column)
        .filter(model.company_id == company_id, column.like(f"{stem}%"))
        .all()
    )

    highest = 0
    for (number,) in existing:
        suffix = number[len(stem):]
        if suffix.isdigit():
            highest = max(highest, int(suffix))

    return f"{stem}{highest + 1:0{pad}d}"

# Overview: Per-tenant document numbering (TR-YYYY-NNN, PO-YYYY-NNN).

from __future__ import annotations

from sqlalchemy import update

from ..extensions import db
from ..errors import ValidationError
from ..models import DocumentSequence
from ..time_utils import utcnow


TRANSFER_PREFIX = "TR"
PURCHASE_ORDER_PREFIX = "PO"


def format_document_number(prefix: str, year: int, number: int, pad: int = 3) -> str:
    return f"{prefix}-{year}-{str(number).zfill(pad)}"


def next_document_number(
    *,
    user_id: str,
    document_type: str,
    prefix: str,
    year: int | None = None,
    pad: int = 3,
) -> str:
    """
    Atomically allocate the next document number for a tenant/type/year.

    The increment is a single UPDATE so concurrent callers serialize on the
    sequence row. The first number of a year inserts the row.
    """
    if not user_id:
        raise ValidationError("user_id is required")
    if not document_type:
        raise ValidationError("document_type is required")
    year = year or utcnow().year

    stmt = (
        update(DocumentSequence)
        .where(
            DocumentSequence.user_id == user_id,
            DocumentSequence.document_type == document_type,
            DocumentSequence.year == year,
        )
        .values(next_number=DocumentSequence.next_number + 1)
    )
    result = db.session.execute(stmt)
    if result.rowcount:
        current = (
            db.session.query(DocumentSequence.next_number)
            .filter_by(user_id=user_id, document_type=document_type, year=year)
            .scalar()
        )
        number = current - 1
    else:
        db.session.add(DocumentSequence(
            user_id=user_id,
            document_type=document_type,
            year=year,
            next_number=2,
        ))
        db.session.flush()
        number = 1

    return format_document_number(prefix, year, number, pad)

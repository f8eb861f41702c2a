from __future__ import annotations

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from reseller_orders.models import IdSequence


def next_id(db: Session, model, column: str = 'id') -> int:
    """Reserve the next numeric id for ``model`` inside the caller's transaction.

    The per-table counter row is locked with SELECT ... FOR UPDATE, so two
    writers allocating for the same table serialise until one commits. Rows
    inserted without the allocator are still honoured through MAX(column).
    """
    table_name = model.__table__.name
    id_column = model.__table__.c[column]

    sequence = db.execute(
        select(IdSequence)
        .where(IdSequence.table_name == table_name, IdSequence.column_name == column)
        .with_for_update()
    ).scalar_one_or_none()
    if sequence is None:
        sequence = IdSequence(table_name=table_name, column_name=column, last_id=0)
        db.add(sequence)
        db.flush()

    current_max = db.execute(select(func.coalesce(func.max(id_column), 0))).scalar_one()
    allocated = max(int(sequence.last_id or 0), int(current_max or 0)) + 1
    sequence.last_id = allocated
    db.flush()
    return allocated

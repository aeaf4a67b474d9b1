from __future__ import annotations

from sqlalchemy import select
from sqlalchemy.orm import Session

from roadtrack.core.errors import IdSequenceExhaustedError
from roadtrack.db.models import IdSequence

ID_WIDTH = 5


def format_id(id_prefix: str, numeric_id: int) -> str:
    return f"{id_prefix}-{numeric_id:0{ID_WIDTH}d}"


def get_last_id(db: Session, *, table_name: str, id_for: str) -> int | None:
    return db.scalar(
        select(IdSequence.last_id).where(
            IdSequence.table_name == table_name,
            IdSequence.id_for == id_for,
        )
    )


def next_id(
    db: Session,
    *,
    id_prefix: str,
    table_name: str,
    id_for: str,
    max_value: int = 99999,
) -> str:
    """Reserve the next sequential id for ``(table_name, id_for)``.

    The counter row stays locked until the caller commits, so the id and the
    row that uses it should be committed together. Two writers creating the
    very first counter of a scope collide on the unique constraint; the loser
    sees an ``IntegrityError`` on flush and can retry.
    """
    sequence = db.scalars(
        select(IdSequence)
        .where(IdSequence.table_name == table_name, IdSequence.id_for == id_for)
        .with_for_update()
    ).first()

    if sequence is None:
        sequence = IdSequence(
            table_name=table_name,
            id_for=id_for,
            id_prefix=id_prefix,
            last_id=1,
        )
        db.add(sequence)
        db.flush()
        return format_id(id_prefix, 1)

    numeric_id = int(sequence.last_id) + 1
    if numeric_id > max_value:
        raise IdSequenceExhaustedError(table_name=table_name, id_for=id_for, max_value=max_value)
    sequence.last_id = numeric_id
    db.add(sequence)
    db.flush()
    return format_id(sequence.id_prefix or id_prefix, numeric_id)

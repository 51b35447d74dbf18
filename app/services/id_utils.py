from __future__ import annotations

import re
from typing import Iterable

from sqlalchemy import select
from sqlalchemy.orm import InstrumentedAttribute, Session

ITEM_PREFIX = 'ITM'
EMPLOYEE_PREFIX = 'EMP'
TASK_PREFIX = 'TASK'
ID_WIDTH = 5


def extract_sequence(value: str | None, prefix: str) -> int | None:
    match = re.fullmatch(rf'{re.escape(prefix)}(\d+)', (value or '').strip())
    if not match:
        return None
    return int(match.group(1))


def format_id(prefix: str, number: int) -> str:
    return f'{prefix}{number:0{ID_WIDTH}d}'


def next_id_from(existing: Iterable[str | None], prefix: str) -> str:
    highest = 0
    for value in existing:
        seq = extract_sequence(value, prefix)
        if seq is not None and seq > highest:
            highest = seq
    return format_id(prefix, highest + 1)


def next_id(db: Session, column: InstrumentedAttribute, prefix: str) -> str:
    existing = db.execute(select(column).where(column.like(f'{prefix}%'))).scalars().all()
    return next_id_from(existing, prefix)

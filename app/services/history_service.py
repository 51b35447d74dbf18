from __future__ import annotations

import uuid
from datetime import date, datetime, time, timedelta, timezone

from sqlalchemy import select
from sqlalchemy.orm import Session

from app.models import HistoryAction, HistoryRecord

DEFAULT_HISTORY_LIMIT = 50


def _now() -> datetime:
    return datetime.now(tz=timezone.utc)


def record_history(
    db: Session,
    *,
    employee_id: str,
    employee_name: str,
    item_id: str,
    item_name: str,
    qty: int,
    action: HistoryAction,
    admin_note: str = '',
) -> HistoryRecord:
    record = HistoryRecord(
        id=str(uuid.uuid4()),
        timestamp=_now(),
        employee_id=employee_id,
        employee_name=employee_name,
        item_id=item_id,
        item_name=item_name,
        qty=qty,
        action=action,
        admin_note=admin_note,
    )
    db.add(record)
    db.flush()
    return record


def list_history(
    db: Session,
    *,
    employee_id: str | None = None,
    start_date: date | None = None,
    end_date: date | None = None,
    limit: int = DEFAULT_HISTORY_LIMIT,
) -> list[HistoryRecord]:
    stmt = select(HistoryRecord)
    if employee_id:
        stmt = stmt.where(HistoryRecord.employee_id == employee_id)
    if start_date:
        stmt = stmt.where(HistoryRecord.timestamp >= datetime.combine(start_date, time.min, tzinfo=timezone.utc))
    if end_date:
        # End day is inclusive.
        stmt = stmt.where(
            HistoryRecord.timestamp < datetime.combine(end_date + timedelta(days=1), time.min, tzinfo=timezone.utc)
        )
    stmt = stmt.order_by(HistoryRecord.seq.desc()).limit(max(int(limit), 0))
    return list(db.execute(stmt).scalars().all())


def _get_record(db: Session, record_id: str) -> HistoryRecord:
    record = db.execute(select(HistoryRecord).where(HistoryRecord.id == record_id)).scalar_one_or_none()
    if not record:
        raise ValueError('History record not found')
    return record


def update_history(
    db: Session,
    *,
    record_id: str,
    qty: int | None = None,
    action: str | None = None,
    admin_note: str | None = None,
) -> HistoryRecord:
    record = _get_record(db, record_id)
    if qty is not None:
        if qty < 0:
            raise ValueError('Quantity cannot be negative')
        record.qty = qty
    if action:
        try:
            record.action = HistoryAction(action)
        except ValueError as exc:
            raise ValueError(f'Unknown history action: {action}') from exc
    if admin_note is not None:
        record.admin_note = admin_note.strip()
    db.flush()
    return record


def delete_history(db: Session, *, record_id: str) -> None:
    record = _get_record(db, record_id)
    db.delete(record)
    db.flush()


def serialize_history(record: HistoryRecord) -> dict:
    return {
        'id': record.id,
        'timestamp': record.timestamp.isoformat(),
        'employee_id': record.employee_id,
        'employee_name': record.employee_name,
        'item_id': record.item_id,
        'item_name': record.item_name,
        'qty': record.qty,
        'action': record.action.value,
        'admin_note': record.admin_note,
    }

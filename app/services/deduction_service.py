from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone

import structlog
from sqlalchemy import select
from sqlalchemy.orm import Session

from app.models import HistoryAction, Item, Task, TaskStatus
from app.schemas import TaskLine
from app.services.email_service import LowStockAlert
from app.services.history_service import record_history
from app.services.stock_alert_service import get_low_stock_threshold, is_low_stock, queue_low_stock_alerts
from app.services.task_lines import dump_task_lines, task_lines

logger = structlog.get_logger(__name__)


@dataclass
class DeductionResult:
    stock_levels: dict[str, int] = field(default_factory=dict)
    alerts: list[LowStockAlert] = field(default_factory=list)
    undistributed: dict[str, int] = field(default_factory=dict)

    def as_dict(self) -> dict:
        return {
            'success': True,
            'stock': dict(self.stock_levels),
            'low_stock': [{'id': a.id, 'name': a.name, 'stock': a.stock} for a in self.alerts],
            'undistributed': dict(self.undistributed),
        }


@dataclass
class _OpenTask:
    task: Task
    lines: list[TaskLine]
    dirty: bool = False


def _now() -> datetime:
    return datetime.now(tz=timezone.utc)


def _load_open_tasks(db: Session) -> list[_OpenTask]:
    tasks = db.execute(
        select(Task)
        .where(Task.status == TaskStatus.ASSIGNED)
        .order_by(Task.assigned_at.asc(), Task.task_id.asc())
        .with_for_update()
    ).scalars().all()

    open_tasks: list[_OpenTask] = []
    for task in tasks:
        try:
            lines = task_lines(task)
        except ValueError as exc:
            logger.error('task_items_malformed', task_id=task.task_id, error=str(exc))
            continue
        open_tasks.append(_OpenTask(task=task, lines=lines))
    return open_tasks


def distribute_to_tasks(open_tasks: list[_OpenTask], *, item_id: str, qty: int) -> int:
    """Credit qty of item_id against open task lines, oldest task first.

    Only task progress changes here; stock has already been deducted.
    Returns the quantity no task line claimed.
    """
    remaining = qty
    for entry in open_tasks:
        if remaining <= 0:
            break
        line = next((ln for ln in entry.lines if ln.item_id == item_id and ln.required_qty > 0), None)
        if line is None:
            continue
        credit = min(remaining, line.required_qty)
        line.required_qty -= credit
        remaining -= credit
        entry.dirty = True
    return remaining


def _lock_items(db: Session, item_ids: list[str]) -> dict[str, Item]:
    rows = db.execute(select(Item).where(Item.id.in_(item_ids)).with_for_update()).scalars().all()
    by_id = {row.id: row for row in rows}
    missing = [item_id for item_id in item_ids if item_id not in by_id]
    if missing:
        raise ValueError(f"Item not found: {', '.join(missing)}")
    return by_id


def deduct_items(
    db: Session,
    *,
    employee_id: str,
    employee_name: str,
    lines: list[tuple[str, int]],
) -> DeductionResult:
    """Deduct stock for each (item_id, qty) pair and credit open tasks.

    The low-stock batch is queued on the session; the caller sends it once the
    transaction commits (see ``dispatch_pending_alerts``).
    """
    if not lines:
        raise ValueError('Nothing to deduct')
    for item_id, qty in lines:
        if int(qty) <= 0:
            raise ValueError(f'Quantity must be positive for {item_id}')

    items = _lock_items(db, sorted({item_id for item_id, _ in lines}))
    threshold = get_low_stock_threshold(db)
    open_tasks = _load_open_tasks(db)
    result = DeductionResult()

    for item_id, qty in lines:
        qty = int(qty)
        item = items[item_id]
        new_stock = max(item.stock - qty, 0)
        item.stock = new_stock
        item.updated_at = _now()

        record_history(
            db,
            employee_id=employee_id,
            employee_name=employee_name,
            item_id=item.id,
            item_name=item.name,
            qty=qty,
            action=HistoryAction.DEDUCT,
        )

        alert = LowStockAlert(name=item.name, id=item.id, stock=new_stock)
        # Re-deducting an item within one request keeps only its latest level.
        result.alerts = [a for a in result.alerts if a.id != item.id]
        if is_low_stock(new_stock, threshold):
            result.alerts.append(alert)

        remaining = distribute_to_tasks(open_tasks, item_id=item.id, qty=qty)
        result.undistributed[item.id] = result.undistributed.get(item.id, 0) + remaining
        result.stock_levels[item.id] = new_stock

        logger.info(
            'stock_deducted',
            item_id=item.id,
            qty=qty,
            new_stock=new_stock,
            undistributed=remaining,
            employee_id=employee_id,
        )

    for entry in open_tasks:
        if entry.dirty:
            entry.task.items = dump_task_lines(entry.lines)
    db.flush()

    queue_low_stock_alerts(db, alerts=result.alerts, threshold=threshold)
    return result

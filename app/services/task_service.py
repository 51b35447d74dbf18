from __future__ import annotations

from datetime import datetime, timezone

import structlog
from sqlalchemy import select
from sqlalchemy.orm import Session

from app.models import Employee, EmployeeRole, Task, TaskStatus
from app.schemas import TaskLine
from app.services.email_service import Mailer, send_task_created
from app.services.id_utils import TASK_PREFIX, next_id
from app.services.notification_service import clear_campaign, get_active_campaign, start_campaign
from app.services.push_service import PushSender, is_valid_push_token, send_push_safely, task_call_message
from app.services.task_lines import dump_task_lines, task_lines

logger = structlog.get_logger(__name__)


def _now() -> datetime:
    return datetime.now(tz=timezone.utc)


def _parse_status(value: str | None) -> TaskStatus:
    try:
        return TaskStatus((value or TaskStatus.ASSIGNED.value).strip().lower())
    except ValueError as exc:
        raise ValueError(f'Unknown task status: {value}') from exc


def get_task(db: Session, task_id: str) -> Task:
    task = db.get(Task, task_id)
    if not task:
        raise ValueError('Task not found')
    return task


def _line_label(line: TaskLine) -> str:
    extra = line.model_extra or {}
    label = extra.get('item_name') or line.item_id
    return f'{label} x{line.required_qty}'


def _notify_assignment(db: Session, task: Task, push_sender: PushSender, *, update: bool) -> list[str]:
    recipients = db.execute(
        select(Employee).where(Employee.role == EmployeeRole.EMPLOYEE).order_by(Employee.id.asc())
    ).scalars().all()
    recipients = [emp for emp in recipients if is_valid_push_token(emp.push_token)]

    for employee in recipients:
        send_push_safely(
            push_sender,
            task_call_message(
                token=employee.push_token,
                task_id=task.task_id,
                title=task.title,
                description=task.description,
                employee_id=employee.id,
                update=update,
            ),
        )

    employee_ids = [emp.id for emp in recipients]
    start_campaign(db, task_id=task.task_id, employee_ids=employee_ids)
    return employee_ids


def add_task(
    db: Session,
    *,
    title: str,
    description: str,
    lines: list[TaskLine],
    push_sender: PushSender,
    mailer: Mailer,
) -> Task:
    if not title.strip():
        raise ValueError('Task title cannot be empty')
    task = Task(
        task_id=next_id(db, Task.task_id, TASK_PREFIX),
        title=title.strip(),
        description=(description or '').strip(),
        items=dump_task_lines(lines),
        status=TaskStatus.ASSIGNED,
        assigned_at=_now(),
        read_by=[],
        checked_by=[],
    )
    db.add(task)
    db.flush()
    logger.info('task_added', task_id=task.task_id, lines=len(lines))

    _notify_assignment(db, task, push_sender, update=False)

    emails = db.execute(
        select(Employee.email).where(Employee.role != EmployeeRole.ADMIN).order_by(Employee.id.asc())
    ).scalars().all()
    send_task_created(
        mailer,
        emails=[email.strip() for email in emails if email and email.strip()],
        task_id=task.task_id,
        title=task.title,
        description=task.description,
        item_labels=[_line_label(line) for line in lines],
    )
    return task


def update_task(
    db: Session,
    *,
    task_id: str,
    title: str,
    description: str,
    lines: list[TaskLine],
    status: str | None,
    push_sender: PushSender,
) -> Task:
    task = get_task(db, task_id)
    if not title.strip():
        raise ValueError('Task title cannot be empty')
    task.title = title.strip()
    task.description = (description or '').strip()
    task.items = dump_task_lines(lines)
    task.status = _parse_status(status)
    task.updated_at = _now()
    db.flush()
    logger.info('task_updated', task_id=task.task_id, status=task.status.value)

    if task.status == TaskStatus.ASSIGNED:
        _notify_assignment(db, task, push_sender, update=True)
    else:
        campaign = get_active_campaign(db)
        if campaign is not None and campaign.task_id == task.task_id:
            clear_campaign(db, campaign)
            logger.info('task_campaign_stopped', task_id=task.task_id)
    return task


def delete_task(db: Session, *, task_id: str) -> str:
    task = get_task(db, task_id)
    db.delete(task)
    db.flush()
    logger.info('task_deleted', task_id=task_id)
    return task_id


def list_tasks(db: Session, *, employee_id: str | None = None) -> list[Task]:
    stmt = select(Task).order_by(Task.assigned_at.desc(), Task.task_id.desc())
    if employee_id:
        stmt = stmt.where(Task.status != TaskStatus.COMPLETED)
    return list(db.execute(stmt).scalars().all())


def _acknowledge(db: Session, *, task_id: str, employee_id: str, field_name: str) -> Task:
    task = get_task(db, task_id)
    employee_id = (employee_id or '').strip()
    if not employee_id:
        raise ValueError('Employee ID is required')
    current = list(getattr(task, field_name) or [])
    if employee_id not in current:
        setattr(task, field_name, current + [employee_id])
        db.flush()
    return task


def mark_task_read(db: Session, *, task_id: str, employee_id: str) -> Task:
    return _acknowledge(db, task_id=task_id, employee_id=employee_id, field_name='read_by')


def mark_task_checked(db: Session, *, task_id: str, employee_id: str) -> Task:
    return _acknowledge(db, task_id=task_id, employee_id=employee_id, field_name='checked_by')


def serialize_task(task: Task) -> dict:
    try:
        items = dump_task_lines(task_lines(task))
    except ValueError as exc:
        logger.error('task_items_malformed', task_id=task.task_id, error=str(exc))
        items = []
    read_by = list(task.read_by or [])
    checked_by = list(task.checked_by or [])
    return {
        'task_id': task.task_id,
        'title': task.title,
        'description': task.description,
        'items': items,
        'items_count': len(items),
        'status': task.status.value,
        'assigned_at': task.assigned_at.isoformat() if task.assigned_at else None,
        'updated_at': task.updated_at.isoformat() if task.updated_at else None,
        'read_by_list': read_by,
        'read_by_count': len(read_by),
        'checked_by_list': checked_by,
        'checked_by_count': len(checked_by),
    }

"""Repeated task call notifications.

A campaign re-sends the task call push to every recipient that has not read
the task yet. It is advanced one attempt per tick by an external scheduler
(see ``app.run_notification_tick``) and only one campaign exists at a time.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum

import structlog
from sqlalchemy import select
from sqlalchemy.orm import Session

from app.config import settings
from app.models import Employee, NotificationCampaign, Task, TaskStatus
from app.services.push_service import PushSender, is_valid_push_token, send_push_safely, task_call_message

logger = structlog.get_logger(__name__)


class TickOutcome(str, Enum):
    PENDING = 'pending'
    ACKNOWLEDGED = 'acknowledged'
    EXHAUSTED = 'exhausted'
    TASK_MISSING = 'task_missing'
    TASK_CLOSED = 'task_closed'


@dataclass(frozen=True)
class TickResult:
    outcome: TickOutcome
    attempt: int
    notified: list[str]

    @property
    def finished(self) -> bool:
        return self.outcome != TickOutcome.PENDING


def _now() -> datetime:
    return datetime.now(tz=timezone.utc)


def start_campaign(
    db: Session,
    *,
    task_id: str,
    employee_ids: list[str],
    interval_seconds: int | None = None,
    max_attempts: int | None = None,
) -> NotificationCampaign:
    interval = interval_seconds if interval_seconds is not None else settings.notification_interval_seconds
    attempts = max_attempts if max_attempts is not None else settings.notification_max_attempts
    if interval <= 0:
        raise ValueError('Notification interval must be greater than zero')
    if attempts <= 0:
        raise ValueError('Max attempts must be greater than zero')

    replaced = 0
    for existing in db.execute(select(NotificationCampaign)).scalars().all():
        db.delete(existing)
        replaced += 1
    db.flush()

    campaign = NotificationCampaign(
        task_id=task_id,
        employee_ids=list(dict.fromkeys(employee_ids)),
        interval_seconds=interval,
        max_attempts=attempts,
        attempt_count=0,
        created_at=_now(),
    )
    db.add(campaign)
    db.flush()
    logger.info(
        'campaign_started',
        task_id=task_id,
        recipients=len(campaign.employee_ids),
        interval_seconds=interval,
        max_attempts=attempts,
        replaced=replaced,
    )
    return campaign


def get_active_campaign(db: Session) -> NotificationCampaign | None:
    return db.execute(
        select(NotificationCampaign).order_by(NotificationCampaign.id.desc()).limit(1)
    ).scalar_one_or_none()


def clear_campaign(db: Session, campaign: NotificationCampaign) -> None:
    db.delete(campaign)
    db.flush()


def run_campaign_tick(db: Session, campaign: NotificationCampaign, push_sender: PushSender) -> TickResult:
    campaign.attempt_count += 1
    campaign.last_attempt_at = _now()
    attempt = campaign.attempt_count
    log = logger.bind(task_id=campaign.task_id, attempt=attempt, max_attempts=campaign.max_attempts)

    task = db.get(Task, campaign.task_id)
    if task is None:
        clear_campaign(db, campaign)
        log.info('campaign_task_missing')
        return TickResult(outcome=TickOutcome.TASK_MISSING, attempt=attempt, notified=[])
    if task.status != TaskStatus.ASSIGNED:
        clear_campaign(db, campaign)
        log.info('campaign_task_closed', status=task.status.value)
        return TickResult(outcome=TickOutcome.TASK_CLOSED, attempt=attempt, notified=[])

    read_by = {str(emp_id).strip() for emp_id in (task.read_by or [])}
    pending_ids = [emp_id for emp_id in campaign.employee_ids if emp_id not in read_by]
    all_acknowledged = not pending_ids

    notified: list[str] = []
    if pending_ids:
        employees = db.execute(select(Employee).where(Employee.id.in_(pending_ids))).scalars().all()
        by_id = {emp.id: emp for emp in employees}
        for emp_id in pending_ids:
            employee = by_id.get(emp_id)
            if employee is None or not is_valid_push_token(employee.push_token):
                continue
            message = task_call_message(
                token=employee.push_token,
                task_id=task.task_id,
                title=task.title,
                description=task.description,
                employee_id=employee.id,
            )
            if send_push_safely(push_sender, message):
                notified.append(employee.id)

    if all_acknowledged:
        clear_campaign(db, campaign)
        log.info('campaign_acknowledged')
        return TickResult(outcome=TickOutcome.ACKNOWLEDGED, attempt=attempt, notified=notified)
    if attempt >= campaign.max_attempts:
        clear_campaign(db, campaign)
        log.info('campaign_exhausted', pending=len(pending_ids))
        return TickResult(outcome=TickOutcome.EXHAUSTED, attempt=attempt, notified=notified)

    db.flush()
    log.info('campaign_tick', pending=len(pending_ids), notified=len(notified))
    return TickResult(outcome=TickOutcome.PENDING, attempt=attempt, notified=notified)

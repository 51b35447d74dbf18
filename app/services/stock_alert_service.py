from __future__ import annotations

from datetime import datetime, timezone

import structlog
from sqlalchemy import select
from sqlalchemy.orm import Session

from app.config import settings
from app.models import Employee, EmployeeRole, Setting
from app.services.email_service import LowStockAlert, Mailer, send_low_stock_alert

logger = structlog.get_logger(__name__)

LOW_STOCK_THRESHOLD_KEY = 'low_stock_threshold'
PENDING_ALERTS_KEY = 'pending_low_stock_alerts'


def get_low_stock_threshold(db: Session) -> int:
    raw = db.execute(select(Setting.value).where(Setting.key == LOW_STOCK_THRESHOLD_KEY)).scalar_one_or_none()
    if raw is None:
        return settings.default_low_stock_threshold
    try:
        return int(raw)
    except ValueError:
        logger.warning('invalid_low_stock_threshold', value=raw)
        return settings.default_low_stock_threshold


def update_low_stock_threshold(db: Session, threshold: int) -> int:
    if threshold < 0:
        raise ValueError('Threshold cannot be negative')
    row = db.get(Setting, LOW_STOCK_THRESHOLD_KEY)
    if row is None:
        row = Setting(key=LOW_STOCK_THRESHOLD_KEY, value=str(threshold))
        db.add(row)
    else:
        row.value = str(threshold)
    row.updated_at = datetime.now(tz=timezone.utc)
    db.flush()
    return threshold


def is_low_stock(stock: int, threshold: int) -> bool:
    return stock <= threshold


def admin_emails(db: Session) -> list[str]:
    rows = db.execute(
        select(Employee.email).where(Employee.role == EmployeeRole.ADMIN).order_by(Employee.id.asc())
    ).scalars().all()
    return [email.strip() for email in rows if email and email.strip()]


def dispatch_low_stock_alerts(db: Session, mailer: Mailer, *, alerts: list[LowStockAlert], threshold: int) -> bool:
    if not alerts:
        return False
    recipients = admin_emails(db)
    if not recipients:
        logger.warning('low_stock_no_admin_recipients', items=[a.id for a in alerts])
        return False
    return send_low_stock_alert(mailer, admin_emails=recipients, alerts=alerts, threshold=threshold)


def queue_low_stock_alerts(db: Session, *, alerts: list[LowStockAlert], threshold: int) -> None:
    """Hold an alert batch on the session until the deduction is committed.

    Batches queued within one transaction merge by item, latest level wins.
    """
    if not alerts:
        return
    queued, _ = db.info.get(PENDING_ALERTS_KEY, ([], threshold))
    merged = {alert.id: alert for alert in queued}
    merged.update((alert.id, alert) for alert in alerts)
    db.info[PENDING_ALERTS_KEY] = (list(merged.values()), threshold)


def discard_pending_alerts(db: Session) -> None:
    db.info.pop(PENDING_ALERTS_KEY, None)


def dispatch_pending_alerts(db: Session, mailer: Mailer) -> bool:
    """Send the queued batch. Call only after the transaction has committed."""
    pending = db.info.pop(PENDING_ALERTS_KEY, None)
    if pending is None:
        return False
    alerts, threshold = pending
    return dispatch_low_stock_alerts(db, mailer, alerts=alerts, threshold=threshold)

from __future__ import annotations

import smtplib
from dataclasses import dataclass
from datetime import datetime, timezone
from email.message import EmailMessage
from email.utils import formataddr
from functools import lru_cache
from pathlib import Path
from typing import Protocol

import structlog
from jinja2 import Environment, FileSystemLoader, select_autoescape

from app.config import settings

logger = structlog.get_logger(__name__)

TEMPLATE_DIR = Path(__file__).resolve().parent.parent / 'templates' / 'email'


@dataclass(frozen=True)
class LowStockAlert:
    name: str
    id: str
    stock: int


class Mailer(Protocol):
    def send(self, to: list[str], subject: str, html_body: str) -> None: ...


@lru_cache(maxsize=1)
def _template_env() -> Environment:
    return Environment(loader=FileSystemLoader(str(TEMPLATE_DIR)), autoescape=select_autoescape(['html']))


def render_email(template_name: str, **context) -> str:
    return _template_env().get_template(template_name).render(**context)


class SmtpMailer:
    def send(self, to: list[str], subject: str, html_body: str) -> None:
        message = EmailMessage()
        message['From'] = formataddr((settings.email_sender_name, settings.email_sender))
        message['To'] = ', '.join(to)
        message['Subject'] = subject
        message.set_content('This message requires an HTML capable mail client.')
        message.add_alternative(html_body, subtype='html')

        with smtplib.SMTP(settings.smtp_host, settings.smtp_port, timeout=settings.smtp_timeout_seconds) as smtp:
            if settings.smtp_use_tls:
                smtp.starttls()
            if settings.smtp_username:
                smtp.login(settings.smtp_username, settings.smtp_password or '')
            smtp.send_message(message)


class MockMailer:
    """Records messages instead of talking to an SMTP server."""

    def __init__(self) -> None:
        self.sent: list[dict] = []

    def send(self, to: list[str], subject: str, html_body: str) -> None:
        self.sent.append({'to': list(to), 'subject': subject, 'html_body': html_body})
        logger.info('email_recorded', to=to, subject=subject)


def send_low_stock_alert(mailer: Mailer, *, admin_emails: list[str], alerts: list[LowStockAlert], threshold: int) -> bool:
    if not alerts or not admin_emails:
        return False
    subject = f'Low Stock Alert - {len(alerts)} Item(s) Below Threshold'
    html_body = render_email('low_stock_alert.html', alerts=alerts, threshold=threshold)
    try:
        mailer.send(admin_emails, subject, html_body)
    except (smtplib.SMTPException, OSError) as exc:
        logger.error('low_stock_email_failed', recipients=len(admin_emails), error=str(exc))
        return False
    logger.info('low_stock_email_sent', recipients=len(admin_emails), items=[a.id for a in alerts])
    return True


def send_task_created(
    mailer: Mailer,
    *,
    emails: list[str],
    task_id: str,
    title: str,
    description: str,
    item_labels: list[str],
) -> int:
    """Mail a new-task notice; returns how many addresses were reached.

    One batch send first; if it fails each address is tried on its own.
    """
    if not emails:
        return 0
    subject = f'New Task: {title}'
    html_body = render_email(
        'task_created.html',
        task_id=task_id,
        title=title,
        description=description,
        item_labels=item_labels,
        created_at=datetime.now(tz=timezone.utc),
    )
    try:
        mailer.send(emails, subject, html_body)
        logger.info('task_email_sent', task_id=task_id, recipients=len(emails))
        return len(emails)
    except (smtplib.SMTPException, OSError) as exc:
        logger.error('task_email_batch_failed', task_id=task_id, error=str(exc))

    delivered = 0
    for email in emails:
        try:
            mailer.send([email], subject, html_body)
            delivered += 1
        except (smtplib.SMTPException, OSError) as exc:
            logger.error('task_email_failed', task_id=task_id, to=email, error=str(exc))
    return delivered

from __future__ import annotations

import smtplib
import unittest
from datetime import datetime, timedelta, timezone

from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from app.models import Base, Employee, EmployeeRole, Item, Task, TaskStatus
from app.services.email_service import MockMailer
from app.services.push_service import MockPushSender

BASE_TIME = datetime(2025, 6, 1, 9, 0, tzinfo=timezone.utc)


def make_session_factory() -> sessionmaker:
    engine = create_engine(
        'sqlite+pysqlite:///:memory:',
        connect_args={'check_same_thread': False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    return sessionmaker(bind=engine, autoflush=False, autocommit=False)


class FailingMailer:
    def __init__(self, fail_batches_only: bool = False) -> None:
        self.fail_batches_only = fail_batches_only
        self.sent: list[dict] = []
        self.attempts = 0

    def send(self, to: list[str], subject: str, html_body: str) -> None:
        self.attempts += 1
        if not self.fail_batches_only or len(to) > 1:
            raise smtplib.SMTPException('relay refused')
        self.sent.append({'to': list(to), 'subject': subject, 'html_body': html_body})


class DbTestCase(unittest.TestCase):
    def setUp(self) -> None:
        self.session_factory = make_session_factory()
        self.db: Session = self.session_factory()
        self.mailer = MockMailer()
        self.push = MockPushSender()

    def tearDown(self) -> None:
        self.db.close()
        self.session_factory.kw['bind'].dispose()

    def make_item(self, item_id: str, *, name: str | None = None, stock: int = 0, category: str = '') -> Item:
        item = Item(
            id=item_id,
            name=name or f'Item {item_id}',
            category=category,
            stock=stock,
            created_at=BASE_TIME,
            updated_at=BASE_TIME,
        )
        self.db.add(item)
        self.db.flush()
        return item

    def make_task(
        self,
        task_id: str,
        *,
        items,
        minutes_after_base: int = 0,
        status: TaskStatus = TaskStatus.ASSIGNED,
        read_by: list[str] | None = None,
        title: str = 'Restock shelf',
    ) -> Task:
        task = Task(
            task_id=task_id,
            title=title,
            description='Pick items from the back room',
            items=items,
            status=status,
            assigned_at=BASE_TIME + timedelta(minutes=minutes_after_base),
            read_by=list(read_by or []),
            checked_by=[],
        )
        self.db.add(task)
        self.db.flush()
        return task

    def make_employee(
        self,
        employee_id: str,
        *,
        name: str | None = None,
        role: EmployeeRole = EmployeeRole.EMPLOYEE,
        email: str | None = None,
        push_token: str | None = None,
        pin_hash: str = 'not-a-real-hash',
    ) -> Employee:
        employee = Employee(
            id=employee_id,
            name=name or f'Employee {employee_id}',
            role=role,
            email=email,
            pin_hash=pin_hash,
            push_token=push_token,
        )
        self.db.add(employee)
        self.db.flush()
        return employee

    def required_qty(self, task_id: str, item_id: str) -> int:
        self.db.expire_all()
        task = self.db.get(Task, task_id)
        for line in task.items:
            if line['item_id'] == item_id:
                return line['required_qty']
        raise AssertionError(f'{task_id} has no line for {item_id}')

from __future__ import annotations

from datetime import datetime
from enum import Enum

from sqlalchemy import (
    JSON,
    BigInteger,
    CheckConstraint,
    DateTime,
    Enum as SQLEnum,
    Integer,
    Text,
    func,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

# SQLite only autoincrements INTEGER primary keys.
BigIntPK = BigInteger().with_variant(Integer(), 'sqlite')


class Base(DeclarativeBase):
    pass


class EmployeeRole(str, Enum):
    ADMIN = 'admin'
    EMPLOYEE = 'employee'


class TaskStatus(str, Enum):
    ASSIGNED = 'assigned'
    COMPLETED = 'completed'


class HistoryAction(str, Enum):
    DEDUCT = 'deduct'
    RESTOCK = 'restock'


class Item(Base):
    __tablename__ = 'items'
    __table_args__ = (CheckConstraint('stock >= 0', name='ck_items_stock_nonneg'),)

    id: Mapped[str] = mapped_column(Text, primary_key=True)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    category: Mapped[str] = mapped_column(Text, nullable=False, default='', server_default='')
    stock: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default='0')
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())


class Employee(Base):
    __tablename__ = 'employees'

    id: Mapped[str] = mapped_column(Text, primary_key=True)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    role: Mapped[EmployeeRole] = mapped_column(
        SQLEnum(EmployeeRole, name='employee_role'), nullable=False, default=EmployeeRole.EMPLOYEE
    )
    email: Mapped[str | None] = mapped_column(Text)
    pin_hash: Mapped[str] = mapped_column(Text, nullable=False)
    push_token: Mapped[str | None] = mapped_column(Text)
    last_login: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())


class Task(Base):
    __tablename__ = 'tasks'

    task_id: Mapped[str] = mapped_column(Text, primary_key=True)
    title: Mapped[str] = mapped_column(Text, nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False, default='', server_default='')
    # Raw line payload; validated with TaskLine when read.
    items: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    status: Mapped[TaskStatus] = mapped_column(
        SQLEnum(TaskStatus, name='task_status'), nullable=False, default=TaskStatus.ASSIGNED
    )
    assigned_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    read_by: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    checked_by: Mapped[list] = mapped_column(JSON, nullable=False, default=list)


class HistoryRecord(Base):
    __tablename__ = 'history'
    __table_args__ = (CheckConstraint('qty >= 0', name='ck_history_qty_nonneg'),)

    seq: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    id: Mapped[str] = mapped_column(Text, nullable=False, unique=True)
    timestamp: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, index=True)
    employee_id: Mapped[str] = mapped_column(Text, nullable=False, index=True)
    employee_name: Mapped[str] = mapped_column(Text, nullable=False)
    item_id: Mapped[str] = mapped_column(Text, nullable=False)
    item_name: Mapped[str] = mapped_column(Text, nullable=False)
    qty: Mapped[int] = mapped_column(Integer, nullable=False)
    action: Mapped[HistoryAction] = mapped_column(SQLEnum(HistoryAction, name='history_action'), nullable=False)
    admin_note: Mapped[str] = mapped_column(Text, nullable=False, default='', server_default='')


class Setting(Base):
    __tablename__ = 'settings'

    key: Mapped[str] = mapped_column(Text, primary_key=True)
    value: Mapped[str] = mapped_column(Text, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())


class NotificationCampaign(Base):
    __tablename__ = 'notification_campaigns'
    __table_args__ = (
        CheckConstraint('max_attempts > 0', name='ck_notification_campaigns_max_attempts_pos'),
        CheckConstraint('attempt_count >= 0', name='ck_notification_campaigns_attempt_nonneg'),
    )

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    task_id: Mapped[str] = mapped_column(Text, nullable=False)
    employee_ids: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    interval_seconds: Mapped[int] = mapped_column(Integer, nullable=False)
    max_attempts: Mapped[int] = mapped_column(Integer, nullable=False)
    attempt_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default='0')
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())
    last_attempt_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))

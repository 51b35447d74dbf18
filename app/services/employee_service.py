from __future__ import annotations

from datetime import datetime, timezone

import structlog
from sqlalchemy import select
from sqlalchemy.orm import Session

from app.auth import Principal
from app.models import Employee, EmployeeRole
from app.security.passwords import hash_pin, verify_pin
from app.services.id_utils import EMPLOYEE_PREFIX, next_id
from app.services.push_service import is_valid_push_token

logger = structlog.get_logger(__name__)


def _now() -> datetime:
    return datetime.now(tz=timezone.utc)


def _normalize(value: str | None) -> str:
    return (value or '').strip().lower()


def _parse_role(value: str | None) -> EmployeeRole:
    try:
        return EmployeeRole(_normalize(value) or EmployeeRole.EMPLOYEE.value)
    except ValueError as exc:
        raise ValueError(f'Unknown role: {value}') from exc


def serialize_employee(employee: Employee) -> dict:
    return {
        'id': employee.id,
        'name': employee.name,
        'role': employee.role.value,
        'email': employee.email,
        'last_login': employee.last_login.isoformat() if employee.last_login else None,
    }


def get_employee(db: Session, employee_id: str) -> Employee:
    employee = db.get(Employee, employee_id)
    if not employee:
        raise ValueError('Employee not found')
    return employee


def list_employees(db: Session) -> list[Employee]:
    return list(db.execute(select(Employee).order_by(Employee.id.asc())).scalars().all())


def add_employee(db: Session, *, name: str, pin: str, role: str = 'employee', email: str | None = None) -> Employee:
    if not name.strip():
        raise ValueError('Employee name cannot be empty')
    if not pin:
        raise ValueError('PIN is required')
    employee = Employee(
        id=next_id(db, Employee.id, EMPLOYEE_PREFIX),
        name=name.strip(),
        role=_parse_role(role),
        email=email.strip() if email and email.strip() else None,
        pin_hash=hash_pin(pin),
        created_at=_now(),
    )
    db.add(employee)
    db.flush()
    logger.info('employee_added', employee_id=employee.id, role=employee.role.value)
    return employee


def update_employee(
    db: Session,
    *,
    employee_id: str,
    name: str | None = None,
    role: str | None = None,
    email: str | None = None,
    password: str | None = None,
    pin: str | None = None,
) -> Employee:
    employee = get_employee(db, employee_id)
    if name is not None:
        if not name.strip():
            raise ValueError('Employee name cannot be empty')
        employee.name = name.strip()
    if role is not None:
        employee.role = _parse_role(role)
    if email is not None:
        employee.email = email.strip() or None
    new_secret = password or pin
    if new_secret:
        employee.pin_hash = hash_pin(new_secret)
    db.flush()
    return employee


def delete_employee(db: Session, *, employee_id: str) -> str:
    employee = get_employee(db, employee_id)
    db.delete(employee)
    db.flush()
    logger.info('employee_deleted', employee_id=employee_id)
    return employee_id


def register_push_token(db: Session, *, employee_id: str, token: str) -> Employee:
    employee = get_employee(db, employee_id)
    token = (token or '').strip()
    if token and not is_valid_push_token(token):
        # Stored anyway; senders skip malformed tokens.
        logger.warning('push_token_malformed', employee_id=employee_id)
    employee.push_token = token or None
    db.flush()
    return employee


def _principal(employee: Employee) -> Principal:
    return Principal(
        id=employee.id,
        name=employee.name,
        role=employee.role,
        email=employee.email,
        last_login=employee.last_login,
    )


def authenticate(
    db: Session,
    *,
    email: str | None = None,
    password: str | None = None,
    name: str | None = None,
    pin: str | None = None,
) -> Principal:
    """Console logins use admin e-mail + password, mobile logins name + PIN."""
    if email and password:
        candidates = db.execute(
            select(Employee).where(Employee.role == EmployeeRole.ADMIN).order_by(Employee.id.asc())
        ).scalars().all()
        match = next(
            (emp for emp in candidates if _normalize(emp.email) == _normalize(email) and verify_pin(password, emp.pin_hash)),
            None,
        )
        if match is None:
            logger.info('login_failed', method='email')
            raise ValueError('Invalid email or password')
    elif name and pin:
        candidates = db.execute(select(Employee).order_by(Employee.id.asc())).scalars().all()
        match = next(
            (emp for emp in candidates if _normalize(emp.name) == _normalize(name) and verify_pin(pin, emp.pin_hash)),
            None,
        )
        if match is None:
            logger.info('login_failed', method='pin')
            raise ValueError('Invalid name or PIN')
    else:
        raise ValueError('Invalid login parameters')

    match.last_login = _now()
    db.flush()
    logger.info('login_succeeded', employee_id=match.id, role=match.role.value)
    return _principal(match)

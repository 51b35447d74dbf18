from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable

import structlog
from fastapi import APIRouter, Depends, Request
from pydantic import ValidationError
from sqlalchemy.orm import Session

from app.auth import verify_secret
from app.db import get_db
from app.dependencies import get_client_ip
from app.schemas import (
    ActionEnvelope,
    AddEmployeeRequest,
    AddItemRequest,
    AddTaskRequest,
    DeductRequest,
    DeleteByIdRequest,
    GetTasksRequest,
    HistoryQuery,
    LoginRequest,
    RegisterPushTokenRequest,
    RestockRequest,
    SearchItemsRequest,
    TaskAckRequest,
    TaskIdRequest,
    ThresholdRequest,
    UpdateEmployeeRequest,
    UpdateHistoryRequest,
    UpdateItemRequest,
    UpdateTaskRequest,
)
from app.services import employee_service, history_service, item_service, task_service
from app.services.deduction_service import deduct_items
from app.services.email_service import Mailer
from app.services.provider_factory import get_mailer, get_push_sender
from app.services.push_service import PushSender
from app.services.stock_alert_service import (
    discard_pending_alerts,
    dispatch_pending_alerts,
    get_low_stock_threshold,
    update_low_stock_threshold,
)

logger = structlog.get_logger(__name__)

router = APIRouter(tags=['actions'])


@dataclass
class Collaborators:
    push_sender: PushSender
    mailer: Mailer


ActionHandler = Callable[[Session, dict, Collaborators], Any]


def _login(db: Session, data: dict, _: Collaborators):
    req = LoginRequest.model_validate(data)
    principal = employee_service.authenticate(db, email=req.email, password=req.password, name=req.name, pin=req.pin)
    return principal.as_dict()


def _get_items(db: Session, data: dict, _: Collaborators):
    return [item_service.serialize_item(item) for item in item_service.list_items(db)]


def _search_items(db: Session, data: dict, _: Collaborators):
    req = SearchItemsRequest.model_validate(data)
    return [item_service.serialize_item(item) for item in item_service.search_items(db, req.query)]


def _add_item(db: Session, data: dict, _: Collaborators):
    req = AddItemRequest.model_validate(data)
    item = item_service.add_item(db, name=req.name, category=req.category, stock=req.stock)
    return item_service.serialize_item(item)


def _update_item(db: Session, data: dict, _: Collaborators):
    req = UpdateItemRequest.model_validate(data)
    item = item_service.update_item(
        db,
        item_id=req.id,
        name=req.name,
        category=req.category,
        stock=req.stock,
    )
    return item_service.serialize_item(item)


def _delete_item(db: Session, data: dict, _: Collaborators):
    req = DeleteByIdRequest.model_validate(data)
    return {'id': item_service.delete_item(db, item_id=req.id)}


def _deduct_item(db: Session, data: dict, _: Collaborators):
    req = DeductRequest.model_validate(data)
    result = deduct_items(
        db,
        employee_id=req.employeeId,
        employee_name=req.employeeName,
        lines=[(line.itemId, line.qty) for line in req.items],
    )
    return result.as_dict()


def _restock_item(db: Session, data: dict, _: Collaborators):
    req = RestockRequest.model_validate(data)
    item = item_service.restock_item(
        db,
        item_id=req.itemId,
        qty=req.qty,
        employee_id=req.employeeId,
        employee_name=req.employeeName,
    )
    return item_service.serialize_item(item)


def _get_employees(db: Session, data: dict, _: Collaborators):
    return [employee_service.serialize_employee(emp) for emp in employee_service.list_employees(db)]


def _add_employee(db: Session, data: dict, _: Collaborators):
    req = AddEmployeeRequest.model_validate(data)
    employee = employee_service.add_employee(db, name=req.name, pin=req.pin, role=req.role, email=req.email)
    return {'id': employee.id}


def _update_employee(db: Session, data: dict, _: Collaborators):
    req = UpdateEmployeeRequest.model_validate(data)
    employee = employee_service.update_employee(
        db,
        employee_id=req.id,
        name=req.name,
        role=req.role,
        email=req.email,
        password=req.password,
        pin=req.pin,
    )
    return employee_service.serialize_employee(employee)


def _delete_employee(db: Session, data: dict, _: Collaborators):
    req = DeleteByIdRequest.model_validate(data)
    return {'id': employee_service.delete_employee(db, employee_id=req.id)}


def _register_push_token(db: Session, data: dict, _: Collaborators):
    req = RegisterPushTokenRequest.model_validate(data)
    employee_service.register_push_token(db, employee_id=req.employeeId, token=req.token)
    return {'success': True}


def _get_history(db: Session, data: dict, _: Collaborators):
    req = HistoryQuery.model_validate(data)
    records = history_service.list_history(
        db,
        employee_id=req.employeeId,
        start_date=req.startDate,
        end_date=req.endDate,
        limit=req.limit,
    )
    return [history_service.serialize_history(record) for record in records]


def _update_history(db: Session, data: dict, _: Collaborators):
    req = UpdateHistoryRequest.model_validate(data)
    history_service.update_history(
        db,
        record_id=req.id,
        qty=req.qty,
        action=req.action,
        admin_note=req.admin_note,
    )
    return {'success': True, 'message': 'History updated'}


def _delete_history(db: Session, data: dict, _: Collaborators):
    req = DeleteByIdRequest.model_validate(data)
    history_service.delete_history(db, record_id=req.id)
    return {'success': True, 'message': 'History record deleted'}


def _add_task(db: Session, data: dict, ctx: Collaborators):
    req = AddTaskRequest.model_validate(data)
    task = task_service.add_task(
        db,
        title=req.title,
        description=req.description,
        lines=req.items,
        push_sender=ctx.push_sender,
        mailer=ctx.mailer,
    )
    return {'task_id': task.task_id}


def _get_tasks(db: Session, data: dict, _: Collaborators):
    req = GetTasksRequest.model_validate(data)
    return [task_service.serialize_task(task) for task in task_service.list_tasks(db, employee_id=req.employeeId)]


def _update_task(db: Session, data: dict, ctx: Collaborators):
    req = UpdateTaskRequest.model_validate(data)
    task_service.update_task(
        db,
        task_id=req.task_id,
        title=req.title,
        description=req.description,
        lines=req.item,
        status=req.status,
        push_sender=ctx.push_sender,
    )
    return {'success': True}


def _delete_task(db: Session, data: dict, _: Collaborators):
    req = TaskIdRequest.model_validate(data)
    task_service.delete_task(db, task_id=req.taskId)
    return {'success': True}


def _task_read(db: Session, data: dict, _: Collaborators):
    req = TaskAckRequest.model_validate(data)
    task = task_service.mark_task_read(db, task_id=req.taskId, employee_id=req.employeeId)
    return {'success': True, 'read_by_list': list(task.read_by)}


def _task_checked(db: Session, data: dict, _: Collaborators):
    req = TaskAckRequest.model_validate(data)
    task = task_service.mark_task_checked(db, task_id=req.taskId, employee_id=req.employeeId)
    return {'success': True, 'checked_by_list': list(task.checked_by)}


def _get_threshold(db: Session, data: dict, _: Collaborators):
    return {'threshold': get_low_stock_threshold(db)}


def _update_threshold(db: Session, data: dict, _: Collaborators):
    req = ThresholdRequest.model_validate(data)
    update_low_stock_threshold(db, req.threshold)
    return {'success': True}


ACTIONS: dict[str, ActionHandler] = {
    'LOGIN': _login,
    'GET_ITEMS': _get_items,
    'SEARCH_ITEMS': _search_items,
    'ADD_ITEM': _add_item,
    'UPDATE_ITEM': _update_item,
    'DELETE_ITEM': _delete_item,
    'DEDUCT_ITEM': _deduct_item,
    'RESTOCK_ITEM': _restock_item,
    'GET_EMPLOYEES': _get_employees,
    'ADD_EMPLOYEE': _add_employee,
    'UPDATE_EMPLOYEE': _update_employee,
    'DELETE_EMPLOYEE': _delete_employee,
    'REGISTER_PUSH_TOKEN': _register_push_token,
    'GET_HISTORY': _get_history,
    'UPDATE_HISTORY': _update_history,
    'DELETE_HISTORY': _delete_history,
    'ADD_TASK': _add_task,
    'GET_TASKS': _get_tasks,
    'UPDATE_TASK': _update_task,
    'DELETE_TASK': _delete_task,
    'UPDATE_TASK_READ_STATUS': _task_read,
    'UPDATE_TASK_CHECK_STATUS': _task_checked,
    'GET_LOW_STOCK_THRESHOLD': _get_threshold,
    'UPDATE_LOW_STOCK_THRESHOLD': _update_threshold,
}


def _validation_message(exc: ValidationError) -> str:
    first = exc.errors()[0]
    location = '.'.join(str(part) for part in first.get('loc', ()))
    return f"{location}: {first['msg']}" if location else first['msg']


def _error(message: str) -> dict:
    return {'status': 'error', 'error': message}


@router.post('/')
@router.post('/exec')
def execute_action(
    envelope: ActionEnvelope,
    request: Request,
    db: Session = Depends(get_db),
    push_sender: PushSender = Depends(get_push_sender),
    mailer: Mailer = Depends(get_mailer),
):
    log = logger.bind(action=envelope.action, ip=get_client_ip(request))
    if not verify_secret(envelope.secret):
        log.warning('action_unauthorized')
        return _error('Unauthorized')

    handler = ACTIONS.get(envelope.action)
    if handler is None:
        log.warning('action_unknown')
        return _error('Invalid action')

    try:
        result = handler(db, envelope.data, Collaborators(push_sender=push_sender, mailer=mailer))
        db.commit()
    except ValidationError as exc:
        db.rollback()
        discard_pending_alerts(db)
        log.info('action_invalid_payload', error=_validation_message(exc))
        return _error(_validation_message(exc))
    except ValueError as exc:
        db.rollback()
        discard_pending_alerts(db)
        log.info('action_rejected', error=str(exc))
        return _error(str(exc))

    dispatch_pending_alerts(db, mailer)
    log.info('action_completed')
    return {'status': 'success', 'data': result}

"""Request payloads for the action envelope and the task line schema."""

from __future__ import annotations

from datetime import date
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, NonNegativeInt, PositiveInt


class ActionEnvelope(BaseModel):
    action: str
    data: dict[str, Any] = Field(default_factory=dict)
    secret: str = ''


class TaskLine(BaseModel):
    # Clients also send display fields such as item_name; keep them.
    model_config = ConfigDict(extra='allow')

    item_id: str
    required_qty: NonNegativeInt


class LoginRequest(BaseModel):
    email: str | None = None
    password: str | None = None
    name: str | None = None
    pin: str | None = None


class SearchItemsRequest(BaseModel):
    query: str = ''


class AddItemRequest(BaseModel):
    model_config = ConfigDict(extra='ignore')

    name: str = Field(min_length=1)
    category: str = ''
    stock: NonNegativeInt = 0


class UpdateItemRequest(BaseModel):
    model_config = ConfigDict(extra='ignore')

    id: str
    name: str | None = None
    category: str | None = None
    stock: NonNegativeInt | None = None


class DeleteByIdRequest(BaseModel):
    id: str


class DeductLine(BaseModel):
    itemId: str
    qty: PositiveInt


class DeductRequest(BaseModel):
    employeeId: str
    employeeName: str
    items: list[DeductLine] = Field(min_length=1)


class RestockRequest(BaseModel):
    employeeId: str = 'ADMIN'
    employeeName: str = 'Administrator'
    itemId: str
    qty: PositiveInt


class AddEmployeeRequest(BaseModel):
    name: str = Field(min_length=1)
    pin: str = Field(min_length=1)
    role: str = 'employee'
    email: str | None = None


class UpdateEmployeeRequest(BaseModel):
    model_config = ConfigDict(extra='ignore')

    id: str
    name: str | None = None
    role: str | None = None
    email: str | None = None
    password: str | None = None
    pin: str | None = None


class RegisterPushTokenRequest(BaseModel):
    employeeId: str
    token: str


class HistoryQuery(BaseModel):
    employeeId: str | None = None
    limit: PositiveInt = 50
    startDate: date | None = None
    endDate: date | None = None


class UpdateHistoryRequest(BaseModel):
    id: str
    qty: NonNegativeInt | None = None
    action: str | None = None
    admin_note: str | None = None


class AddTaskRequest(BaseModel):
    title: str = Field(min_length=1)
    description: str = ''
    items: list[TaskLine] = Field(default_factory=list)


class UpdateTaskRequest(BaseModel):
    task_id: str
    title: str = Field(min_length=1)
    description: str = ''
    # The web console sends the line list under "item".
    item: list[TaskLine] = Field(default_factory=list)
    status: str = 'assigned'


class TaskIdRequest(BaseModel):
    taskId: str


class TaskAckRequest(BaseModel):
    taskId: str
    employeeId: str


class GetTasksRequest(BaseModel):
    employeeId: str | None = None


class ThresholdRequest(BaseModel):
    threshold: NonNegativeInt

from __future__ import annotations

import json

from pydantic import TypeAdapter

from app.models import Task
from app.schemas import TaskLine

_lines_adapter = TypeAdapter(list[TaskLine])


def parse_task_lines(raw) -> list[TaskLine]:
    """Validate a stored task line payload.

    Older rows hold the list as a JSON string. Raises ValueError (including
    pydantic's ValidationError) when the payload is not a list of lines.
    """
    if raw is None or raw == '':
        return []
    if isinstance(raw, str):
        raw = json.loads(raw)
    return _lines_adapter.validate_python(raw)


def dump_task_lines(lines: list[TaskLine]) -> list[dict]:
    return [line.model_dump() for line in lines]


def task_lines(task: Task) -> list[TaskLine]:
    return parse_task_lines(task.items)

from __future__ import annotations

import secrets
from dataclasses import dataclass
from datetime import datetime

from app.config import settings
from app.models import EmployeeRole


@dataclass
class Principal:
    id: str
    name: str
    role: EmployeeRole
    email: str | None
    last_login: datetime | None

    def as_dict(self) -> dict:
        payload = {'id': self.id, 'name': self.name, 'role': self.role.value}
        if self.role == EmployeeRole.ADMIN:
            payload['email'] = self.email
        return payload


def verify_secret(candidate: str | None) -> bool:
    """Shared-secret check for the action envelope.

    A single static secret, not a session model; treat it as a client key only.
    """
    if not candidate:
        return False
    return secrets.compare_digest(candidate.encode('utf-8'), settings.api_secret_key.encode('utf-8'))

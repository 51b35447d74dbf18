from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Protocol
from urllib.error import HTTPError, URLError
from urllib.request import Request, urlopen

import structlog

from app.config import settings

logger = structlog.get_logger(__name__)

EXPO_TOKEN_PREFIX = 'ExponentPushToken['


@dataclass(frozen=True)
class PushMessage:
    to: str
    title: str
    body: str
    data: dict = field(default_factory=dict)
    priority: str = 'high'
    channel_id: str = 'calls'
    sound: str = 'ringtone'

    def as_payload(self) -> dict:
        return {
            'to': self.to,
            'title': self.title,
            'body': self.body,
            'data': self.data,
            'priority': self.priority,
            'channelId': self.channel_id,
            'sound': self.sound,
            '_displayInForeground': True,
        }


class PushSender(Protocol):
    def send(self, message: PushMessage) -> None: ...


def is_valid_push_token(token: str | None) -> bool:
    return bool(token) and token.startswith(EXPO_TOKEN_PREFIX) and token.endswith(']')


def task_call_message(*, token: str, task_id: str, title: str, description: str, employee_id: str, update: bool = False) -> PushMessage:
    return PushMessage(
        to=token,
        title='Incoming Update Call' if update else 'Incoming Task Call',
        body=description or ('Update task assignment' if update else 'New task assignment'),
        data={
            'taskId': task_id,
            'type': 'fake_call',
            'taskTitle': title,
            'taskDescription': description or '',
            'employeeId': employee_id,
        },
    )


class ExpoPushSender:
    def __init__(self, url: str | None = None, timeout_seconds: int | None = None) -> None:
        self.url = url or settings.expo_push_url
        self.timeout_seconds = timeout_seconds or settings.push_timeout_seconds

    def send(self, message: PushMessage) -> None:
        req = Request(
            url=self.url,
            data=json.dumps(message.as_payload()).encode('utf-8'),
            headers={'Accept': 'application/json', 'Content-Type': 'application/json'},
            method='POST',
        )
        try:
            with urlopen(req, timeout=self.timeout_seconds) as response:
                parsed = json.loads(response.read().decode('utf-8'))
        except HTTPError as exc:
            body = exc.read().decode('utf-8', errors='ignore') if exc.fp else ''
            raise RuntimeError(f'Expo push error {exc.code}: {body}') from exc
        except URLError as exc:
            raise RuntimeError(f'Expo push network error: {exc.reason}') from exc
        except OSError as exc:
            # Read timeouts and resets surface here without a URLError wrapper.
            raise RuntimeError(f'Expo push network error: {exc}') from exc
        except ValueError as exc:
            raise RuntimeError(f'Expo push returned a non-JSON reply: {exc}') from exc

        if not isinstance(parsed, dict):
            raise RuntimeError(f'Expo push returned an unexpected reply: {parsed!r}')
        if parsed.get('errors'):
            raise RuntimeError(f"Expo push returned errors: {parsed['errors']}")
        ticket = parsed.get('data') or {}
        if isinstance(ticket, dict) and ticket.get('status') == 'error':
            raise RuntimeError(f"Expo push rejected message: {ticket.get('message')}")
        logger.info('push_sent', to=message.to, ticket=ticket)


class MockPushSender:
    """Records messages instead of calling Expo."""

    def __init__(self) -> None:
        self.sent: list[PushMessage] = []

    def send(self, message: PushMessage) -> None:
        self.sent.append(message)
        logger.info('push_recorded', to=message.to, title=message.title)


def send_push_safely(sender: PushSender, message: PushMessage) -> bool:
    """Send one push; a delivery failure is logged and reported as ``False``."""
    try:
        sender.send(message)
    except (RuntimeError, OSError, ValueError) as exc:
        logger.error('push_failed', to=message.to, error=str(exc))
        return False
    return True

from __future__ import annotations

from functools import lru_cache

from app.config import settings
from app.services.email_service import Mailer, MockMailer, SmtpMailer
from app.services.push_service import ExpoPushSender, MockPushSender, PushSender


@lru_cache(maxsize=1)
def get_push_sender() -> PushSender:
    provider = settings.push_provider.strip().lower()
    if provider == 'expo':
        return ExpoPushSender()
    return MockPushSender()


@lru_cache(maxsize=1)
def get_mailer() -> Mailer:
    provider = settings.email_provider.strip().lower()
    if provider == 'smtp':
        return SmtpMailer()
    return MockMailer()

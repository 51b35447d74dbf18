"""Advance the active task notification campaign.

Run from cron (one tick per run) or with ``--loop`` to keep ticking at the
campaign's interval until it finishes.
"""

from __future__ import annotations

import argparse
import time

import structlog

from app.db import SessionLocal
from app.log import configure_logging
from app.services.notification_service import TickResult, get_active_campaign, run_campaign_tick
from app.services.provider_factory import get_push_sender

logger = structlog.get_logger(__name__)


def tick_once() -> tuple[TickResult | None, int]:
    """Run one tick; returns the result and the interval to wait before the next."""
    with SessionLocal() as db:
        campaign = get_active_campaign(db)
        if campaign is None:
            return None, 0
        interval = campaign.interval_seconds
        result = run_campaign_tick(db, campaign, get_push_sender())
        db.commit()
    return result, interval


def main() -> None:
    parser = argparse.ArgumentParser(description='Re-send task call notifications to employees who have not read the task.')
    parser.add_argument(
        '--loop',
        action='store_true',
        help='Keep ticking at the campaign interval until no campaign is active.',
    )
    args = parser.parse_args()
    configure_logging()

    while True:
        result, interval = tick_once()
        if result is None:
            logger.info('no_active_campaign')
            return
        logger.info('tick_complete', outcome=result.outcome.value, attempt=result.attempt, notified=len(result.notified))
        if not args.loop:
            return
        if result.finished:
            # A newer campaign may have replaced the finished one.
            continue
        time.sleep(interval)


if __name__ == '__main__':
    main()

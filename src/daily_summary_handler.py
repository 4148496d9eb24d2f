"""
AWS Lambda handler for the daily shipping summary email.

Invoked hourly by an EventBridge schedule; sends the summary accumulated by
the email scanner once per day at DAILY_SUMMARY_HOUR. Also runs the manual
maintenance actions (quota status, quota reset, sent-history reset) when
invoked with {"action": ...}.
"""

import logging
import os
from datetime import datetime, timezone
from typing import Callable, Dict, Any, Optional
from zoneinfo import ZoneInfo

from services import notifications
from services import state

# Configure logging
logger = logging.getLogger()
logger.setLevel(logging.INFO)

if not logger.handlers:
    console_handler = logging.StreamHandler()
    console_handler.setLevel(logging.INFO)
    formatter = logging.Formatter('%(levelname)s - %(message)s')
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)

DAILY_SUMMARY_HOUR = int(os.environ.get('DAILY_SUMMARY_HOUR', '8'))
SUMMARY_TIMEZONE = os.environ.get('SUMMARY_TIMEZONE', 'UTC')

DAILY_SUMMARY_MARKER = 'daily-summary'


def _quota_status(now: datetime) -> Dict[str, Any]:
    return {'quota': state.get_quota_status(now)}


def _reset_quota(now: datetime) -> Dict[str, Any]:
    state.reset_api_quota_log()
    return {}


def _clear_sent_history(now: datetime) -> Dict[str, Any]:
    state.clear_sent_tracking_numbers()
    return {}


# Maintenance actions, run with e.g. {"action": "quota_status"}
ADMIN_ACTIONS: Dict[str, Callable[[datetime], Dict[str, Any]]] = {
    'quota_status': _quota_status,
    'reset_quota': _reset_quota,
    'clear_sent_history': _clear_sent_history,
}


def run_admin_action(action: str, now: datetime) -> Dict[str, Any]:
    """Run one maintenance action by name."""
    handler = ADMIN_ACTIONS.get(action)
    if handler is None:
        logger.error(f"Unknown admin action: {action}")
        return {'status': 'unknown_action', 'action': action}

    logger.info(f"Running admin action: {action}")
    return {'status': 'ok', 'action': action, **handler(now)}


def lambda_handler(event: Dict[str, Any], context: Any, now: Optional[datetime] = None) -> Dict[str, Any]:
    """
    Send the daily summary if it is due, or run a maintenance action.

    Args:
        event: Scheduled event; {"force": true} skips the hour check,
            {"action": "<name>"} runs one of ADMIN_ACTIONS instead
        context: Lambda context
        now: Current time (defaults to the wall clock)

    Returns:
        Dict with status ("sent", "not_due", "disabled", "already_sent",
        "nothing_to_report" or "send_failed"; "ok" or "unknown_action" for
        admin actions)
    """
    event = event or {}
    now = now or datetime.now(timezone.utc)

    if event.get('action'):
        return run_admin_action(event['action'], now)

    local_now = now.astimezone(ZoneInfo(SUMMARY_TIMEZONE))
    force = bool(event.get('force'))

    if not force and local_now.hour != DAILY_SUMMARY_HOUR:
        logger.info(f"Not summary hour ({local_now.hour} != {DAILY_SUMMARY_HOUR}), skipping")
        return {'status': 'not_due'}

    if not notifications.SEND_DAILY_SUMMARY:
        logger.info("Daily summary disabled (SEND_DAILY_SUMMARY=false)")
        return {'status': 'disabled'}

    if state.sent_today(DAILY_SUMMARY_MARKER, now):
        logger.info("Daily summary already sent today")
        return {'status': 'already_sent'}

    daily = state.load_daily_summary()
    if not daily or daily.get('total_successfully_sent', 0) == 0:
        logger.info("No packages added since last summary")
        return {'status': 'nothing_to_report'}

    if not notifications.send_daily_summary(daily):
        return {'status': 'send_failed'}

    state.mark_sent_today(DAILY_SUMMARY_MARKER, now)
    state.clear_daily_summary(daily)
    logger.info(f"Daily summary sent: {daily.get('total_successfully_sent')} package(s)")
    return {'status': 'sent'}

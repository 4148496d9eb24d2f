"""
Persistent tracker state kept as JSON documents in S3.

- Sent history: tracking numbers already forwarded (capped list)
- API activity: timestamps of tracking API calls for the daily quota
- Daily summary: totals accumulated across runs until the daily email
- Markers: per-day "already done" flags (limit alert, daily summary)

All dates are UTC. Every change is a read-modify-write through
s3.update_json_object(), so concurrent invocations never drop each other's
entries.
"""

import logging
import os
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, List, Optional

from domain.models import RunSummary, SubmissionRecord
from services import s3 as s3_service

logger = logging.getLogger(__name__)

STATE_BUCKET = os.environ.get('STATE_BUCKET', '')
STATE_KEY_PREFIX = os.environ.get('STATE_KEY_PREFIX', 'state/')

DAILY_RATE_LIMIT = int(os.environ.get('DAILY_RATE_LIMIT', '20'))
SENT_HISTORY_LIMIT = int(os.environ.get('SENT_HISTORY_LIMIT', '200'))

SENT_TRACKING_DOC = 'sent-tracking-numbers.json'
API_ACTIVITY_DOC = 'api-activity.json'
DAILY_SUMMARY_DOC = 'daily-summary.json'
MARKERS_DOC = 'markers.json'

ACTIVITY_RETENTION = timedelta(hours=24)


def _key(document: str) -> str:
    return f"{STATE_KEY_PREFIX}{document}"


def _bucket() -> str:
    if not STATE_BUCKET:
        raise ValueError("STATE_BUCKET environment variable not set")
    return STATE_BUCKET


def _load(document: str, default: Any) -> Any:
    return s3_service.read_json_object(_bucket(), _key(document), default=default)


def _update(document: str, default: Any, update: Callable[[Any], Any]) -> Any:
    return s3_service.update_json_object(_bucket(), _key(document), update, default=default)


def _now(now: Optional[datetime]) -> datetime:
    return now or datetime.now(timezone.utc)


def _epoch_ms(moment: datetime) -> int:
    return int(moment.timestamp() * 1000)


def today_string(now: Optional[datetime] = None) -> str:
    return _now(now).date().isoformat()


# ============================================================================
# Sent history
# ============================================================================

def has_been_sent(tracking_number: str) -> bool:
    return tracking_number in _load(SENT_TRACKING_DOC, [])


def mark_as_sent(tracking_number: str) -> None:
    """Add a number to the sent history, keeping only the newest entries."""
    def add(sent: List[str]) -> Optional[List[str]]:
        if tracking_number in sent:
            return None
        sent.append(tracking_number)
        return sent[-SENT_HISTORY_LIMIT:]

    _update(SENT_TRACKING_DOC, [], add)


def clear_sent_tracking_numbers() -> None:
    s3_service.delete_object(_bucket(), _key(SENT_TRACKING_DOC))
    logger.info("Sent tracking history cleared")


# ============================================================================
# API quota
# ============================================================================

def record_api_activity(success: bool, now: Optional[datetime] = None) -> None:
    """
    Record one tracking API call, dropping entries older than 24 hours.

    Failed calls count against the quota as well.
    """
    current = _now(now)
    cutoff = _epoch_ms(current - ACTIVITY_RETENTION)
    entry = {'t': _epoch_ms(current), 's': 1 if success else 0}

    def append(activity: List[Dict[str, int]]) -> List[Dict[str, int]]:
        return [a for a in activity if a.get('t', 0) > cutoff] + [entry]

    _update(API_ACTIVITY_DOC, [], append)


def get_today_api_call_count(now: Optional[datetime] = None) -> int:
    """Number of API calls made since midnight (UTC) today."""
    current = _now(now)
    midnight = current.replace(hour=0, minute=0, second=0, microsecond=0)
    since = _epoch_ms(midnight)
    return sum(1 for a in _load(API_ACTIVITY_DOC, []) if a.get('t', 0) >= since)


def is_quota_exhausted(now: Optional[datetime] = None) -> bool:
    return get_today_api_call_count(now) >= DAILY_RATE_LIMIT


def get_quota_status(now: Optional[datetime] = None) -> Dict[str, Any]:
    """
    Rolling 24-hour quota usage.

    Returns:
        Dict with used, limit and next_slot (ISO timestamp when the oldest
        call leaves the window, None when nothing is recorded)
    """
    current = _now(now)
    cutoff = _epoch_ms(current - ACTIVITY_RETENTION)
    recent = sorted(a['t'] for a in _load(API_ACTIVITY_DOC, []) if a.get('t', 0) > cutoff)

    next_slot = None
    if recent:
        oldest = datetime.fromtimestamp(recent[0] / 1000, tz=timezone.utc)
        next_slot = (oldest + ACTIVITY_RETENTION).isoformat()

    status = {'used': len(recent), 'limit': DAILY_RATE_LIMIT, 'next_slot': next_slot}
    logger.info(f"Quota used: {status['used']} / {status['limit']}")
    return status


def reset_api_quota_log() -> None:
    s3_service.delete_object(_bucket(), _key(API_ACTIVITY_DOC))
    logger.info("API quota log reset")


# ============================================================================
# Daily summary
# ============================================================================

def _empty_daily_summary(date: str) -> Dict[str, Any]:
    return {
        'date': date,
        'total_emails_scanned': 0,
        'total_successfully_sent': 0,
        'tracking_details': [],
        'errors': [],
    }


def load_daily_summary() -> Optional[Dict[str, Any]]:
    return _load(DAILY_SUMMARY_DOC, None)


def accumulate_daily_summary(summary: RunSummary, now: Optional[datetime] = None) -> Dict[str, Any]:
    """
    Add a run's totals to today's summary, starting over on a new day.

    Returns:
        The updated daily summary document
    """
    today = today_string(now)

    def add(daily: Optional[Dict[str, Any]]) -> Dict[str, Any]:
        if not daily or daily.get('date') != today:
            daily = _empty_daily_summary(today)
        daily['total_emails_scanned'] += summary.emails_scanned
        daily['total_successfully_sent'] += summary.successfully_sent
        daily['tracking_details'].extend(d.to_dict() for d in summary.tracking_details)
        daily['errors'].extend(summary.errors)
        return daily

    return _update(DAILY_SUMMARY_DOC, None, add)


def clear_daily_summary(reported: Dict[str, Any]) -> None:
    """
    Remove a reported summary's totals from the stored summary.

    Anything accumulated after `reported` was loaded stays for the next
    report. A summary from another day is left alone.
    """
    def subtract(daily: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
        if not daily or daily.get('date') != reported.get('date'):
            return None
        details_sent = len(reported.get('tracking_details', []))
        errors_sent = len(reported.get('errors', []))
        return {
            'date': daily['date'],
            'total_emails_scanned': daily['total_emails_scanned'] - reported.get('total_emails_scanned', 0),
            'total_successfully_sent': daily['total_successfully_sent'] - reported.get('total_successfully_sent', 0),
            'tracking_details': daily['tracking_details'][details_sent:],
            'errors': daily['errors'][errors_sent:],
        }

    _update(DAILY_SUMMARY_DOC, None, subtract)


# ============================================================================
# Markers
# ============================================================================

def get_marker(name: str) -> Optional[str]:
    markers: Dict[str, str] = _load(MARKERS_DOC, {})
    return markers.get(name)


def set_marker(name: str, value: str) -> None:
    def assign(markers: Dict[str, str]) -> Dict[str, str]:
        markers[name] = value
        return markers

    _update(MARKERS_DOC, {}, assign)


def sent_today(marker_name: str, now: Optional[datetime] = None) -> bool:
    """Whether a once-a-day action already happened today."""
    return get_marker(marker_name) == today_string(now)


def mark_sent_today(marker_name: str, now: Optional[datetime] = None) -> None:
    set_marker(marker_name, today_string(now))


def daily_summary_records(daily: Dict[str, Any]) -> List[SubmissionRecord]:
    """SubmissionRecord objects stored in a daily summary document."""
    return [SubmissionRecord.from_dict(d) for d in daily.get('tracking_details', [])]

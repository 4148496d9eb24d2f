"""
Summary and alert emails sent through Amazon SES.

Reports are best-effort: a failed send is logged and never fails the batch
that produced it.
"""

import html
import logging
import os
from datetime import datetime
from typing import Any, Dict, Iterable, Optional

import boto3
from botocore.config import Config
from botocore.exceptions import ClientError

from domain.models import RunSummary, SubmissionRecord
from domain.tracking_patterns import get_tracking_url
from services import state

logger = logging.getLogger(__name__)

ses_config = Config(
    retries={
        'max_attempts': 2,
        'mode': 'standard'
    },
    connect_timeout=10,
    read_timeout=30
)

ses_client = boto3.client('ses', config=ses_config)

SUMMARY_EMAIL_ADDRESS = os.environ.get('SUMMARY_EMAIL_ADDRESS', '')
SUMMARY_SENDER_ADDRESS = os.environ.get('SUMMARY_SENDER_ADDRESS') or SUMMARY_EMAIL_ADDRESS

SEND_EMAIL_SUMMARY = os.environ.get('SEND_EMAIL_SUMMARY', 'true').lower() == 'true'
SEND_DAILY_SUMMARY = os.environ.get('SEND_DAILY_SUMMARY', 'true').lower() == 'true'
SEND_ERROR_NOTIFICATIONS = os.environ.get('SEND_ERROR_NOTIFICATIONS', 'true').lower() == 'true'

LIMIT_ALERT_MARKER = 'limit-alert'

_WRAPPER_OPEN = '<div style="font-family: Arial; max-width: 600px;">'
_HEADING = '<h2 style="color: #1a73e8;">{title}</h2>'


def _send_email(subject: str, html_body: str) -> bool:
    """
    Send an HTML email to the summary recipient.

    Returns:
        True if SES accepted the message
    """
    if not SUMMARY_EMAIL_ADDRESS:
        logger.warning("SUMMARY_EMAIL_ADDRESS not set, skipping email")
        return False

    try:
        response = ses_client.send_email(
            Source=SUMMARY_SENDER_ADDRESS,
            Destination={'ToAddresses': [SUMMARY_EMAIL_ADDRESS]},
            Message={
                'Subject': {'Data': subject, 'Charset': 'UTF-8'},
                'Body': {'Html': {'Data': html_body, 'Charset': 'UTF-8'}},
            }
        )
        logger.info(f"Sent email '{subject}': message_id={response.get('MessageId')}")
        return True

    except ClientError as e:
        error_code = e.response.get('Error', {}).get('Code', 'Unknown')
        logger.error(f"Failed to send email '{subject}': error_code={error_code}, error={e}")
        return False


def build_tracking_table(records: Iterable[SubmissionRecord]) -> str:
    """HTML table of carrier, linked tracking number and description."""
    rows = [
        '<table border="1" cellpadding="8" style="border-collapse: collapse; width: 100%;">'
        '<tr style="background: #eee;"><th>Carrier</th><th>Number</th><th>Description</th></tr>'
    ]
    for record in records:
        url = get_tracking_url(record.carrier, record.tracking_number)
        rows.append(
            f'<tr><td>{html.escape(record.carrier.upper())}</td>'
            f'<td><a href="{html.escape(url)}">{html.escape(record.tracking_number)}</a></td>'
            f'<td>{html.escape(record.description or "")}</td></tr>'
        )
    rows.append('</table>')
    return ''.join(rows)


def build_run_summary_html(summary: RunSummary, quota_used: int) -> str:
    parts = [
        _WRAPPER_OPEN,
        _HEADING.format(title='Parcel Tracker Sync Report'),
        f'<p><b>Successfully Added:</b> {summary.successfully_sent}</p>',
    ]
    if summary.failed:
        parts.append(f'<p><b>Failed:</b> {summary.failed}</p>')
    if summary.tracking_details:
        parts.append(build_tracking_table(summary.tracking_details))
    parts.append(
        f'<hr><p style="font-size: 12px;">Quota: {quota_used} / {state.DAILY_RATE_LIMIT} used.</p></div>'
    )
    return ''.join(parts)


def run_summary_subject(summary: RunSummary) -> str:
    if summary.rate_limit_reached:
        return 'Parcel Tracker - Limit Reached'
    return f'Parcel Tracker Sync - {summary.successfully_sent} Added'


def send_run_summary(summary: RunSummary, now: Optional[datetime] = None) -> bool:
    """
    Email the report of one batch run.

    A rate-limit report goes out at most once per day.

    Returns:
        True if an email was sent
    """
    if not SEND_EMAIL_SUMMARY:
        return False

    if summary.rate_limit_reached and state.sent_today(LIMIT_ALERT_MARKER, now):
        logger.info("Limit alert already sent today, skipping")
        return False

    quota_used = state.get_today_api_call_count(now)
    sent = _send_email(run_summary_subject(summary), build_run_summary_html(summary, quota_used))

    # Only a delivered alert counts for the day
    if sent and summary.rate_limit_reached:
        state.mark_sent_today(LIMIT_ALERT_MARKER, now)
    return sent


def build_daily_summary_html(daily: Dict[str, Any]) -> str:
    return ''.join([
        _WRAPPER_OPEN,
        _HEADING.format(title='Daily Shipping Summary'),
        f"<p><b>Total Packages:</b> {daily.get('total_successfully_sent', 0)}</p>",
        f"<p><b>Emails Scanned:</b> {daily.get('total_emails_scanned', 0)}</p>",
        build_tracking_table(state.daily_summary_records(daily)),
        '</div>',
    ])


def send_daily_summary(daily: Dict[str, Any]) -> bool:
    """Email the day's accumulated totals."""
    if not SEND_DAILY_SUMMARY:
        return False

    subject = f"Daily Parcel Tracker Summary - {daily.get('total_successfully_sent', 0)} Added"
    return _send_email(subject, build_daily_summary_html(daily))


def send_error_notification(summary: RunSummary) -> bool:
    """Email the errors collected during a run."""
    if not SEND_ERROR_NOTIFICATIONS or not summary.errors:
        return False

    items = ''.join(f'<li>{html.escape(error)}</li>' for error in summary.errors)
    body = ''.join([
        _WRAPPER_OPEN,
        _HEADING.format(title='Parcel Tracker Errors'),
        f'<p>{len(summary.errors)} error(s) while scanning {summary.emails_scanned} email(s):</p>',
        f'<ul>{items}</ul>',
        '</div>',
    ])
    return _send_email('Parcel Tracker - Errors', body)

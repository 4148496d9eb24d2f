"""
Rules for ignoring emails before tracking extraction.
"""

import re
from typing import Optional

REPORT_SUBJECT_MARKER = 'Parcel Tracker'

NOT_DELIVERED_PATTERNS = (
    re.compile(r"can't be delivered", re.IGNORECASE),
    re.compile(r'delivery error', re.IGNORECASE),
    re.compile(r"couldn't be delivered", re.IGNORECASE),
    re.compile(r'delayed', re.IGNORECASE),
)

DELIVERED_PATTERNS = (
    re.compile(r'was delivered', re.IGNORECASE),
    re.compile(r'delivery complete', re.IGNORECASE),
    re.compile(r'successfully delivered', re.IGNORECASE),
    re.compile(r'^delivered: ', re.IGNORECASE),
)


def is_delivered(subject: str, body: str) -> bool:
    """
    Whether the email reports a completed delivery.

    Failed or delayed delivery wording wins over delivered wording.

    Example:
        >>> is_delivered('Delivered: Your package', '')
        True
        >>> is_delivered('Your package was delivered', 'but delivery was delayed')
        False
    """
    combined = f"{subject or ''} {body or ''}".lower()
    if any(p.search(combined) for p in NOT_DELIVERED_PATTERNS):
        return False
    return any(p.search(combined) for p in DELIVERED_PATTERNS)


def skip_reason(
    sender_address: str,
    subject: str,
    body: str,
    own_address: Optional[str] = None
) -> Optional[str]:
    """
    Return why an email should be ignored, or None to process it.
    """
    if own_address and sender_address == own_address.lower():
        return 'sent by summary recipient'
    if REPORT_SUBJECT_MARKER in (subject or ''):
        return 'tracker report'
    if is_delivered(subject, body):
        return 'already delivered'
    return None


def should_skip_email(
    sender_address: str,
    subject: str,
    body: str,
    own_address: Optional[str] = None
) -> bool:
    return skip_reason(sender_address, subject, body, own_address) is not None

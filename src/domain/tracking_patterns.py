"""
Tracking-number pattern table.

Rules are listed from most to least specific. Priority decides which carrier
wins when the same number matches several rules; declaration order breaks
ties. The table is built once at import time and never changes.
"""

import re
from typing import Tuple

from .models import TrackingPattern

UPS = 'ups'
USPS = 'usps'
FEDEX = 'fedex'
ONTRAC = 'ontrac'

# Length-only catch-all rules are attributed to this courier
FALLBACK_CARRIER = FEDEX
FALLBACK_CARRIER_DOMAIN = 'fedex.com'

# Prefixes under which a fallback number is really the tail of a UPS number
UPS_TAIL_PREFIXES = ('1Z', '1ZXH')

MIN_TRACKING_LENGTH = 10

TRACKING_PATTERNS: Tuple[TrackingPattern, ...] = (
    TrackingPattern(re.compile(r'\b(1Z[0-9A-Z]{16})\b', re.IGNORECASE | re.ASCII), UPS, 1),
    TrackingPattern(re.compile(r'\b((?:94|93|92|95)\d{20})\b', re.ASCII), USPS, 1),
    TrackingPattern(
        re.compile(r'\b((?:EA|EC|CP|RA|LK|LN|LM|RH|RB|RD|RE)\d{9}US)\b', re.IGNORECASE | re.ASCII),
        USPS,
        1,
    ),
    TrackingPattern(re.compile(r'\b((?:420\d{5})?(?:91|92|93|94|95)\d{20})\b', re.ASCII), USPS, 2),
    TrackingPattern(re.compile(r'(C\d{14})', re.IGNORECASE | re.ASCII), ONTRAC, 3),
    TrackingPattern(re.compile(r'\b(\d{12})\b', re.ASCII), FEDEX, 5),
    TrackingPattern(re.compile(r'\b(\d{15})\b', re.ASCII), FEDEX, 5),
    TrackingPattern(re.compile(r'\b(\d{20})\b', re.ASCII), FEDEX, 5),
)

TRACKING_URLS = {
    UPS: 'https://www.ups.com/track?tracknum={number}',
    USPS: 'https://tools.usps.com/go/TrackConfirmAction?tLabels={number}',
    FEDEX: 'https://www.fedex.com/fedextrack/?tracknumbers={number}',
    ONTRAC: 'https://www.ontrac.com/tracking?number={number}',
}


def get_tracking_url(carrier: str, tracking_number: str) -> str:
    """
    Public tracking page for a number, or '#' for unknown carriers.

    Example:
        >>> get_tracking_url('UPS', '1Z999AA10123456784')
        'https://www.ups.com/track?tracknum=1Z999AA10123456784'
    """
    template = TRACKING_URLS.get((carrier or '').lower())
    if not template:
        return '#'
    return template.format(number=tracking_number)

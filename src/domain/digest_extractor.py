"""
Extractor for USPS Informed Delivery "Digest" emails.

A digest lists several incoming packages, each as a bolded shipper name
followed by its tracking number. The generic extractor would find the
numbers but not who sent them, so digests get their own parser.
"""

import logging
import re
from typing import List, Optional

from services import email as email_service
from .models import TrackingResult
from .tracking_patterns import USPS

logger = logging.getLogger(__name__)

DIGEST_SENDER_MARKER = 'informeddelivery.usps.com'
DIGEST_SUBJECT_MARKER = 'Digest'

MAX_SHIPPER_NAME_LENGTH = 50

DIGEST_BLOCK_RE = re.compile(
    r'FROM:\s*<b><span[^>]*>([^<]{3,100}?)</span></b>'
    r'(?:(?!FROM:)[\s\S])*?'
    r'<span[^>]*>(\d{20,})</span>',
    re.IGNORECASE | re.ASCII
)

_LONG_DIGIT_RUN_RE = re.compile(r'\d{10,}', re.ASCII)


def is_digest_message(sender_address: Optional[str], subject: Optional[str]) -> bool:
    """Whether a message has the Informed Delivery digest signature."""
    return bool(
        sender_address and subject
        and DIGEST_SENDER_MARKER in sender_address
        and DIGEST_SUBJECT_MARKER in subject
    )


def normalize_shipper_name(raw_name: str, tracking_number: str = '') -> str:
    """
    Turn a captured shipper span into a display label.

    Strips markup, drops digit runs that leaked in from the tracking number,
    title-cases each word and truncates long names.

    Example:
        >>> normalize_shipper_name('ACME&amp;CO STORE')
        'Acme&co Store'
    """
    name = email_service.clean_html(raw_name)
    if tracking_number:
        name = name.replace(tracking_number, '', 1)
    name = _LONG_DIGIT_RUN_RE.sub('', name).strip()
    name = ' '.join(word[:1].upper() + word[1:] for word in name.lower().split(' '))

    if len(name) > MAX_SHIPPER_NAME_LENGTH:
        name = name[:MAX_SHIPPER_NAME_LENGTH - 3] + '...'
    return name


def extract_digest(html_body: Optional[str]) -> List[TrackingResult]:
    """
    Extract (tracking number, shipper) pairs from a digest HTML body.

    Args:
        html_body: HTML rendering of the digest email

    Returns:
        One USPS TrackingResult per shipment block, in document order.
        Markup that does not follow the digest layout yields an empty list.
    """
    if not html_body:
        return []

    results = []
    for match in DIGEST_BLOCK_RE.finditer(html_body):
        tracking_number = match.group(2).strip()
        results.append(TrackingResult(
            tracking_number=tracking_number,
            carrier=USPS,
            description=normalize_shipper_name(match.group(1), tracking_number)
        ))

    logger.info(f"Digest blocks matched: {len(results)}")
    return results

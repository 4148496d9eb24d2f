"""
Shipper/merchant label inference for a shipment email.

The label annotates every tracking number from a message that the digest
extractor did not already name. Attempts, first hit wins:
carrier-specific body markers, merchant phrases in the subject, then the
sender's domain name.
"""

import re
from typing import Optional

from services import email as email_service

MAX_MERCHANT_LENGTH = 50

# Second-level labels that are never the merchant (example.co.uk -> example)
GENERIC_DOMAIN_LABELS = frozenset(['co', 'com', 'org', 'net', 'edu', 'gov', 'ac'])

USPS_SHIPPER_RE = re.compile(r'From: ([^:]+?)(?: Expected|$)', re.IGNORECASE)
UPS_SHIPPER_RE = re.compile(r'From\s+([A-Z0-9\s.\-]{3,30})', re.IGNORECASE | re.ASCII)

MERCHANT_SUBJECT_PATTERNS = (
    re.compile(r'order from\s+(.+?)(?:\s+has|\s+is|\s+-|$)', re.IGNORECASE),
    re.compile(r'shipment from\s+(.+?)(?:\s+has|\s+is|\s+-|$)', re.IGNORECASE),
    re.compile(r'(.+?)\s+order\s+(?:confirmation|has shipped)', re.IGNORECASE),
    re.compile(r'Your\s+(.+?)\s+order', re.IGNORECASE),
)


def _shipper_from_carrier_body(body: str, sender_address: str) -> Optional[str]:
    if 'usps.com' in sender_address:
        match = USPS_SHIPPER_RE.search(body)
        if match:
            return match.group(1).strip()
    if 'ups.com' in sender_address:
        match = UPS_SHIPPER_RE.search(body)
        if match:
            return match.group(1).strip()
    return None


def _merchant_from_subject(subject: str) -> Optional[str]:
    for pattern in MERCHANT_SUBJECT_PATTERNS:
        match = pattern.search(subject)
        if match and len(match.group(1)) < MAX_MERCHANT_LENGTH:
            return match.group(1).strip()
    return None


def domain_label(sender_address: str) -> str:
    """
    Registrable domain label of an address, first letter capitalized.

    Example:
        >>> domain_label('orders@shop.example.co.uk')
        'Example'
    """
    domain = sender_address.split('@', 1)[1] if '@' in sender_address else sender_address
    parts = domain.split('.')
    label = parts[-2] if len(parts) >= 2 else parts[0]
    if len(parts) >= 3 and label.lower() in GENERIC_DOMAIN_LABELS:
        label = parts[-3]
    return label[:1].upper() + label[1:]


def infer_description(
    subject: Optional[str],
    body: Optional[str],
    sender_address: Optional[str]
) -> str:
    """
    Derive a human-readable shipper label for a message.

    Args:
        subject: Subject line (may contain markup)
        body: Plain and/or HTML body text
        sender_address: Bare sender address; empty or None disables the
            sender-based branches

    Returns:
        Label string (may be empty when nothing is known)
    """
    clean_body = email_service.clean_html(body)
    clean_subject = email_service.clean_html(subject)
    sender_address = (sender_address or '').lower()

    if sender_address:
        shipper = _shipper_from_carrier_body(clean_body, sender_address)
        if shipper:
            return shipper

    merchant = _merchant_from_subject(clean_subject)
    if merchant:
        return merchant

    if sender_address:
        return domain_label(sender_address)

    return clean_subject

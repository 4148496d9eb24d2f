"""
Generic tracking-number extractor.

Runs every rule of the pattern table over the message text, drops
false positives with the rejection filters, and resolves numbers matched by
several rules in favour of the most specific one.

Pure functions: no I/O and no state between calls.
"""

import logging
import re
from typing import Dict, Iterable, Iterator, List, Optional, Set

from .models import Candidate, TrackingResult
from .rejection_filters import is_likely_fallback_tracking, is_likely_not_tracking_number
from .tracking_patterns import (
    FALLBACK_CARRIER,
    FALLBACK_CARRIER_DOMAIN,
    MIN_TRACKING_LENGTH,
    TRACKING_PATTERNS,
    UPS_TAIL_PREFIXES,
)

logger = logging.getLogger(__name__)

_WHITESPACE_RE = re.compile(r'\s+')


def normalize_tracking_number(raw: str) -> str:
    """Remove all whitespace from a matched number."""
    return _WHITESPACE_RE.sub('', raw.strip())


def is_fallback_carrier_sender(sender_address: Optional[str]) -> bool:
    return bool(sender_address) and FALLBACK_CARRIER_DOMAIN in sender_address.lower()


def _is_ups_tail(text: str, number: str) -> bool:
    return any(f"{prefix}{number}" in text for prefix in UPS_TAIL_PREFIXES)


def find_candidates(text: str, sender_address: Optional[str] = None) -> Iterator[Candidate]:
    """
    Yield accepted matches in pattern-table order.

    Args:
        text: Subject and bodies of one message, newline-joined
        sender_address: Bare sender address (may be empty)

    Yields:
        Candidate for every match that survives the rejection filters
    """
    sender_is_carrier = is_fallback_carrier_sender(sender_address)

    for rule in TRACKING_PATTERNS:
        is_fallback = rule.carrier == FALLBACK_CARRIER

        for match in rule.pattern.finditer(text):
            number = normalize_tracking_number(match.group(1))
            if len(number) < MIN_TRACKING_LENGTH:
                continue

            if is_fallback:
                if _is_ups_tail(text, number):
                    logger.debug(f"Skipping UPS tail {number}")
                    continue
                if not sender_is_carrier and not is_likely_fallback_tracking(text, number):
                    logger.debug(f"Skipping {number}: no {FALLBACK_CARRIER} context")
                    continue

            if is_likely_not_tracking_number(
                number,
                fallback_context=is_fallback,
                sender_is_carrier=is_fallback and sender_is_carrier
            ):
                logger.debug(f"Rejected {number} ({rule.carrier})")
                continue

            yield Candidate(tracking_number=number, carrier=rule.carrier, priority=rule.priority)


def resolve_candidates(candidates: Iterable[Candidate]) -> Dict[str, Candidate]:
    """
    Reduce candidates to one per tracking number.

    The first candidate seen for a number is kept unless a later one has a
    strictly lower priority value.
    """
    resolved: Dict[str, Candidate] = {}
    for candidate in candidates:
        current = resolved.get(candidate.tracking_number)
        if current is None or candidate.priority < current.priority:
            resolved[candidate.tracking_number] = candidate
    return resolved


def extract_all(text: str, sender_address: Optional[str] = None) -> Set[TrackingResult]:
    """
    Extract every plausible tracking number from a message.

    Args:
        text: Subject and bodies of one message, newline-joined
        sender_address: Bare sender address (may be empty or None)

    Returns:
        Set of TrackingResult without description

    Example:
        >>> extract_all("Your UPS shipment 1Z999AA10123456784 is on its way", "ups.com")
        {TrackingResult(tracking_number='1Z999AA10123456784', carrier='ups', description=None)}
    """
    if not text:
        return set()

    resolved = resolve_candidates(find_candidates(text, sender_address))
    return {
        TrackingResult(tracking_number=c.tracking_number, carrier=c.carrier)
        for c in resolved.values()
    }


def extract_all_sorted(text: str, sender_address: Optional[str] = None) -> List[TrackingResult]:
    """extract_all() in a stable order, for submission and reporting."""
    return sorted(extract_all(text, sender_address), key=lambda r: (r.carrier, r.tracking_number))

"""
Heuristics that flag a numeric string as "not actually a tracking number".

Each filter is an independent predicate; is_likely_not_tracking_number()
chains them. The fallback-courier context score is a hand-tuned point system
whose weights and threshold live in module constants so they can be tuned
and tested directly.
"""

import re

from .tracking_patterns import FALLBACK_CARRIER

# Context-relevance scoring for length-only (fallback courier) matches
CONTEXT_WINDOW = 300
CARRIER_NAME_SCORE = 3
KEYWORD_SCORE = 2
MIN_CONTEXT_SCORE = 3

CARRIER_NAME_TERMS = (FALLBACK_CARRIER, 'federal express')
SHIPPING_KEYWORDS = ('tracking', 'shipment')

MIN_DISTINCT_DIGITS = 6

_ORDER_OR_PHONE_RE = re.compile(r'^1?[2-9]\d{9}$', re.ASCII)
_ELEVEN_DIGITS_RE = re.compile(r'^\d{11}$', re.ASCII)
_PHONE_PREFIX_RE = re.compile(r'^(?:1|800|888|877|866|855|844|833|822|88[0-79])', re.ASCII)
_HIGH_ENTROPY_SHAPE_RE = re.compile(r'^[02-9]\d{10,14}$', re.ASCII)
_SHORT_NUMERIC_RE = re.compile(r'^\d{11,13}$', re.ASCII)
_KNOWN_CARRIER_PREFIX_RE = re.compile(r'^(?:1Z|94|93|92|95|420)', re.ASCII)
_REPEATED_DIGIT_RE = re.compile(r'^(\d)\1{9,}$', re.ASCII)
_SEQUENTIAL_RUN_RE = re.compile(r'^(?:0123456789|1234567890|9876543210|0987654321)', re.ASCII)


def looks_like_order_or_phone_number(number: str) -> bool:
    """10-digit number, optionally with a leading 1, not starting with 0/1."""
    return bool(_ORDER_OR_PHONE_RE.match(number))


def looks_like_phone_number(number: str) -> bool:
    """11 digits starting with 1 or a North-American toll-free prefix."""
    return bool(_ELEVEN_DIGITS_RE.match(number) and _PHONE_PREFIX_RE.match(number))


def has_high_digit_entropy(number: str) -> bool:
    """11-15 digits, not starting with 1, using at least six distinct digits."""
    return bool(_HIGH_ENTROPY_SHAPE_RE.match(number)) and len(set(number)) >= MIN_DISTINCT_DIGITS


def lacks_known_carrier_prefix(number: str) -> bool:
    """11-13 digits without a UPS or USPS prefix."""
    return bool(_SHORT_NUMERIC_RE.match(number)) and not _KNOWN_CARRIER_PREFIX_RE.match(number)


def is_repeated_digit(number: str) -> bool:
    return bool(_REPEATED_DIGIT_RE.match(number))


def starts_with_sequential_run(number: str) -> bool:
    return bool(_SEQUENTIAL_RUN_RE.match(number))


def is_likely_not_tracking_number(
    number: str,
    fallback_context: bool = False,
    sender_is_carrier: bool = False
) -> bool:
    """
    Check whether a candidate is a known false-positive shape.

    Args:
        number: Candidate with whitespace already removed
        fallback_context: Candidate came from a length-only fallback rule
        sender_is_carrier: Message was sent from the fallback courier's own
            domain; waives the fallback-only filters and the sequential-run
            placeholder check

    Returns:
        True if the candidate should be rejected

    Example:
        >>> is_likely_not_tracking_number('18005551234')
        True
        >>> is_likely_not_tracking_number('1Z999AA10123456784')
        False
    """
    if looks_like_order_or_phone_number(number):
        return True
    if looks_like_phone_number(number):
        return True
    if is_repeated_digit(number):
        return True

    if sender_is_carrier:
        return False

    if fallback_context:
        if has_high_digit_entropy(number):
            return True
        if lacks_known_carrier_prefix(number):
            return True

    return starts_with_sequential_run(number)


def context_relevance_score(text: str, number: str) -> int:
    """
    Score the text surrounding the first occurrence of a number.

    Returns 0 when the number does not occur in the text.
    """
    idx = text.find(number)
    if idx == -1:
        return 0

    start = max(0, idx - CONTEXT_WINDOW)
    end = min(len(text), idx + len(number) + CONTEXT_WINDOW)
    context = text[start:end].lower()

    score = 0
    if any(term in context for term in CARRIER_NAME_TERMS):
        score += CARRIER_NAME_SCORE
    if any(keyword in context for keyword in SHIPPING_KEYWORDS):
        score += KEYWORD_SCORE
    return score


def is_likely_fallback_tracking(text: str, number: str) -> bool:
    """Whether the surrounding text makes a fallback-courier number plausible."""
    return context_relevance_score(text, number) >= MIN_CONTEXT_SCORE

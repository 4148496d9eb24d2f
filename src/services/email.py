"""
Email parsing and text normalization utilities.

This module provides reusable functions for parsing raw MIME emails and
normalizing the header and body text used by tracking-number extraction.
"""

import logging
import re
from email import policy
from email.parser import BytesParser
from email.message import Message
from typing import Dict, Optional

logger = logging.getLogger(__name__)

_STYLE_BLOCK_RE = re.compile(r'<style[^>]*>[\s\S]*?</style>', re.IGNORECASE)
_SCRIPT_BLOCK_RE = re.compile(r'<script[^>]*>[\s\S]*?</script>', re.IGNORECASE)
_TAG_RE = re.compile(r'<[^>]*>')
_WHITESPACE_RE = re.compile(r'\s+')
_ANGLE_ADDRESS_RE = re.compile(r'<([^>]+)>')

# Applied in order
HTML_ENTITIES = (
    ('&nbsp;', ' '),
    ('&amp;', '&'),
    ('&lt;', '<'),
    ('&gt;', '>'),
    ('&quot;', '"'),
    ('&#39;', "'"),
    ('&apos;', "'"),
)


def _decode_part(part: Message) -> str:
    try:
        # get_content() handles quoted-printable, base64, etc automatically
        return part.get_content()
    except Exception as e:
        logger.warning(f"Failed to decode {part.get_content_type()} with get_content(): {e}")
        # Fallback: manual decode with get_payload(decode=True)
        payload = part.get_payload(decode=True)
        if payload:
            return payload.decode('utf-8', errors='ignore')
        return ''


def extract_email_body(email_content: bytes) -> Dict[str, str]:
    """
    Parse raw email (MIME format) and extract the plain and HTML bodies.

    Attachments are ignored; tracking numbers are only read from body text.

    Args:
        email_content: Raw email bytes from S3

    Returns:
        Dictionary with text_body and html_body (empty strings if absent)

    Example:
        >>> email_bytes = b"From: sender@example.com\\r\\n\\r\\nHello World"
        >>> result = extract_email_body(email_bytes)
        >>> print(result['text_body'])
        "Hello World"
    """
    msg = BytesParser(policy=policy.default).parsebytes(email_content)

    result = {
        'text_body': '',
        'html_body': '',
    }

    if msg.is_multipart():
        for part in msg.walk():
            content_type = part.get_content_type()
            content_disposition = str(part.get("Content-Disposition", ""))

            if "attachment" in content_disposition:
                continue

            # First text/plain and text/html parts win
            if content_type == "text/plain" and not result['text_body']:
                result['text_body'] = _decode_part(part)
            elif content_type == "text/html" and not result['html_body']:
                result['html_body'] = _decode_part(part)
    else:
        content_type = msg.get_content_type()
        if content_type == "text/plain":
            result['text_body'] = msg.get_content()
        elif content_type == "text/html":
            result['html_body'] = msg.get_content()
        else:
            logger.warning(
                f"Unknown content type for non-multipart email: {content_type}. "
                f"Email body will be empty."
            )

    return result


def clean_html(text: Optional[str]) -> str:
    """
    Flatten an HTML fragment to whitespace-normalized plain text.

    Drops <style> and <script> blocks, replaces every remaining tag with a
    space, decodes the common named entities and collapses whitespace.

    Example:
        >>> clean_html("<p>Ben &amp; Jerry's</p>\\n<b>Store</b>")
        "Ben & Jerry's Store"
    """
    if not text:
        return ''

    text = _STYLE_BLOCK_RE.sub('', text)
    text = _SCRIPT_BLOCK_RE.sub('', text)
    text = _TAG_RE.sub(' ', text)
    for entity, char in HTML_ENTITIES:
        text = text.replace(entity, char)
    return _WHITESPACE_RE.sub(' ', text).strip()


def extract_sender_address(from_header: Optional[str]) -> str:
    """
    Extract the bare, lower-cased address from a From header value.

    Example:
        >>> extract_sender_address('UPS <MCInfo@ups.com>')
        'mcinfo@ups.com'
        >>> extract_sender_address('auto-reply@usps.com')
        'auto-reply@usps.com'
    """
    if not from_header:
        return ''

    match = _ANGLE_ADDRESS_RE.search(from_header)
    if match:
        return match.group(1).strip().lower()
    return from_header.strip().lower()

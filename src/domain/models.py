"""
Data models for shipment email processing.

These type-safe data structures define clear contracts between components.
Core extraction types (TrackingPattern, Candidate, TrackingResult,
MessageContext) are immutable; orchestration types carry per-run state.
"""

import re
from dataclasses import dataclass, field
from typing import List, Optional, Dict, Any


@dataclass(frozen=True)
class TrackingPattern:
    """
    One rule of the tracking-number pattern table.

    Attributes:
        pattern: Compiled regex with exactly one capturing group
        carrier: Carrier code (e.g., "ups", "usps")
        priority: Trust rank, lower value = more specific format
    """
    pattern: re.Pattern
    carrier: str
    priority: int


@dataclass(frozen=True)
class Candidate:
    """An accepted pattern match waiting for priority resolution."""
    tracking_number: str
    carrier: str
    priority: int


@dataclass(frozen=True)
class TrackingResult:
    """
    A tracking number found in a message.

    Attributes:
        tracking_number: Normalized number (whitespace removed)
        carrier: Carrier code
        description: Shipper/merchant label (None when not known)
    """
    tracking_number: str
    carrier: str
    description: Optional[str] = None


@dataclass(frozen=True)
class MessageContext:
    """
    Read-only bundle of the message fields used for extraction.

    Attributes:
        subject: Subject line
        plain_body: text/plain rendering (empty string if not present)
        html_body: text/html rendering (empty string if not present)
        sender_address: Bare sender address, lower-cased
    """
    subject: str
    plain_body: str
    html_body: str
    sender_address: str

    @property
    def combined_body(self) -> str:
        """Plain and HTML bodies joined by a newline."""
        return f"{self.plain_body}\n{self.html_body}"

    @property
    def extraction_text(self) -> str:
        """Subject plus both bodies, the input of the generic extractor."""
        return f"{self.subject}\n{self.combined_body}"


@dataclass
class EmailMetadata:
    """
    Structured email metadata extracted from SES notification.

    Attributes:
        message_id: Unique SQS message identifier
        from_address: Raw From header value
        sender_address: Bare sender address, lower-cased
        subject: Email subject line
        timestamp: ISO 8601 timestamp when email was received
        bucket_name: S3 bucket containing the raw email
        object_key: S3 object key for the raw email
    """
    message_id: str
    from_address: str
    sender_address: str
    subject: str
    timestamp: str
    bucket_name: str
    object_key: str


@dataclass
class SubmissionRecord:
    """
    Outcome of forwarding one tracking number to the tracking API.

    Stored in the daily summary, so it round-trips through plain dicts.
    """
    tracking_number: str
    carrier: str
    description: str
    email_date: str
    success: bool

    def to_dict(self) -> Dict[str, Any]:
        return {
            'tracking_number': self.tracking_number,
            'carrier': self.carrier,
            'description': self.description,
            'email_date': self.email_date,
            'success': self.success,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'SubmissionRecord':
        return cls(
            tracking_number=data.get('tracking_number', ''),
            carrier=data.get('carrier', ''),
            description=data.get('description', ''),
            email_date=data.get('email_date', ''),
            success=bool(data.get('success', False)),
        )


@dataclass
class ProcessingResult:
    """
    Result of processing one SQS record.

    This explicit result type makes success/failure handling clear
    and prevents exceptions from being used for control flow.

    Attributes:
        success: Whether processing succeeded
        message_id: SQS message identifier
        metadata: Email metadata (if parsing succeeded)
        tracking_found: Number of tracking numbers extracted from the email
        submissions: Tracking numbers forwarded (or attempted) for this email
        skipped_reason: Why the email was ignored (None if it was processed)
        rate_limit_reached: Whether the daily API quota stopped submissions
        error_message: Error description (if processing failed)
    """
    success: bool
    message_id: str
    metadata: Optional[EmailMetadata] = None
    tracking_found: int = 0
    submissions: List[SubmissionRecord] = field(default_factory=list)
    skipped_reason: Optional[str] = None
    rate_limit_reached: bool = False
    error_message: Optional[str] = None

    @property
    def sent_count(self) -> int:
        return sum(1 for s in self.submissions if s.success)

    @property
    def failed_count(self) -> int:
        return sum(1 for s in self.submissions if not s.success)

    def __repr__(self) -> str:
        """Human-readable representation for logging."""
        if self.success:
            return (
                f"ProcessingResult(success=True, message_id={self.message_id}, "
                f"sent={self.sent_count})"
            )
        else:
            return f"ProcessingResult(success=False, message_id={self.message_id}, error={self.error_message})"


@dataclass
class RunSummary:
    """
    Aggregate of one batch run, used for the run report and daily summary.
    """
    emails_scanned: int = 0
    tracking_numbers_found: int = 0
    successfully_sent: int = 0
    failed: int = 0
    tracking_details: List[SubmissionRecord] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)
    rate_limit_reached: bool = False
    api_calls_before_scan: int = 0

    def add_result(self, result: ProcessingResult) -> None:
        """Fold one record's result into the run totals."""
        self.emails_scanned += 1
        self.tracking_numbers_found += result.tracking_found
        self.successfully_sent += result.sent_count
        self.failed += result.failed_count
        self.tracking_details.extend(result.submissions)
        if result.rate_limit_reached:
            self.rate_limit_reached = True
        if not result.success and result.error_message:
            self.errors.append(f"{result.message_id}: {result.error_message}")

    @property
    def should_report(self) -> bool:
        """Whether the run is worth a summary email."""
        return bool(self.successfully_sent > 0 or self.errors or self.rate_limit_reached)

"""
Shipment email processing pipeline - core business logic.

This module handles the end-to-end processing of SES email notifications:
1. Parse SES notification from SQS record
2. Fetch email from S3 and extract its bodies
3. Skip old, delivered or self-sent emails
4. Extract tracking numbers (digest or generic extractor)
5. Forward new numbers to the tracking API within the daily quota
6. Return result (success or failure)

All errors are caught and returned as ProcessingResult with success=False.
No exceptions propagate out of the public methods.
"""

import json
import logging
import os
from datetime import datetime, timedelta, timezone
from typing import Dict, Any, List, Optional

from .models import EmailMetadata, MessageContext, ProcessingResult, SubmissionRecord, TrackingResult
from .description import infer_description
from .digest_extractor import extract_digest, is_digest_message
from .email_filters import skip_reason
from .tracking_extractor import extract_all_sorted
from services import email as email_service
from services import s3 as s3_service
from services import state
from services import notifications
from integrations import parcel_api

logger = logging.getLogger(__name__)

# Emails older than this are ignored (default: 14 days)
LOOKBACK_HOURS = int(os.environ.get('LOOKBACK_HOURS', '336'))

MAX_DESCRIPTION_LENGTH = 100


def _parse_timestamp(value: str) -> Optional[datetime]:
    if not value:
        return None
    try:
        return datetime.fromisoformat(value.replace('Z', '+00:00'))
    except ValueError:
        logger.warning(f"Unparseable SES timestamp: {value}")
        return None


class ShipmentEmailProcessor:
    """
    Handles end-to-end processing of shipment emails.

    Extracts tracking numbers from SES-delivered emails and forwards them to
    the tracking API. Returns ProcessingResult for explicit success/failure
    handling.
    """

    def process_ses_record(self, record: Dict[str, Any], now: Optional[datetime] = None) -> ProcessingResult:
        """
        Process a single SQS record containing SES notification.

        Args:
            record: SQS record dict containing SES notification
            now: Current time (defaults to the wall clock)

        Returns:
            ProcessingResult with success=True or success=False (errors logged)
        """
        message_id = record.get('messageId', 'UNKNOWN')
        now = now or datetime.now(timezone.utc)
        logger.info(f"Processing SQS message: {message_id}")

        try:
            metadata = self._parse_ses_notification(record)
            logger.info(f"Parsed: from={metadata.sender_address}, subject={metadata.subject}")

            if self._is_outside_lookback(metadata, now):
                return self._skipped(message_id, metadata, 'outside lookback window')

            context = self._fetch_email(metadata)
            logger.info(
                f"Fetched: text={len(context.plain_body)}, html={len(context.html_body)}"
            )

            reason = skip_reason(
                context.sender_address,
                context.subject,
                context.combined_body,
                own_address=notifications.SUMMARY_EMAIL_ADDRESS
            )
            if reason:
                return self._skipped(message_id, metadata, reason)

            results = self.extract_tracking(context)
            logger.info(f"Found {len(results)} tracking number(s)")

            result = ProcessingResult(
                success=True,
                message_id=message_id,
                metadata=metadata,
                tracking_found=len(results)
            )
            if results:
                self._submit_results(context, metadata, results, result, now)

            self._log_processing_success(metadata, result)
            return result

        except Exception as e:
            logger.error(f"Failed to process {message_id}: {e}", exc_info=True)

            return ProcessingResult(
                success=False,
                message_id=message_id,
                error_message=str(e)
            )

    def extract_tracking(self, context: MessageContext) -> List[TrackingResult]:
        """
        Route a message to the digest or the generic extractor.

        The two extractors are never both run on one message.
        """
        if is_digest_message(context.sender_address, context.subject):
            logger.info("Informed Delivery digest detected")
            return extract_digest(context.html_body)
        return extract_all_sorted(context.extraction_text, context.sender_address)

    def _parse_ses_notification(self, record: Dict[str, Any]) -> EmailMetadata:
        """
        Parse SQS record and extract SES notification metadata.

        Handles both direct SES->SQS and SNS-wrapped notifications.

        Raises:
            ValueError: If notification structure is invalid
            json.JSONDecodeError: If JSON parsing fails
        """
        message_id = record.get('messageId', 'UNKNOWN')

        sqs_body = json.loads(record['body'])

        # Check if wrapped in SNS (optional setup: SES -> SNS -> SQS)
        if sqs_body.get('Type') == 'Notification' and 'Message' in sqs_body:
            logger.info("Unwrapping SNS message (SES -> SNS -> SQS)")
            ses_notification = json.loads(sqs_body['Message'])
        else:
            ses_notification = sqs_body

        if 'mail' not in ses_notification or 'receipt' not in ses_notification:
            raise ValueError("SES notification missing 'mail' or 'receipt' fields")

        mail = ses_notification['mail']
        receipt = ses_notification['receipt']
        common_headers = mail.get('commonHeaders', {})

        # From can be a list, a string, or missing (fall back to returnPath)
        from_field = common_headers.get('from', [])
        if isinstance(from_field, list) and len(from_field) > 0:
            from_address = from_field[0]
        elif isinstance(from_field, str) and from_field:
            from_address = from_field
        else:
            from_address = mail.get('returnPath', '')

        action = receipt.get('action', {})
        bucket_name = action.get('bucketName')
        object_key = action.get('objectKey')

        if not bucket_name or not object_key:
            raise ValueError("Missing S3 location in SES notification")

        return EmailMetadata(
            message_id=message_id,
            from_address=from_address,
            sender_address=email_service.extract_sender_address(from_address),
            subject=common_headers.get('subject', ''),
            timestamp=mail.get('timestamp', ''),
            bucket_name=bucket_name,
            object_key=object_key
        )

    def _is_outside_lookback(self, metadata: EmailMetadata, now: datetime) -> bool:
        received = _parse_timestamp(metadata.timestamp)
        if received is None:
            return False
        return received < now - timedelta(hours=LOOKBACK_HOURS)

    def _fetch_email(self, metadata: EmailMetadata) -> MessageContext:
        """
        Fetch email from S3 and parse content.

        Raises:
            ValueError: If S3 fetch fails or email parsing fails
        """
        logger.info(f"Fetching email from: s3://{metadata.bucket_name}/{metadata.object_key}")

        raw_email = s3_service.fetch_email_from_s3(
            metadata.bucket_name,
            metadata.object_key
        )
        logger.info(f"Fetched {len(raw_email):,} bytes from S3")

        parsed = email_service.extract_email_body(raw_email)

        return MessageContext(
            subject=metadata.subject,
            plain_body=parsed.get('text_body', ''),
            html_body=parsed.get('html_body', ''),
            sender_address=metadata.sender_address
        )

    def _submit_results(
        self,
        context: MessageContext,
        metadata: EmailMetadata,
        results: List[TrackingResult],
        outcome: ProcessingResult,
        now: datetime
    ) -> None:
        """
        Forward new tracking numbers to the tracking API.

        Note:
            - Numbers already in the sent history are skipped
            - Stops once the daily quota is used up (sets rate_limit_reached)
            - Modifies outcome in place
        """
        general_description = infer_description(
            context.subject,
            context.combined_body,
            context.sender_address
        )

        for result in results:
            if state.has_been_sent(result.tracking_number):
                logger.info(f"Already sent: {result.tracking_number}")
                continue

            if state.is_quota_exhausted(now):
                logger.warning(f"Daily API limit reached ({state.DAILY_RATE_LIMIT}), stopping")
                outcome.rate_limit_reached = True
                return

            description = (result.description or general_description or '')[:MAX_DESCRIPTION_LENGTH]
            success = parcel_api.add_delivery(
                tracking_number=result.tracking_number,
                carrier_code=result.carrier,
                description=description
            )
            state.record_api_activity(success, now)

            if success:
                state.mark_as_sent(result.tracking_number)

            outcome.submissions.append(SubmissionRecord(
                tracking_number=result.tracking_number,
                carrier=result.carrier,
                description=description,
                email_date=metadata.timestamp,
                success=success
            ))

    def _skipped(self, message_id: str, metadata: EmailMetadata, reason: str) -> ProcessingResult:
        logger.info(f"Skipping {message_id}: {reason}")
        return ProcessingResult(
            success=True,
            message_id=message_id,
            metadata=metadata,
            skipped_reason=reason
        )

    def _log_processing_success(self, metadata: EmailMetadata, result: ProcessingResult) -> None:
        """Log successful processing summary."""
        logger.info("=" * 50)
        logger.info("EMAIL PROCESSED SUCCESSFULLY")
        logger.info(f"From: {metadata.sender_address}")
        logger.info(f"Subject: {metadata.subject}")
        logger.info(f"Tracking found: {result.tracking_found}")
        for submission in result.submissions:
            status = 'sent' if submission.success else 'FAILED'
            logger.info(f"  {submission.carrier.upper()} {submission.tracking_number} [{status}] {submission.description}")
        if result.rate_limit_reached:
            logger.info("Daily API limit reached")
        logger.info("=" * 50)

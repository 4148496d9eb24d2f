"""
AWS Lambda handler for processing shipment emails delivered by SES via SQS.

Thin orchestration layer that delegates to ShipmentEmailProcessor.
Policy: messages are deleted after processing (no retries), except when the
daily API quota is already used up, in which case the whole batch is handed
back to SQS for redelivery.
"""

import logging
from typing import Dict, Any

from domain.email_processor import ShipmentEmailProcessor
from domain.models import RunSummary
from services import notifications
from services import state

# Configure logging
logger = logging.getLogger()
logger.setLevel(logging.INFO)

# Add console handler for local testing (AWS Lambda provides handlers automatically)
if not logger.handlers:
    console_handler = logging.StreamHandler()
    console_handler.setLevel(logging.INFO)
    formatter = logging.Formatter('%(levelname)s - %(message)s')
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)

# Initialize processor once at module level (reused across invocations)
email_processor = ShipmentEmailProcessor()


def lambda_handler(event: Dict[str, Any], context: Any) -> Dict[str, Any]:
    """
    Process shipment email notifications from SQS.

    Args:
        event: Lambda event with SQS records
        context: Lambda context

    Returns:
        Dict with batchItemFailures (every record when the quota is exhausted,
        otherwise empty)
    """
    logger.info("=" * 70)
    logger.info("Shipment Email Scanner - Started")
    logger.info("=" * 70)

    records = event.get('Records', [])
    logger.info(f"Processing batch of {len(records)} message(s)")

    summary = RunSummary(api_calls_before_scan=state.get_today_api_call_count())

    if summary.api_calls_before_scan >= state.DAILY_RATE_LIMIT:
        logger.warning(
            f"Daily API limit already reached "
            f"({summary.api_calls_before_scan}/{state.DAILY_RATE_LIMIT}), deferring batch"
        )
        summary.rate_limit_reached = True
        notifications.send_run_summary(summary)
        return {
            "batchItemFailures": [
                {"itemIdentifier": r.get('messageId')} for r in records if r.get('messageId')
            ]
        }

    for record in records:
        result = email_processor.process_ses_record(record)
        summary.add_result(result)

        if not result.success:
            logger.warning(
                f"⚠ Processed message {result.message_id} with ERRORS: "
                f"{result.error_message}"
            )
        elif result.skipped_reason:
            logger.info(f"- Skipped message {result.message_id}: {result.skipped_reason}")
        else:
            logger.info(f"✓ Successfully processed message {result.message_id}")

    if summary.errors:
        notifications.send_error_notification(summary)

    state.accumulate_daily_summary(summary)

    if summary.should_report:
        notifications.send_run_summary(summary)

    logger.info("=" * 70)
    logger.info(f"Batch processing complete: {summary.emails_scanned} message(s)")
    logger.info(f"  Tracking numbers found: {summary.tracking_numbers_found}")
    logger.info(f"  Sent: {summary.successfully_sent}")
    logger.info(f"  Failed: {summary.failed}")
    logger.info(f"  Errors: {len(summary.errors)}")
    logger.info("=" * 70)

    return {"batchItemFailures": []}

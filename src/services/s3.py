"""
S3 operations utilities for Lambda handlers.

This module provides reusable functions for reading raw emails delivered by
SES and for reading/writing the small JSON documents that hold tracker state.

Several Lambda invocations may update the same state document at once, so
updates go through update_json_object(), which uses S3 conditional writes
(IfMatch / IfNoneMatch) and retries on conflict.
"""

import copy
import json
import logging
from typing import Any, Callable, Optional, Tuple

import boto3
from botocore.config import Config
from botocore.exceptions import ClientError

logger = logging.getLogger(__name__)

# 412 when the ETag no longer matches, 409 when a concurrent conditional write is in flight
CONFLICT_ERROR_CODES = ('PreconditionFailed', 'ConditionalRequestConflict')
MAX_UPDATE_ATTEMPTS = 5


class ConcurrentUpdateError(Exception):
    """Raised when a conditional update keeps losing to concurrent writers."""
    pass

# Configure S3 client with timeouts to prevent infinite hangs
s3_config = Config(
    retries={
        'max_attempts': 1,  # 1 attempt total (no retries)
        'mode': 'standard'
    },
    connect_timeout=10,  # 10 seconds to establish connection
    read_timeout=60      # 60 seconds max for reading response
)

# Initialize S3 client at module level (thread-safe, reused across invocations)
s3_client = boto3.client('s3', config=s3_config)
logger.info("S3 client initialized with timeouts: connect=10s, read=60s, max_attempts=1")


def fetch_email_from_s3(bucket: str, key: str) -> bytes:
    """
    Fetch raw email content from S3.

    Args:
        bucket: S3 bucket name
        key: S3 object key (path to the email file)

    Returns:
        bytes: The raw email content as bytes

    Raises:
        ValueError: If the bucket or object does not exist

    Example:
        >>> email_bytes = fetch_email_from_s3(
        ...     bucket="my-ses-bucket",
        ...     key="emails/2025/11/12/message-id.eml"
        ... )
    """
    try:
        response = s3_client.get_object(Bucket=bucket, Key=key)
        return response['Body'].read()
    except ClientError as e:
        error_code = e.response.get('Error', {}).get('Code', '')
        if error_code == 'NoSuchKey':
            logger.error(f"S3 object not found: s3://{bucket}/{key}")
            raise ValueError(f"Email file not found in S3: {key}")
        elif error_code == 'NoSuchBucket':
            logger.error(f"S3 bucket not found: {bucket}")
            raise ValueError(f"S3 bucket not found: {bucket}")
        else:
            logger.error(f"Failed to fetch from S3 s3://{bucket}/{key}: {e}")
            raise


def read_json_object_with_etag(bucket: str, key: str, default: Any = None) -> Tuple[Any, Optional[str]]:
    """
    Read a JSON document from S3 together with its ETag.

    Args:
        bucket: S3 bucket name
        key: S3 object key
        default: Returned (as a copy) when the object does not exist yet

    Returns:
        Tuple of (decoded JSON value, ETag); the ETag is None for a missing object

    Raises:
        ClientError: For S3 errors other than a missing object
        ValueError: If the stored document is not valid JSON
    """
    try:
        response = s3_client.get_object(Bucket=bucket, Key=key)
    except ClientError as e:
        error_code = e.response.get('Error', {}).get('Code', '')
        if error_code in ('NoSuchKey', '404'):
            logger.info(f"State object not found, using default: s3://{bucket}/{key}")
            return copy.deepcopy(default), None
        logger.error(f"Failed to read state s3://{bucket}/{key}: {e}")
        raise

    body = response['Body'].read()
    try:
        return json.loads(body), response.get('ETag')
    except json.JSONDecodeError as e:
        logger.error(f"Corrupt state document s3://{bucket}/{key}: {e}")
        raise ValueError(f"State document is not valid JSON: {key}")


def read_json_object(bucket: str, key: str, default: Any = None) -> Any:
    """
    Read a JSON document from S3.

    Returns:
        Decoded JSON value, or a copy of default for a missing object
    """
    value, _ = read_json_object_with_etag(bucket, key, default=default)
    return value


def write_json_object(bucket: str, key: str, value: Any, **conditions: str) -> None:
    """
    Write a JSON document to S3.

    Args:
        bucket: S3 bucket name
        key: S3 object key
        value: JSON-serializable value
        **conditions: Optional put_object preconditions (IfMatch, IfNoneMatch)

    Raises:
        ValueError: If bucket or key is empty
        ClientError: If S3 operation fails (PreconditionFailed when a
            condition does not hold)
    """
    if not bucket:
        raise ValueError("S3 bucket name cannot be empty")
    if not key:
        raise ValueError("S3 object key cannot be empty")

    body = json.dumps(value).encode('utf-8')

    try:
        s3_client.put_object(
            Bucket=bucket,
            Key=key,
            Body=body,
            ContentType='application/json',
            **conditions
        )
        logger.info(f"Saved state: s3://{bucket}/{key} ({len(body)} bytes)")

    except ClientError as e:
        error_code = e.response.get('Error', {}).get('Code', 'Unknown')
        error_message = e.response.get('Error', {}).get('Message', str(e))

        log = logger.warning if error_code in CONFLICT_ERROR_CODES else logger.error
        log(
            f"Failed to write state to S3: "
            f"bucket={bucket}, key={key}, "
            f"error_code={error_code}, error_message={error_message}"
        )

        raise


def update_json_object(
    bucket: str,
    key: str,
    update: Callable[[Any], Any],
    default: Any = None,
    max_attempts: int = MAX_UPDATE_ATTEMPTS
) -> Any:
    """
    Read-modify-write a JSON document with optimistic locking.

    The write only succeeds if the object still has the ETag that was read
    (or still does not exist). When another writer got there first, the
    document is read again and update is re-applied to the fresh value.

    Args:
        bucket: S3 bucket name
        key: S3 object key
        update: Receives the current value and returns the new one, or None
            to leave the object untouched
        default: Current value when the object does not exist yet
        max_attempts: Number of read/write rounds before giving up

    Returns:
        The value stored in S3 after the update

    Raises:
        ConcurrentUpdateError: If every attempt lost the race
        ClientError: For any other S3 failure

    Example:
        >>> update_json_object('state-bucket', 'state/sent.json',
        ...                    lambda sent: sent + ['1Z999AA10123456784'], default=[])
    """
    for attempt in range(1, max_attempts + 1):
        current, etag = read_json_object_with_etag(bucket, key, default=default)
        updated = update(current)
        if updated is None:
            return current

        conditions = {'IfMatch': etag} if etag else {'IfNoneMatch': '*'}
        try:
            write_json_object(bucket, key, updated, **conditions)
            return updated
        except ClientError as e:
            error_code = e.response.get('Error', {}).get('Code', '')
            if error_code not in CONFLICT_ERROR_CODES:
                raise
            logger.warning(
                f"Concurrent update of s3://{bucket}/{key} "
                f"(attempt {attempt}/{max_attempts}), re-reading"
            )

    raise ConcurrentUpdateError(
        f"Gave up updating s3://{bucket}/{key} after {max_attempts} conflicting writes"
    )


def delete_object(bucket: str, key: str) -> None:
    """Delete an S3 object (no error if it is already gone)."""
    s3_client.delete_object(Bucket=bucket, Key=key)
    logger.info(f"Deleted s3://{bucket}/{key}")

"""
Parcel delivery-tracking API integration.

This module forwards tracking numbers to the Parcel "add delivery" endpoint.

Usage:
    from integrations import parcel_api

    ok = parcel_api.add_delivery(
        tracking_number="1Z999AA10123456784",
        carrier_code="ups",
        description="Acme Store"
    )
"""

import logging
import os
import time
from typing import Any, Dict, Optional

import requests

# Configure logging
logger = logging.getLogger(__name__)


# ============================================================================
# Custom Exception Classes
# ============================================================================

class ConfigurationError(Exception):
    """Raised when module configuration is invalid or missing."""
    pass


class ValidationException(Exception):
    """Raised when input validation fails."""
    pass


# ============================================================================
# Module-Level Configuration and Initialization
# ============================================================================

DEFAULT_API_URL = 'https://api.parcel.app/external/add-delivery/'
MAX_DESCRIPTION_LENGTH = 100


def _read_api_key() -> str:
    """
    Read PARCEL_API_KEY from environment variables.

    Raises:
        ConfigurationError: If PARCEL_API_KEY is missing
    """
    api_key = os.environ.get('PARCEL_API_KEY')

    if not api_key:
        raise ConfigurationError(
            "PARCEL_API_KEY environment variable is required but not set. "
            "Please configure this in your SAM template or Lambda environment."
        )
    return api_key


def _initialize_session(api_key: str) -> requests.Session:
    """Create the HTTP session shared across invocations."""
    http = requests.Session()
    http.headers.update({
        'api-key': api_key,
        'Content-Type': 'application/json',
    })
    return http


PARCEL_API_URL = os.environ.get('PARCEL_API_URL') or DEFAULT_API_URL
PARCEL_API_TIMEOUT = int(os.environ.get('PARCEL_API_TIMEOUT', '30'))
SEND_PUSH_NOTIFICATION = os.environ.get('SEND_PUSH_NOTIFICATION', 'false').lower() == 'true'

# Initialize at module import time (reused across invocations)
try:
    PARCEL_API_KEY = _read_api_key()
    session = _initialize_session(PARCEL_API_KEY)
except ConfigurationError as e:
    logger.error(f"Module initialization failed: {e}")
    raise

logger.info(f"Parcel API client initialized: url={PARCEL_API_URL}, timeout={PARCEL_API_TIMEOUT}s")


# ============================================================================
# API Calls
# ============================================================================

def build_payload(
    tracking_number: str,
    carrier_code: str,
    description: str,
    send_push_confirmation: Optional[bool] = None
) -> Dict[str, Any]:
    """
    Build the add-delivery request body.

    Raises:
        ValidationException: If tracking number or carrier code is empty
    """
    if not tracking_number or not isinstance(tracking_number, str):
        raise ValidationException(f"tracking_number must be a non-empty string. Got: {tracking_number!r}")
    if not carrier_code:
        raise ValidationException(f"carrier_code is required for {tracking_number}")

    if send_push_confirmation is None:
        send_push_confirmation = SEND_PUSH_NOTIFICATION

    return {
        'tracking_number': tracking_number,
        'carrier_code': carrier_code.lower(),
        'description': (description or '')[:MAX_DESCRIPTION_LENGTH],
        'send_push_confirmation': send_push_confirmation,
    }


def add_delivery(
    tracking_number: str,
    carrier_code: str,
    description: str = '',
    send_push_confirmation: Optional[bool] = None
) -> bool:
    """
    Register a delivery with the tracking API.

    Args:
        tracking_number: Normalized tracking number
        carrier_code: Carrier code (e.g., "ups", "usps")
        description: Shipper label, truncated to 100 characters
        send_push_confirmation: Ask the API to push a confirmation;
            defaults to SEND_PUSH_NOTIFICATION

    Returns:
        True if the API answered with a 2xx status, False otherwise

    Raises:
        ValidationException: If tracking number or carrier code is invalid
    """
    payload = build_payload(tracking_number, carrier_code, description, send_push_confirmation)
    start_time = time.time()

    try:
        response = session.post(PARCEL_API_URL, json=payload, timeout=PARCEL_API_TIMEOUT)
    except requests.exceptions.Timeout:
        logger.error(f"Parcel API timeout for {tracking_number}")
        return False
    except requests.exceptions.RequestException as e:
        logger.error(f"Parcel API request failed for {tracking_number}: {e}")
        return False

    elapsed = time.time() - start_time
    if 200 <= response.status_code < 300:
        logger.info(
            f"Parcel API accepted {tracking_number} ({payload['carrier_code']}): "
            f"status={response.status_code}, execution_time={elapsed:.2f}s"
        )
        return True

    logger.error(
        f"Parcel API rejected {tracking_number}: "
        f"status={response.status_code}, body={response.text[:200]}"
    )
    return False

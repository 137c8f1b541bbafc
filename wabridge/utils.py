"""
Utility functions for the Webhook API.
"""

import hmac
import hashlib
import logging
from typing import Optional

logger = logging.getLogger(__name__)

SIGNATURE_PREFIX = "sha256="


def verify_hmac_signature(body: bytes, signature: Optional[str], secret: str) -> bool:
    """
    Verify the X-Hub-Signature-256 HMAC of a webhook delivery.

    Args:
        body: Raw request body bytes
        signature: Header value, ``sha256=<hex>`` (bare hex is accepted too)
        secret: App secret (WEBHOOK_SECRET)

    Returns:
        True if signature is valid, False otherwise
    """
    if not signature:
        return False

    provided = signature[len(SIGNATURE_PREFIX):] if signature.startswith(SIGNATURE_PREFIX) else signature

    expected_signature = hmac.new(
        secret.encode("utf-8"),
        body,
        hashlib.sha256
    ).hexdigest()

    # Use constant-time comparison to prevent timing attacks
    is_valid = hmac.compare_digest(expected_signature.encode("utf-8"), provided.encode("utf-8"))
    logger.debug(f"HMAC signature verification: {'valid' if is_valid else 'invalid'}")

    return is_valid

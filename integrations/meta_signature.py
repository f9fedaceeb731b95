"""Meta (WhatsApp / Instagram) webhook signature validation."""

import hashlib
import hmac
from typing import Optional, Union


def validate_meta_signature(
    app_secret: str,
    body: Union[bytes, str],
    signature_header: Optional[str],
) -> bool:
    """Validate an ``X-Hub-Signature-256`` header.

    Meta signs the raw request body with HMAC-SHA256 using the app secret.
    The header format is ``sha256={hex digest}``.

    Args:
        app_secret: Meta app secret.
        body: Raw request body.
        signature_header: X-Hub-Signature-256 header value.

    Returns:
        True if the signature matches, False otherwise (including a missing header).
    """
    if not signature_header:
        return False

    body_bytes = body.encode("utf-8") if isinstance(body, str) else body
    computed = hmac.new(
        key=app_secret.encode("utf-8"),
        msg=body_bytes,
        digestmod=hashlib.sha256,
    ).hexdigest()

    # Constant-time comparison
    return hmac.compare_digest(f"sha256={computed}", signature_header)

"""
SMS service - Twilio delivery for customer notifications.

Carrier error handling:
- 30006 (landline): don't retry
- 21610 (unsubscribed via carrier): don't retry
- 21211 / 21612 (invalid number): don't retry
- 30007 / 30008 / 30009 (filtered, unknown): retry with backoff
"""
import asyncio
import logging
import re
from typing import Optional

logger = logging.getLogger(__name__)

# Retry configuration
MAX_RETRIES = 2
RETRY_DELAYS_SECONDS = [2, 8]

PERMANENT_ERRORS = {
    "21211",  # Invalid "To" phone number
    "21610",  # Unsubscribed recipient (carrier-level opt-out)
    "30006",  # Landline or unreachable
    "21612",  # Invalid "To" phone number for SMS
}

TRANSIENT_ERRORS = {
    "30007",  # Message filtered by carrier
    "30008",  # Unknown error
    "30009",  # Missing segment
}

TWILIO_CLIENT_TIMEOUT = 10

_PHONE_PATTERN = re.compile(r"^\+?\d{8,14}$")


def normalize_phone(phone: Optional[str]) -> str:
    """Strip all whitespace from a phone number."""
    return re.sub(r"\s", "", phone or "")


def is_valid_phone(phone: Optional[str]) -> bool:
    """Basic international format check: optional +, then 8-14 digits."""
    return bool(_PHONE_PATTERN.match(normalize_phone(phone)))


def mask_phone(phone: str) -> str:
    """Mask phone number for logging - show first 6 digits only."""
    if len(phone) > 6:
        return phone[:6] + "***"
    return phone


def classify_error(error_code: Optional[str]) -> str:
    """Classify a Twilio error code as "permanent", "transient" or "unknown"."""
    if not error_code:
        return "unknown"
    code = str(error_code)
    if code in PERMANENT_ERRORS:
        return "permanent"
    if code in TRANSIENT_ERRORS:
        return "transient"
    return "unknown"


def _get_twilio_client():
    """Get a Twilio REST client with configured timeout."""
    from twilio.rest import Client as TwilioClient
    from twilio.http.http_client import TwilioHttpClient
    from waitwise.config import get_settings
    settings = get_settings()
    http_client = TwilioHttpClient(timeout=TWILIO_CLIENT_TIMEOUT)
    return TwilioClient(
        settings.twilio_account_sid,
        settings.twilio_auth_token,
        http_client=http_client,
    )


async def _run_sync(func, *args, **kwargs):
    """Run a synchronous function in the thread pool to avoid blocking the event loop."""
    loop = asyncio.get_running_loop()
    return await loop.run_in_executor(None, lambda: func(*args, **kwargs))


def _extract_error_code(error: Exception) -> Optional[str]:
    """Extract Twilio error code from exception."""
    code = getattr(error, "code", None)
    if code is not None:
        return str(code)
    msg = str(error)
    for known_code in PERMANENT_ERRORS | TRANSIENT_ERRORS:
        if known_code in msg:
            return known_code
    return None


async def _send_twilio(to: str, body: str) -> dict:
    """Send via Twilio REST API (non-blocking)."""
    from waitwise.config import get_settings
    settings = get_settings()
    client = _get_twilio_client()

    kwargs = {"to": to, "body": body}
    if settings.twilio_messaging_service_sid:
        kwargs["messaging_service_sid"] = settings.twilio_messaging_service_sid
    elif settings.twilio_from_number:
        kwargs["from_"] = settings.twilio_from_number
    else:
        raise ValueError("Either TWILIO_FROM_NUMBER or TWILIO_MESSAGING_SERVICE_SID required")

    message = await _run_sync(client.messages.create, **kwargs)
    return {"sid": message.sid, "status": message.status}


async def send_sms(to: str, body: str) -> dict:
    """
    Send SMS via Twilio, retrying transient carrier errors.

    Returns: {"sid": str|None, "status": str, "error": str|None, "error_code": str|None}
    """
    masked = mask_phone(to)
    last_error = None
    last_error_code = None

    for attempt in range(MAX_RETRIES + 1):
        try:
            result = await _send_twilio(to, body)
            logger.info("SMS sent via Twilio to %s: %s", masked, result.get("sid", "unknown"))
            return {
                "sid": result.get("sid"),
                "status": result.get("status", "sent"),
                "error": None,
                "error_code": None,
            }
        except Exception as e:
            error_code = _extract_error_code(e)
            last_error = str(e)
            last_error_code = error_code

            if classify_error(error_code) == "permanent":
                logger.warning("Twilio permanent error for %s: code=%s", masked, error_code)
                break

            if attempt < MAX_RETRIES:
                delay = RETRY_DELAYS_SECONDS[min(attempt, len(RETRY_DELAYS_SECONDS) - 1)]
                logger.warning(
                    "Twilio error for %s (attempt %d/%d): %s. Retrying in %ds...",
                    masked, attempt + 1, MAX_RETRIES + 1, error_code or str(e), delay,
                )
                await asyncio.sleep(delay)

    logger.error("SMS delivery failed for %s: %s", masked, last_error)
    return {
        "sid": None,
        "status": "failed",
        "error": last_error,
        "error_code": last_error_code,
    }

import os
import json
import logging
from twilio.rest import Client

from lambdas.common.security import mask_mobile_number

# Set up logging
logger = logging.getLogger()
logger.setLevel(logging.INFO)

# Twilio configuration (optional for testing)
TWILIO_SID = os.environ.get("TWILIO_ACCOUNT_SID")
TWILIO_TOKEN = os.environ.get("TWILIO_AUTH_TOKEN")
TWILIO_FROM = os.environ.get("TWILIO_FROM_NUMBER")
ONCALL_NUMBER = os.environ.get("SECURITY_ONCALL_NUMBER")

# Check if Twilio is configured
TWILIO_CONFIGURED = all([TWILIO_SID, TWILIO_TOKEN, TWILIO_FROM, ONCALL_NUMBER])
if TWILIO_CONFIGURED:
    twilio_client = Client(TWILIO_SID, TWILIO_TOKEN)
else:
    logger.warning("Twilio not configured. Running in mock mode.")
    twilio_client = None

SMS_LIMIT = 160


def _short(value, n=8):
    return str(value or "-")[-n:]


def build_alert(kind, event_type, severity, user_id, payload) -> str:
    """SMS text for the on-call phone. Only masked or truncated identifiers."""
    payload = payload or {}
    booking = _short(payload.get("booking_id"))
    amount = payload.get("amount")
    body = (
        f"🚨 {kind} 🚨\n"
        f"{severity} {event_type}\n"
        f"User: {_short(user_id)}\n"
        f"Booking: {booking}\n"
        f"Amount: ৳{amount if amount is not None else '-'}"
    )
    mobile = payload.get("payer_mobile")
    if mobile:
        body += f"\nPayer: {mask_mobile_number(str(mobile))}"

    # Ensure message is under 160 characters
    if len(body) > SMS_LIMIT:
        body = f"{kind}: {severity} {event_type}\nUser {_short(user_id)} Booking {booking}"
    return body[:SMS_LIMIT]


def send_sms(body: str) -> str:
    """Send body to the on-call number; returns the message SID (MOCK-... in mock mode)."""
    if twilio_client is not None:
        logger.info(f"Sending SMS to {mask_mobile_number(ONCALL_NUMBER)}")
        msg = twilio_client.messages.create(to=ONCALL_NUMBER, from_=TWILIO_FROM, body=body)
        return msg.sid
    logger.info("📱 MOCK MODE: Would send SMS to on-call")
    logger.info(f"   Message: {body[:100]}...")
    return "MOCK-" + str(abs(hash(body)))


class TwilioEscalator:
    """Pages the security on-call when audit writes fail or a payment needs manual review."""

    def __init__(self, sender=None):
        self.sender = sender or send_sms

    def escalate(self, event, error: Exception) -> None:
        logger.error(f"Escalating unrecorded {event.severity} audit event {event.event_type}: {error}")
        self.sender(build_alert("AUDIT WRITE FAILED", event.event_type, event.severity,
                                event.user_id, event.payload))

    def manual_review(self, event) -> None:
        logger.info(f"Manual review requested for {event.event_type} (user {_short(event.user_id)})")
        self.sender(build_alert("REVIEW NEEDED", event.event_type, event.severity,
                                event.user_id, event.payload))


def lambda_handler(event, context):
    """
    Notify Lambda - pages on-call for a blocked payment or other security event.
    Expected event format (direct invocation or API Gateway body):
    {
        "event_type": "payment_blocked",
        "severity": "HIGH",
        "user_id": "user_001",
        "payload": {"booking_id": "b-1", "amount": 1000}
    }
    """
    try:
        # Parse event (handle both direct invocation and API Gateway)
        if "body" in event:
            event = json.loads(event["body"] or "{}")

        event_type = event.get("event_type")
        severity = event.get("severity")
        if not event_type or not severity:
            logger.error("Missing required fields: event_type or severity")
            return {
                "statusCode": 400,
                "body": json.dumps({"error": "Missing event_type or severity"})
            }

        body = build_alert("REVIEW NEEDED", event_type, severity,
                           event.get("user_id"), event.get("payload"))
        message_sid = send_sms(body)
        logger.info(f"✅ Successfully processed notification. Message SID: {message_sid}")

        return {
            "statusCode": 200,
            "body": json.dumps({"ok": True, "messageSid": message_sid})
        }

    except Exception as e:
        logger.exception(f"Error in notify lambda: {str(e)}")
        return {
            "statusCode": 500,
            "body": json.dumps({"error": "Internal server error"})
        }

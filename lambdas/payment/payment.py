import json
import logging
from decimal import Decimal

from lambdas.audit.audit import DynamoAuditSink
from lambdas.common.models import RequestContext
from lambdas.common.security import sanitize_for_log
from lambdas.notify.notify import TwilioEscalator
from lambdas.payment.persistence import DynamoPersistence
from lambdas.payment.pipeline import PaymentAuthorizer, PaymentRequest
from lambdas.score.signals import DynamoSignalSource

# Set up logging
logger = logging.getLogger()
logger.setLevel(logging.INFO)
if not logger.handlers:
    logging.basicConfig(level=logging.INFO)

persistence = DynamoPersistence()
authorizer = PaymentAuthorizer(
    persistence=persistence,
    signals=DynamoSignalSource(persistence.transactions, persistence.attempts),
    audit=DynamoAuditSink(),
    escalator=TwilioEscalator(),
)


def decimal_to_native(x):
    if isinstance(x, Decimal):
        if x % 1 == 0:
            return int(x)
        return float(x)
    if isinstance(x, dict):
        return {k: decimal_to_native(v) for k, v in x.items()}
    if isinstance(x, list):
        return [decimal_to_native(i) for i in x]
    return x


def _response(status, body):
    return {"statusCode": status, "body": json.dumps(decimal_to_native(body), default=str)}


def _request_context(event) -> RequestContext:
    identity = (event.get("requestContext") or {}).get("identity") or {}
    headers = {k.lower(): v for k, v in (event.get("headers") or {}).items()}
    return RequestContext(
        ip_address=identity.get("sourceIp") or headers.get("x-forwarded-for", "").split(",")[0].strip() or None,
        user_agent=identity.get("userAgent") or headers.get("user-agent"),
        session_id=headers.get("x-session-id"),
    )


def lambda_handler(event, context):
    """
    POST /bookings/{booking_id}/payment
    Body: {"transaction_ref": "...", "amount": 1000, "rapid_assistance_requested": false,
           "payer_mobile": "01712345678"}   # payer_mobile optional
    The acting user comes from the API Gateway authorizer, never from the body.
    """
    try:
        booking_id = (event.get("pathParameters") or {}).get("booking_id")
        authorizer_ctx = (event.get("requestContext") or {}).get("authorizer") or {}
        user_id = authorizer_ctx.get("user_id")

        if not user_id:
            return _response(401, {"success": False, "error": {"code": "Unauthorized", "message": "Missing identity"}})
        if not booking_id:
            return _response(400, {"success": False, "error": {"code": "BadRequest", "message": "Missing booking_id"}})

        body_str = event.get("body")
        if not body_str:
            return _response(400, {"success": False, "error": {"code": "BadRequest", "message": "Missing body"}})
        try:
            body = json.loads(body_str, parse_float=Decimal)
        except json.JSONDecodeError:
            return _response(400, {"success": False, "error": {"code": "BadRequest", "message": "Body is not valid JSON"}})
        if not isinstance(body, dict):
            return _response(400, {"success": False, "error": {"code": "BadRequest", "message": "Body must be an object"}})

        logger.info(f"Payment request for booking {booking_id} by {user_id}: {sanitize_for_log(body)}")

        result = authorizer.authorize_payment(
            booking_id, PaymentRequest.from_body(body), user_id, _request_context(event)
        )
        return _response(result.status_code, result.to_dict())

    except Exception as e:
        logger.exception(f"Error in payment lambda: {str(e)}")
        return _response(500, {"success": False, "error": {"code": "InternalError", "message": "Internal server error"}})

# lambdas/admin/verify_audit.py
import json

from lambdas.audit.audit import DynamoAuditSink, verify_chain

sink = DynamoAuditSink()


def lambda_handler(event, context):
    """GET /admin/audit/verify - recompute the audit hash chain. 409 when it is broken."""
    try:
        report = verify_chain(sink.entries())
        return {"statusCode": 200 if report["valid"] else 409, "body": json.dumps(report)}
    except Exception as e:
        return {"statusCode": 500, "body": json.dumps({"error": "Internal server error", "message": str(e)})}

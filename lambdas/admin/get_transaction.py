# lambdas/admin/get_transaction.py
import json, boto3, os

from lambdas.payment.pipeline import reveal_payer_mobile

table = boto3.resource('dynamodb').Table(os.environ.get('TRANSACTIONS_TABLE', 'Emergency-Transactions'))


def lambda_handler(event, context):
    params = event.get("pathParameters") or {}
    user_id, ref = params.get("user_id"), params.get("transaction_ref")
    if not user_id or not ref:
        return {"statusCode": 400, "body": json.dumps({"error": "user_id and transaction_ref are required"})}

    response = table.get_item(Key={"user_id": user_id, "transaction_ref": ref})
    if "Item" not in response:
        return {"statusCode": 404, "body": json.dumps({"error": "Not found"})}

    item = response["Item"]
    revealed = reveal_payer_mobile(item)
    if not revealed.is_ok:
        return {"statusCode": revealed.kind.status_code, "body": json.dumps({"error": revealed.to_dict()})}

    item = {k: v for k, v in item.items() if k != "payer_mobile_enc"}
    if revealed.value:
        item["payer_mobile"] = revealed.value
    return {"statusCode": 200, "body": json.dumps(item, default=str)}

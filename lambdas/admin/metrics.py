import json
import boto3
import os
from datetime import datetime, timezone

from lambdas.score.risk import fraud_statistics

dynamodb = boto3.resource('dynamodb')
transactions_table = dynamodb.Table(os.environ.get('TRANSACTIONS_TABLE', 'Emergency-Transactions'))

DEFAULT_DAYS = 30


def lambda_handler(event, context):
    """
    Return fraud statistics over recent payments.
    URL pattern: GET /admin/metrics?days=30
    Metrics returned:
      total_transactions        – payments created in the window
      high_risk_transactions    – risk_score >= 70
      medium_risk_transactions  – risk_score >= 50
      average_risk_score
      max_risk_score
    """
    try:
        params = event.get('queryStringParameters') or {}
        try:
            days = int(params.get('days', DEFAULT_DAYS))
        except (TypeError, ValueError):
            days = 0
        if days <= 0:
            return {
                'statusCode': 400,
                'body': json.dumps({'error': 'days must be a positive integer'})
            }

        # Scan entire table (for small datasets; for large tables, consider pre-aggregated stats)
        resp = transactions_table.scan()
        items = resp.get('Items', [])
        while 'LastEvaluatedKey' in resp:
            resp = transactions_table.scan(ExclusiveStartKey=resp['LastEvaluatedKey'])
            items.extend(resp.get('Items', []))

        metrics = fraud_statistics(items, days, datetime.now(timezone.utc))

        return {
            'statusCode': 200,
            'body': json.dumps(metrics, default=str)
        }

    except Exception as e:
        return {
            'statusCode': 500,
            'body': json.dumps({'error': 'Internal server error', 'message': str(e)})
        }

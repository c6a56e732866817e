import boto3
import json
from sample_data import BOOKINGS, HOSPITAL_PRICING, BALANCES
import sys
from decimal import Decimal

dynamodb = boto3.resource('dynamodb')


def _put_all(table_name, items):
    table = dynamodb.Table(table_name)

    print(f"Seeding {table_name}...")
    for item in items:
        table.put_item(Item=json.loads(json.dumps(item), parse_float=Decimal))

    print(f"{table_name} seeded successfully!")


def seed_bookings_table(table_name="Emergency-Bookings"):
    _put_all(table_name, BOOKINGS)


def seed_pricing_table(table_name="Emergency-HospitalPricing"):
    _put_all(table_name, HOSPITAL_PRICING)


def seed_balances_table(table_name="Emergency-Balances"):
    _put_all(table_name, BALANCES)


if __name__ == '__main__':

    if len(sys.argv) < 2:
        print("Usage: python seed_db.py [bookings|pricing|balances|all]")
        sys.exit(1)

    option = sys.argv[1].lower()

    if option == 'bookings' or option == 'all':
        seed_bookings_table()

    if option == 'pricing' or option == 'all':
        seed_pricing_table()

    if option == 'balances' or option == 'all':
        seed_balances_table()

    print("\nDatabase seeding completed!")

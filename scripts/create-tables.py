#!/usr/bin/env python3
"""
Provision the DynamoDB tables and indexes used by the FindBooks API
Run this once per environment before deploying the Lambda functions

Environment Variables (optional):
    AWS_PROFILE: AWS profile name (default: 'default')
    AWS_REGION: AWS region (default: 'ap-south-1')
    TABLE_PREFIX: Prefix for every table name (default: 'FindBooks-')

Example usage:
    # Use default profile and values
    python3 create-tables.py

    # Provision a staging copy
    AWS_PROFILE=staging TABLE_PREFIX=FindBooksStaging- python3 create-tables.py
"""

import os

import boto3
from botocore.exceptions import ClientError

# Configuration - Update these values or set environment variables
PROFILE = os.environ.get('AWS_PROFILE', 'default')
REGION = os.environ.get('AWS_REGION', 'ap-south-1')
PREFIX = os.environ.get('TABLE_PREFIX', 'FindBooks-')

# table -> (hash key, [(index name, index hash key, index range key or None)])
TABLES = {
    'Users': ('id', [('EmailIndex', 'email', None)]),
    'Otp': ('email', []),
    'Books': ('id', [('IsbnIndex', 'isbn', None), ('SubcategoryIndex', 'subcategory_id', None)]),
    'Subcategories': ('id', [('NameIndex', 'subcategory_name', None)]),
    'Carts': ('id', []),
    'Orders': ('id', [('CartIndex', 'cart_id', None), ('UserIndex', 'user_id', 'created')]),
    'Payments': ('id', []),
    'Resellers': ('id', [('UserIndex', 'user_id', None)]),
}

# Environment variable each table name is exported as for the Lambda functions
ENV_NAMES = {
    'Users': 'USERS_TABLE',
    'Otp': 'OTP_TABLE',
    'Books': 'BOOKS_TABLE',
    'Subcategories': 'SUBCATEGORIES_TABLE',
    'Carts': 'CARTS_TABLE',
    'Orders': 'ORDERS_TABLE',
    'Payments': 'PAYMENTS_TABLE',
    'Resellers': 'RESELLERS_TABLE',
}


def build_table_definition(name, hash_key, indexes):
    attributes = {hash_key}
    global_indexes = []
    for index_name, index_hash, index_range in indexes:
        key_schema = [{'AttributeName': index_hash, 'KeyType': 'HASH'}]
        attributes.add(index_hash)
        if index_range:
            key_schema.append({'AttributeName': index_range, 'KeyType': 'RANGE'})
            attributes.add(index_range)
        global_indexes.append({
            'IndexName': index_name,
            'KeySchema': key_schema,
            'Projection': {'ProjectionType': 'ALL'},
        })

    definition = {
        'TableName': f"{PREFIX}{name}",
        'KeySchema': [{'AttributeName': hash_key, 'KeyType': 'HASH'}],
        'AttributeDefinitions': [
            {'AttributeName': attribute, 'AttributeType': 'S'} for attribute in sorted(attributes)
        ],
        'BillingMode': 'PAY_PER_REQUEST',
    }
    if global_indexes:
        definition['GlobalSecondaryIndexes'] = global_indexes
    return definition


def main():
    session = boto3.Session(profile_name=PROFILE, region_name=REGION)
    client = session.client('dynamodb')

    print(f"🌍 Using AWS Profile: {PROFILE}")
    print(f"🌎 Using AWS Region: {REGION}")
    print()

    created = 0
    skipped = 0

    for name, (hash_key, indexes) in TABLES.items():
        definition = build_table_definition(name, hash_key, indexes)
        table_name = definition['TableName']
        try:
            client.create_table(**definition)
            print(f"✅ Created: {table_name}")
            created += 1
        except ClientError as e:
            if e.response['Error']['Code'] == 'ResourceInUseException':
                print(f"⏭️  Skipping (already exists): {table_name}")
                skipped += 1
                continue
            raise

    # Registration OTPs expire on their own
    waiter = client.get_waiter('table_exists')
    waiter.wait(TableName=f"{PREFIX}Otp")
    try:
        client.update_time_to_live(
            TableName=f"{PREFIX}Otp",
            TimeToLiveSpecification={'Enabled': True, 'AttributeName': 'expires_at'},
        )
        print(f"⏱️  TTL enabled on {PREFIX}Otp.expires_at")
    except ClientError as e:
        if 'already enabled' not in str(e):
            raise

    print()
    print("=" * 60)
    print("📊 Provisioning Summary:")
    print(f"   Tables created: {created}")
    print(f"   Tables skipped (already exist): {skipped}")
    print("=" * 60)
    print()
    print("Lambda environment:")
    for name, env_name in ENV_NAMES.items():
        print(f"   {env_name}={PREFIX}{name}")


if __name__ == '__main__':
    try:
        main()
    except KeyboardInterrupt:
        print("\n⚠️  Provisioning interrupted by user")
    except Exception as e:
        print(f"\n❌ Provisioning failed: {e}")
        raise

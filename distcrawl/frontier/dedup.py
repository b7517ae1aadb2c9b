"""
Dedup filter backed by the DynamoDB ``url-frontier`` table.

A row keyed by (url, job_id) means the normalized URL has been claimed for
that crawl session. Claims are made with a conditional put, so exactly one
caller across all crawler processes wins.
"""
import logging
from datetime import datetime, timezone

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from distcrawl.common.config import AWS_REGION, URL_FRONTIER_TABLE
from distcrawl.common.errors import StoreUnavailable

logger = logging.getLogger(__name__)


def job_id_for(session_id):
    return f"job-{session_id}"


def ensure_table(dynamodb, table_name, key_schema, attribute_definitions):
    """Create a DynamoDB table if it doesn't exist yet."""
    existing_tables = dynamodb.meta.client.list_tables()['TableNames']
    if table_name in existing_tables:
        return dynamodb.Table(table_name)

    logger.info(f"Creating DynamoDB table: {table_name}")
    table = dynamodb.create_table(
        TableName=table_name,
        KeySchema=key_schema,
        AttributeDefinitions=attribute_definitions,
        ProvisionedThroughput={
            'ReadCapacityUnits': 5,
            'WriteCapacityUnits': 5
        }
    )
    # Wait for the table to be created
    dynamodb.meta.client.get_waiter('table_exists').wait(TableName=table_name)
    logger.info(f"Table {table_name} created successfully")
    return table


class DedupFilter:
    """Atomic "have we already scheduled this URL" check for one crawl session."""

    def __init__(self, session_id, dynamodb=None, table_name=URL_FRONTIER_TABLE):
        self.session_id = session_id
        self.job_id = job_id_for(session_id)
        self.dynamodb = dynamodb or boto3.resource('dynamodb', region_name=AWS_REGION)
        self.table_name = table_name
        try:
            self.table = ensure_table(
                self.dynamodb,
                table_name,
                key_schema=[
                    {'AttributeName': 'url', 'KeyType': 'HASH'},
                    {'AttributeName': 'job_id', 'KeyType': 'RANGE'}
                ],
                attribute_definitions=[
                    {'AttributeName': 'url', 'AttributeType': 'S'},
                    {'AttributeName': 'job_id', 'AttributeType': 'S'}
                ]
            )
        except (BotoCoreError, ClientError) as e:
            raise StoreUnavailable('ensure_table', e)

    def try_claim(self, url, depth=None):
        """
        Claim a normalized URL for this session.

        Returns True for exactly one caller per URL; every later or racing
        caller gets False. Claims are never released except by reset().
        """
        item = {
            'url': url,
            'job_id': self.job_id,
            'claimed_at': datetime.now(timezone.utc).isoformat()
        }
        if depth is not None:
            item['depth'] = depth
        try:
            self.table.put_item(
                Item=item,
                ConditionExpression='attribute_not_exists(#url)',
                ExpressionAttributeNames={'#url': 'url'}
            )
            return True
        except ClientError as e:
            if e.response['Error']['Code'] == 'ConditionalCheckFailedException':
                logger.debug(f"URL already claimed: {url}")
                return False
            raise StoreUnavailable('try_claim', e)
        except BotoCoreError as e:
            raise StoreUnavailable('try_claim', e)

    def is_claimed(self, url):
        """Check whether a URL has been claimed in this session."""
        try:
            response = self.table.get_item(Key={'url': url, 'job_id': self.job_id})
        except (BotoCoreError, ClientError) as e:
            raise StoreUnavailable('is_claimed', e)
        return 'Item' in response

    def reset(self):
        """Forget every claim of this session. Only called for an explicit re-crawl."""
        deleted = 0
        scan_kwargs = {
            'FilterExpression': 'job_id = :job_id',
            'ExpressionAttributeValues': {':job_id': self.job_id},
            'ProjectionExpression': '#url, job_id',
            'ExpressionAttributeNames': {'#url': 'url'}
        }
        try:
            with self.table.batch_writer() as batch:
                while True:
                    response = self.table.scan(**scan_kwargs)
                    for item in response.get('Items', []):
                        batch.delete_item(Key={'url': item['url'], 'job_id': item['job_id']})
                        deleted += 1
                    if 'LastEvaluatedKey' not in response:
                        break
                    scan_kwargs['ExclusiveStartKey'] = response['LastEvaluatedKey']
        except (BotoCoreError, ClientError) as e:
            raise StoreUnavailable('reset', e)

        logger.info(f"Reset session {self.session_id}: removed {deleted} claims")
        return deleted

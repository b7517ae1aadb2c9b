"""
Content sinks: where fetched documents go once a worker is done with them.

Sinks are fire-and-forget from the worker's point of view. The worker
catches and logs anything a sink raises, so a failing sink never fails the
crawl of an item.
"""
import logging
from datetime import datetime, timezone

import boto3

from distcrawl.common.config import AWS_REGION, CRAWL_DATA_BUCKET, CRAWL_METADATA_TABLE
from distcrawl.common.utils import url_to_filename
from distcrawl.frontier.dedup import ensure_table, job_id_for

logger = logging.getLogger(__name__)


class LoggingContentSink:
    """Logs each crawled page instead of storing it."""

    def accept(self, url, status_code, content_type, body, fetched_at):
        logger.info(f"Crawled page: {url} [{status_code}] {content_type or 'unknown'} "
                    f"{len(body or '')} chars at {fetched_at}")


class S3ContentSink:
    """Stores documents in S3 and records where they went in the crawl-metadata table."""

    def __init__(self, session_id, crawler_id=None, s3=None, dynamodb=None,
                 bucket=CRAWL_DATA_BUCKET, metadata_table=CRAWL_METADATA_TABLE):
        self.job_id = job_id_for(session_id)
        self.crawler_id = crawler_id
        self.s3 = s3 or boto3.client('s3', region_name=AWS_REGION)
        self.dynamodb = dynamodb or boto3.resource('dynamodb', region_name=AWS_REGION)
        self.bucket = bucket
        self._ensure_bucket()
        self.metadata_table = ensure_table(
            self.dynamodb,
            metadata_table,
            key_schema=[
                {'AttributeName': 'url', 'KeyType': 'HASH'},
                {'AttributeName': 'job_id', 'KeyType': 'RANGE'}
            ],
            attribute_definitions=[
                {'AttributeName': 'url', 'AttributeType': 'S'},
                {'AttributeName': 'job_id', 'AttributeType': 'S'}
            ]
        )

    def _ensure_bucket(self):
        """Create the content bucket if it doesn't exist."""
        try:
            self.s3.head_bucket(Bucket=self.bucket)
        except self.s3.exceptions.ClientError as e:
            if e.response['Error']['Code'] not in ('404', 'NoSuchBucket'):
                raise
            logger.warning(f"Bucket {self.bucket} doesn't exist, creating it...")
            region = self.s3.meta.region_name
            if region and region != 'us-east-1':
                self.s3.create_bucket(
                    Bucket=self.bucket,
                    CreateBucketConfiguration={'LocationConstraint': region}
                )
            else:
                self.s3.create_bucket(Bucket=self.bucket)
            logger.info(f"Created bucket: {self.bucket}")

    def content_key(self, url):
        # Same URL in the same session always lands on the same key
        return f"content/{self.job_id}/{url_to_filename(url)}"

    def accept(self, url, status_code, content_type, body, fetched_at):
        """Upload the document to S3, then write its metadata row."""
        content_key = self.content_key(url)
        logger.debug(f"Uploading content to S3 for URL: {url}, key: {content_key}")
        self.s3.put_object(
            Bucket=self.bucket,
            Key=content_key,
            Body=(body or '').encode('utf-8'),
            ContentType=content_type or 'text/html'
        )

        self.metadata_table.put_item(
            Item={
                'url': url,
                'job_id': self.job_id,
                'content_location': content_key,
                'status_code': status_code,
                'content_type': content_type or '',
                'crawled_at': fetched_at or datetime.now(timezone.utc).isoformat(),
                'stored_at': datetime.now(timezone.utc).isoformat(),
                'crawler_id': self.crawler_id or 'unknown'
            }
        )
        logger.info(f"Stored content for URL: {url} at s3://{self.bucket}/{content_key}")

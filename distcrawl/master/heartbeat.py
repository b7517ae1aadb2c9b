"""
Periodic instance status reports to the crawler-status table.
"""
import logging
import threading
import traceback
from datetime import datetime, timezone
from decimal import Decimal

import boto3
import psutil
from botocore.exceptions import BotoCoreError, ClientError

from distcrawl.common.config import AWS_REGION, CRAWLER_STATUS_TABLE
from distcrawl.common.errors import StoreUnavailable
from distcrawl.frontier.dedup import ensure_table

logger = logging.getLogger(__name__)


def to_decimal(val):
    try:
        return Decimal(str(val))
    except Exception:
        return Decimal('0')


def get_memory_usage():
    """Resident memory of this process in MB."""
    try:
        process = psutil.Process()
        return process.memory_info().rss / 1024 / 1024
    except psutil.Error:
        return 0


class InstanceHeartbeat:
    """Background thread that writes this crawler's status every ``interval`` seconds."""

    def __init__(self, crawler_id, session, interval, dynamodb=None, table_name=CRAWLER_STATUS_TABLE):
        self.crawler_id = crawler_id
        self.session = session
        self.interval = interval
        self.dynamodb = dynamodb or boto3.resource('dynamodb', region_name=AWS_REGION)
        try:
            self.table = ensure_table(
                self.dynamodb,
                table_name,
                key_schema=[{'AttributeName': 'crawler_id', 'KeyType': 'HASH'}],
                attribute_definitions=[{'AttributeName': 'crawler_id', 'AttributeType': 'S'}]
            )
        except (BotoCoreError, ClientError) as e:
            raise StoreUnavailable('ensure_table', e)
        self._stopped = threading.Event()
        self.thread = None

    def start(self):
        self.thread = threading.Thread(target=self._run, name=f"{self.crawler_id}-heartbeat")
        self.thread.daemon = True
        self.thread.start()
        logger.info("Heartbeat thread started")

    def _run(self):
        while not self._stopped.is_set():
            self.send('active')
            self._stopped.wait(self.interval)

    def send(self, status):
        """Write one status record. Failures are logged, never raised."""
        stats = self.session.stats.snapshot()
        try:
            self.table.put_item(
                Item={
                    'crawler_id': self.crawler_id,
                    'session_id': self.session.session_id,
                    'status': status,
                    'last_heartbeat': datetime.now(timezone.utc).isoformat(),
                    'memory_usage': to_decimal(round(get_memory_usage(), 2)),
                    'active_tasks': to_decimal(self.session.in_flight),
                    'urls_crawled': to_decimal(stats.get('completed', 0)),
                    'failed_tasks': to_decimal(stats.get('failed', 0))
                }
            )
        except Exception as e:
            logger.error(f"Error updating crawler status: {e}")
            logger.error(traceback.format_exc())

    def stop(self):
        self._stopped.set()
        if self.thread:
            self.thread.join(timeout=5)
        self.send('stopped')
        logger.info("Heartbeat stopped")

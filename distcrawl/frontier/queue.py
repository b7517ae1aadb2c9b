"""
Frontier backed by an SQS queue.

Popping a message leases it for the visibility timeout. If the worker that
holds the lease never completes, requeues or drops the item, SQS makes the
message visible again once the lease runs out, so no enqueued URL is lost
when a worker dies mid-fetch.
"""
import math
import logging

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from distcrawl.common.config import AWS_REGION, CRAWL_TASK_QUEUE, LEASE_TIMEOUT, SQS_MAX_DELAY
from distcrawl.common.errors import StoreUnavailable
from distcrawl.common.models import FrontierItem

logger = logging.getLogger(__name__)

# Errors meaning our receipt handle is stale: the lease already expired
LEASE_LOST_CODES = (
    'ReceiptHandleIsInvalid',
    'AWS.SimpleQueueService.MessageNotInflight',
    'MessageNotInflight',
    'InvalidParameterValue',
)


def queue_name_for(session_id):
    return f"{CRAWL_TASK_QUEUE}-{session_id}"


class Frontier:
    """Durable, shared work queue of pending URLs for one crawl session."""

    def __init__(self, session_id, sqs=None, queue_name=None, receive_wait=0):
        self.session_id = session_id
        self.sqs = sqs or boto3.client('sqs', region_name=AWS_REGION)
        self.queue_name = queue_name or queue_name_for(session_id)
        self.receive_wait = receive_wait
        self.queue_url = self._get_or_create_queue()

    def _get_or_create_queue(self):
        """Get the URL of the session queue, creating the queue if it doesn't exist."""
        try:
            try:
                response = self.sqs.get_queue_url(QueueName=self.queue_name)
                queue_url = response['QueueUrl']
            except self.sqs.exceptions.QueueDoesNotExist:
                response = self.sqs.create_queue(
                    QueueName=self.queue_name,
                    Attributes={
                        'VisibilityTimeout': str(LEASE_TIMEOUT),
                        'MessageRetentionPeriod': '1209600'  # 14 days
                    }
                )
                queue_url = response['QueueUrl']
                logger.info(f"Created crawl task queue: {queue_url}")
        except (BotoCoreError, ClientError) as e:
            raise StoreUnavailable('get_queue_url', e)
        return queue_url

    def _call(self, operation, **kwargs):
        try:
            return getattr(self.sqs, operation)(QueueUrl=self.queue_url, **kwargs)
        except (BotoCoreError, ClientError) as e:
            raise StoreUnavailable(operation, e)

    def push(self, item, delay=0):
        """Add an item to the frontier, optionally invisible for ``delay`` seconds."""
        self._call(
            'send_message',
            MessageBody=item.to_json(),
            DelaySeconds=min(SQS_MAX_DELAY, max(0, int(math.ceil(delay))))
        )
        logger.debug(f"Pushed {item.url} (depth {item.depth}, retry {item.retry_count})")

    def pop(self, lease_timeout):
        """Lease the next available item for ``lease_timeout`` seconds, or return None."""
        response = self._call(
            'receive_message',
            MaxNumberOfMessages=1,
            VisibilityTimeout=max(1, int(math.ceil(lease_timeout))),
            WaitTimeSeconds=self.receive_wait,
            AttributeNames=['ApproximateReceiveCount']
        )
        messages = response.get('Messages', [])
        if not messages:
            return None

        message = messages[0]
        receive_count = int(message.get('Attributes', {}).get('ApproximateReceiveCount', 1))
        try:
            return FrontierItem.from_json(
                message['Body'],
                receipt_handle=message['ReceiptHandle'],
                receive_count=receive_count
            )
        except (ValueError, KeyError, TypeError) as e:
            logger.error(f"Deleting malformed frontier message {message.get('MessageId')}: {e}")
            self._call('delete_message', ReceiptHandle=message['ReceiptHandle'])
            return None

    def _delete(self, item, operation):
        try:
            self.sqs.delete_message(QueueUrl=self.queue_url, ReceiptHandle=item.receipt_handle)
            return True
        except ClientError as e:
            if e.response['Error']['Code'] in LEASE_LOST_CODES:
                logger.warning(f"{operation}: lease on {item.url} already expired")
                return False
            raise StoreUnavailable(operation, e)
        except BotoCoreError as e:
            raise StoreUnavailable(operation, e)

    def complete(self, item):
        """Remove a successfully processed item permanently."""
        return self._delete(item, 'complete')

    def drop(self, item):
        """Remove an item that will never be retried."""
        return self._delete(item, 'drop')

    def requeue(self, item, backoff):
        """
        Put the item back with its (already incremented) retry count, visible
        after ``backoff`` seconds, then release the current lease.
        """
        # Send before delete: a crash in between duplicates the item rather than losing it
        self.push(item, delay=backoff)
        return self._delete(item, 'requeue')

    def _change_visibility(self, item, timeout, operation):
        try:
            self.sqs.change_message_visibility(
                QueueUrl=self.queue_url,
                ReceiptHandle=item.receipt_handle,
                VisibilityTimeout=timeout
            )
            return True
        except ClientError as e:
            if e.response['Error']['Code'] in LEASE_LOST_CODES:
                logger.warning(f"{operation}: lease on {item.url} already expired")
                return False
            raise StoreUnavailable(operation, e)
        except BotoCoreError as e:
            raise StoreUnavailable(operation, e)

    def defer(self, item, delay):
        """
        Put the item back unchanged, visible after ``delay`` seconds, without
        spending retry budget. A fresh message also resets the receive count.
        """
        self.push(item, delay=delay)
        return self._delete(item, 'defer')

    def extend(self, item, lease_timeout):
        """Renew the lease so it runs for another ``lease_timeout`` seconds from now."""
        timeout = max(1, int(math.ceil(lease_timeout)))
        return self._change_visibility(item, timeout, 'extend')

    def release(self, item):
        """Give up the lease immediately so any worker can pick the item up again."""
        return self._change_visibility(item, 0, 'release')

    def counts(self):
        """Approximate number of visible, leased and delayed items."""
        response = self._call(
            'get_queue_attributes',
            AttributeNames=[
                'ApproximateNumberOfMessages',
                'ApproximateNumberOfMessagesNotVisible',
                'ApproximateNumberOfMessagesDelayed'
            ]
        )
        attributes = response.get('Attributes', {})
        return {
            'visible': int(attributes.get('ApproximateNumberOfMessages', 0)),
            'leased': int(attributes.get('ApproximateNumberOfMessagesNotVisible', 0)),
            'delayed': int(attributes.get('ApproximateNumberOfMessagesDelayed', 0)),
        }

    def is_empty(self):
        """True when nothing is waiting, leased or delayed, across all crawler processes."""
        return sum(self.counts().values()) == 0

    def purge(self):
        """Delete every message in the session queue. Used only for an explicit reset."""
        self._call('purge_queue')
        logger.info(f"Purged frontier queue {self.queue_name}")

"""
Configuration settings for the distributed web crawling system.

Every constant can be overridden with an environment variable of the same
name prefixed with ``CRAWLER_`` (e.g. ``CRAWLER_MAX_DEPTH=2``).
"""
import os
import logging
from dataclasses import dataclass

logger = logging.getLogger(__name__)


def _env(name, default):
    """Read CRAWLER_<name> from the environment, coerced to the type of the default."""
    raw = os.environ.get(f"CRAWLER_{name}")
    if raw is None:
        return default
    try:
        if isinstance(default, bool):
            return raw.strip().lower() in ('1', 'true', 'yes', 'on')
        return type(default)(raw)
    except ValueError:
        logger.warning(f"Invalid value for CRAWLER_{name}: {raw!r}, using default {default!r}")
        return default


# AWS region
AWS_REGION = os.environ.get('AWS_REGION', 'us-east-1')

# SQS queue name prefix, one queue per crawl session
CRAWL_TASK_QUEUE = _env('TASK_QUEUE', 'crawl-task-queue')

# DynamoDB table names
URL_FRONTIER_TABLE = _env('URL_FRONTIER_TABLE', 'url-frontier')
CRAWL_METADATA_TABLE = _env('CRAWL_METADATA_TABLE', 'crawl-metadata')
CRAWLER_STATUS_TABLE = _env('CRAWLER_STATUS_TABLE', 'crawler-status')

# AWS S3 bucket for fetched documents
CRAWL_DATA_BUCKET = _env('DATA_BUCKET', 'my-crawl-data-bucket')

# Crawler settings
USER_AGENT = _env('USER_AGENT', 'DistributedCrawler/1.0')
CONCURRENCY = _env('CONCURRENCY', 8)
HOST_INTERVAL = _env('HOST_INTERVAL', 1.0)  # seconds between requests to the same host
MAX_DEPTH = _env('MAX_DEPTH', 3)
MAX_RETRIES = _env('MAX_RETRIES', 3)
RETRY_BACKOFF_BASE = _env('RETRY_BACKOFF_BASE', 2.0)  # seconds
RETRY_BACKOFF_CAP = _env('RETRY_BACKOFF_CAP', 300.0)  # seconds
FETCH_TIMEOUT = _env('FETCH_TIMEOUT', 10.0)  # seconds
LEASE_TIMEOUT = _env('LEASE_TIMEOUT', 60)  # seconds, SQS visibility timeout
MAX_REDIRECTS = _env('MAX_REDIRECTS', 5)
SAME_HOST_ONLY = _env('SAME_HOST_ONLY', False)
SKIP_STATIC_FILES = _env('SKIP_STATIC_FILES', True)

# Coordinator settings
QUIESCENCE_WINDOW = _env('QUIESCENCE_WINDOW', 5.0)  # seconds the frontier must stay idle
POLL_INTERVAL = _env('POLL_INTERVAL', 1.0)  # seconds between empty pops
DEFER_THRESHOLD = _env('DEFER_THRESHOLD', 5.0)  # politeness waits above this give the slot back

# Store outage handling
STORE_RETRY_BASE = _env('STORE_RETRY_BASE', 0.5)
STORE_RETRY_CAP = _env('STORE_RETRY_CAP', 30.0)
STORE_FAILURE_THRESHOLD = _env('STORE_FAILURE_THRESHOLD', 5)

# Heartbeat settings
HEARTBEAT_ENABLED = _env('HEARTBEAT_ENABLED', True)
HEARTBEAT_INTERVAL = _env('HEARTBEAT_INTERVAL', 30)  # seconds

# SQS hard limit on DelaySeconds / VisibilityTimeout extension
SQS_MAX_DELAY = 900


@dataclass
class CrawlSettings:
    """Values the crawl core consumes; defaults come from the module constants."""
    concurrency: int = CONCURRENCY
    host_interval: float = HOST_INTERVAL
    max_depth: int = MAX_DEPTH
    max_retries: int = MAX_RETRIES
    retry_backoff_base: float = RETRY_BACKOFF_BASE
    retry_backoff_cap: float = RETRY_BACKOFF_CAP
    fetch_timeout: float = FETCH_TIMEOUT
    lease_timeout: int = LEASE_TIMEOUT
    user_agent: str = USER_AGENT
    max_redirects: int = MAX_REDIRECTS
    max_receives: int = None
    same_host_only: bool = SAME_HOST_ONLY
    skip_static_files: bool = SKIP_STATIC_FILES
    quiescence_window: float = QUIESCENCE_WINDOW
    poll_interval: float = POLL_INTERVAL
    defer_threshold: float = DEFER_THRESHOLD
    store_retry_base: float = STORE_RETRY_BASE
    store_retry_cap: float = STORE_RETRY_CAP
    store_failure_threshold: int = STORE_FAILURE_THRESHOLD
    heartbeat_enabled: bool = HEARTBEAT_ENABLED
    heartbeat_interval: float = HEARTBEAT_INTERVAL

    def __post_init__(self):
        if self.max_receives is None:
            self.max_receives = self.max_retries + 3
        if self.concurrency < 1:
            raise ValueError("concurrency must be at least 1")
        if self.max_depth < 0:
            raise ValueError("max_depth must not be negative")
        if self.lease_timeout < 1:
            raise ValueError("lease_timeout must be at least 1 second")

    @classmethod
    def from_env(cls, **overrides):
        """Build settings from the (environment-aware) module constants, then apply overrides."""
        overrides = {k: v for k, v in overrides.items() if v is not None}
        return cls(**overrides)

"""
Process-wide state of one crawl session: cancellation, in-flight leases,
store health and counters.
"""
import time
import logging
import threading
from collections import defaultdict

from distcrawl.common.errors import StoreUnavailable
from distcrawl.common.utils import exponential_backoff

logger = logging.getLogger(__name__)


class CrawlStats:
    """Thread-safe crawl counters."""

    def __init__(self):
        self._counts = defaultdict(int)
        self._lock = threading.Lock()

    def increment(self, name, amount=1):
        with self._lock:
            self._counts[name] += amount

    def get(self, name):
        with self._lock:
            return self._counts[name]

    def snapshot(self):
        with self._lock:
            return dict(self._counts)


class CrawlSession:
    """
    Shared by the coordinator and every worker of this process.

    ``leases_granted`` only ever grows; ``in_flight`` is the number of
    leases currently being worked on and is what termination looks at.
    """

    def __init__(self, session_id, seed_urls, settings):
        self.session_id = session_id
        self.seed_urls = list(seed_urls)
        self.settings = settings
        self.stats = CrawlStats()
        self.started_at = time.time()

        self._cancelled = threading.Event()
        self.store_healthy = threading.Event()
        self.store_healthy.set()

        self._lock = threading.Lock()
        self._in_flight = 0
        self._leases_granted = 0
        self._store_failures = 0

    # Leases

    def lease_acquired(self):
        with self._lock:
            self._in_flight += 1
            self._leases_granted += 1

    def lease_released(self):
        with self._lock:
            self._in_flight -= 1

    @property
    def in_flight(self):
        with self._lock:
            return self._in_flight

    @property
    def leases_granted(self):
        with self._lock:
            return self._leases_granted

    # Cancellation

    def cancel(self):
        if not self._cancelled.is_set():
            logger.info(f"Cancelling crawl session {self.session_id}")
        self._cancelled.set()
        # Wake anything parked on store health so it can observe the cancellation
        self.store_healthy.set()

    def is_cancelled(self):
        return self._cancelled.is_set()

    def wait(self, seconds):
        """Sleep up to ``seconds``; returns True if the session was cancelled meanwhile."""
        return self._cancelled.wait(max(0.0, seconds))

    # Store health

    def report_store_failure(self, error):
        with self._lock:
            self._store_failures += 1
            failures = self._store_failures
        if failures >= self.settings.store_failure_threshold and self.store_healthy.is_set() \
                and not self.is_cancelled():
            logger.error(f"Coordination store unavailable after {failures} consecutive failures, "
                         f"pausing frontier pops: {error}")
            self.store_healthy.clear()
        return failures

    def report_store_success(self):
        with self._lock:
            recovered = self._store_failures > 0
            self._store_failures = 0
        if recovered and not self.store_healthy.is_set():
            logger.info("Coordination store reachable again, resuming")
        self.store_healthy.set()

    def wait_for_store(self, timeout):
        """Block while the store is marked unhealthy; returns True once it is usable."""
        return self.store_healthy.wait(timeout)

    def store_call(self, fn, *args, **kwargs):
        """
        Run a store operation, retrying with exponential backoff while the
        store is unavailable. Store outages stall the caller; they never
        turn into URL-level failures. Re-raises StoreUnavailable only when
        the session is cancelled.
        """
        attempt = 0
        while True:
            try:
                result = fn(*args, **kwargs)
            except StoreUnavailable as e:
                self.report_store_failure(e)
                delay = exponential_backoff(self.settings.store_retry_base, attempt,
                                            self.settings.store_retry_cap)
                logger.error(f"{e}; retrying in {delay:.1f}s")
                attempt += 1
                if self.wait(delay):
                    raise
                continue
            self.report_store_success()
            return result

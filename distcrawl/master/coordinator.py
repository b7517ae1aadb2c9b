"""
Crawl coordinator for the distributed web crawling system.

Runs the worker pool of one crawler process and decides when the crawl is
over. Any number of processes may run a coordinator for the same session
id; they share the frontier queue and the dedup table, and each one stops
once the shared frontier has been empty with nothing leased for a full
quiescence window.
"""
import time
import uuid
import logging
import threading
import traceback

from distcrawl.common.config import CrawlSettings
from distcrawl.common.errors import StoreUnavailable
from distcrawl.crawler.extractor import LinkExtractor
from distcrawl.crawler.fetcher import HTTPFetcher
from distcrawl.crawler.politeness import PolitenessLimiter
from distcrawl.crawler.sink import LoggingContentSink
from distcrawl.crawler.worker import CrawlWorker
from distcrawl.frontier.dedup import DedupFilter
from distcrawl.frontier.queue import Frontier
from distcrawl.frontier.scheduler import URLScheduler
from distcrawl.master.heartbeat import InstanceHeartbeat
from distcrawl.master.session import CrawlSession

logger = logging.getLogger(__name__)


class CrawlCoordinator:
    def __init__(self, session_id, seed_urls, settings=None, frontier=None, dedup=None,
                 limiter=None, fetcher=None, extractor=None, sink=None, crawler_id=None,
                 sqs=None, dynamodb=None):
        self.settings = settings or CrawlSettings.from_env()
        self.crawler_id = crawler_id or f"crawler-{uuid.uuid4()}"
        logger.info(f"Initializing crawler {self.crawler_id} for session {session_id}")

        self.session = CrawlSession(session_id, seed_urls, self.settings)
        self.frontier = frontier or Frontier(session_id, sqs=sqs)
        self.dedup = dedup or DedupFilter(session_id, dynamodb=dynamodb)
        self.limiter = limiter or PolitenessLimiter(
            user_agent=self.settings.user_agent,
            interval=self.settings.host_interval,
            robots_timeout=self.settings.fetch_timeout
        )
        self.fetcher = fetcher or HTTPFetcher(user_agent=self.settings.user_agent)
        self.extractor = extractor or LinkExtractor()
        self.sink = sink or LoggingContentSink()
        self.scheduler = URLScheduler(
            self.frontier,
            self.dedup,
            self.settings,
            stats=self.session.stats,
            store_call=self.session.store_call
        )

        self.heartbeat = None
        if self.settings.heartbeat_enabled:
            self.heartbeat = InstanceHeartbeat(
                self.crawler_id, self.session, self.settings.heartbeat_interval, dynamodb=dynamodb
            )

        self.workers = []
        self.threads = []
        self._started = False
        self._lock = threading.Lock()

    @property
    def session_id(self):
        return self.session.session_id

    def reset(self):
        """Forget every claimed URL and pending item of the session. Run before start()."""
        removed = self.dedup.reset()
        self.frontier.purge()
        logger.info(f"Reset session {self.session_id}: {removed} claimed URLs removed")
        return removed

    def seed(self):
        """Claim and enqueue the seed URLs. Seeds already claimed by another instance are skipped."""
        items = self.scheduler.schedule_seeds(self.session.seed_urls)
        self.session.stats.increment('seeds', len(items))
        return items

    def start(self):
        """Seed the frontier and start the worker pool."""
        with self._lock:
            if self._started:
                raise RuntimeError("Crawl already started")
            self._started = True

        self.seed()
        if self.heartbeat:
            self.heartbeat.start()

        for i in range(self.settings.concurrency):
            worker = CrawlWorker(
                f"{self.crawler_id}-worker-{i}",
                self.session,
                self.frontier,
                self.scheduler,
                self.limiter,
                self.fetcher,
                self.extractor,
                self.sink
            )
            thread = threading.Thread(target=worker.run, name=worker.worker_id)
            thread.daemon = True
            self.workers.append(worker)
            self.threads.append(thread)
            thread.start()
        logger.info(f"Started {len(self.threads)} workers")

    def is_idle(self):
        """True when this process holds no leases and the shared frontier is empty."""
        if self.session.in_flight:
            return False
        return self.session.store_call(self.frontier.is_empty)

    def wait(self, timeout=None):
        """
        Block until the crawl finishes or is cancelled.

        Returns True if the frontier was exhausted, False on cancellation or
        timeout (a timeout also cancels the crawl).
        """
        deadline = time.monotonic() + timeout if timeout is not None else None
        idle_since = None
        while not self.session.is_cancelled():
            if deadline is not None and time.monotonic() >= deadline:
                logger.warning(f"Crawl did not finish within {timeout}s, cancelling")
                self.cancel()
                return False
            try:
                idle = self.is_idle()
            except StoreUnavailable:
                break
            if idle:
                now = time.monotonic()
                if idle_since is None:
                    idle_since = now
                elif now - idle_since >= self.settings.quiescence_window:
                    logger.info("Frontier exhausted, crawl complete")
                    return True
            else:
                idle_since = None
            self.session.wait(self.settings.poll_interval)
        return False

    def cancel(self):
        """Stop handing out new work. In-flight fetches finish or time out."""
        self.session.cancel()

    def shutdown(self, timeout=None):
        """Cancel, join the workers and release resources."""
        self.cancel()
        join_timeout = timeout if timeout is not None else self.settings.fetch_timeout * 2 + 5
        for thread in self.threads:
            thread.join(timeout=join_timeout)
            if thread.is_alive():
                logger.warning(f"Worker {thread.name} still running after {join_timeout}s")
        if self.heartbeat:
            self.heartbeat.stop()
        try:
            self.fetcher.close()
        except Exception as e:
            logger.warning(f"Error closing fetcher: {e}")
        logger.info(f"Crawler {self.crawler_id} stopped")

    def run(self, timeout=None):
        """Start, wait for the crawl to finish, shut down and return the stats."""
        try:
            self.start()
            finished = self.wait(timeout)
        except Exception as e:
            logger.error(f"Crawl failed: {e}")
            logger.error(traceback.format_exc())
            raise
        finally:
            self.shutdown()
        stats = self.get_crawl_stats()
        stats['finished'] = finished
        return stats

    def get_crawl_stats(self):
        """Counters plus timing for this process."""
        stats = self.session.stats.snapshot()
        stats['session_id'] = self.session_id
        stats['crawler_id'] = self.crawler_id
        stats['in_flight'] = self.session.in_flight
        stats['leases_granted'] = self.session.leases_granted
        stats['hosts'] = len(self.limiter.known_hosts())
        stats['elapsed'] = round(time.time() - self.session.started_at, 2)
        return stats

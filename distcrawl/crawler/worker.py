"""
Crawl worker: one thread that leases frontier items and drives each through
robots check, politeness wait, fetch and the outcome handling.
"""
import time
import logging
import traceback

from distcrawl.common.errors import (
    PermanentFetchFailure, RobotsDisallowed, StoreUnavailable, TransientFetchFailure
)
from distcrawl.common.models import PermanentFailure, Redirect, Success, TransientFailure, utc_now
from distcrawl.common.utils import exponential_backoff
from distcrawl.crawler.politeness import host_key

logger = logging.getLogger(__name__)

# What happened to a leased item
COMPLETED = 'completed'
REQUEUED = 'requeued'
DROPPED = 'dropped'
DEFERRED = 'deferred'
RELEASED = 'released'


class CrawlWorker:
    """Lease -> robots -> politeness -> fetch -> complete/requeue/drop."""

    def __init__(self, worker_id, session, frontier, scheduler, limiter, fetcher, extractor, sink):
        self.worker_id = worker_id
        self.session = session
        self.settings = session.settings
        self.stats = session.stats
        self.frontier = frontier
        self.scheduler = scheduler
        self.limiter = limiter
        self.fetcher = fetcher
        self.extractor = extractor
        self.sink = sink

    def run(self):
        """Worker loop. Returns when the session is cancelled."""
        logger.info(f"Worker {self.worker_id} started")
        while not self.session.is_cancelled():
            if not self.session.wait_for_store(self.settings.poll_interval):
                continue

            try:
                item = self.session.store_call(self.frontier.pop, self.settings.lease_timeout)
            except StoreUnavailable:
                continue

            if item is None:
                self.session.wait(self.settings.poll_interval)
                continue

            self.session.lease_acquired()
            try:
                self.process(item)
            except StoreUnavailable as e:
                logger.error(f"Abandoning lease on {item.url}: {e}")
            except Exception as e:
                # The lease expires and another worker retries the item
                logger.error(f"Error processing {item.url}: {e}")
                logger.error(traceback.format_exc())
                self.stats.increment('errors')
            finally:
                self.session.lease_released()
        logger.info(f"Worker {self.worker_id} stopped")

    def process(self, item):
        """Handle one leased item; returns the state it ended in."""
        url = item.url
        host = host_key(url)

        if item.receive_count > self.settings.max_receives:
            return self._drop(item, f"leased {item.receive_count} times without finishing")

        if not self.limiter.is_allowed(url):
            return self._drop(item, RobotsDisallowed(url))

        while True:
            permit = self.limiter.acquire(host)
            if permit.allowed:
                break
            delay = permit.wait_until - self.limiter.clock()
            if delay > self.settings.defer_threshold:
                self.session.store_call(self.frontier.defer, item, delay)
                self.stats.increment('deferred')
                logger.debug(f"Deferred {url} for {delay:.1f}s (host {host} busy)")
                return DEFERRED
            if self.session.wait(delay):
                self.session.store_call(self.frontier.release, item)
                self.stats.increment('released')
                return RELEASED

        fetched_at = utc_now()
        self.stats.increment('fetched')
        outcome = self.fetcher.fetch(url, timeout=self.settings.fetch_timeout)

        if isinstance(outcome, Success):
            return self._on_success(item, host, outcome, fetched_at)
        if isinstance(outcome, Redirect):
            return self._on_redirect(item, host, outcome)
        if isinstance(outcome, TransientFailure):
            return self._on_transient(item, host, outcome)
        if isinstance(outcome, PermanentFailure):
            self.limiter.record_success(host)
            self.stats.increment('failed')
            return self._drop(item, PermanentFetchFailure(outcome.reason))
        raise TypeError(f"Unknown fetch outcome {outcome!r}")

    def _on_success(self, item, host, outcome, fetched_at):
        self.limiter.record_success(host)

        found = enqueued = 0
        if outcome.is_html and item.depth < self.settings.max_depth:
            renewed_at = self._renew_lease(item)
            links, base = self.extractor.parse(outcome.body, outcome.final_url)
            found = len(links)
            for link in links:
                if time.monotonic() - renewed_at > self.settings.lease_timeout / 2:
                    renewed_at = self._renew_lease(item)
                if self.scheduler.schedule(link, item.depth + 1, base=base, discovered_from=item.url):
                    enqueued += 1

        self._hand_off(item, outcome, fetched_at)
        self.session.store_call(self.frontier.complete, item)
        self.stats.increment('completed')
        logger.info(f"Crawled {item.url} (depth {item.depth}): {found} links, {enqueued} new")
        return COMPLETED

    def _renew_lease(self, item):
        """Push the lease out by another lease_timeout; returns when that happened."""
        if not self.session.store_call(self.frontier.extend, item, self.settings.lease_timeout):
            logger.warning(f"Lease on {item.url} expired before renewal, it may be fetched again")
        return time.monotonic()

    def _hand_off(self, item, outcome, fetched_at):
        try:
            self.sink.accept(item.url, outcome.status_code, outcome.content_type, outcome.body, fetched_at)
        except Exception as e:
            self.stats.increment('sink_errors')
            logger.warning(f"Content sink failed for {item.url}: {e}")

    def _on_redirect(self, item, host, outcome):
        self.limiter.record_success(host)
        target = None
        if item.redirects >= self.settings.max_redirects:
            logger.warning(f"Not following redirect from {item.url}: more than "
                           f"{self.settings.max_redirects} consecutive redirects")
        else:
            target = self.scheduler.schedule(
                outcome.target_url,
                item.depth,
                base=item.url,
                discovered_from=item.url,
                redirects=item.redirects + 1
            )
        self.session.store_call(self.frontier.complete, item)
        self.stats.increment('redirected')
        logger.info(f"Redirect {item.url} -> {outcome.target_url}" + ("" if target else " (not scheduled)"))
        return COMPLETED

    def _on_transient(self, item, host, outcome):
        failures = self.limiter.record_failure(host)
        if item.retry_count >= self.settings.max_retries:
            self.stats.increment('failed')
            return self._drop(item, TransientFetchFailure(
                f"gave up after {item.retry_count + 1} attempts: {outcome.reason}"))

        backoff = exponential_backoff(self.settings.retry_backoff_base, item.retry_count,
                                      self.settings.retry_backoff_cap)
        item.retry_count += 1
        self.session.store_call(self.frontier.requeue, item, backoff)
        self.stats.increment('retried')
        logger.warning(f"Transient failure on {item.url} ({outcome.reason}), retry {item.retry_count} "
                       f"in {backoff:.1f}s, {failures} consecutive failures on {host}")
        return REQUEUED

    def _drop(self, item, reason):
        self.session.store_call(self.frontier.drop, item)
        self.stats.increment('dropped')
        logger.warning(f"Dropped {item.url}: {reason}")
        return DROPPED

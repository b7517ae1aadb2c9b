"""
Scheduling path for newly discovered URLs:
normalize -> filter -> depth limit -> claim -> push.

Dedup happens before enqueue, so each normalized URL enters the frontier at
most once per crawl session.
"""
import logging

from distcrawl.common.errors import MalformedURL
from distcrawl.common.models import FrontierItem, URLRecord
from distcrawl.common.utils import get_domain, is_static_file, normalize_url

logger = logging.getLogger(__name__)


def _direct_call(fn, *args, **kwargs):
    return fn(*args, **kwargs)


class URLScheduler:
    """Turns raw links into frontier items, shared by the coordinator and the workers."""

    def __init__(self, frontier, dedup, settings, allowed_hosts=None, stats=None, store_call=None):
        self.frontier = frontier
        self.dedup = dedup
        self.settings = settings
        self.allowed_hosts = set(allowed_hosts or [])
        self.stats = stats
        # Runs a store operation, retrying through outages when provided
        self.store_call = store_call or _direct_call

    def allow_host(self, host):
        self.allowed_hosts.add(host.lower())

    def _filtered(self, normalized, discovered_from=None):
        """Return a skip reason for the URL, or None if it may be scheduled."""
        if self.settings.skip_static_files and is_static_file(normalized):
            return "static file"
        if self.settings.same_host_only:
            host = get_domain(normalized)
            # Only seed-host pages reach the frontier, so the linking page's host is in scope too
            if host not in self.allowed_hosts and not (discovered_from and host == get_domain(discovered_from)):
                return "off-site host"
        return None

    def schedule(self, raw_url, depth, base=None, discovered_from=None, redirects=0):
        """
        Enqueue a discovered URL if it is new to the session.

        Returns the FrontierItem that was pushed, or None when the URL was
        malformed, filtered, beyond the depth limit or already claimed.
        StoreUnavailable propagates to the caller.
        """
        try:
            normalized = normalize_url(raw_url, base=base)
        except MalformedURL as e:
            logger.debug(f"Dropping link: {e}")
            return None

        reason = self._filtered(normalized, discovered_from)
        if reason:
            logger.debug(f"Skipping {normalized}: {reason}")
            return None

        if depth > self.settings.max_depth:
            logger.debug(f"Skipping {normalized} - depth {depth} > max_depth {self.settings.max_depth}")
            return None

        if not self.store_call(self.dedup.try_claim, normalized, depth=depth):
            return None

        record = URLRecord(
            raw_url=raw_url,
            normalized_url=normalized,
            depth=depth,
            discovered_from=discovered_from
        )
        item = FrontierItem.from_record(record, redirects=redirects)
        # Once claimed, the push has to go through: a second claim would return False
        self.store_call(self.frontier.push, item)
        if self.stats:
            self.stats.increment('enqueued')
        logger.debug(f"Enqueued {normalized} at depth {depth}")
        return item

    def schedule_seeds(self, seed_urls):
        """Claim and push seed URLs at depth 0; return the items actually enqueued."""
        items = []
        for url in seed_urls:
            try:
                host = get_domain(normalize_url(url))
            except MalformedURL as e:
                logger.warning(f"Ignoring seed URL: {e}")
                continue
            self.allow_host(host)
            item = self.schedule(url, depth=0)
            if item:
                logger.info(f"Enqueued seed URL: {item.url}")
                items.append(item)
            else:
                logger.info(f"Seed URL not enqueued (already claimed or filtered): {url}")
        return items

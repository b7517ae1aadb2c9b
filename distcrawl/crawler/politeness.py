"""
Per-host politeness: robots.txt rules and a minimum interval between requests.

Host state is local to this process. Each host has its own lock, so
unrelated hosts never wait on each other while two workers asking for the
same host are strictly serialized.
"""
import time
import logging
import threading
from collections import namedtuple
from urllib.parse import urlsplit
from urllib.robotparser import RobotFileParser

import requests

from distcrawl.common.config import HOST_INTERVAL, USER_AGENT
from distcrawl.common.models import HostState

logger = logging.getLogger(__name__)

# Upper bound on the failure multiplier applied to a host's interval
MAX_FAILURE_PENALTY = 5

Permit = namedtuple('Permit', ['allowed', 'wait_until'])


def host_key(url):
    """Host (and non-default port) a URL belongs to, as used for politeness."""
    return urlsplit(url).netloc.lower()


def robots_url_for(url):
    parsed = urlsplit(url)
    return f"{parsed.scheme}://{parsed.netloc}/robots.txt"


def fetch_robots_txt(robots_url, user_agent=USER_AGENT, timeout=10.0):
    """
    Download robots.txt. Returns its text, or '' when the host has none.
    Raises on network errors and server errors.
    """
    response = requests.get(robots_url, headers={'User-Agent': user_agent}, timeout=timeout)
    if response.status_code == 200:
        return response.text
    if 400 <= response.status_code < 500:
        logger.info(f"No robots.txt found at {robots_url} (status: {response.status_code}), allowing crawling")
        return ''
    response.raise_for_status()
    return ''


class PolitenessLimiter:
    """Decides whether a host may be fetched now and whether a path is allowed at all."""

    def __init__(self, user_agent=USER_AGENT, interval=HOST_INTERVAL, robots_fetcher=None,
                 robots_timeout=10.0, clock=time.monotonic):
        self.user_agent = user_agent
        self.interval = interval
        self.robots_fetcher = robots_fetcher or fetch_robots_txt
        self.robots_timeout = robots_timeout
        self.clock = clock
        self._hosts = {}
        self._locks = {}
        self._registry_lock = threading.Lock()

    def _entry(self, host):
        """Get (state, lock) for a host, creating them on first reference."""
        with self._registry_lock:
            if host not in self._hosts:
                self._hosts[host] = HostState(host=host, interval=self.interval)
                self._locks[host] = threading.Lock()
            return self._hosts[host], self._locks[host]

    def host_state(self, host):
        return self._entry(host)[0]

    def _load_robots(self, state, url):
        """Fetch and parse robots.txt for the host; failures mean no restrictions."""
        robots_url = robots_url_for(url)
        parser = RobotFileParser()
        parser.set_url(robots_url)
        try:
            content = self.robots_fetcher(robots_url, self.user_agent, self.robots_timeout)
        except Exception as e:
            logger.warning(f"Error fetching robots.txt from {robots_url}: {e}, allowing crawling")
            content = ''
        parser.parse((content or '').splitlines())

        crawl_delay = parser.crawl_delay(self.user_agent)
        if crawl_delay:
            state.interval = max(self.interval, float(crawl_delay))
            logger.info(f"Using crawl-delay {state.interval}s for {state.host}")
        state.robots_rules = parser

    def is_allowed(self, url):
        """Check robots.txt for the URL, fetching the host's rules on first use."""
        state, lock = self._entry(host_key(url))
        with lock:
            if state.robots_rules is None:
                self._load_robots(state, url)
            return state.robots_rules.can_fetch(self.user_agent, url)

    def acquire(self, host):
        """
        Ask to fetch from ``host`` now.

        Grants immediately and advances the host's next allowed fetch time, or
        refuses and reports when to come back. Callers should wait until then
        rather than poll.
        """
        state, lock = self._entry(host)
        with lock:
            now = self.clock()
            if now >= state.next_allowed_fetch_time:
                interval = max(self.interval, state.interval)
                penalty = interval * min(state.consecutive_failures, MAX_FAILURE_PENALTY)
                # Only ever moves forward
                state.next_allowed_fetch_time = max(state.next_allowed_fetch_time, now + interval + penalty)
                return Permit(True, now)
            return Permit(False, state.next_allowed_fetch_time)

    def record_success(self, host):
        state, lock = self._entry(host)
        with lock:
            state.consecutive_failures = 0

    def record_failure(self, host):
        state, lock = self._entry(host)
        with lock:
            state.consecutive_failures += 1
            return state.consecutive_failures

    def known_hosts(self):
        with self._registry_lock:
            return list(self._hosts)

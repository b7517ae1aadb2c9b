"""
Error types for the distributed web crawling system.
"""


class CrawlerError(Exception):
    """Base class for crawler errors."""


class MalformedURL(CrawlerError):
    """A URL could not be normalized; it is never enqueued."""

    def __init__(self, url, reason):
        super().__init__(f"Malformed URL {url!r}: {reason}")
        self.url = url
        self.reason = reason


class RobotsDisallowed(CrawlerError):
    """robots.txt forbids fetching the URL."""

    def __init__(self, url):
        super().__init__(f"Disallowed by robots.txt: {url}")
        self.url = url


class TransientFetchFailure(CrawlerError):
    """Retry budget exhausted on a fetch that kept failing transiently."""


class PermanentFetchFailure(CrawlerError):
    """Fetch failed in a way that will not succeed on retry."""


class StoreUnavailable(CrawlerError):
    """The shared coordination store could not be reached."""

    def __init__(self, operation, cause=None):
        super().__init__(f"Store unavailable during {operation}: {cause}")
        self.operation = operation
        self.cause = cause

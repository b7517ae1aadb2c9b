"""
HTTP fetching for crawl workers.

The fetcher performs exactly one request per call and never follows
redirects or retries; it only classifies what happened. Retry policy lives
in the worker.
"""
import time
import logging
from urllib.parse import urlsplit

import requests

from distcrawl.common.config import FETCH_TIMEOUT, USER_AGENT
from distcrawl.common.models import PermanentFailure, Redirect, Success, TransientFailure

logger = logging.getLogger(__name__)

TRANSIENT_STATUS_CODES = (408, 429)
MAX_RESPONSE_SIZE = 10 * 1024 * 1024  # 10MB


def classify_status(status_code):
    """Map an HTTP status code to the outcome kind: success, redirect, transient or permanent."""
    if 200 <= status_code < 300:
        return 'success'
    if 300 <= status_code < 400:
        return 'redirect'
    if status_code in TRANSIENT_STATUS_CODES or status_code >= 500:
        return 'transient'
    return 'permanent'


class HTTPFetcher:
    """Stateless single-request fetcher built on a shared requests.Session."""

    def __init__(self, user_agent=USER_AGENT, session=None, max_response_size=MAX_RESPONSE_SIZE):
        self.user_agent = user_agent
        self.max_response_size = max_response_size
        self.session = session or requests.Session()
        self.session.headers.update({
            'User-Agent': user_agent,
            'Accept': 'text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8',
        })

    def fetch(self, url, timeout=FETCH_TIMEOUT):
        """Fetch a URL once and return Success, Redirect, TransientFailure or PermanentFailure."""
        if urlsplit(url).scheme not in ('http', 'https'):
            return PermanentFailure(f"Unsupported scheme for {url}")

        start_time = time.time()
        try:
            response = self.session.get(
                url,
                timeout=(timeout, timeout),
                allow_redirects=False,
                stream=True
            )
        except requests.Timeout as e:
            logger.warning(f"Timeout after {timeout}s for {url}: {e}")
            return TransientFailure(f"Timeout after {timeout}s")
        except requests.ConnectionError as e:
            logger.warning(f"Connection error for {url}: {e}")
            return TransientFailure(f"Connection error: {e}")
        except (requests.exceptions.InvalidURL, requests.exceptions.InvalidSchema,
                requests.exceptions.MissingSchema) as e:
            return PermanentFailure(f"Invalid URL: {e}")
        except requests.RequestException as e:
            logger.warning(f"Request error for {url}: {e}")
            return TransientFailure(f"Request error: {e}")

        try:
            return self._classify(url, response)
        except requests.RequestException as e:
            # Body read failed mid-stream
            logger.warning(f"Error reading response content for {url}: {e}")
            return TransientFailure(f"Error reading content: {e}")
        finally:
            response.close()
            logger.debug(f"Fetched {url} in {time.time() - start_time:.3f}s")

    def _classify(self, url, response):
        status_code = response.status_code
        kind = classify_status(status_code)

        if kind == 'success':
            content_type = response.headers.get('Content-Type', '').lower()
            return Success(
                status_code=status_code,
                body=self._read_body(url, response),
                final_url=response.url or url,
                content_type=content_type
            )
        if kind == 'redirect':
            location = response.headers.get('Location')
            if not location:
                return PermanentFailure(f"HTTP {status_code} without Location header")
            return Redirect(target_url=location, status_code=status_code)
        if kind == 'transient':
            return TransientFailure(f"HTTP {status_code}")
        return PermanentFailure(f"HTTP {status_code}")

    def _read_body(self, url, response):
        """Read the body up to max_response_size bytes and decode it."""
        content = bytearray()
        for chunk in response.iter_content(chunk_size=8192):
            content.extend(chunk)
            if len(content) > self.max_response_size:
                logger.warning(f"Response too large for {url}, truncating at {self.max_response_size} bytes")
                del content[self.max_response_size:]
                break
        return self._decode(bytes(content), response)

    def _decode(self, content, response):
        """Decode with the declared charset; without one, UTF-8 before requests' ISO-8859-1 default."""
        content_type = response.headers.get('Content-Type', '').lower()
        if 'charset=' in content_type and response.encoding:
            try:
                return content.decode(response.encoding, errors='replace')
            except LookupError:
                return content.decode('utf-8', errors='replace')
        try:
            return content.decode('utf-8')
        except UnicodeDecodeError:
            return content.decode(response.encoding or 'iso-8859-1', errors='replace')

    def close(self):
        self.session.close()

"""
Utility functions for the distributed web crawling system.
"""
from urllib.parse import urljoin, urlsplit, urlunsplit
import hashlib

from distcrawl.common.errors import MalformedURL

DEFAULT_PORTS = {'http': 80, 'https': 443}

STATIC_FILE_EXTENSIONS = (
    '.jpg', '.jpeg', '.png', '.gif', '.bmp', '.webp', '.svg', '.ico',
    '.pdf', '.doc', '.docx', '.xls', '.xlsx', '.ppt', '.pptx',
    '.zip', '.rar', '.tar', '.gz', '.mp3', '.mp4', '.avi', '.mov', '.mkv',
)


def get_domain(url):
    """Extract the host (without port or credentials) from a URL."""
    return (urlsplit(url).hostname or '').lower()


def remove_dot_segments(path):
    """Collapse '.' and '..' segments of an absolute path."""
    output = []
    for segment in path.split('/'):
        if segment == '.':
            continue
        if segment == '..':
            # Never pop the leading empty segment that anchors the root
            if len(output) > 1:
                output.pop()
            continue
        output.append(segment)
    return '/'.join(output)


def normalize_url(url, base=None):
    """
    Canonicalize a URL so that equivalent spellings compare equal.

    Relative URLs are resolved against ``base``. Scheme and host are
    lowercased, default ports and fragments dropped, dot segments collapsed
    and trailing slashes removed from non-root paths. The query string is kept
    verbatim. Raises MalformedURL for anything that is not an absolute
    http(s) URL with a host.
    """
    if url is None or not url.strip():
        raise MalformedURL(url, "empty URL")

    url = url.strip()
    try:
        if base:
            url = urljoin(base, url)
        parsed = urlsplit(url)
        port = parsed.port
    except ValueError as e:
        raise MalformedURL(url, str(e))

    scheme = parsed.scheme.lower()
    if scheme not in DEFAULT_PORTS:
        raise MalformedURL(url, f"unsupported scheme {scheme!r}")

    host = (parsed.hostname or '').lower()
    if not host:
        raise MalformedURL(url, "missing host")
    if ':' in host:
        # IPv6 literal
        host = f"[{host}]"

    netloc = host
    if port is not None and port != DEFAULT_PORTS[scheme]:
        netloc = f"{host}:{port}"
    if '@' in parsed.netloc:
        userinfo = parsed.netloc.rsplit('@', 1)[0]
        netloc = f"{userinfo}@{netloc}"

    path = remove_dot_segments(parsed.path)
    if len(path) > 1 and path.endswith('/'):
        path = path.rstrip('/')
    if not path:
        path = '/'

    return urlunsplit((scheme, netloc, path, parsed.query, ''))


def is_static_file(url):
    """True if the URL path points at an image, archive, office document or media file."""
    return urlsplit(url).path.lower().endswith(STATIC_FILE_EXTENSIONS)


def url_to_filename(url):
    """Convert a URL to a valid filename."""
    # Create a hash of the URL to ensure uniqueness and valid filename
    url_hash = hashlib.md5(url.encode()).hexdigest()
    return f"{url_hash}.html"


def exponential_backoff(base, attempt, cap):
    """Delay for the given attempt: base * 2**attempt, capped."""
    return min(cap, base * (2 ** attempt))

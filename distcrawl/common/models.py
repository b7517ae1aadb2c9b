"""
Data model shared by the frontier, the workers and the coordinator.
"""
import json
from dataclasses import dataclass, field, asdict
from datetime import datetime, timezone
from typing import Optional


def utc_now():
    return datetime.now(timezone.utc).isoformat()


@dataclass
class URLRecord:
    """A discovered URL; normalized_url is the dedup key."""
    raw_url: str
    normalized_url: str
    depth: int
    discovered_from: Optional[str] = None
    enqueued_at: str = field(default_factory=utc_now)


@dataclass
class FrontierItem:
    """Durable form of a URL record pending processing.

    ``retry_count`` and ``redirects`` travel inside the message body so they
    survive worker crashes. ``receipt_handle`` and ``receive_count`` are set
    when the item is leased and are never serialized.
    """
    url: str
    depth: int
    raw_url: Optional[str] = None
    discovered_from: Optional[str] = None
    enqueued_at: str = field(default_factory=utc_now)
    retry_count: int = 0
    redirects: int = 0
    receipt_handle: Optional[str] = field(default=None, compare=False)
    receive_count: int = field(default=0, compare=False)

    @classmethod
    def from_record(cls, record, redirects=0):
        return cls(
            url=record.normalized_url,
            depth=record.depth,
            raw_url=record.raw_url,
            discovered_from=record.discovered_from,
            enqueued_at=record.enqueued_at,
            redirects=redirects,
        )

    def to_json(self):
        body = asdict(self)
        body.pop('receipt_handle')
        body.pop('receive_count')
        return json.dumps(body)

    @classmethod
    def from_json(cls, body, receipt_handle=None, receive_count=0):
        data = json.loads(body)
        return cls(
            url=data['url'],
            depth=int(data.get('depth', 0)),
            raw_url=data.get('raw_url'),
            discovered_from=data.get('discovered_from'),
            enqueued_at=data.get('enqueued_at') or utc_now(),
            retry_count=int(data.get('retry_count', 0)),
            redirects=int(data.get('redirects', 0)),
            receipt_handle=receipt_handle,
            receive_count=receive_count,
        )


@dataclass
class HostState:
    """Per-host politeness state, local to one crawler process."""
    host: str
    next_allowed_fetch_time: float = 0.0
    robots_rules: object = None
    interval: float = 0.0
    consecutive_failures: int = 0


# Fetch outcomes. Only TransientFailure is eligible for retry.

@dataclass
class Success:
    status_code: int
    body: str
    final_url: str
    content_type: str = ''

    @property
    def is_html(self):
        return not self.content_type or 'html' in self.content_type.lower()


@dataclass
class Redirect:
    target_url: str
    status_code: int = 302


@dataclass
class TransientFailure:
    reason: str


@dataclass
class PermanentFailure:
    reason: str

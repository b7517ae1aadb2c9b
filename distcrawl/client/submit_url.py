"""
Simple client to submit seed URLs to a running crawl session.

URLs go straight into the session's frontier (normalized and claimed like
any discovered link), so whichever crawler instances serve the session pick
them up. No workers run here.
"""
import sys
import argparse
import logging

from distcrawl.common.config import CrawlSettings
from distcrawl.frontier.dedup import DedupFilter
from distcrawl.frontier.queue import Frontier
from distcrawl.frontier.scheduler import URLScheduler

logger = logging.getLogger(__name__)


def submit_urls(session_id, urls, settings=None, frontier=None, dedup=None):
    """Submit URLs for crawling at depth 0; returns the items actually enqueued."""
    settings = settings or CrawlSettings.from_env()
    frontier = frontier or Frontier(session_id)
    dedup = dedup or DedupFilter(session_id)
    scheduler = URLScheduler(frontier, dedup, settings)
    items = scheduler.schedule_seeds(urls)
    for item in items:
        print(f"Submitted URL for crawling: {item.url}")
    skipped = len(urls) - len(items)
    if skipped:
        print(f"Skipped {skipped} URL(s): malformed, filtered or already claimed")
    return items


def main(argv=None):
    """Main function to handle command line arguments."""
    parser = argparse.ArgumentParser(description='Submit seed URLs to a crawl session')
    parser.add_argument('--session', required=True, help='Crawl session id')
    parser.add_argument('urls', nargs='+', help='URLs to crawl')
    args = parser.parse_args(argv)

    logging.basicConfig(level=logging.INFO, format='%(asctime)s [%(levelname)s] [Client] %(message)s')
    try:
        submit_urls(args.session, args.urls)
    except Exception as e:
        print(f"Error submitting URLs: {e}")
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())

"""
Main script to run a crawler instance for a crawl session.

Start the same command (same --session) on as many machines as needed; the
instances share the frontier and the dedup table and each exits once the
session's frontier is exhausted.
"""
import sys
import json
import signal
import argparse
import logging
import traceback

from distcrawl.common.config import CrawlSettings
from distcrawl.crawler.sink import LoggingContentSink, S3ContentSink
from distcrawl.master.coordinator import CrawlCoordinator

logger = logging.getLogger(__name__)


def setup_logging(level='INFO', log_file=None):
    handlers = [logging.StreamHandler()]
    if log_file:
        handlers.append(logging.FileHandler(log_file))
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format='%(asctime)s [%(levelname)s] [Crawler] %(message)s',
        handlers=handlers
    )
    # boto is very chatty at DEBUG
    logging.getLogger('botocore').setLevel(logging.WARNING)
    logging.getLogger('urllib3').setLevel(logging.WARNING)


def load_seeds(urls, seed_file=None):
    """Seeds from the command line plus one URL per line of the seed file (# comments allowed)."""
    seeds = list(urls or [])
    if seed_file:
        with open(seed_file) as f:
            for line in f:
                line = line.strip()
                if line and not line.startswith('#'):
                    seeds.append(line)
    return seeds


def build_parser():
    parser = argparse.ArgumentParser(description='Run a distributed web crawler instance')
    parser.add_argument('seeds', nargs='*', help='Seed URLs to start crawling')
    parser.add_argument('--seed-file', help='File with one seed URL per line')
    parser.add_argument('--session', required=True, help='Crawl session id shared by all instances')
    parser.add_argument('--workers', type=int, help='Number of concurrent workers')
    parser.add_argument('--max-depth', type=int, help='Maximum link depth from the seeds')
    parser.add_argument('--max-retries', type=int, help='Retries for transient fetch failures')
    parser.add_argument('--host-interval', type=float, help='Seconds between fetches to the same host')
    parser.add_argument('--fetch-timeout', type=float, help='Per-request timeout in seconds')
    parser.add_argument('--lease-timeout', type=int, help='Seconds a popped URL stays leased')
    parser.add_argument('--same-host-only', action='store_true', default=None,
                        help='Only follow links to the seed hosts')
    parser.add_argument('--reset', action='store_true', help='Clear the session frontier and dedup state first')
    parser.add_argument('--no-s3', action='store_true', help='Log crawled pages instead of storing them in S3')
    parser.add_argument('--no-heartbeat', action='store_true', help='Do not write instance status to DynamoDB')
    parser.add_argument('--timeout', type=float, help='Give up after this many seconds')
    parser.add_argument('--log-level', default='INFO', help='Logging level')
    parser.add_argument('--log-file', nargs='?', const='crawler_node.log', help='Also log to this file')
    return parser


def main(argv=None):
    """Main function to run the crawler."""
    args = build_parser().parse_args(argv)
    setup_logging(args.log_level, args.log_file)

    try:
        seeds = load_seeds(args.seeds, args.seed_file)
        settings = CrawlSettings.from_env(
            concurrency=args.workers,
            max_depth=args.max_depth,
            max_retries=args.max_retries,
            host_interval=args.host_interval,
            fetch_timeout=args.fetch_timeout,
            lease_timeout=args.lease_timeout,
            same_host_only=args.same_host_only,
            heartbeat_enabled=False if args.no_heartbeat else None
        )
    except (OSError, ValueError) as e:
        logger.error(f"Invalid arguments: {e}")
        return 2

    try:
        coordinator = CrawlCoordinator(args.session, seeds, settings=settings)
        if not args.no_s3:
            coordinator.sink = S3ContentSink(args.session, crawler_id=coordinator.crawler_id)
        else:
            coordinator.sink = LoggingContentSink()
        if args.reset:
            coordinator.reset()

        def handle_signal(signum, frame):
            logger.info(f"Received signal {signum}, initiating graceful shutdown...")
            coordinator.cancel()

        signal.signal(signal.SIGINT, handle_signal)
        signal.signal(signal.SIGTERM, handle_signal)

        stats = coordinator.run(timeout=args.timeout)
    except Exception as e:
        logger.error(f"Fatal error in crawler: {e}")
        logger.error(traceback.format_exc())
        return 1

    print(json.dumps(stats, indent=2, sort_keys=True))
    return 0


if __name__ == "__main__":
    sys.exit(main())

import time
import threading
import unittest
from unittest import mock

import requests

from distcrawl.crawler.politeness import PolitenessLimiter, fetch_robots_txt, host_key, robots_url_for
from tests.fakes import FakeRobots


class FakeClock:
    def __init__(self, now=100.0):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


class TestPolitenessLimiter(unittest.TestCase):
    def setUp(self):
        self.clock = FakeClock()
        self.robots = FakeRobots()
        self.limiter = PolitenessLimiter(interval=1.0, robots_fetcher=self.robots, clock=self.clock)

    def test_helpers(self):
        self.assertEqual(host_key("http://A.test:8080/x"), "a.test:8080")
        self.assertEqual(robots_url_for("https://a.test/x/y?z"), "https://a.test/robots.txt")

    def test_interval_per_host(self):
        first = self.limiter.acquire("a.test")
        self.assertTrue(first.allowed)

        second = self.limiter.acquire("a.test")
        self.assertFalse(second.allowed)
        self.assertEqual(second.wait_until, 101.0)

        # Other hosts are not held up
        self.assertTrue(self.limiter.acquire("b.test").allowed)

        self.clock.advance(1.0)
        self.assertTrue(self.limiter.acquire("a.test").allowed)

    def test_refusal_does_not_move_schedule(self):
        self.limiter.acquire("a.test")
        for _ in range(3):
            self.assertEqual(self.limiter.acquire("a.test").wait_until, 101.0)

    def test_failures_push_host_back(self):
        self.limiter.record_failure("a.test")
        self.assertEqual(self.limiter.record_failure("a.test"), 2)
        self.limiter.acquire("a.test")
        self.assertEqual(self.limiter.host_state("a.test").next_allowed_fetch_time, 103.0)

        self.limiter.record_success("a.test")
        self.clock.advance(3.0)
        self.limiter.acquire("a.test")
        self.assertEqual(self.limiter.host_state("a.test").next_allowed_fetch_time, 104.0)

    def test_failure_penalty_is_bounded(self):
        for _ in range(20):
            self.limiter.record_failure("a.test")
        self.limiter.acquire("a.test")
        self.assertEqual(self.limiter.host_state("a.test").next_allowed_fetch_time, 106.0)

    def test_robots_disallow(self):
        self.robots.texts = {"a.test": "User-agent: *\nDisallow: /private\n"}
        self.assertFalse(self.limiter.is_allowed("http://a.test/private/page"))
        self.assertTrue(self.limiter.is_allowed("http://a.test/public"))
        # Fetched once per host
        self.assertEqual(self.robots.requested, ["http://a.test/robots.txt"])

    def test_robots_for_other_agents_ignored(self):
        self.robots.texts = {"a.test": "User-agent: OtherBot\nDisallow: /\n"}
        self.assertTrue(self.limiter.is_allowed("http://a.test/page"))

    def test_robots_failure_allows_everything(self):
        self.robots.error = requests.ConnectionError("refused")
        with self.assertLogs('distcrawl.crawler.politeness', level='WARNING'):
            self.assertTrue(self.limiter.is_allowed("http://a.test/private"))

    def test_crawl_delay_raises_interval(self):
        self.robots.texts = {"a.test": "User-agent: *\nCrawl-delay: 3\n"}
        self.limiter.is_allowed("http://a.test/")
        self.limiter.acquire("a.test")
        self.assertEqual(self.limiter.host_state("a.test").next_allowed_fetch_time, 103.0)

    def test_crawl_delay_never_lowers_interval(self):
        self.robots.texts = {"a.test": "User-agent: *\nCrawl-delay: 0.5\n"}
        self.limiter.is_allowed("http://a.test/")
        self.assertEqual(self.limiter.host_state("a.test").interval, 1.0)

    def test_concurrent_grants_are_spaced(self):
        limiter = PolitenessLimiter(interval=0.05, robots_fetcher=FakeRobots())
        grants = []
        lock = threading.Lock()

        def fetch():
            while True:
                permit = limiter.acquire("a.test")
                if permit.allowed:
                    with lock:
                        grants.append(permit.wait_until)
                    return
                time.sleep(max(0, permit.wait_until - time.monotonic()))

        threads = [threading.Thread(target=fetch) for _ in range(5)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        grants.sort()
        self.assertEqual(len(grants), 5)
        for earlier, later in zip(grants, grants[1:]):
            self.assertGreaterEqual(later - earlier, 0.05 - 1e-9)

    def test_known_hosts(self):
        self.limiter.acquire("a.test")
        self.limiter.acquire("b.test")
        self.assertEqual(sorted(self.limiter.known_hosts()), ["a.test", "b.test"])


class TestFetchRobotsTxt(unittest.TestCase):
    @mock.patch('distcrawl.crawler.politeness.requests.get')
    def test_ok(self, mock_get):
        mock_get.return_value = mock.Mock(status_code=200, text="User-agent: *\n")
        self.assertEqual(fetch_robots_txt("http://a.test/robots.txt"), "User-agent: *\n")

    @mock.patch('distcrawl.crawler.politeness.requests.get')
    def test_missing_means_empty(self, mock_get):
        mock_get.return_value = mock.Mock(status_code=404)
        self.assertEqual(fetch_robots_txt("http://a.test/robots.txt"), "")

    @mock.patch('distcrawl.crawler.politeness.requests.get')
    def test_server_error_raises(self, mock_get):
        response = mock.Mock(status_code=503)
        response.raise_for_status.side_effect = requests.HTTPError("503")
        mock_get.return_value = response
        with self.assertRaises(requests.HTTPError):
            fetch_robots_txt("http://a.test/robots.txt")


if __name__ == '__main__':
    unittest.main()

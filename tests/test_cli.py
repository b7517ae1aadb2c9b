import os
import tempfile
import unittest
from unittest import mock

from distcrawl import run_crawler
from distcrawl.client.submit_url import submit_urls
from distcrawl.crawler.sink import LoggingContentSink
from distcrawl.frontier.dedup import DedupFilter
from distcrawl.frontier.queue import Frontier
from tests.fakes import AWSTestCase, fast_settings


class TestRunCrawler(unittest.TestCase):
    def test_load_seeds(self):
        with tempfile.NamedTemporaryFile('w', suffix='.txt', delete=False) as f:
            f.write("# seeds\nhttp://b.test/\n\n  http://c.test/  \n")
        self.addCleanup(os.remove, f.name)
        seeds = run_crawler.load_seeds(["http://a.test/"], f.name)
        self.assertEqual(seeds, ["http://a.test/", "http://b.test/", "http://c.test/"])

    def test_parser(self):
        args = run_crawler.build_parser().parse_args(
            ["--session", "s1", "--workers", "4", "--max-depth", "2", "--same-host-only", "http://a.test/"])
        self.assertEqual(args.session, "s1")
        self.assertEqual(args.workers, 4)
        self.assertEqual(args.max_depth, 2)
        self.assertTrue(args.same_host_only)
        self.assertIsNone(args.max_retries)
        self.assertEqual(args.seeds, ["http://a.test/"])

    @mock.patch('distcrawl.run_crawler.signal.signal')
    @mock.patch('distcrawl.run_crawler.setup_logging')
    @mock.patch('distcrawl.run_crawler.CrawlCoordinator')
    def test_main_wires_coordinator(self, mock_coordinator, mock_logging, mock_signal):
        coordinator = mock_coordinator.return_value
        coordinator.run.return_value = {'completed': 1, 'finished': True}

        code = run_crawler.main(["--session", "s1", "--workers", "3", "--max-retries", "1",
                                 "--no-s3", "--no-heartbeat", "--reset", "http://a.test/"])

        self.assertEqual(code, 0)
        session_id, seeds = mock_coordinator.call_args[0]
        settings = mock_coordinator.call_args[1]['settings']
        self.assertEqual((session_id, seeds), ("s1", ["http://a.test/"]))
        self.assertEqual(settings.concurrency, 3)
        self.assertEqual(settings.max_retries, 1)
        self.assertFalse(settings.heartbeat_enabled)
        self.assertIsInstance(coordinator.sink, LoggingContentSink)
        coordinator.reset.assert_called_once()
        self.assertEqual(mock_signal.call_count, 2)

    @mock.patch('distcrawl.run_crawler.setup_logging')
    def test_invalid_settings(self, mock_logging):
        self.assertEqual(run_crawler.main(["--session", "s1", "--workers", "0", "http://a.test/"]), 2)


class TestSubmitURL(AWSTestCase, unittest.TestCase):
    def setUp(self):
        self.start_aws()
        self.frontier = Frontier('s1', sqs=self.sqs)
        self.dedup = DedupFilter('s1', dynamodb=self.dynamodb)

    def test_submit_enqueues_once(self):
        items = submit_urls('s1', ["http://A.test/", "bogus"], settings=fast_settings(),
                            frontier=self.frontier, dedup=self.dedup)
        self.assertEqual([i.url for i in items], ["http://a.test/"])

        again = submit_urls('s1', ["http://a.test/"], settings=fast_settings(),
                            frontier=self.frontier, dedup=self.dedup)
        self.assertEqual(again, [])

        leased = self.frontier.pop(lease_timeout=30)
        self.assertEqual(leased.depth, 0)


if __name__ == '__main__':
    unittest.main()

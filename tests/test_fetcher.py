import time
import unittest
from unittest import mock

import requests

from distcrawl.common.models import PermanentFailure, Redirect, Success, TransientFailure
from distcrawl.crawler.fetcher import HTTPFetcher, classify_status


def make_response(status_code, body=b'', headers=None, encoding='utf-8'):
    response = mock.Mock()
    response.status_code = status_code
    response.headers = headers or {}
    response.url = None
    response.encoding = encoding
    response.iter_content.return_value = [body]
    return response


class TestHTTPFetcher(unittest.TestCase):
    def setUp(self):
        self.session = mock.Mock()
        self.session.headers = {}
        self.fetcher = HTTPFetcher(user_agent='TestBot/1.0', session=self.session)

    def fetch(self, response, url="http://a.test/"):
        self.session.get.return_value = response
        return self.fetcher.fetch(url, timeout=5)

    def test_sets_user_agent(self):
        self.assertEqual(self.session.headers['User-Agent'], 'TestBot/1.0')

    def test_success(self):
        response = make_response(200, b'<html>hi</html>', {'Content-Type': 'text/HTML; charset=utf-8'})
        outcome = self.fetch(response)
        self.assertIsInstance(outcome, Success)
        self.assertEqual(outcome.body, '<html>hi</html>')
        self.assertEqual(outcome.final_url, "http://a.test/")
        self.assertTrue(outcome.is_html)
        response.close.assert_called_once()
        self.session.get.assert_called_with("http://a.test/", timeout=(5, 5), allow_redirects=False, stream=True)

    def test_non_html_success(self):
        outcome = self.fetch(make_response(200, b'{}', {'Content-Type': 'application/json'}))
        self.assertIsInstance(outcome, Success)
        self.assertFalse(outcome.is_html)

    def test_redirect_not_followed(self):
        outcome = self.fetch(make_response(301, headers={'Location': '/new'}))
        self.assertEqual(outcome, Redirect(target_url='/new', status_code=301))
        self.assertEqual(self.session.get.call_count, 1)

    def test_redirect_without_location(self):
        self.assertIsInstance(self.fetch(make_response(302)), PermanentFailure)

    def test_status_classification(self):
        for status in (408, 429, 500, 502, 503):
            self.assertIsInstance(self.fetch(make_response(status)), TransientFailure, status)
        for status in (400, 401, 403, 404, 410):
            self.assertIsInstance(self.fetch(make_response(status)), PermanentFailure, status)
        self.assertEqual(classify_status(204), 'success')
        self.assertEqual(classify_status(307), 'redirect')

    def test_network_errors(self):
        for error in (requests.Timeout("slow"), requests.ConnectionError("refused"),
                      requests.exceptions.ChunkedEncodingError("cut")):
            self.session.get.side_effect = error
            self.assertIsInstance(self.fetcher.fetch("http://a.test/"), TransientFailure, error)
        self.session.get.side_effect = requests.exceptions.InvalidURL("bad")
        self.assertIsInstance(self.fetcher.fetch("http://a.test/"), PermanentFailure)

    def test_unsupported_scheme(self):
        outcome = self.fetcher.fetch("mailto:me@a.test")
        self.assertIsInstance(outcome, PermanentFailure)
        self.session.get.assert_not_called()

    def test_body_truncated(self):
        fetcher = HTTPFetcher(session=self.session, max_response_size=10)
        response = make_response(200, headers={'Content-Type': 'text/html'})
        response.iter_content.return_value = [b'a' * 8, b'b' * 8]
        self.session.get.return_value = response
        outcome = fetcher.fetch("http://a.test/")
        self.assertEqual(outcome.body, 'aaaaaaaabb')

    def test_large_body_read_in_linear_time(self):
        response = make_response(200, headers={'Content-Type': 'text/html'})
        response.iter_content.return_value = [b'x' * 8192] * 1280
        started = time.monotonic()
        outcome = self.fetch(response)
        self.assertLess(time.monotonic() - started, 1.0)
        self.assertEqual(len(outcome.body), 8192 * 1280)

    def test_utf8_without_charset(self):
        # requests reports ISO-8859-1 for text/* without a charset
        response = make_response(200, 'café'.encode('utf-8'), {'Content-Type': 'text/html'},
                                 encoding='ISO-8859-1')
        self.assertEqual(self.fetch(response).body, 'café')

    def test_declared_charset_wins(self):
        response = make_response(200, 'café'.encode('latin-1'),
                                 {'Content-Type': 'text/html; charset=ISO-8859-1'}, encoding='ISO-8859-1')
        self.assertEqual(self.fetch(response).body, 'café')

    def test_undeclared_latin1_still_decodes(self):
        response = make_response(200, 'café'.encode('latin-1'), {'Content-Type': 'text/html'},
                                 encoding='ISO-8859-1')
        self.assertEqual(self.fetch(response).body, 'café')

    def test_read_error_is_transient(self):
        response = make_response(200, headers={'Content-Type': 'text/html'})
        response.iter_content.side_effect = requests.exceptions.ChunkedEncodingError("cut")
        self.assertIsInstance(self.fetch(response), TransientFailure)
        response.close.assert_called_once()


if __name__ == '__main__':
    unittest.main()

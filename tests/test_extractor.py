import unittest

from distcrawl.crawler.extractor import LinkExtractor


class TestLinkExtractor(unittest.TestCase):
    def setUp(self):
        self.extractor = LinkExtractor()

    def test_anchor_hrefs_in_order(self):
        html = """
        <html><body>
          <a href="/b">B</a>
          <a href=" http://a.test/c ">C</a>
          <a name="no-href">x</a>
          <a href="">empty</a>
          <a href="#frag">F</a>
          <link href="/style.css">
          <img src="/logo.png">
          <a href="mailto:x@a.test">mail</a>
        </body></html>
        """
        links = self.extractor.extract_links(html, "http://a.test/")
        self.assertEqual(links, ["/b", "http://a.test/c", "#frag", "mailto:x@a.test"])

    def test_base_href(self):
        html = '<html><head><base href="/docs/"></head><body><a href="page">p</a></body></html>'
        links, base = self.extractor.parse(html, "http://a.test/index")
        self.assertEqual(links, ["page"])
        self.assertEqual(base, "http://a.test/docs/")

    def test_without_base_uses_page_url(self):
        _, base = self.extractor.parse('<a href="x">x</a>', "http://a.test/p")
        self.assertEqual(base, "http://a.test/p")

    def test_invalid_base_href_falls_back_to_page_url(self):
        links, base = self.extractor.parse('<base href="http://[x"><a href="/y">y</a>', "http://a.test/")
        self.assertEqual(links, ["/y"])
        self.assertEqual(base, "http://a.test/")

    def test_empty_and_non_html(self):
        self.assertEqual(self.extractor.extract_links("", "http://a.test/"), [])
        self.assertEqual(self.extractor.extract_links("just some text", "http://a.test/"), [])

    def test_broken_markup(self):
        links = self.extractor.extract_links('<div><a href="/one">1<a href="/two">2</div>', "http://a.test/")
        self.assertEqual(links, ["/one", "/two"])


if __name__ == '__main__':
    unittest.main()

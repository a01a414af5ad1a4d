"""
ImageExtractor 单元测试
"""
import unittest

from parsers.image_parser import ImageExtractor

PAGE_URL = "https://example.com/gallery/index.html"

HTML = """
<html>
<head>
  <style>.hero { background-image: url('/img/hero.jpg'); }</style>
</head>
<body>
  <img src="photo1.jpg" srcset="photo1-small.jpg 480w, /abs/photo1-large.jpg 1024w">
  <img src="data:image/png;base64,AAAA">
  <img src="//cdn.example.com/proto.png">
  <picture>
    <source srcset="https://cdn.example.com/pic.webp 1x, https://cdn.example.com/pic2.webp 2x">
    <img src="fallback.jpg">
  </picture>
  <div style="background: url(&quot;/img/bg.png&quot;)"></div>
  <div data-src="/lazy/lazy.jpg" data-thumb="/lazy/thumb.jpeg"></div>
  <div data-src="/not-an-image"></div>
  <video poster="/media/poster.jpg"></video>
  <img src="/anim/loop.gif">
  <img src="/doc/readme.txt">
  <script>
    var data = {"image": "/json/from-json.png", "title": "x"};
    var other = "https://static.example.com/script.jpg?v=3";
  </script>
  <a href="/gallery/page2.html">next</a>
  <a href="page3.html#comments">page 3</a>
  <a href="/gallery/page2.html#top">dup</a>
  <a href="#top">top</a>
  <a href="javascript:void(0)">js</a>
  <a href="mailto:a@example.com">mail</a>
  <a href="https://other.com/x">external</a>
</body>
</html>
"""


class TestImageExtractor(unittest.TestCase):
    def setUp(self):
        self.extractor = ImageExtractor()

    def test_extract_all_strategies(self):
        urls = self.extractor.extract(HTML, PAGE_URL)
        expected = {
            "https://example.com/gallery/photo1.jpg",
            "https://example.com/gallery/photo1-small.jpg",
            "https://example.com/abs/photo1-large.jpg",
            "https://cdn.example.com/proto.png",
            "https://cdn.example.com/pic.webp",
            "https://cdn.example.com/pic2.webp",
            "https://example.com/gallery/fallback.jpg",
            "https://example.com/img/bg.png",
            "https://example.com/img/hero.jpg",
            "https://example.com/lazy/lazy.jpg",
            "https://example.com/lazy/thumb.jpeg",
            "https://example.com/media/poster.jpg",
            "https://example.com/json/from-json.png",
            "https://static.example.com/script.jpg",
        }
        self.assertTrue(expected.issubset(urls), expected - urls)

    def test_excludes_data_uri_and_non_images(self):
        urls = self.extractor.extract(HTML, PAGE_URL)
        self.assertFalse(any(u.startswith("data:") for u in urls))
        self.assertNotIn("https://example.com/doc/readme.txt", urls)
        self.assertNotIn("https://example.com/not-an-image", urls)

    def test_gif_excluded_by_default(self):
        urls = self.extractor.extract(HTML, PAGE_URL)
        self.assertNotIn("https://example.com/anim/loop.gif", urls)

    def test_gif_included_when_enabled(self):
        urls = ImageExtractor(include_gifs=True).extract(HTML, PAGE_URL)
        self.assertIn("https://example.com/anim/loop.gif", urls)

    def test_results_are_absolute(self):
        for url in self.extractor.extract(HTML, PAGE_URL):
            self.assertTrue(url.startswith(("http://", "https://")), url)

    def test_empty_page(self):
        self.assertEqual(self.extractor.extract("<html></html>", PAGE_URL), set())

    def test_query_string_kept(self):
        html = '<img src="/thumb.jpg?w=200">'
        self.assertEqual(self.extractor.extract(html, PAGE_URL), {"https://example.com/thumb.jpg?w=200"})


class TestFilterCandidates(unittest.TestCase):
    def test_regex_filter(self):
        extractor = ImageExtractor(url_regex_filter=r"cdn\.example\.com")
        result = extractor.filter_candidates([
            "https://example.com/a.jpg",
            "https://cdn.example.com/b.jpg",
        ])
        self.assertEqual(result, ["https://cdn.example.com/b.jpg"])

    def test_no_filter_sorted(self):
        result = ImageExtractor().filter_candidates({"https://b.com/2.jpg", "https://a.com/1.jpg"})
        self.assertEqual(result, ["https://a.com/1.jpg", "https://b.com/2.jpg"])

    def test_invalid_regex_ignored(self):
        extractor = ImageExtractor(url_regex_filter="([unclosed")
        self.assertIsNone(extractor.url_filter)
        self.assertEqual(extractor.filter_candidates(["https://a.com/1.jpg"]), ["https://a.com/1.jpg"])


class TestExtractLinks(unittest.TestCase):
    def test_links_normalized_and_deduplicated(self):
        links = ImageExtractor().extract_links(HTML, PAGE_URL)
        self.assertEqual(links, [
            "https://example.com/gallery/page2.html",
            "https://example.com/gallery/page3.html",
            "https://other.com/x",
        ])


if __name__ == "__main__":
    unittest.main()

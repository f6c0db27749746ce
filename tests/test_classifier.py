import unittest

from browser_proxy.classifier import RequestMode, classify_request


class TestClassifyRequest(unittest.TestCase):
    def test_accept_event_stream(self) -> None:
        self.assertIs(
            classify_request({"accept": "text/event-stream"}, "https://example.com/events"),
            RequestMode.STREAMING,
        )

    def test_accept_generic_stream(self) -> None:
        self.assertIs(
            classify_request({"Accept": "application/stream+json"}, "https://example.com/feed"),
            RequestMode.STREAMING,
        )

    def test_url_markers(self) -> None:
        urls = [
            "https://httpbin.org/stream/3",
            "https://api.example.com/v1/chat/completions",
            "https://api.example.com/v1/completions",
            "https://api.example.com/api/generate",
            "https://example.com/streaming/feed",
        ]
        for url in urls:
            with self.subTest(url=url):
                self.assertIs(classify_request({}, url), RequestMode.STREAMING)

    def test_json_with_stream_in_url(self) -> None:
        self.assertIs(
            classify_request({"Content-Type": "application/json"}, "https://example.com/api?stream=true"),
            RequestMode.STREAMING,
        )
        self.assertIs(
            classify_request({"Content-Type": "text/plain"}, "https://example.com/api?stream=true"),
            RequestMode.BUFFERED,
        )

    def test_plain_requests_are_buffered(self) -> None:
        self.assertIs(classify_request({"accept": "application/json"}, "https://httpbin.org/json"), RequestMode.BUFFERED)
        self.assertIs(classify_request({}, "https://httpbin.org/post"), RequestMode.BUFFERED)

    def test_header_casing_does_not_change_result(self) -> None:
        cases = [
            ({"accept": "text/event-stream"}, "https://example.com/x"),
            ({"content-type": "application/json"}, "https://example.com/x?stream=1"),
            ({"accept": "text/html"}, "https://example.com/x"),
        ]
        for headers, url in cases:
            expected = classify_request(headers, url)
            for transform in (str.upper, str.title, str.lower):
                with self.subTest(headers=headers, transform=transform.__name__):
                    variant = {transform(k): v for k, v in headers.items()}
                    self.assertIs(classify_request(variant, url), expected)

    def test_total_on_odd_input(self) -> None:
        self.assertIs(classify_request(None, None), RequestMode.BUFFERED)
        self.assertIs(classify_request({"accept": None, 3: "x"}, 42), RequestMode.BUFFERED)
        self.assertIs(classify_request({}, ""), RequestMode.BUFFERED)

    def test_deterministic(self) -> None:
        headers = {"Accept": "text/event-stream"}
        results = {classify_request(headers, "https://example.com/") for _ in range(10)}
        self.assertEqual(results, {RequestMode.STREAMING})


if __name__ == "__main__":
    unittest.main()

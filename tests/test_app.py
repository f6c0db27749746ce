import base64
import json
import unittest
from unittest.mock import AsyncMock, patch

import httpx

from browser_proxy import main
from browser_proxy.relay import Relay

from tests._relay_test_utils import BaseProxyTest, FakeSandbox, buffered_result, echo_handler

REQUEST_METHODS = ["GET", "POST", "PUT", "PATCH", "DELETE", "HEAD", "OPTIONS", "PROPFIND", "PURGE", "REPORT"]


class AppTestCase(BaseProxyTest):
    def setUp(self) -> None:
        super().setUp()
        for target in (
            "browser_proxy.main.debug_print",
            "browser_proxy.relay.debug_print",
            "browser_proxy.lifecycle.debug_print",
            "browser_proxy.executor.debug_print",
            "browser_proxy.console.safe_print",
        ):
            patcher = patch(target)
            patcher.start()
            self.addCleanup(patcher.stop)

    def use_sandbox(self, sandbox: FakeSandbox) -> FakeSandbox:
        self.manager = self.make_manager()
        relay = Relay(self.manager, sandbox_factory=lambda page: sandbox)
        patcher = patch.object(main, "relay", relay)
        patcher.start()
        self.addCleanup(patcher.stop)
        return sandbox

    def client(self) -> httpx.AsyncClient:
        transport = httpx.ASGITransport(app=main.app)
        return httpx.AsyncClient(transport=transport, base_url="http://test")


class TestProxyEndpoint(AppTestCase):
    async def test_missing_url_is_400_for_every_method(self) -> None:
        sandbox = self.use_sandbox(FakeSandbox(buffered_handler=echo_handler))
        async with self.client() as client:
            for method in REQUEST_METHODS:
                with self.subTest(method=method):
                    response = await client.request(method, "/")
                    self.assertEqual(response.status_code, 400)
                    if method != "HEAD":
                        self.assertEqual(response.text, "Missing url parameter")
                    blank = await client.request(method, "/anything", params={"url": "  "})
                    self.assertEqual(blank.status_code, 400)
        self.assertEqual(sandbox.requests, [])
        self.assertEqual(self.launcher.calls, 0)

    async def test_get_json_passthrough(self) -> None:
        body = json.dumps({"slideshow": {"author": "Yours Truly", "slides": [], "title": "Sample Slide Show"}}).encode()
        self.use_sandbox(
            FakeSandbox(
                buffered_result=buffered_result(
                    body,
                    headers={
                        "content-type": "application/json",
                        "content-encoding": "gzip",
                        "content-length": "9999",
                        "access-control-allow-origin": "*",
                    },
                )
            )
        )
        async with self.client() as client:
            response = await client.get("/", params={"url": "https://httpbin.org/json"})

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["slideshow"]["title"], "Sample Slide Show")
        self.assertEqual(response.headers["content-type"], "application/json")
        self.assertEqual(response.headers["access-control-allow-origin"], "*")
        self.assertNotIn("content-encoding", response.headers)
        self.assertEqual(response.headers["content-length"], str(len(body)))

    async def test_post_echo(self) -> None:
        sandbox = self.use_sandbox(FakeSandbox(buffered_handler=echo_handler))
        async with self.client() as client:
            response = await client.post(
                "/",
                params={"url": "https://httpbin.org/post"},
                content=json.dumps({"test": "data"}),
                headers={"Content-Type": "application/json", "Cookie": "a=b"},
            )

        self.assertEqual(response.status_code, 200)
        echoed = response.json()
        self.assertEqual(echoed["json"], {"test": "data"})
        self.assertEqual(echoed["method"], "POST")
        sent = {k.lower() for k in sandbox.requests[0]["headers"]}
        self.assertIn("content-type", sent)
        self.assertNotIn("cookie", sent)
        self.assertNotIn("host", sent)
        self.assertNotIn("content-length", sent)

    async def test_stream_of_json_lines(self) -> None:
        writes = [json.dumps({"id": i, "url": "https://httpbin.org/stream/3"}) + "\n" for i in range(3)]
        self.use_sandbox(FakeSandbox(writes=writes))
        async with self.client() as client:
            response = await client.get("/", params={"url": "https://httpbin.org/stream/3"})

        self.assertEqual(response.status_code, 200)
        lines = [json.loads(line) for line in response.text.splitlines() if line.strip()]
        self.assertEqual([line["id"] for line in lines], [0, 1, 2])

    async def test_unreachable_target_is_500_text(self) -> None:
        self.use_sandbox(FakeSandbox(buffered_result={"error": "TypeError: Failed to fetch"}))
        async with self.client() as client:
            response = await client.get("/", params={"url": "https://does-not-exist.invalid/"})

        self.assertEqual(response.status_code, 500)
        self.assertTrue(response.headers["content-type"].startswith("text/plain"))
        self.assertTrue(response.text.startswith("Request failed: "))
        self.assertEqual(self.manager.open_page_count, 0)

    async def test_any_path_is_accepted(self) -> None:
        sandbox = self.use_sandbox(FakeSandbox(buffered_handler=echo_handler))
        async with self.client() as client:
            response = await client.delete("/some/nested/path", params={"url": "https://httpbin.org/delete"})
        self.assertEqual(response.status_code, 200)
        self.assertEqual(sandbox.requests[0]["method"], "DELETE")
        self.assertEqual(sandbox.requests[0]["url"], "https://httpbin.org/delete")

    async def test_uncommon_methods_are_relayed(self) -> None:
        sandbox = self.use_sandbox(FakeSandbox(buffered_handler=echo_handler))
        async with self.client() as client:
            purge = await client.request("PURGE", "/", params={"url": "https://httpbin.org/anything"})
            propfind = await client.request(
                "PROPFIND",
                "/dav",
                params={"url": "https://dav.example/files/"},
                content=b'<?xml version="1.0"?><propfind xmlns="DAV:"><allprop/></propfind>',
            )

        self.assertEqual(purge.status_code, 200)
        self.assertEqual(propfind.status_code, 200)
        self.assertEqual([r["method"] for r in sandbox.requests], ["PURGE", "PROPFIND"])
        self.assertEqual(propfind.json()["method"], "PROPFIND")

    async def test_binary_body_is_forwarded_verbatim(self) -> None:
        sandbox = self.use_sandbox(FakeSandbox(buffered_handler=echo_handler))
        payload = b"\x89PNG\xff\x00\xc3"
        async with self.client() as client:
            response = await client.post(
                "/upload",
                params={"url": "https://httpbin.org/post"},
                content=payload,
                headers={"Content-Type": "application/octet-stream"},
            )

        self.assertEqual(response.status_code, 200)
        self.assertEqual(base64.b64decode(sandbox.requests[0]["bodyBase64"]), payload)

    async def test_binary_stream_is_forwarded_verbatim(self) -> None:
        writes = [b"data: caf\xe9\n\n", b"\xff\x00\x80"]
        sandbox = self.use_sandbox(
            FakeSandbox(writes=writes, raw_headers="Content-Type: text/event-stream; charset=iso-8859-1\r\n")
        )
        async with self.client() as client:
            response = await client.get("/", params={"url": "https://events.example/stream"})

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.content, sandbox.full_body)
        self.assertEqual(response.headers["content-type"], "text/event-stream; charset=iso-8859-1")


class TestHealthEndpoint(AppTestCase):
    async def test_health_reports_engine_and_counters(self) -> None:
        self.use_sandbox(FakeSandbox(buffered_handler=echo_handler))
        with patch.object(main, "engine_manager", self.manager):
            async with self.client() as client:
                await client.get("/", params={"url": "https://httpbin.org/get"})
                response = await client.get("/_proxy/health")

        self.assertEqual(response.status_code, 200)
        data = response.json()
        self.assertEqual(data["status"], "healthy")
        self.assertEqual(data["engine"]["state"], "ready")
        self.assertEqual(data["engine"]["open_pages"], 0)
        self.assertEqual(data["stats"]["requests_total"], 1)
        self.assertEqual(data["stats"]["requests_buffered"], 1)
        self.assertIn("uptime_seconds", data["stats"])


class TestGensparkEndpoint(AppTestCase):
    async def test_forwards_cookie_header(self) -> None:
        fetch = AsyncMock(return_value={"code": 200, "message": "success", "token": "tok"})
        with patch.object(main.credential_session, "fetch_token", fetch):
            async with self.client() as client:
                response = await client.get("/genspark", headers={"Cookie": "session=abc; other=1"})

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json(), {"code": 200, "message": "success", "token": "tok"})
        fetch.assert_awaited_once_with("session=abc; other=1")

    async def test_missing_cookie(self) -> None:
        async with self.client() as client:
            response = await client.post("/genspark")
        self.assertEqual(response.json(), {"code": 400, "message": "Missing cookie header"})


if __name__ == "__main__":
    unittest.main()

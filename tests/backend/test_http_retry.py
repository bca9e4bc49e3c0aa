"""Tests for post_with_retry."""

import asyncio

import httpx
import pytest

from windalert.services.http_retry import UpstreamError, post_with_retry

URL = "https://hooks.example/alert"


def _run(handler, **kwargs):
    calls = []

    def wrapped(request):
        calls.append(request)
        return handler(len(calls))

    async def go():
        async with httpx.AsyncClient(transport=httpx.MockTransport(wrapped)) as client:
            return await post_with_retry(client, URL, json={"a": 1}, backoff=0, **kwargs)

    return asyncio.run(go()), calls


class TestPostWithRetry:
    def test_first_attempt_succeeds(self):
        resp, calls = _run(lambda n: httpx.Response(200, json={"ok": True}))
        assert resp.status_code == 200
        assert len(calls) == 1

    def test_retries_after_server_error(self):
        resp, calls = _run(lambda n: httpx.Response(503) if n == 1 else httpx.Response(202))
        assert resp.status_code == 202
        assert len(calls) == 2

    def test_gives_up_after_tries(self):
        with pytest.raises(UpstreamError) as info:
            _run(lambda n: httpx.Response(500, json={"error": "boom"}), tries=3)
        assert info.value.status_code == 500
        assert info.value.body == {"error": "boom"}

    def test_transport_error_retried(self):
        def handler(n):
            if n == 1:
                raise httpx.ConnectError("refused")
            return httpx.Response(200)

        resp, calls = _run(handler)
        assert resp.status_code == 200
        assert len(calls) == 2

    def test_transport_error_exhausted(self):
        def handler(n):
            raise httpx.ConnectError("refused")

        with pytest.raises(UpstreamError) as info:
            _run(handler, tries=2)
        assert info.value.status_code is None
        assert "ConnectError" in str(info.value)

from __future__ import annotations

import asyncio
import json
import logging

import httpx
from test_layout import approved_submission

from formportal.webhook import build_payload, is_valid_webhook_url, send_webhook


def install_transport(monkeypatch, handler):
    real_client = httpx.AsyncClient

    def client_factory(**kwargs):
        return real_client(transport=httpx.MockTransport(handler), **kwargs)

    monkeypatch.setattr(httpx, "AsyncClient", client_factory)


def test_is_valid_webhook_url():
    assert is_valid_webhook_url("https://hooks.example.com/x")
    assert not is_valid_webhook_url("ftp://hooks.example.com/x")
    assert not is_valid_webhook_url("")


def test_build_payload():
    payload = build_payload("submission.approved", approved_submission())
    assert payload["event"] == "submission.approved"
    assert payload["status"] == "Approved"
    assert payload["approved_by"] == ["bob", "carol"]
    assert "signature" not in payload


def test_send_webhook_posts_json(monkeypatch):
    received = []

    def handler(request):
        received.append(json.loads(request.content))
        return httpx.Response(204)

    install_transport(monkeypatch, handler)
    ok = asyncio.run(send_webhook("https://hooks.example.com/x", "submission.approved",
                                  approved_submission()))
    assert ok
    assert received[0]["submission_id"] == "sub-1"


def test_send_webhook_failure_is_logged(monkeypatch, caplog):
    install_transport(monkeypatch, lambda request: httpx.Response(500))
    with caplog.at_level(logging.ERROR, logger="formportal.webhook"):
        ok = asyncio.run(send_webhook("https://hooks.example.com/x", "submission.approved",
                                      approved_submission()))
    assert not ok
    assert "Webhook failed" in caplog.text


def test_send_webhook_skips_invalid_url():
    assert asyncio.run(send_webhook("not a url", "submission.approved", approved_submission())) is False

# tests/test_api.py
"""Tests for the HTTP surface: WhatsApp webhook, payment callback, outbound dispatch."""

from unittest.mock import AsyncMock, MagicMock

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from storebot.api import outbound
from storebot.api.routes import api_router
from storebot.api.routes import payments as payments_route
from storebot.api.routes import whatsapp as whatsapp_route
from storebot.api.routes.whatsapp import extract_messages
from storebot.core.config import settings
from storebot.core.errors import OutOfStockError
from storebot.domain.models.responses import (
    BroadcastResponse,
    DeliveryResponse,
    TextResponse,
)
from storebot.domain.services.fulfillment import Delivery
from storebot.infrastructure.queue import whatsapp_jobs
from tests.conftest import ADMIN, make_settings


@pytest.fixture
def container():
    container = MagicMock()
    container.settings = make_settings()
    container.health = AsyncMock(return_value={"inventory": "file", "redis": "disabled"})
    container.router.route = AsyncMock(return_value=TextResponse("ok"))
    container.admin.admin_numbers = {ADMIN}
    container.fulfillment.confirm_gateway_payment = AsyncMock()
    return container


@pytest.fixture
def client(container):
    app = FastAPI()
    app.include_router(api_router)
    app.state.container = container
    return TestClient(app)


def _text_payload(sender, body):
    return {
        "entry": [{
            "changes": [{
                "value": {"messages": [{"from": sender, "type": "text", "text": {"body": body}}]}
            }]
        }]
    }


# ── webhook ───────────────────────────────────────────────────────────


def test_extract_messages_handles_text_image_and_buttons():
    body = {
        "entry": [{
            "changes": [{
                "value": {
                    "messages": [
                        {"from": "628111", "type": "text", "text": {"body": "menu"}},
                        {"from": "628111", "type": "image", "image": {"id": "media-1", "caption": "bukti"}},
                        {"from": "628222", "type": "interactive",
                         "interactive": {"button_reply": {"id": "checkout", "title": "Checkout"}}},
                        {"from": "628333", "type": "sticker"},
                        {"type": "text", "text": {"body": "no sender"}},
                    ]
                }
            }]
        }]
    }
    assert extract_messages(body) == [
        ("628111", "menu", None),
        ("628111", "bukti", "media-1"),
        ("628222", "checkout", None),
    ]


def test_extract_messages_ignores_status_updates():
    body = {"entry": [{"changes": [{"value": {"statuses": [{"status": "read"}]}}]}]}
    assert extract_messages(body) == []


def test_webhook_verification(client, monkeypatch):
    monkeypatch.setattr(settings, "WHATSAPP_VERIFY_TOKEN", "verify-me")
    ok = client.get(
        "/webhook",
        params={"hub.mode": "subscribe", "hub.verify_token": "verify-me", "hub.challenge": "42"},
    )
    assert ok.status_code == 200
    assert ok.text == "42"

    bad = client.get(
        "/webhook",
        params={"hub.mode": "subscribe", "hub.verify_token": "wrong", "hub.challenge": "42"},
    )
    assert bad.status_code == 403


def test_webhook_routes_and_dispatches(client, container, monkeypatch):
    dispatch = AsyncMock()
    monkeypatch.setattr(whatsapp_route, "dispatch_response", dispatch)

    resp = client.post("/webhook", json=_text_payload("628111", "Menu"))

    assert resp.json() == {"status": "ok"}
    container.router.route.assert_awaited_once_with("628111", "Menu", None)
    dispatch.assert_awaited_once_with("628111", TextResponse("ok"))


def test_health(client):
    body = client.get("/").json()
    assert body["status"] == "ok"
    assert body["redis"] == "disabled"


# ── payment callback ──────────────────────────────────────────────────


def test_callback_disabled_without_token(client, monkeypatch):
    monkeypatch.setattr(settings, "XENDIT_CALLBACK_TOKEN", "")
    assert client.post("/payments/callback", json={}).status_code == 503


def test_callback_rejects_wrong_token(client, monkeypatch):
    monkeypatch.setattr(settings, "XENDIT_CALLBACK_TOKEN", "secret")
    resp = client.post("/payments/callback", json={}, headers={"x-callback-token": "nope"})
    assert resp.status_code == 401


def test_callback_ignores_unpaid_status(client, container, monkeypatch):
    monkeypatch.setattr(settings, "XENDIT_CALLBACK_TOKEN", "secret")
    resp = client.post(
        "/payments/callback",
        json={"id": "inv-1", "external_id": "ORD-1", "status": "PENDING"},
        headers={"x-callback-token": "secret"},
    )
    assert resp.json()["status"] == "ignored"
    container.fulfillment.confirm_gateway_payment.assert_not_awaited()


def test_callback_paid_delivers(client, container, monkeypatch):
    monkeypatch.setattr(settings, "XENDIT_CALLBACK_TOKEN", "secret")
    send = AsyncMock(return_value=True)
    monkeypatch.setattr(payments_route, "send_text", send)
    container.fulfillment.confirm_gateway_payment = AsyncMock(
        return_value=Delivery(
            order_id="ORD-1",
            customer_id="628111",
            customer_message="here are your credentials",
            items=[("Netflix", "nf1@mail.com:pass1")],
            total_idr=15800,
        )
    )

    resp = client.post(
        "/payments/callback",
        json={"id": "inv-1", "external_id": "ORD-1", "status": "PAID"},
        headers={"x-callback-token": "secret"},
    )

    assert resp.json() == {"status": "ok", "order_id": "ORD-1"}
    container.fulfillment.confirm_gateway_payment.assert_awaited_once_with(
        order_id="ORD-1", invoice_id="inv-1"
    )
    recipients = [call.args[0] for call in send.await_args_list]
    assert recipients == ["628111", ADMIN]


def test_callback_failure_alerts_admins(client, container, monkeypatch):
    monkeypatch.setattr(settings, "XENDIT_CALLBACK_TOKEN", "secret")
    send = AsyncMock(return_value=True)
    monkeypatch.setattr(payments_route, "send_text", send)
    container.fulfillment.confirm_gateway_payment = AsyncMock(
        side_effect=OutOfStockError("netflix", "ORD-1")
    )

    resp = client.post(
        "/payments/callback",
        json={"id": "inv-1", "external_id": "ORD-1", "status": "SETTLED"},
        headers={"x-callback-token": "secret"},
    )

    assert resp.json()["status"] == "error"
    send.assert_awaited_once()
    assert send.await_args.args[0] == ADMIN


# ── outbound ──────────────────────────────────────────────────────────


def test_dispatch_delivery_warns_admin_when_customer_send_fails(event_loop, monkeypatch):
    send = AsyncMock(side_effect=[True, False, True])
    monkeypatch.setattr(outbound, "send_text", send)
    response = DeliveryResponse(
        text="done", customer_id="628111", customer_message="creds", order_id="ORD-1"
    )

    event_loop.run_until_complete(outbound.dispatch_response(ADMIN, response))

    assert [call.args[0] for call in send.await_args_list] == [ADMIN, "628111", ADMIN]
    assert "ORD-1" in send.await_args_list[-1].args[1]


def test_dispatch_broadcast(event_loop, monkeypatch):
    send = AsyncMock(return_value=True)
    monkeypatch.setattr(outbound, "send_text", send)
    response = BroadcastResponse(text="sent", recipients=["628111", "628222"], message="hi")

    event_loop.run_until_complete(outbound.dispatch_response(ADMIN, response))

    assert send.await_count == 3
    assert send.await_args_list[1].args == ("628111", "hi")


def test_send_text_reports_http_failure(event_loop, monkeypatch):
    monkeypatch.setattr(settings, "OUTBOUND_VIA_QUEUE", False)
    monkeypatch.setattr(outbound, "send_whatsapp_text", AsyncMock(side_effect=RuntimeError("down")))
    assert event_loop.run_until_complete(outbound.send_text("628111", "hi")) is False


def test_send_text_uses_queue_when_enabled(event_loop, monkeypatch):
    monkeypatch.setattr(settings, "OUTBOUND_VIA_QUEUE", True)
    enqueue = AsyncMock(return_value=True)
    monkeypatch.setattr(outbound, "enqueue_whatsapp_message", enqueue)
    assert event_loop.run_until_complete(outbound.send_text("628111", "hi")) is True
    enqueue.assert_awaited_once_with("628111", "hi")


# ── arq job ───────────────────────────────────────────────────────────


def test_job_reenqueues_until_max_attempts(event_loop, monkeypatch):
    monkeypatch.setattr(
        whatsapp_jobs, "send_whatsapp_text", AsyncMock(side_effect=RuntimeError("429"))
    )
    redis = MagicMock()
    redis.enqueue_job = AsyncMock()
    ctx = {"redis": redis}

    assert event_loop.run_until_complete(whatsapp_jobs.send_whatsapp_job(ctx, "628111", "hi")) is False
    redis.enqueue_job.assert_awaited_once_with("send_whatsapp_job", "628111", "hi", 2)

    redis.enqueue_job.reset_mock()
    event_loop.run_until_complete(
        whatsapp_jobs.send_whatsapp_job(ctx, "628111", "hi", whatsapp_jobs.MAX_WHATSAPP_RETRIES)
    )
    redis.enqueue_job.assert_not_awaited()


def test_job_success(event_loop, monkeypatch):
    monkeypatch.setattr(whatsapp_jobs, "send_whatsapp_text", AsyncMock())
    assert event_loop.run_until_complete(whatsapp_jobs.send_whatsapp_job({}, "628111", "hi")) is True

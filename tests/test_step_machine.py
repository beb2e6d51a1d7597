# tests/test_step_machine.py
"""Conversation flow tests, driven through the router like real inbound messages."""

import json
from unittest.mock import AsyncMock

import pytest

from storebot.core.errors import GatewayError
from storebot.domain.i18n import t
from storebot.domain.models.session import PaymentMethod, SessionStep
from storebot.domain.services.step_machine import make_order_id
from tests.conftest import ADMIN, CUSTOMER, build_stack, make_gateway, make_settings

ORDER_1 = "ORD-1700000000001-ABCD"


def _say(stack, loop, message, media=None, sender=CUSTOMER):
    return loop.run_until_complete(stack.router.route(sender, message, media))


def _session(stack, loop, customer_id=CUSTOMER):
    return loop.run_until_complete(stack.sessions.peek(customer_id))


def _to_checkout(stack, loop, *products):
    _say(stack, loop, "menu")
    _say(stack, loop, "1")
    for product in products:
        _say(stack, loop, product)
    return _say(stack, loop, "cart")


def _to_payment(stack, loop, *products):
    _to_checkout(stack, loop, *products)
    return _say(stack, loop, "checkout")


# ── menu & browsing ───────────────────────────────────────────────────


class TestBrowsing:
    def test_first_message_gets_main_menu_reply(self, stack, event_loop):
        response = _say(stack, event_loop, "menu")
        assert response.text == t("MAIN_MENU")
        assert _session(stack, event_loop).step == SessionStep.MENU

    def test_menu_one_then_product_id_adds_to_cart(self, stack, event_loop):
        listing = _say(stack, event_loop, "1")
        assert "Netflix Premium Account (1 Month)" in listing.text
        assert _session(stack, event_loop).step == SessionStep.BROWSING

        added = _say(stack, event_loop, "netflix")
        assert "Netflix Premium Account (1 Month)" in added.text
        assert "Rp 15.800" in added.text

        session = _session(stack, event_loop)
        assert [line.id for line in session.cart] == ["netflix"]
        assert session.step == SessionStep.BROWSING

    def test_product_by_list_number(self, stack, event_loop):
        _say(stack, event_loop, "1")
        _say(stack, event_loop, "2")
        assert [line.id for line in _session(stack, event_loop).cart] == ["netflix"]

    @pytest.mark.parametrize("query, expected", [("netflik", "netflix"), ("spot", "spotify")])
    def test_fuzzy_product_names(self, stack, event_loop, query, expected):
        _say(stack, event_loop, "1")
        _say(stack, event_loop, query)
        assert [line.id for line in _session(stack, event_loop).cart] == [expected]

    def test_unknown_product(self, stack, event_loop):
        _say(stack, event_loop, "1")
        response = _say(stack, event_loop, "zzzzqqq")
        assert response.text == t("PRODUCT_NOT_FOUND")
        assert _session(stack, event_loop).cart == []

    def test_out_of_stock_product_is_added_with_warning(self, stack, event_loop):
        _say(stack, event_loop, "1")
        response = _say(stack, event_loop, "vcc-basic")
        assert "Stok" in response.text and "kosong" in response.text
        assert len(_session(stack, event_loop).cart) == 1

    def test_cart_full(self, tmp_path, event_loop):
        stack = build_stack(tmp_path, settings=make_settings(MAX_CART_ITEMS=1))
        _say(stack, event_loop, "1")
        _say(stack, event_loop, "netflix")
        response = _say(stack, event_loop, "spotify")
        assert response.text == t("CART_FULL", max=1)
        assert len(_session(stack, event_loop).cart) == 1

    def test_unknown_menu_option(self, stack, event_loop):
        _say(stack, event_loop, "menu")
        assert _say(stack, event_loop, "9").text == t("UNKNOWN_COMMAND")

    def test_help_from_any_step(self, stack, event_loop):
        _say(stack, event_loop, "1")
        assert _say(stack, event_loop, "help").text == t("HELP")
        assert _session(stack, event_loop).step == SessionStep.BROWSING


# ── cart & checkout ───────────────────────────────────────────────────


class TestCart:
    def test_cart_with_empty_cart_keeps_step(self, stack, event_loop):
        _say(stack, event_loop, "menu")
        response = _say(stack, event_loop, "cart")
        assert response.text == t("CART_EMPTY")
        assert _session(stack, event_loop).step == SessionStep.MENU

    def test_checkout_with_empty_cart_in_browsing(self, stack, event_loop):
        _say(stack, event_loop, "1")
        assert _say(stack, event_loop, "checkout").text == t("CART_EMPTY")
        assert _session(stack, event_loop).step == SessionStep.BROWSING

    def test_cart_summary_totals(self, stack, event_loop):
        response = _to_checkout(stack, event_loop, "netflix", "spotify", "netflix")
        assert "Subtotal: Rp 47.400" in response.text
        assert "*Total: Rp 47.400*" in response.text
        assert _session(stack, event_loop).step == SessionStep.CHECKOUT

    def test_cart_price_is_a_snapshot(self, stack, tmp_path, event_loop):
        _to_checkout(stack, event_loop, "netflix")
        (tmp_path / "products" / "products.json").write_text(
            json.dumps({"netflix": {"name": "Netflix", "price": 3}})
        )
        stack.catalog.refresh()
        assert stack.catalog.get("netflix").price == 3

        response = _say(stack, event_loop, "cart")
        assert "*Total: Rp 15.800*" in response.text

    def test_clear_in_checkout_returns_to_browsing(self, stack, event_loop):
        _to_checkout(stack, event_loop, "netflix")
        assert _say(stack, event_loop, "clear").text == t("CART_CLEARED")
        session = _session(stack, event_loop)
        assert session.cart == []
        assert session.step == SessionStep.BROWSING

    def test_checkout_assigns_order_id_and_lists_enabled_methods(self, stack, event_loop):
        response = _to_payment(stack, event_loop, "netflix")
        session = _session(stack, event_loop)
        assert session.step == SessionStep.SELECT_PAYMENT
        assert session.order_id == ORDER_1
        assert ORDER_1 in response.text
        assert "1. QRIS" in response.text
        assert "2. DANA" in response.text
        assert "3. Transfer Bank" in response.text
        assert "GoPay" not in response.text

    def test_checkout_without_payment_methods(self, tmp_path, event_loop):
        stack = build_stack(
            tmp_path, settings=make_settings(QRIS_ENABLED=False, PAYMENT_ACCOUNTS={})
        )
        response = _to_payment(stack, event_loop, "netflix")
        assert response.text == t("PAYMENT_NONE_ENABLED")
        session = _session(stack, event_loop)
        assert session.step == SessionStep.CHECKOUT
        assert session.order_id is None

    def test_make_order_id_format(self):
        order_id = make_order_id(lambda: 1_700_000_000.5)
        prefix, millis, suffix = order_id.split("-")
        assert prefix == "ORD"
        assert millis == "1700000000500"
        assert len(suffix) == 4 and suffix == suffix.upper()


class TestPromo:
    def test_promo_applies_discount_and_is_recorded_on_delivery(self, stack, event_loop):
        stack.promos.create_promo("HEMAT", 10, 7)
        _to_checkout(stack, event_loop, "netflix")

        applied = _say(stack, event_loop, "promo hemat")
        assert "HEMAT" in applied.text
        assert "*Total: Rp 14.220*" in applied.text
        assert stack.promos.get_customer_usage(CUSTOMER) == []

        payment = _say(stack, event_loop, "checkout")
        assert "Rp 14.220" in payment.text
        assert stack.promos.get_customer_usage(CUSTOMER) == []

        event_loop.run_until_complete(
            stack.inventory.add_credentials("netflix", "user@mail.com:pass123", ADMIN)
        )
        _say(stack, event_loop, "2")
        _say(stack, event_loop, f"/approve {ORDER_1}", sender=ADMIN)
        assert stack.promos.get_customer_usage(CUSTOMER) == ["HEMAT"]
        assert not stack.promos.validate_promo("HEMAT", CUSTOMER).valid

    def test_promo_survives_going_back_to_cart(self, stack, event_loop):
        stack.promos.create_promo("HEMAT", 10, 7)
        _to_checkout(stack, event_loop, "netflix")
        _say(stack, event_loop, "promo hemat")
        _say(stack, event_loop, "checkout")

        summary = _say(stack, event_loop, "cart")
        assert "*Total: Rp 14.220*" in summary.text

        payment = _say(stack, event_loop, "checkout")
        assert "ORD-1700000000002-ABCD" in payment.text
        assert "Rp 14.220" in payment.text
        session = _session(stack, event_loop)
        assert session.promo_code == "HEMAT"
        assert session.step == SessionStep.SELECT_PAYMENT

    def test_invalid_promo_is_rejected(self, stack, event_loop):
        _to_checkout(stack, event_loop, "netflix")
        response = _say(stack, event_loop, "promo nope")
        assert "tidak ditemukan" in response.text
        assert _session(stack, event_loop).promo_code is None

    def test_promo_without_code(self, stack, event_loop):
        _to_checkout(stack, event_loop, "netflix")
        assert _say(stack, event_loop, "promo").text == t("PROMO_USAGE")

    def test_promo_removed_before_checkout_is_dropped(self, stack, event_loop):
        stack.promos.create_promo("HEMAT", 10, 7)
        _to_checkout(stack, event_loop, "netflix")
        _say(stack, event_loop, "promo hemat")
        stack.promos.delete_promo("HEMAT")

        response = _say(stack, event_loop, "checkout")
        assert "tidak ditemukan" in response.text
        session = _session(stack, event_loop)
        assert session.step == SessionStep.CHECKOUT
        assert session.promo_code is None
        assert session.order_id is None


# ── payment ───────────────────────────────────────────────────────────


class TestPayment:
    def test_invalid_payment_choice(self, stack, event_loop):
        _to_payment(stack, event_loop, "netflix")
        assert _say(stack, event_loop, "7").text == t("PAYMENT_INVALID_CHOICE")
        assert _session(stack, event_loop).step == SessionStep.SELECT_PAYMENT

    def test_ewallet_goes_to_admin_approval(self, stack, event_loop):
        _to_payment(stack, event_loop, "netflix")
        response = _say(stack, event_loop, "2")
        assert "081200000001" in response.text
        session = _session(stack, event_loop)
        assert session.step == SessionStep.AWAITING_ADMIN_APPROVAL
        assert session.payment_method == PaymentMethod.DANA
        assert session.payment_amount == 15800

    def test_bank_transfer_asks_for_bank(self, stack, event_loop):
        _to_payment(stack, event_loop, "netflix")
        banks = _say(stack, event_loop, "3")
        assert "1. BCA" in banks.text and "2. BRI" in banks.text
        assert _session(stack, event_loop).step == SessionStep.SELECT_BANK

        response = _say(stack, event_loop, "2")
        assert "0987654321" in response.text
        session = _session(stack, event_loop)
        assert session.step == SessionStep.AWAITING_ADMIN_APPROVAL
        assert session.payment_method == PaymentMethod.BRI

    def test_qris_creates_invoice(self, tmp_path, event_loop):
        gateway = make_gateway()
        stack = build_stack(tmp_path, gateway=gateway)
        _to_payment(stack, event_loop, "netflix")

        response = _say(stack, event_loop, "1")

        gateway.create_qris_invoice.assert_awaited_once()
        assert gateway.create_qris_invoice.await_args.args[:2] == (ORDER_1, 15800)
        assert "https://checkout.example/inv-1" in response.text
        session = _session(stack, event_loop)
        assert session.step == SessionStep.AWAITING_PAYMENT
        assert session.payment_invoice_id == "inv-1"

    def test_qris_gateway_failure_keeps_step(self, tmp_path, event_loop):
        gateway = make_gateway()
        gateway.create_qris_invoice = AsyncMock(side_effect=GatewayError("timed out"))
        stack = build_stack(tmp_path, gateway=gateway)
        _to_payment(stack, event_loop, "netflix")

        response = _say(stack, event_loop, "1")

        assert response.text == GatewayError.customer_message
        session = _session(stack, event_loop)
        assert session.step == SessionStep.SELECT_PAYMENT
        assert session.payment_invoice_id is None

    def test_status_while_unpaid(self, tmp_path, event_loop):
        stack = build_stack(tmp_path, gateway=make_gateway("PENDING"))
        _to_payment(stack, event_loop, "netflix")
        _say(stack, event_loop, "1")
        assert _say(stack, event_loop, "status").text == t("PAYMENT_PENDING")
        assert _say(stack, event_loop, "hello").text == t("AWAITING_PAYMENT_HINT")

    def test_status_when_paid_delivers(self, tmp_path, event_loop):
        stack = build_stack(tmp_path, gateway=make_gateway("PAID"))
        event_loop.run_until_complete(
            stack.inventory.add_credentials("netflix", "user@mail.com:pass123", "admin")
        )
        _to_payment(stack, event_loop, "netflix")
        _say(stack, event_loop, "1")

        response = _say(stack, event_loop, "status")

        assert "user@mail.com:pass123" in response.text
        session = _session(stack, event_loop)
        assert session.step == SessionStep.MENU
        assert session.cart == []

    def test_menu_from_payment_selection_abandons_order(self, stack, event_loop):
        _to_payment(stack, event_loop, "netflix")
        _say(stack, event_loop, "menu")
        session = _session(stack, event_loop)
        assert session.step == SessionStep.MENU
        assert session.order_id is None
        assert session.payment_method is None
        assert [line.id for line in session.cart] == ["netflix"]
        assert event_loop.run_until_complete(stack.sessions.find_customer_by_order_id(ORDER_1)) is None


# ── leaving a pending order ───────────────────────────────────────────


class TestPendingOrder:
    def test_menu_after_proof_keeps_order_approvable(self, stack, event_loop):
        event_loop.run_until_complete(
            stack.inventory.add_credentials("netflix", "user@mail.com:pass123", ADMIN)
        )
        _to_payment(stack, event_loop, "netflix")
        _say(stack, event_loop, "2")
        _say(stack, event_loop, "", media="media-123")

        for message in ("menu", "cart"):
            reply = _say(stack, event_loop, message)
            assert reply.text == t("ORDER_PENDING", order_id=ORDER_1)
        session = _session(stack, event_loop)
        assert session.step == SessionStep.UPLOAD_PROOF
        assert session.order_id == ORDER_1
        assert session.payment_method == PaymentMethod.DANA
        assert session.payment_proof == "media-123"

        delivery = _say(stack, event_loop, f"/approve {ORDER_1}", sender=ADMIN)
        assert delivery.customer_id == CUSTOMER
        assert "user@mail.com:pass123" in delivery.customer_message

    def test_menu_while_qris_pending_keeps_invoice(self, tmp_path, event_loop):
        stack = build_stack(tmp_path, gateway=make_gateway("PENDING"))
        _to_payment(stack, event_loop, "netflix")
        _say(stack, event_loop, "1")

        assert _say(stack, event_loop, "menu").text == t("ORDER_PENDING", order_id=ORDER_1)
        assert event_loop.run_until_complete(
            stack.sessions.find_customer_by_invoice_id("inv-1")
        ) == CUSTOMER

    def test_cancel_unpaid_manual_order(self, stack, event_loop):
        _to_payment(stack, event_loop, "netflix")
        _say(stack, event_loop, "2")

        reply = _say(stack, event_loop, "batal")

        assert reply.text == t("ORDER_CANCELLED", order_id=ORDER_1)
        session = _session(stack, event_loop)
        assert session.step == SessionStep.MENU
        assert session.order_id is None
        assert session.payment_method is None
        assert [line.id for line in session.cart] == ["netflix"]
        assert event_loop.run_until_complete(stack.sessions.find_customer_by_order_id(ORDER_1)) is None

    def test_cancel_refused_after_proof(self, stack, event_loop):
        _to_payment(stack, event_loop, "netflix")
        _say(stack, event_loop, "2")
        _say(stack, event_loop, "", media="media-123")

        assert _say(stack, event_loop, "batal").text == t("ORDER_CANCEL_LOCKED", order_id=ORDER_1)
        assert _session(stack, event_loop).order_id == ORDER_1

    def test_cancel_unpaid_qris_order(self, tmp_path, event_loop):
        stack = build_stack(tmp_path, gateway=make_gateway("PENDING"))
        _to_payment(stack, event_loop, "netflix")
        _say(stack, event_loop, "1")

        assert _say(stack, event_loop, "batal").text == t("ORDER_CANCELLED", order_id=ORDER_1)
        assert _session(stack, event_loop).payment_invoice_id is None

    def test_cancel_on_paid_qris_delivers_instead(self, tmp_path, event_loop):
        stack = build_stack(tmp_path, gateway=make_gateway("PAID"))
        event_loop.run_until_complete(
            stack.inventory.add_credentials("netflix", "user@mail.com:pass123", ADMIN)
        )
        _to_payment(stack, event_loop, "netflix")
        _say(stack, event_loop, "1")

        reply = _say(stack, event_loop, "batal")

        assert "user@mail.com:pass123" in reply.text
        assert _session(stack, event_loop).step == SessionStep.MENU

    def test_batal_outside_pending_order_is_unknown(self, stack, event_loop):
        _say(stack, event_loop, "menu")
        assert _say(stack, event_loop, "batal").text == t("UNKNOWN_COMMAND")


# ── payment proof ─────────────────────────────────────────────────────


class TestPaymentProof:
    def test_proof_after_manual_transfer(self, stack, event_loop):
        _to_payment(stack, event_loop, "netflix")
        _say(stack, event_loop, "2")

        response = _say(stack, event_loop, "", media="media-123")

        assert response.text == t("PROOF_RECEIVED", order_id=ORDER_1)
        session = _session(stack, event_loop)
        assert session.step == SessionStep.UPLOAD_PROOF
        assert session.payment_proof == "media-123"

    def test_waiting_reply_while_approval_pending(self, stack, event_loop):
        _to_payment(stack, event_loop, "netflix")
        _say(stack, event_loop, "2")
        assert _say(stack, event_loop, "halo").text == t("AWAITING_APPROVAL_HINT", order_id=ORDER_1)

    def test_proof_not_expected_elsewhere(self, stack, event_loop):
        _say(stack, event_loop, "menu")
        assert _say(stack, event_loop, "", media="media-1").text == t("PROOF_NOT_EXPECTED")
        assert _session(stack, event_loop).payment_proof is None


# ── history ───────────────────────────────────────────────────────────


def test_history_lists_delivered_orders(stack, event_loop):
    assert _say(stack, event_loop, "history").text == t("HISTORY_EMPTY")
    event_loop.run_until_complete(
        stack.inventory.archive_sold("netflix", "user@mail.com:pass123", "ORD-7", CUSTOMER)
    )
    response = _say(stack, event_loop, "history")
    assert "ORD-7" in response.text
    assert "Netflix Premium Account (1 Month)" in response.text

# payments/tests/test_reconciler.py

from __future__ import annotations

from decimal import Decimal
from io import StringIO
from unittest import mock

from django.core.management import call_command
from django.db import OperationalError
from django.db.models import F
from django.test import TestCase
from django.urls import reverse
from rest_framework import status
from rest_framework.test import APIClient

from ledger.models import Transaction
from ledger.services.exceptions import InvalidLedgerEntryError
from ledger.services.ledger_service import order_balance
from orders.models import Order
from orders.services.order_lifecycle import transition_order
from orders.tests.helpers import line, make_product, make_user, place_order
from payments.models import PaymentEvent
from payments.services import reconciler
from payments.services.events import parse_event
from payments.tests.helpers import (
    charge_refunded,
    checkout_completed,
    payment_failed,
    signed,
)
from promotions.models import Coupon

SESSION_ID = "cs_test_1"
INTENT_ID = "pi_test_1"


class WebhookReconcilerTests(TestCase):
    """
    GUARANTEES:
    - Unsigned or badly signed deliveries touch nothing
    - Each event is applied at most once; replays are acknowledged
    - A paid order has exactly one purchase entry
    - A refunded order has exactly one refund entry equal to the purchase
    - Anything that cannot be applied safely is parked, not guessed at
    """

    def setUp(self):
        self.client = APIClient()
        self.url = reverse("payments:stripe-webhook")

        self.user = make_user()
        self.phone = make_product(price="50.00", stock=5)
        self.order = place_order(self.user, [line(self.phone, 2)])
        Order.objects.filter(pk=self.order.pk).update(
            payment_id=SESSION_ID, checkout_session_id=SESSION_ID
        )
        self.order.refresh_from_db()

        patcher = mock.patch.object(reconciler, "backoff")
        self.backoff = patcher.start()
        self.addCleanup(patcher.stop)

    def _deliver(self, payload, **sign_kwargs):
        body, header = signed(payload, **sign_kwargs)
        return self.client.generic(
            "POST",
            self.url,
            body,
            content_type="application/json",
            HTTP_STRIPE_SIGNATURE=header,
        )

    def _pay(self, event_id="evt_paid_1", amount_total=10000):
        return self._deliver(
            checkout_completed(
                event_id,
                session_id=SESSION_ID,
                amount_total=amount_total,
                payment_intent=INTENT_ID,
            )
        )

    # ======================================================
    # SIGNATURE
    # ======================================================

    def test_bad_signature_mutates_nothing(self):
        response = self._deliver(
            checkout_completed("evt_forged", session_id=SESSION_ID, amount_total=10000),
            secret="whsec_attacker",
        )

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertFalse(PaymentEvent.objects.exists())
        self.assertFalse(Transaction.objects.exists())
        self.order.refresh_from_db()
        self.assertEqual(self.order.status, Order.STATUS_PENDING)

    def test_missing_signature_rejected(self):
        response = self.client.post(self.url, {"id": "evt_1"}, format="json")
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_malformed_signed_body_is_acknowledged(self):
        response = self._deliver({"type": "checkout.session.completed"})

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data["detail"], "malformed")
        self.assertFalse(PaymentEvent.objects.exists())

    # ======================================================
    # CHECKOUT COMPLETED
    # ======================================================

    def test_checkout_completed_marks_order_paid(self):
        response = self._pay()

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data["detail"], "processed")

        self.order.refresh_from_db()
        self.assertEqual(self.order.status, Order.STATUS_PROCESSING)
        self.assertEqual(self.order.payment_status, Order.PAYMENT_PAID)
        self.assertEqual(self.order.payment_id, INTENT_ID)
        self.assertIsNotNone(self.order.paid_at)

        tx = Transaction.objects.get(order=self.order)
        self.assertEqual(tx.type, Transaction.TYPE_PURCHASE)
        self.assertEqual(tx.amount, Decimal("100.00"))
        self.assertEqual(tx.external_ref, INTENT_ID)
        self.assertEqual(tx.user, self.user)

        inbox = PaymentEvent.objects.get(external_id="evt_paid_1")
        self.assertEqual(inbox.status, PaymentEvent.STATUS_PROCESSED)
        self.assertEqual(inbox.order, self.order)
        self.assertEqual(inbox.attempts, 1)

    def test_duplicate_checkout_replay_applies_once(self):
        first = self._pay()
        second = self._pay()

        self.assertEqual(first.status_code, status.HTTP_200_OK)
        self.assertEqual(second.status_code, status.HTTP_200_OK)
        self.assertEqual(second.data["detail"], "duplicate")

        self.assertEqual(
            self.order.status_history.filter(status=Order.STATUS_PROCESSING).count(), 1
        )
        self.assertEqual(Transaction.objects.filter(order=self.order).count(), 1)
        self.assertEqual(PaymentEvent.objects.count(), 1)

    def test_same_session_under_new_event_id_is_noop(self):
        self._pay("evt_paid_1")
        response = self._pay("evt_paid_2")

        self.assertEqual(response.data["detail"], "duplicate")
        self.assertEqual(Transaction.objects.filter(order=self.order).count(), 1)
        self.assertEqual(
            PaymentEvent.objects.get(external_id="evt_paid_2").status,
            PaymentEvent.STATUS_PROCESSED,
        )

    def test_amount_mismatch_needs_review(self):
        response = self._pay(amount_total=1)

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data["detail"], "needs_review")

        self.order.refresh_from_db()
        self.assertEqual(self.order.status, Order.STATUS_PENDING)
        self.assertFalse(Transaction.objects.exists())

        inbox = PaymentEvent.objects.get()
        self.assertEqual(inbox.status, PaymentEvent.STATUS_NEEDS_REVIEW)
        self.assertIn("expected 100.00", inbox.last_error)

    def test_unknown_session_is_acknowledged_and_unmatched(self):
        response = self._deliver(
            checkout_completed("evt_orphan", session_id="cs_unknown", amount_total=10000)
        )

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data["detail"], "unmatched")
        self.assertEqual(PaymentEvent.objects.get().status, PaymentEvent.STATUS_UNMATCHED)
        self.assertFalse(Transaction.objects.exists())

    def test_payment_for_cancelled_order_needs_review(self):
        transition_order(self.order, Order.STATUS_CANCELLED)

        response = self._pay()

        self.assertEqual(response.data["detail"], "needs_review")
        self.assertFalse(Transaction.objects.exists())

    def test_coupon_use_recorded_on_payment(self):
        Coupon.objects.create(
            code="SAVE10",
            discount_type=Coupon.TYPE_FIXED,
            discount_value=Decimal("10.00"),
        )
        order = place_order(self.user, [line(self.phone, 1)], coupon_code="SAVE10")
        Order.objects.filter(pk=order.pk).update(checkout_session_id="cs_coupon")

        self._deliver(
            checkout_completed(
                "evt_coupon", session_id="cs_coupon", amount_total=order.total_minor
            )
        )

        self.assertEqual(Coupon.objects.get(code="SAVE10").used_count, 1)

    def test_exhausted_coupon_on_paid_order_is_logged(self):
        Coupon.objects.create(
            code="ONCE",
            discount_type=Coupon.TYPE_FIXED,
            discount_value=Decimal("10.00"),
            usage_limit=1,
        )
        order = place_order(self.user, [line(self.phone, 1)], coupon_code="ONCE")
        Order.objects.filter(pk=order.pk).update(checkout_session_id="cs_once")
        Coupon.objects.filter(code="ONCE").update(used_count=1)

        with self.assertLogs("payments.services.reconciler", "WARNING") as logs:
            response = self._deliver(
                checkout_completed(
                    "evt_once", session_id="cs_once", amount_total=order.total_minor
                )
            )

        self.assertEqual(response.data["detail"], "processed")
        self.assertTrue(
            any("coupon use not counted" in message for message in logs.output)
        )
        self.assertEqual(Coupon.objects.get(code="ONCE").used_count, 1)

    def test_zero_amount_payment_needs_review(self):
        Order.objects.filter(pk=self.order.pk).update(
            discount_minor=F("subtotal_minor"), total_minor=0
        )

        response = self._pay(amount_total=0)

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data["detail"], "needs_review")
        self.assertEqual(PaymentEvent.objects.get().status, PaymentEvent.STATUS_NEEDS_REVIEW)
        self.assertFalse(Transaction.objects.exists())

        self.order.refresh_from_db()
        self.assertEqual(self.order.status, Order.STATUS_PENDING)

    def test_ledger_rejection_parks_event(self):
        with mock.patch.object(
            reconciler,
            "append_transaction",
            side_effect=InvalidLedgerEntryError("Transaction amount must be non-zero"),
        ):
            response = self._pay()

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data["detail"], "needs_review")
        self.backoff.assert_not_called()

        inbox = PaymentEvent.objects.get()
        self.assertEqual(inbox.status, PaymentEvent.STATUS_NEEDS_REVIEW)
        self.assertIn("non-zero", inbox.last_error)

        self.order.refresh_from_db()
        self.assertEqual(self.order.status, Order.STATUS_PENDING)

    # ======================================================
    # PAYMENT FAILED
    # ======================================================

    def test_payment_failed_cancels_pending_order(self):
        response = self._deliver(
            payment_failed(
                "evt_failed",
                payment_intent="pi_declined",
                metadata={"order_number": self.order.order_number},
            )
        )

        self.assertEqual(response.data["detail"], "processed")

        self.order.refresh_from_db()
        self.assertEqual(self.order.status, Order.STATUS_CANCELLED)
        self.assertEqual(self.order.payment_status, Order.PAYMENT_FAILED)
        self.assertIn("declined", self.order.status_history.last().note)

        self.phone.refresh_from_db()
        self.assertEqual(self.phone.stock, 5)

    def test_payment_failed_after_payment_is_noop(self):
        self._pay()

        self._deliver(
            payment_failed("evt_failed_late", payment_intent=INTENT_ID)
        )

        self.order.refresh_from_db()
        self.assertEqual(self.order.status, Order.STATUS_PROCESSING)

    # ======================================================
    # REFUNDS
    # ======================================================

    def _refund(self, event_id="evt_refund_1", amount=10000):
        return self._deliver(
            charge_refunded(event_id, payment_intent=INTENT_ID, amount_refunded=amount)
        )

    def test_full_refund(self):
        self._pay()
        response = self._refund()

        self.assertEqual(response.data["detail"], "processed")

        self.order.refresh_from_db()
        self.assertEqual(self.order.status, Order.STATUS_REFUNDED)
        self.assertEqual(self.order.payment_status, Order.PAYMENT_REFUNDED)

        refund = Transaction.objects.get(order=self.order, type=Transaction.TYPE_REFUND)
        self.assertEqual(refund.amount, Decimal("-100.00"))
        self.assertEqual(refund.external_ref, "ch_test_1")
        self.assertEqual(order_balance(self.order), Decimal("0.00"))

    def test_refund_replay_creates_no_second_refund(self):
        self._pay()
        self._refund("evt_refund_1")
        again = self._refund("evt_refund_1")
        redelivered = self._refund("evt_refund_2")

        self.assertEqual(again.data["detail"], "duplicate")
        self.assertEqual(redelivered.data["detail"], "duplicate")
        self.assertEqual(
            Transaction.objects.filter(order=self.order, type=Transaction.TYPE_REFUND).count(),
            1,
        )
        self.assertEqual(
            self.order.status_history.filter(status=Order.STATUS_REFUNDED).count(), 1
        )

    def test_partial_refund_needs_review(self):
        self._pay()
        response = self._refund(amount=2500)

        self.assertEqual(response.data["detail"], "needs_review")
        self.assertFalse(
            Transaction.objects.filter(type=Transaction.TYPE_REFUND).exists()
        )
        self.order.refresh_from_db()
        self.assertEqual(self.order.status, Order.STATUS_PROCESSING)

    def test_refund_without_purchase_needs_review(self):
        Order.objects.filter(pk=self.order.pk).update(payment_id=INTENT_ID)

        response = self._refund()

        self.assertEqual(response.data["detail"], "needs_review")
        self.assertFalse(Transaction.objects.exists())

    def test_refund_of_shipped_order_recorded_and_flagged(self):
        self._pay()
        self.order.refresh_from_db()
        transition_order(self.order, Order.STATUS_SHIPPED)

        response = self._refund()

        self.assertEqual(response.data["detail"], "needs_review")
        self.assertTrue(
            Transaction.objects.filter(order=self.order, type=Transaction.TYPE_REFUND).exists()
        )
        self.order.refresh_from_db()
        self.assertEqual(self.order.status, Order.STATUS_SHIPPED)

        again = self._refund("evt_refund_2")
        self.assertEqual(again.data["detail"], "duplicate")

    # ======================================================
    # UNKNOWN EVENTS
    # ======================================================

    def test_unknown_event_ignored(self):
        response = self._deliver(
            {"id": "evt_misc", "type": "customer.created", "data": {"object": {}}}
        )

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data["detail"], "ignored")
        self.assertEqual(PaymentEvent.objects.get().status, PaymentEvent.STATUS_IGNORED)

    # ======================================================
    # TRANSIENT STORE ERRORS
    # ======================================================

    def test_transient_error_is_retried(self):
        real_apply = reconciler._apply
        calls = {"n": 0}

        def flaky_apply(event, inbox_id):
            calls["n"] += 1
            if calls["n"] == 1:
                raise OperationalError("database is locked")
            return real_apply(event, inbox_id)

        with mock.patch.object(reconciler, "_apply", side_effect=flaky_apply):
            response = self._pay()

        self.assertEqual(response.data["detail"], "processed")
        self.backoff.assert_called_once_with(1)
        self.assertEqual(PaymentEvent.objects.get().attempts, 2)

    def test_persistent_error_parks_event(self):
        with mock.patch.object(
            reconciler, "_apply", side_effect=OperationalError("database is locked")
        ):
            response = self._pay()

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data["detail"], "needs_review")
        self.assertEqual(self.backoff.call_count, reconciler.max_retries())

        inbox = PaymentEvent.objects.get()
        self.assertEqual(inbox.status, PaymentEvent.STATUS_NEEDS_REVIEW)
        self.assertEqual(inbox.attempts, reconciler.max_retries() + 1)
        self.assertIn("locked", inbox.last_error)

        self.order.refresh_from_db()
        self.assertEqual(self.order.status, Order.STATUS_PENDING)

    def test_inbox_write_failure_asks_for_redelivery(self):
        with mock.patch.object(
            reconciler, "_record", side_effect=OperationalError("database is locked")
        ):
            response = self._pay()

        self.assertEqual(response.status_code, status.HTTP_503_SERVICE_UNAVAILABLE)
        self.assertFalse(response.data["ok"])
        self.assertEqual(self.backoff.call_count, reconciler.max_retries())
        self.assertFalse(PaymentEvent.objects.exists())

        self.order.refresh_from_db()
        self.assertEqual(self.order.status, Order.STATUS_PENDING)

        response = self._pay()

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data["detail"], "processed")

    def test_transient_inbox_write_error_is_retried(self):
        real_record = reconciler._record
        calls = {"n": 0}

        def flaky_record(event, payload):
            calls["n"] += 1
            if calls["n"] == 1:
                raise OperationalError("database is locked")
            return real_record(event, payload)

        with mock.patch.object(reconciler, "_record", side_effect=flaky_record):
            response = self._pay()

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data["detail"], "processed")
        self.backoff.assert_called_once_with(1)
        self.assertEqual(PaymentEvent.objects.count(), 1)


class ReplayCommandTests(TestCase):
    def setUp(self):
        self.user = make_user()
        self.order = place_order(self.user, [line(make_product(), 2)])

        patcher = mock.patch.object(reconciler, "backoff")
        patcher.start()
        self.addCleanup(patcher.stop)

    def test_unmatched_event_applied_on_replay(self):
        payload = checkout_completed("evt_early", session_id="cs_late", amount_total=10000)
        result = reconciler.process_event(parse_event(payload), payload=payload)
        self.assertEqual(result.outcome, reconciler.OUTCOME_UNMATCHED)

        Order.objects.filter(pk=self.order.pk).update(checkout_session_id="cs_late")
        call_command("replay_payment_events", stdout=StringIO())

        self.order.refresh_from_db()
        self.assertEqual(self.order.status, Order.STATUS_PROCESSING)
        self.assertEqual(
            PaymentEvent.objects.get(external_id="evt_early").status,
            PaymentEvent.STATUS_PROCESSED,
        )

    def test_dry_run_changes_nothing(self):
        payload = checkout_completed("evt_early", session_id="cs_late", amount_total=10000)
        reconciler.process_event(parse_event(payload), payload=payload)
        Order.objects.filter(pk=self.order.pk).update(checkout_session_id="cs_late")

        call_command("replay_payment_events", "--dry-run", stdout=StringIO())

        self.order.refresh_from_db()
        self.assertEqual(self.order.status, Order.STATUS_PENDING)

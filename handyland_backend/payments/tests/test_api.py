# payments/tests/test_api.py

from __future__ import annotations

from unittest import mock

from django.test import TestCase
from django.urls import reverse
from rest_framework import status
from rest_framework.test import APIClient

from ledger.models import Transaction
from ledger.services.ledger_service import append_transaction
from orders.models import Order
from orders.services.order_lifecycle import transition_order
from orders.tests.helpers import line, make_product, make_user, place_order
from payments.services.exceptions import PaymentProviderError

SESSION = {"id": "cs_test_9", "url": "https://checkout.stripe.com/c/pay/cs_test_9"}


class PaymentSessionApiTests(TestCase):
    """
    GUARANTEES:
    - Only the owner can start checkout, and only while pending
    - The session reference is stored on the order
    - Provider outages surface as 502 and leave the order untouched
    """

    def setUp(self):
        self.client = APIClient()
        self.user = make_user()
        self.order = place_order(self.user, [line(make_product(), 1)])
        self.client.force_authenticate(user=self.user)

        self.url = reverse("payments:payment-session")

        patcher = mock.patch(
            "payments.services.checkout.create_checkout_session", return_value=SESSION
        )
        self.create_session = patcher.start()
        self.addCleanup(patcher.stop)

    def test_requires_authentication(self):
        self.client.force_authenticate(user=None)
        response = self.client.post(self.url, {"order_id": str(self.order.id)}, format="json")
        self.assertEqual(response.status_code, status.HTTP_401_UNAUTHORIZED)

    def test_session_created_and_stored(self):
        response = self.client.post(self.url, {"order_id": str(self.order.id)}, format="json")

        self.assertEqual(response.status_code, status.HTTP_200_OK, response.data)
        self.assertEqual(response.data["session_id"], "cs_test_9")
        self.assertEqual(response.data["url"], SESSION["url"])

        self.order.refresh_from_db()
        self.assertEqual(self.order.payment_id, "cs_test_9")
        self.assertEqual(self.order.checkout_session_id, "cs_test_9")
        self.assertEqual(self.order.status, Order.STATUS_PENDING)

    def test_other_users_order_not_found(self):
        theirs = place_order(make_user("other"), [line(make_product(), 1)])

        response = self.client.post(self.url, {"order_id": str(theirs.id)}, format="json")

        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)
        self.create_session.assert_not_called()

    def test_non_pending_order_conflict(self):
        transition_order(self.order, Order.STATUS_CANCELLED)

        response = self.client.post(self.url, {"order_id": str(self.order.id)}, format="json")

        self.assertEqual(response.status_code, status.HTTP_409_CONFLICT)
        self.assertEqual(response.data["current_status"], "cancelled")
        self.create_session.assert_not_called()

    def test_provider_failure_is_bad_gateway(self):
        self.create_session.side_effect = PaymentProviderError("Stripe URLError: timed out")

        response = self.client.post(self.url, {"order_id": str(self.order.id)}, format="json")

        self.assertEqual(response.status_code, status.HTTP_502_BAD_GATEWAY)
        self.order.refresh_from_db()
        self.assertEqual(self.order.checkout_session_id, "")

    def test_invalid_order_id(self):
        response = self.client.post(self.url, {"order_id": "not-a-uuid"}, format="json")
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)


class RefundRequestApiTests(TestCase):
    """
    GUARANTEES:
    - Only staff can request a refund
    - Only a paid, not yet refunded order reaches the provider
    - The request itself writes nothing; the charge.refunded event does
    """

    def setUp(self):
        self.client = APIClient()
        self.customer = make_user()
        self.staff = make_user("staff", is_staff=True)
        self.order = place_order(self.customer, [line(make_product(), 1)])
        self.client.force_authenticate(user=self.staff)

        self.url = reverse("payments:payment-refund")

        patcher = mock.patch(
            "payments.services.refunds.create_refund",
            return_value={"id": "re_test_1", "status": "pending"},
        )
        self.create_refund = patcher.start()
        self.addCleanup(patcher.stop)

    def _mark_paid(self):
        transition_order(
            self.order, Order.STATUS_PROCESSING, extra_fields={"payment_id": "pi_test_1"}
        )
        append_transaction(
            order=self.order,
            type=Transaction.TYPE_PURCHASE,
            amount=self.order.total,
            payment_method="card",
            external_ref="pi_test_1",
            user=self.customer,
        )

    def test_customers_cannot_refund(self):
        self._mark_paid()
        self.client.force_authenticate(user=self.customer)

        response = self.client.post(self.url, {"order_id": str(self.order.id)}, format="json")

        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)
        self.create_refund.assert_not_called()

    def test_paid_order_refund_is_requested(self):
        self._mark_paid()

        response = self.client.post(
            self.url, {"order_id": str(self.order.id), "reason": "duplicate"}, format="json"
        )

        self.assertEqual(response.status_code, status.HTTP_202_ACCEPTED, response.data)
        self.assertEqual(response.data, {"refund_id": "re_test_1", "status": "pending"})
        self.assertEqual(self.create_refund.call_args.kwargs["payment_intent_id"], "pi_test_1")
        self.assertEqual(self.create_refund.call_args.kwargs["reason"], "duplicate")

        self.order.refresh_from_db()
        self.assertEqual(self.order.status, Order.STATUS_PROCESSING)
        self.assertFalse(
            Transaction.objects.filter(order=self.order, type=Transaction.TYPE_REFUND).exists()
        )

    def test_unpaid_order_conflict(self):
        response = self.client.post(self.url, {"order_id": str(self.order.id)}, format="json")

        self.assertEqual(response.status_code, status.HTTP_409_CONFLICT)
        self.assertEqual(response.data["current_status"], "pending")
        self.create_refund.assert_not_called()

    def test_already_refunded_conflict(self):
        self._mark_paid()
        append_transaction(
            order=self.order,
            type=Transaction.TYPE_REFUND,
            amount=-self.order.total,
            payment_method="card",
            external_ref="ch_test_1",
            user=self.customer,
        )

        response = self.client.post(self.url, {"order_id": str(self.order.id)}, format="json")

        self.assertEqual(response.status_code, status.HTTP_409_CONFLICT)
        self.create_refund.assert_not_called()

    def test_provider_failure_is_bad_gateway(self):
        self._mark_paid()
        self.create_refund.side_effect = PaymentProviderError("Stripe URLError: timed out")

        response = self.client.post(self.url, {"order_id": str(self.order.id)}, format="json")

        self.assertEqual(response.status_code, status.HTTP_502_BAD_GATEWAY)

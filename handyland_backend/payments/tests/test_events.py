# payments/tests/test_events.py

from __future__ import annotations

from django.test import SimpleTestCase

from payments.services.events import (
    ChargeRefunded,
    CheckoutCompleted,
    PaymentFailed,
    UnknownEvent,
    decode_payload,
    parse_event,
)
from payments.services.exceptions import MalformedEvent
from payments.tests.helpers import charge_refunded, checkout_completed, payment_failed


class ParseEventTests(SimpleTestCase):
    def test_checkout_completed(self):
        event = parse_event(
            checkout_completed("evt_1", session_id="cs_1", amount_total=12599, payment_intent="pi_1")
        )

        self.assertIsInstance(event, CheckoutCompleted)
        self.assertEqual(event.session_id, "cs_1")
        self.assertEqual(event.payment_intent_id, "pi_1")
        self.assertEqual(event.amount_total, 12599)

    def test_payment_failed(self):
        event = parse_event(
            payment_failed("evt_2", payment_intent="pi_2", metadata={"order_number": "HL-1"})
        )

        self.assertIsInstance(event, PaymentFailed)
        self.assertEqual(event.payment_intent_id, "pi_2")
        self.assertEqual(event.metadata["order_number"], "HL-1")
        self.assertEqual(event.reason, "Your card was declined.")

    def test_charge_refunded(self):
        event = parse_event(charge_refunded("evt_3", payment_intent="pi_3", amount_refunded=500))

        self.assertIsInstance(event, ChargeRefunded)
        self.assertEqual(event.charge_id, "ch_test_1")
        self.assertEqual(event.amount_refunded, 500)

    def test_unknown_type(self):
        event = parse_event({"id": "evt_4", "type": "customer.created", "data": {"object": {}}})

        self.assertIsInstance(event, UnknownEvent)
        self.assertEqual(event.event_type, "customer.created")

    def test_missing_id_or_type(self):
        with self.assertRaises(MalformedEvent):
            parse_event({"type": "charge.refunded"})

    def test_non_integer_amount(self):
        payload = checkout_completed("evt_5", session_id="cs_5", amount_total="12.99")
        with self.assertRaises(MalformedEvent):
            parse_event(payload)

    def test_body_must_be_json_object(self):
        for body in (b"not json", b"[1, 2]", b"\xff"):
            with self.subTest(body=body), self.assertRaises(MalformedEvent):
                decode_payload(body)

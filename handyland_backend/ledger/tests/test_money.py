# ledger/tests/test_money.py

from decimal import Decimal

from django.test import SimpleTestCase

from ledger.services.exceptions import InvalidMoneyError
from ledger.services.money import decimal_to_minor, minor_to_decimal, money


class MoneyConversionTests(SimpleTestCase):
    def test_round_trip_minor_units(self):
        for minor in (0, 1, 99, 100, 12599, -12599, 10**12):
            self.assertEqual(decimal_to_minor(minor_to_decimal(minor)), minor)

    def test_round_trip_two_place_decimals(self):
        for value in ("0.00", "0.01", "5.99", "115.99", "125.99", "-42.10"):
            amount = Decimal(value)
            self.assertEqual(minor_to_decimal(decimal_to_minor(amount)), amount)

    def test_half_up_rounding(self):
        self.assertEqual(decimal_to_minor("0.005"), 1)
        self.assertEqual(decimal_to_minor("1.234"), 123)
        self.assertEqual(money("2.675"), Decimal("2.68"))

    def test_floats_use_their_shortest_repr(self):
        self.assertEqual(decimal_to_minor(0.1 + 0.2), 30)
        self.assertEqual(decimal_to_minor(125.99), 12599)

    def test_blank_reads_as_zero(self):
        self.assertEqual(decimal_to_minor(None), 0)
        self.assertEqual(money(""), Decimal("0.00"))

    def test_invalid_values_rejected(self):
        for bad in ("abc", "NaN", "Infinity", True):
            with self.assertRaises(InvalidMoneyError):
                decimal_to_minor(bad)

    def test_minor_units_must_be_integral(self):
        with self.assertRaises(InvalidMoneyError):
            minor_to_decimal(Decimal("1.5"))

        with self.assertRaises(InvalidMoneyError):
            minor_to_decimal(False)

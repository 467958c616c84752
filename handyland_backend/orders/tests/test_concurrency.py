# orders/tests/test_concurrency.py

"""
Concurrent order creation against a real database.

The in-memory SQLite test database shares one cache across threads and
raises "table is locked" instead of waiting, so these run only on a server
backend. Point TEST_DATABASE_URL at Postgres to run them.
"""

from __future__ import annotations

import re
import threading
import unittest
from concurrent.futures import ThreadPoolExecutor

from django.db import connection
from django.test import TransactionTestCase

from orders.models import Order, SequenceCounter
from orders.services.exceptions import InsufficientStockError
from orders.services.sequence import allocate_next
from orders.tests.helpers import line, make_product, make_user, place_order

WORKERS = 8


def _run_together(fn, count):
    """Start `count` calls of fn(i) at the same moment; return their results or exceptions."""
    barrier = threading.Barrier(count)

    def worker(i):
        try:
            barrier.wait(timeout=10)
            return fn(i)
        except Exception as exc:
            return exc
        finally:
            connection.close()

    with ThreadPoolExecutor(max_workers=count) as pool:
        return list(pool.map(worker, range(count)))


@unittest.skipIf(
    connection.vendor == "sqlite", "needs a database that serialises concurrent writers"
)
class ConcurrentOrderTests(TransactionTestCase):
    """
    GUARANTEES:
    - N simultaneous orders against stock K < N: exactly K succeed
    - Stock ends at 0 and never goes negative
    - Simultaneous allocations in one scope never repeat a value
    """

    def setUp(self):
        self.user = make_user()

    def test_k_of_n_concurrent_orders_succeed(self):
        phone = make_product(stock=3)

        results = _run_together(
            lambda _i: place_order(self.user, [line(phone, 1)]), WORKERS
        )

        created = [r for r in results if isinstance(r, Order)]
        failures = [r for r in results if isinstance(r, InsufficientStockError)]
        unexpected = [r for r in results if not isinstance(r, (Order, InsufficientStockError))]

        self.assertEqual(unexpected, [])
        self.assertEqual(len(created), 3)
        self.assertEqual(len(failures), WORKERS - 3)
        self.assertEqual(Order.objects.count(), 3)

        phone.refresh_from_db()
        self.assertEqual(phone.stock, 0)

    def test_concurrent_orders_get_distinct_consecutive_numbers(self):
        phone = make_product(stock=WORKERS)

        results = _run_together(
            lambda _i: place_order(self.user, [line(phone, 1)]), WORKERS
        )

        self.assertTrue(all(isinstance(r, Order) for r in results), results)

        numbers = [r.order_number for r in results]
        self.assertEqual(len(set(numbers)), WORKERS)

        suffixes = sorted(int(re.match(r"^HL-\d{8}-(\d+)$", n).group(1)) for n in numbers)
        self.assertEqual(suffixes, list(range(suffixes[0], suffixes[0] + WORKERS)))

    def test_concurrent_allocations_are_unique(self):
        results = _run_together(
            lambda _i: allocate_next("order", "HL-20250314"), WORKERS
        )

        self.assertTrue(all(isinstance(r, int) for r in results), results)
        self.assertEqual(sorted(results), list(range(1, WORKERS + 1)))
        self.assertEqual(
            SequenceCounter.objects.get(entity_type="order", scope_key="HL-20250314").value,
            WORKERS,
        )

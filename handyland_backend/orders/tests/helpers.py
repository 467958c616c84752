# orders/tests/helpers.py

"""
Shared fixtures for order/payment tests.
"""

from __future__ import annotations

from decimal import Decimal

from django.contrib.auth import get_user_model

from catalog.models import Accessory, Product
from orders.services.order_service import create_order

User = get_user_model()

# Free-shipping threshold above the 120.00 test basket so the flat fee applies.
FEE_APPLIES = {
    "NUMBER_PREFIX": "HL",
    "FREE_SHIPPING_THRESHOLD": "150.00",
    "DEFAULT_SHIPPING_FEE": "5.99",
    "TAX_RATE": "0.00",
    "TOTAL_TOLERANCE": "0.01",
    "SEQUENCE_MAX_ATTEMPTS": 5,
}


def make_user(username="customer", *, is_staff=False):
    return User.objects.create_user(
        username=username,
        email=f"{username}@example.com",
        password="pass",
        is_staff=is_staff,
    )


def make_product(name="Refurbished Phone", price="50.00", stock=10):
    return Product.objects.create(name=name, price=Decimal(price), stock=stock)


def make_accessory(name="Fast Charger", price="20.00", stock=10):
    return Accessory.objects.create(name=name, price=Decimal(price), stock=stock)


def shipping_address(**overrides):
    address = {
        "full_name": "Jane Doe",
        "email": "jane@example.com",
        "phone": "+4915112345678",
        "street": "Hauptstrasse 1",
        "city": "Berlin",
        "zip_code": "10115",
        "country": "DE",
    }
    address.update(overrides)
    return address


def line(item, quantity, item_type="product"):
    return {"item_type": item_type, "item_id": str(item.id), "quantity": quantity}


def place_order(user, items, **kwargs):
    kwargs.setdefault("shipping_address", shipping_address())
    kwargs.setdefault("payment_method", "stripe")
    return create_order(actor=user, items=items, **kwargs)

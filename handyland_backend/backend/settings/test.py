"""
PATH: backend/settings/test.py

TEST SETTINGS
- SQLite in memory, or TEST_DATABASE_URL when set (concurrency tests need it)
- Fast password hashing
- Known webhook secret so tests can sign payloads
- Throttling off (tests hammer endpoints)
"""

from __future__ import annotations

from .base import *  # noqa: F403
from .base import PAYMENTS, REST_FRAMEWORK, env

DEBUG = False

DATABASES = {
    "default": env.db(
        "TEST_DATABASE_URL",
        default="sqlite://:memory:",
    )
}

PASSWORD_HASHERS = ["django.contrib.auth.hashers.MD5PasswordHasher"]

EMAIL_BACKEND = "django.core.mail.backends.locmem.EmailBackend"

PAYMENTS["STRIPE"]["SECRET_KEY"] = "sk_test_handyland"
PAYMENTS["STRIPE"]["WEBHOOK_SECRET"] = "whsec_test_handyland"

REST_FRAMEWORK = {
    **REST_FRAMEWORK,
    "DEFAULT_THROTTLE_CLASSES": (),
    "DEFAULT_THROTTLE_RATES": {
        **REST_FRAMEWORK["DEFAULT_THROTTLE_RATES"],
        "order_write": "10000/min",
        "webhook": "10000/min",
    },
}

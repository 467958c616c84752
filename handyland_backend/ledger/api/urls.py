# ledger/api/urls.py

"""
LEDGER API URLS

Base path (mounted in backend/urls.py):
    /api/ledger/
"""

from django.urls import path

from ledger.api.views import TransactionListView

app_name = "ledger"

urlpatterns = [
    path("transactions/", TransactionListView.as_view(), name="transaction-list"),
]

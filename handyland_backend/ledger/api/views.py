# ledger/api/views.py

"""
LEDGER API (READ-ONLY)

GET /api/ledger/transactions/
- Authenticated user sees their own rows
- Staff may pass ?order=<uuid> to inspect any order's ledger
"""

from __future__ import annotations

from drf_spectacular.utils import extend_schema
from rest_framework.generics import ListAPIView
from rest_framework.permissions import IsAuthenticated

from ledger.api.serializers import TransactionSerializer
from ledger.models import Transaction


@extend_schema(tags=["Ledger"])
class TransactionListView(ListAPIView):
    permission_classes = [IsAuthenticated]
    serializer_class = TransactionSerializer
    filterset_fields = ["type", "order"]

    def get_queryset(self):
        qs = Transaction.objects.select_related("order").order_by("-created_at")
        user = self.request.user
        if getattr(user, "is_staff", False) and self.request.query_params.get("order"):
            return qs
        return qs.filter(user=user)

from __future__ import annotations

from django.contrib import admin

from .models import Earning, Payout


@admin.register(Payout)
class PayoutAdmin(admin.ModelAdmin):
    list_display = ("id", "provider_id", "amount", "currency", "payment_provider", "status", "transaction_ref", "created_at")
    list_filter = ("status", "payment_provider", "currency")
    search_fields = ("id", "provider_id", "transaction_ref", "account_name")
    date_hierarchy = "created_at"
    # Status changes go through the queue, never through the form
    readonly_fields = (
        "id", "status", "transaction_ref", "metadata", "failure_reason",
        "created_at", "updated_at", "processed_at",
    )


@admin.register(Earning)
class EarningAdmin(admin.ModelAdmin):
    list_display = ("id", "provider_id", "booking_id", "amount", "currency", "status", "payout", "created_at")
    list_filter = ("status", "currency")
    search_fields = ("provider_id", "booking_id")
    raw_id_fields = ("payout",)
    readonly_fields = ("created_at", "updated_at")

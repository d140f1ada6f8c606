from django.contrib import admin

from .models import Wallet, Transaction, Commission, DriverEarnings, AdminEarnings


@admin.register(Wallet)
class WalletAdmin(admin.ModelAdmin):
    list_display = ("user", "role", "balance", "updated_at")
    list_filter = ("role",)
    search_fields = ("user__username",)
    readonly_fields = ("balance", "updated_at")


@admin.register(Transaction)
class TransactionAdmin(admin.ModelAdmin):
    list_display = ("reference", "user", "role", "type", "amount", "status", "method", "booking", "created_at")
    list_filter = ("status", "type", "method", "role")
    search_fields = ("reference", "gateway_txn_id", "user__username")
    readonly_fields = ("created_at", "updated_at")


@admin.register(Commission)
class CommissionAdmin(admin.ModelAdmin):
    list_display = ("driver", "percentage", "created_at")
    search_fields = ("driver__username",)


@admin.register(DriverEarnings)
class DriverEarningsAdmin(admin.ModelAdmin):
    list_display = ("driver", "booking", "gross_fare", "commission_amount", "net_earnings", "trip_date")
    search_fields = ("driver__username", "booking__id")


@admin.register(AdminEarnings)
class AdminEarningsAdmin(admin.ModelAdmin):
    list_display = ("booking", "driver", "gross_fare", "commission_earned", "commission_percentage", "trip_date")
    search_fields = ("booking__id", "driver__username")

from django.contrib import admin

from .models import Order


@admin.register(Order)
class OrderAdmin(admin.ModelAdmin):
    list_display = ['order_number', 'customer_phone', 'total_amount', 'payment_status', 'checkout_request_id', 'created_at']
    list_filter = ['payment_status', 'created_at']
    search_fields = ['order_number', 'checkout_request_id', 'customer_phone']
    ordering = ['-created_at']
    readonly_fields = ['checkout_request_id', 'payment_metadata', 'created_at', 'updated_at']

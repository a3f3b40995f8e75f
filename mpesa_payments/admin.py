from django.contrib import admin

from .models import MpesaCallback


@admin.register(MpesaCallback)
class MpesaCallbackAdmin(admin.ModelAdmin):
    list_display = ['checkout_request_id', 'result_code', 'result_desc', 'outcome', 'created_at']
    list_filter = ['outcome', 'result_code', 'created_at']
    search_fields = ['checkout_request_id', 'merchant_request_id']
    ordering = ['-created_at']
    readonly_fields = [f.name for f in MpesaCallback._meta.fields]

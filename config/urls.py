"""
URL configuration for the winery payments backend.
"""
from django.contrib import admin
from django.urls import include, path

admin.site.site_header = "Winery Payments Admin"
admin.site.site_title = "Winery Payments Admin Portal"

urlpatterns = [
    path('admin/', admin.site.urls),
    path('api/orders/', include('orders.urls')),
    path('api/payments/mpesa/', include('mpesa_payments.urls')),
]

"""
URL mappings for the billing API.

Trailing slashes are omitted, as for the rest of the project's routes.
"""
from django.urls import path, include

from .auth_views import login_view, jwt_refresh_view, jwt_logout_view
from .views import health
from .views.invoices import invoice_list_create
from .views.payments import billed_period_create, payment_list_create, payment_cancel, payment_refunds
from .views.ranges import invoice_ranges, range_status, range_activate, range_retire
from .views.stays import (
    stay_admit,
    stay_detail,
    stay_change_rate,
    stay_discharge,
    stay_pending_days,
    stay_partial_payment,
)


urlpatterns = [
    path('metrics', include('django_prometheus.urls')),
    path('healthz', health.healthz),
    # Authentication
    path('api/auth/login', login_view, name='login_view'),
    path('api/auth/refresh', jwt_refresh_view, name='jwt_refresh_view'),
    path('api/auth/logout', jwt_logout_view, name='jwt_logout_view'),
    # Invoice ranges
    path('api/invoice-ranges', invoice_ranges),
    path('api/invoice-ranges/status', range_status),
    path('api/invoice-ranges/<int:pk>/activate', range_activate),
    path('api/invoice-ranges/<int:pk>/retire', range_retire),
    # Invoices
    path('api/invoices', invoice_list_create),
    # Stays
    path('api/stays', stay_admit),
    path('api/stays/<int:pk>', stay_detail),
    path('api/stays/<int:pk>/rate', stay_change_rate),
    path('api/stays/<int:pk>/discharge', stay_discharge),
    path('api/stays/<int:pk>/pending-days', stay_pending_days),
    path('api/stays/<int:pk>/partial-payment', stay_partial_payment),
    # Payments and billed periods
    path('api/billed-periods', billed_period_create),
    path('api/payments', payment_list_create),
    path('api/payments/<int:pk>/cancel', payment_cancel),
    path('api/payments/<int:pk>/refunds', payment_refunds),
]

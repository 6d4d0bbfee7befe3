from django.urls import path

from .views import (
    CancelOrderView,
    CommitOrderView,
    CourierWebhookView,
    DeclineOrderView,
    OrdersCollectionView,
    PaymentWebhookView,
    QuotesView,
    RefreshTrackingView,
    RetrieveOrderView,
)

app_name = "orders"

urlpatterns = [
    path("quotes/", QuotesView.as_view(), name="quotes"),
    path("orders/", OrdersCollectionView.as_view(), name="orders-collection"),  # GET list / POST create
    path("orders/<uuid:oid>/", RetrieveOrderView.as_view(), name="orders-detail"),
    path("orders/<uuid:oid>/cancel/", CancelOrderView.as_view(), name="orders-cancel"),
    path("orders/<uuid:oid>/decline/", DeclineOrderView.as_view(), name="orders-decline"),
    path("orders/<uuid:oid>/commit/", CommitOrderView.as_view(), name="orders-commit"),
    path("orders/<uuid:oid>/tracking/", RefreshTrackingView.as_view(), name="orders-tracking"),
    path("webhooks/payments/", PaymentWebhookView.as_view(), name="webhooks-payments"),
    path("webhooks/courier/", CourierWebhookView.as_view(), name="webhooks-courier"),
]

"""HTTP views for the orders app.

Views are kept intentionally small: they validate requests (via Pydantic),
map them to domain requests, delegate to the saga service or the rate
aggregator, and return an HTTP response.

The views obtain a configured ``OrderSagaService`` from
``providers.get_order_service()``, which returns HTTP adapter-backed ports
or in-process stubs depending on runtime settings. Tests patch the provider
function to inject controlled services.

Every domain error carries its own HTTP status (``SagaError.http_status``)
and is returned as ``{"detail": <code>, "message": <context>}``. Any other
exception means a downstream service is unreachable and maps to 503.
"""

import json
import logging

from django.conf import settings
from django.core.paginator import Paginator
from pydantic import ValidationError
from rest_framework import status
from rest_framework.response import Response
from rest_framework.throttling import ScopedRateThrottle
from rest_framework.views import APIView

from . import providers
from .domain import SagaResult
from .errors import Forbidden, NotFound, SagaError
from .repository import DjangoDirectory, OrderRepository, to_domain
from .schemas import (
    CreateOrderDTO,
    OrderReadDTO,
    PaymentWebhookDTO,
    QuoteOut,
    QuoteRequestIn,
    ReasonDTO,
    TrackingOut,
)
from .webhooks import verify_signature

logger = logging.getLogger("orders.api")


def _error(e: SagaError) -> Response:
    body = {"detail": str(e)}
    if e.detail:
        body["message"] = e.detail
    return Response(body, status=e.http_status)


def _validation_error(e: ValidationError) -> Response:
    return Response(
        {"detail": "VALIDATION_FAILED", "errors": e.errors(include_url=False, include_context=False)},
        status=status.HTTP_400_BAD_REQUEST,
    )


def _unavailable(action: str) -> Response:
    logger.exception("%s failed on a downstream service", action)
    return Response({"detail": "UPSTREAM_UNAVAILABLE"}, status=status.HTTP_503_SERVICE_UNAVAILABLE)


def _unauthenticated() -> Response:
    return Response({"detail": "UNAUTHENTICATED"}, status=status.HTTP_401_UNAUTHORIZED)


def _order_body(result: SagaResult) -> dict:
    body = OrderReadDTO.from_domain(result.order).model_dump(mode="json")
    body["warnings"] = list(result.warnings)
    if result.refund is not None:
        body["refund"] = {
            "success": result.refund.success,
            "refund_id": result.refund.refund_id,
            "amount_cents": result.refund.amount_cents,
        }
    if result.tracking is not None:
        body["tracking"] = TrackingOut.from_domain(result.tracking).model_dump(mode="json")
    return body


class QuotesView(APIView):
    """Delivery quotes for a checkout. Never fails because of the courier."""

    throttle_classes = [ScopedRateThrottle]
    throttle_scope = "quotes"

    def post(self, request):
        """Return quotes sorted by cost.

        Returns:
            Response: 200 with ``{"quotes": [...], "simulated": bool}``, 400
            for malformed sides or a locker provider mismatch.
        """
        try:
            dto = QuoteRequestIn.model_validate(request.data)
            quote_request = dto.to_domain()
            quotes = providers.get_rate_aggregator().get_quotes(quote_request)
        except ValidationError as e:
            return _validation_error(e)
        except SagaError as e:
            return _error(e)

        results = [QuoteOut.from_domain(q).model_dump(mode="json") for q in quotes]
        return Response(
            {"quotes": results, "simulated": any(q.simulated for q in quotes)},
            status=status.HTTP_200_OK,
        )


class OrdersCollectionView(APIView):
    """List the caller's orders and run the order creation saga."""

    throttle_classes = [ScopedRateThrottle]

    def get_throttles(self):
        # DRF evaluates throttles in initial(), before get/post
        self.throttle_scope = "orders_list" if self.request.method == "GET" else "orders_create"
        return [throttle() for throttle in self.throttle_classes]

    def get(self, request):
        actor_id = request.actor_id
        if not actor_id:
            return _unauthenticated()

        profile = DjangoDirectory().get_profile(actor_id)
        qs = OrderRepository().list_for_user(actor_id, include_all=bool(profile and profile.is_admin))
        status_filter = request.GET.get("status")
        if status_filter:
            qs = qs.filter(status=status_filter)

        try:
            page = int(request.GET.get("page", 1))
            page_size = min(int(request.GET.get("page_size", 20)), 100)
        except ValueError:
            return Response({"detail": "VALIDATION_FAILED"}, status=status.HTTP_400_BAD_REQUEST)
        p = Paginator(qs, max(page_size, 1))
        page_obj = p.get_page(page)

        results = [OrderReadDTO.from_domain(to_domain(o)).model_dump(mode="json") for o in page_obj.object_list]
        return Response(
            {
                "count": p.count,
                "page": page_obj.number,
                "page_size": page_size,
                "results": results,
            },
            status=200,
        )

    def post(self, request):
        """Create an order for the calling buyer.

        Returns:
            Response: One of the following responses.
            - 201 with the order when it was created.
            - 200 with the existing order when the same payment reference
              (or an active order for the same item) already exists.
            - 400 for DTO validation errors or a locker provider mismatch.
            - 404 when the buyer, seller or item is unknown.
            - 409 with {detail: "ITEM_UNAVAILABLE"} when the item is sold.
            - 422 with {detail: "MISSING_DELIVERY_INFO"}.
            - 503 with {detail: "UPSTREAM_UNAVAILABLE"} when upstream
              services are unavailable.
        """
        actor_id = request.actor_id
        if not actor_id:
            return _unauthenticated()

        try:
            dto = CreateOrderDTO.model_validate(request.data)
        except ValidationError as e:
            return _validation_error(e)

        service = providers.get_order_service()
        try:
            result = service.create_order(dto.to_request(actor_id))
        except SagaError as e:
            return _error(e)
        except Exception:
            return _unavailable("create_order")

        code = status.HTTP_201_CREATED if result.created else status.HTTP_200_OK
        return Response(_order_body(result), status=code)


class RetrieveOrderView(APIView):
    throttle_classes = [ScopedRateThrottle]
    throttle_scope = "orders_detail"

    def get(self, request, oid):
        actor_id = request.actor_id
        if not actor_id:
            return _unauthenticated()

        service = providers.get_order_service()
        order = service.store.get(str(oid))
        if order is None:
            return _error(NotFound())
        if actor_id not in (order.buyer_id, order.seller_id):
            profile = service.directory.get_profile(actor_id)
            if not (profile and profile.is_admin):
                return _error(Forbidden())

        dto = OrderReadDTO.from_domain(order)
        return Response(dto.model_dump(mode="json"), status=200)


class OrderActionView(APIView):
    """Base for the seller/buyer actions on a single order."""

    throttle_classes = [ScopedRateThrottle]
    throttle_scope = "orders_actions"
    action_name = ""

    def run(self, service, oid: str, actor_id: str, data) -> SagaResult:
        raise NotImplementedError()

    def post(self, request, oid):
        actor_id = request.actor_id
        if not actor_id:
            return _unauthenticated()

        service = providers.get_order_service()
        try:
            result = self.run(service, str(oid), actor_id, request.data)
        except ValidationError as e:
            return _validation_error(e)
        except SagaError as e:
            return _error(e)
        except Exception:
            return _unavailable(self.action_name)
        return Response(_order_body(result), status=status.HTTP_200_OK)


class CancelOrderView(OrderActionView):
    """Cancel with refund. Buyer, seller or admin, until courier handoff."""

    action_name = "cancel_order_with_refund"

    def run(self, service, oid, actor_id, data):
        dto = ReasonDTO.model_validate(data or {})
        return service.cancel_order_with_refund(oid, actor_id, dto.reason)


class DeclineOrderView(OrderActionView):
    """Seller declines a pending order; the buyer is refunded."""

    action_name = "decline_commit"

    def run(self, service, oid, actor_id, data):
        dto = ReasonDTO.model_validate(data or {})
        return service.decline_commit(oid, actor_id, dto.reason)


class CommitOrderView(OrderActionView):
    """Seller commits to the sale; the courier shipment is booked."""

    action_name = "commit_order"

    def run(self, service, oid, actor_id, data):
        return service.commit_order(oid, actor_id)


class RefreshTrackingView(OrderActionView):
    """Poll the courier for the order's shipment. Buyer, seller or admin."""

    action_name = "refresh_tracking"

    def run(self, service, oid, actor_id, data):
        return service.refresh_tracking(oid, actor_id)


class WebhookView(APIView):
    """Signed webhook receiver. The raw body is verified before parsing."""

    throttle_classes = [ScopedRateThrottle]
    throttle_scope = "webhooks"
    secret_setting = ""

    def handle_event(self, service, payload: dict) -> dict:
        raise NotImplementedError()

    def post(self, request):
        body = request.body
        try:
            verify_signature(body, request.headers, getattr(settings, self.secret_setting, ""))
            payload = json.loads(body or b"{}")
        except SagaError as e:
            logger.warning("webhook rejected", extra={"path": request.path, "reason": e.detail})
            return _error(e)
        except ValueError:
            return Response({"detail": "VALIDATION_FAILED"}, status=status.HTTP_400_BAD_REQUEST)
        if not isinstance(payload, dict):
            return Response({"detail": "VALIDATION_FAILED"}, status=status.HTTP_400_BAD_REQUEST)

        service = providers.get_order_service()
        try:
            out = self.handle_event(service, payload)
        except ValidationError as e:
            return _validation_error(e)
        except SagaError as e:
            return _error(e)
        except Exception:
            return _unavailable(self.__class__.__name__)
        return Response({"received": True, **out}, status=status.HTTP_200_OK)


class PaymentWebhookView(WebhookView):
    secret_setting = "PAYMENTS_WEBHOOK_SECRET"

    def handle_event(self, service, payload):
        dto = PaymentWebhookDTO.model_validate(payload)
        result = service.confirm_payment(dto.payment_reference, dto.status)
        return {"order_id": result.order.id, "status": result.order.status.value}


class CourierWebhookView(WebhookView):
    secret_setting = "COURIER_WEBHOOK_SECRET"

    def handle_event(self, service, payload):
        result = service.apply_courier_event(payload)
        if result is None:
            return {"applied": False}
        return {"applied": True, "order_id": result.order.id, "status": result.order.status.value}

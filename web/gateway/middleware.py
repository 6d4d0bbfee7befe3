"""Gateway middleware: request correlation, payload limits and caller identity.

``RequestIdMiddleware`` ensures every incoming HTTP request receives a
request identifier (UUID). The identifier is read from the incoming
``X-Request-Id`` header when provided by the client, or generated
server-side otherwise. It is stored on the ``request`` object and in a
context variable so logging filters and outbound HTTP adapters can access it
without passing the value explicitly.

``ActorMiddleware`` reads the caller identity forwarded by the upstream
authentication proxy (``X-User-Id``). Authentication itself happens before
requests reach the gateway.
"""

import contextvars
import os
import uuid

from django.http import JsonResponse
from django.utils.deprecation import MiddlewareMixin

REQUEST_ID_CTX = contextvars.ContextVar("request_id", default="-")
MAX_API_BYTES = int(os.getenv("API_MAX_BYTES", str(1 * 1024 * 1024)))


class RequestIdMiddleware(MiddlewareMixin):
    """Django middleware that sets and returns a per-request identifier.

    Attributes:
        HEADER (str): The name of the incoming HTTP header (in Django's
            ``request.META`` casing) that may contain a client-provided id.
        RESPONSE_HEADER (str): The name of the header returned on responses.
    """

    HEADER = "HTTP_X_REQUEST_ID"
    RESPONSE_HEADER = "X-Request-ID"

    def process_request(self, request):
        """Populate the request with a request id and set the context var.

        Args:
            request: Django HttpRequest instance.
        """
        rid = request.META.get(self.HEADER)
        if not rid:
            rid = str(uuid.uuid4())
        request.request_id = rid
        REQUEST_ID_CTX.set(rid)

    def process_response(self, request, response):
        """Copy the request id onto the response.

        Args:
            request: Django HttpRequest (may be None in rare cases).
            response: Django HttpResponse to modify.

        Returns:
            The same HttpResponse instance with the ``X-Request-ID`` header set.
        """
        rid = getattr(request, "request_id", REQUEST_ID_CTX.get())
        response[self.RESPONSE_HEADER] = rid
        return response


class ApiSizeLimitMiddleware(MiddlewareMixin):
    """Reject API bodies larger than ``API_MAX_BYTES`` with 413."""

    def process_request(self, request):
        if request.path.startswith("/api/"):
            clen = request.META.get("CONTENT_LENGTH")
            if clen and clen.isdigit() and int(clen) > MAX_API_BYTES:
                return JsonResponse({"detail": "PAYLOAD_TOO_LARGE"}, status=413)


class ActorMiddleware(MiddlewareMixin):
    """Expose the authenticated caller as ``request.actor_id`` (None when anonymous)."""

    HEADER = "HTTP_X_USER_ID"

    def process_request(self, request):
        actor = (request.META.get(self.HEADER) or "").strip()
        request.actor_id = actor or None

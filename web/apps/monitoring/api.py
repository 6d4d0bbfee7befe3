import logging

from django.conf import settings
from django.db import connection
from django.http import JsonResponse

from apps.orders.http_adapters import BREAKERS

logger = logging.getLogger("orders.health")


def health_view(_request):
    """Liveness plus dependency status.

    The database decides the status code; open breakers and an unconfigured
    courier are reported but do not fail the check, since the saga degrades
    around them.
    """
    db_ok = False
    try:
        with connection.cursor() as cur:
            cur.execute("SELECT 1;")
        db_ok = True
    except Exception as e:
        logger.error("health db check failed", extra={"error": str(e)})
        db_ok = False

    breakers = {name: cb.snapshot() for name, cb in BREAKERS.items()}
    courier_configured = bool((getattr(settings, "COURIER_API_KEY", "") or "").strip())

    ok = db_ok
    code = 200 if ok else 503
    return JsonResponse(
        {
            "ok": ok,
            "components": {
                "db": {"ok": db_ok},
                "breakers": breakers,
                "courier": {"configured": courier_configured, "mode": "live" if courier_configured else "simulated"},
                "adapters": "http" if getattr(settings, "USE_HTTP_ADAPTERS", True) else "stub",
            },
        },
        status=code,
    )

"""Health endpoint for the registrations gateway.

Reports the database and, when the inventory counters live in the
inventory service, that service's own ``/health``. Any failing component
turns the response into a 503 so load balancers stop routing to the node.
"""

import logging

import httpx
from django.conf import settings
from django.db import DatabaseError, connection
from django.http import JsonResponse

logger = logging.getLogger("gateway")


def _db_ok() -> bool:
    try:
        with connection.cursor() as cur:
            cur.execute("SELECT 1;")
    except DatabaseError:
        logger.exception("health: database probe failed")
        return False
    return True


def _inventory_ok() -> bool:
    url = f"{settings.INVENTORY_BASE_URL.rstrip('/')}/health"
    try:
        resp = httpx.get(url, timeout=getattr(settings, "HTTP_TIMEOUT_SECS", 2.0))
    except httpx.HTTPError:
        logger.warning("health: inventory service unreachable", extra={"url": url})
        return False
    return resp.status_code == 200


def health_view(_request):
    components = {"db": {"ok": _db_ok()}}
    if getattr(settings, "USE_HTTP_ADAPTERS", False):
        components["inventory"] = {"ok": _inventory_ok()}

    ok = all(c["ok"] for c in components.values())
    return JsonResponse({"ok": ok, "components": components}, status=200 if ok else 503)

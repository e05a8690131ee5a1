"""Gateway middleware: request correlation and request size guard.

``RequestIdMiddleware`` gives every request an id, reusing a client supplied
``X-Request-ID`` when present, and publishes it in ``REQUEST_ID_CTX`` so the
logging filter and the outgoing httpx clients can pick it up without the
request object. The id is echoed back on the response.

``ApiSizeLimitMiddleware`` refuses ``/api/`` bodies larger than
``settings.API_MAX_BYTES`` before DRF parses them.
"""

import contextvars
import uuid

from django.conf import settings
from django.http import JsonResponse
from django.utils.deprecation import MiddlewareMixin

REQUEST_ID_CTX = contextvars.ContextVar("request_id", default="-")

DEFAULT_MAX_API_BYTES = 1 * 1024 * 1024


class RequestIdMiddleware(MiddlewareMixin):
    HEADER = "HTTP_X_REQUEST_ID"
    RESPONSE_HEADER = "X-Request-ID"

    def process_request(self, request):
        rid = (request.META.get(self.HEADER) or "").strip()[:128] or str(uuid.uuid4())
        request.request_id = rid
        REQUEST_ID_CTX.set(rid)

    def process_response(self, request, response):
        rid = getattr(request, "request_id", REQUEST_ID_CTX.get())
        response[self.RESPONSE_HEADER] = rid
        return response


class ApiSizeLimitMiddleware(MiddlewareMixin):
    def process_request(self, request):
        if not request.path.startswith("/api/"):
            return None
        limit = getattr(settings, "API_MAX_BYTES", DEFAULT_MAX_API_BYTES)
        clen = request.META.get("CONTENT_LENGTH")
        if clen and clen.isdigit() and int(clen) > limit:
            return JsonResponse(
                {"detail": "PAYLOAD_TOO_LARGE", "message": f"Request body exceeds {limit} bytes"},
                status=413,
            )
        return None

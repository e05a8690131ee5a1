"""Logging filter that stamps records with the current request id."""

from logging import Filter, LogRecord

from .middleware import REQUEST_ID_CTX


class RequestIdFilter(Filter):
    """Set ``record.request_id`` from ``REQUEST_ID_CTX`` ("-" outside a request).

    Attach it to handlers so formatters can always reference ``request_id``,
    including records emitted by library code and the httpx clients.
    """

    def filter(self, record: LogRecord) -> bool:
        if not hasattr(record, "request_id"):
            record.request_id = REQUEST_ID_CTX.get()
        return True

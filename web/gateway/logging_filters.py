"""Logging filters for enriching log records with request context.

The filter injects the current request id into log records using the
ContextVar set by the gateway middleware, so saga and adapter log lines can
be correlated with the inbound request and with the downstream services
(which receive the same id as ``X-Request-ID``).
"""

from logging import Filter, LogRecord

from .middleware import REQUEST_ID_CTX


class RequestIdFilter(Filter):
    """Attach the current ``request_id`` to log records.

    If no value is present a hyphen ("-") is used so formatters can always
    reference ``%(request_id)s``. A ``request_id`` passed through ``extra``
    wins over the context value.
    """

    def filter(self, record: LogRecord) -> bool:
        if not getattr(record, "request_id", None):
            try:
                record.request_id = REQUEST_ID_CTX.get()
            except LookupError:
                record.request_id = "-"
        return True

"""Logging filters that enrich records with request context.

Attach ``RequestIdFilter`` to a handler so formatters can reference
``%(request_id)s``. Records emitted outside a request (the outbox worker,
management commands) get ``"-"``.
"""

from logging import Filter, LogRecord

from .middleware import REQUEST_ID_CTX


class RequestIdFilter(Filter):
    """Copy the current request id from ``REQUEST_ID_CTX`` onto the record."""

    def filter(self, record: LogRecord) -> bool:
        if not getattr(record, "request_id", None):
            record.request_id = REQUEST_ID_CTX.get()
        return True

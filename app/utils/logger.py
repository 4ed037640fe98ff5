import logging
import contextvars
from typing import Optional, Dict, Any

# Per-request context, propagated across async operations
request_id_context = contextvars.ContextVar('request_id', default=None)
actor_context = contextvars.ContextVar('actor_uid', default=None)


class ContextLogger(logging.LoggerAdapter):
    """
    Logger adapter that stamps every record with the current request ID and
    the acting user ID.

    Both values come from context variables set by RequestIDMiddleware and the
    authentication dependency, so call sites never pass them explicitly. A
    caller may still override either one with ``request_id=`` / ``actor=``.
    """

    def process(self, msg, kwargs):
        request_id = kwargs.pop('request_id', None) or request_id_context.get()
        actor = kwargs.pop('actor', None) or actor_context.get()

        extra: Dict[str, Any] = dict(kwargs.get('extra') or {})
        extra.setdefault('request_id', request_id or 'no-request-id')
        extra.setdefault('actor', actor or '-')
        kwargs['extra'] = extra
        return msg, kwargs


def get_logger(name: str) -> ContextLogger:
    """
    Get a context-aware logger for the specified name.

    Args:
        name: Logger name (usually __name__)

    Returns:
        ContextLogger: adapter that adds request and actor context
    """
    return ContextLogger(logging.getLogger(name), {})


def set_request_context(request_id: str):
    """Bind the request ID for the current request."""
    request_id_context.set(request_id)


def set_actor_context(uid: Optional[str]):
    """Bind the authenticated user ID for the current request."""
    actor_context.set(uid)


def clear_request_context():
    """Clear the current request context."""
    request_id_context.set(None)
    actor_context.set(None)

"""Best-effort execution of non-critical side calls."""

import inspect
import logging
from typing import Any, Awaitable, Callable, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


async def best_effort(
    call: Callable[[], Awaitable[T] | T] | Awaitable[T],
    *,
    operation: str,
    **context: Any,
) -> T | None:
    """Run a side call whose failure must not abort the primary operation.

    Accepts an awaitable or a zero-argument callable returning a value or an
    awaitable. Errors are logged at WARNING and swallowed; the result is
    ``None`` in that case.

    Args:
        call: Awaitable, or callable producing the result
        operation: Short name of the side call for the log record
        **context: Extra structured fields for the log record

    Returns:
        Result of the call, or None if it failed
    """
    try:
        result = call() if callable(call) else call
        if inspect.isawaitable(result):
            result = await result
        return result
    except Exception as e:
        logger.warning(
            f"{operation} failed (non-critical)",
            extra={
                "operation": operation,
                "error": str(e),
                "error_type": type(e).__name__,
                **context,
            },
        )
        return None

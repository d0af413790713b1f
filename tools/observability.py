"""Call instrumentation for the external collaborators (Gemini, photo downloads)."""

from __future__ import annotations

import contextlib
import inspect
import logging
import time
from functools import wraps
from typing import Any, Callable, Dict, Iterator, TypeVar

from tryon_app.logging_config import ensure_correlation_id, get_logger, log_event

LOGGER = get_logger(__name__)
F = TypeVar("F", bound=Callable[..., Any])

_MAX_LOGGED_ARGUMENTS = 6


def _argument_preview(kwargs: Dict[str, Any]) -> Dict[str, Any]:
    names = list(kwargs)
    preview = {name: kwargs[name] for name in names[:_MAX_LOGGED_ARGUMENTS]}
    if len(names) > _MAX_LOGGED_ARGUMENTS:
        preview["truncated"] = True
    return preview


@contextlib.contextmanager
def _timed_call(call_name: str, kwargs: Dict[str, Any]) -> Iterator[None]:
    correlation_id = ensure_correlation_id()
    log_event(
        LOGGER,
        logging.INFO,
        "call_started",
        call=call_name,
        correlation_id=correlation_id,
        kwargs=_argument_preview(kwargs),
    )
    started = time.perf_counter()
    try:
        yield
    except Exception:
        log_event(
            LOGGER,
            logging.ERROR,
            "call_failed",
            call=call_name,
            correlation_id=correlation_id,
            duration_ms=round((time.perf_counter() - started) * 1000, 2),
            exc_info=True,
        )
        raise
    log_event(
        LOGGER,
        logging.INFO,
        "call_completed",
        call=call_name,
        correlation_id=correlation_id,
        duration_ms=round((time.perf_counter() - started) * 1000, 2),
    )


def instrument_call(call_name: str) -> Callable[[F], F]:
    """Log started/completed/failed events, with durations, around a sync or async callable."""

    def decorator(func: F) -> F:
        if inspect.iscoroutinefunction(func):

            @wraps(func)
            async def async_wrapper(*args: Any, **kwargs: Any) -> Any:
                with _timed_call(call_name, kwargs):
                    return await func(*args, **kwargs)

            return async_wrapper  # type: ignore[return-value]

        @wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> Any:
            with _timed_call(call_name, kwargs):
                return func(*args, **kwargs)

        return wrapper  # type: ignore[return-value]

    return decorator


__all__ = ["instrument_call"]

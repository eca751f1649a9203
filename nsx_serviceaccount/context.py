"""Utilities for tracing reconcile and garbage collection passes."""

import contextvars
from contextlib import contextmanager
import logging
from time import perf_counter
from typing import Generator


_LOGGER = logging.getLogger(__name__)

# No public API
__all__: list[str] = []


trace: contextvars.ContextVar[list[str]] = contextvars.ContextVar("trace")


@contextmanager
def trace_context(name: str) -> Generator[None, None, None]:
    """Log entry and exit of a named step with the elapsed time.

    Steps nest within the current asyncio task, so a reconcile of one key
    never shows up in the label of another. A step left by an exception is
    logged as failed together with the error, which is re-raised.
    """
    stack = trace.get([])
    token = trace.set(stack + [name])
    label = " > ".join(stack + [name])
    start = perf_counter()
    _LOGGER.debug("[Trace] > %s", label)
    try:
        yield
    except Exception as err:
        _LOGGER.debug(
            "[Trace] ! %s failed (%0.3fs): %s", label, perf_counter() - start, err
        )
        raise
    else:
        _LOGGER.debug("[Trace] < %s (%0.3fs)", label, perf_counter() - start)
    finally:
        trace.reset(token)


def current_trace() -> list[str]:
    """Return the names of the steps currently being traced."""
    return list(trace.get([]))

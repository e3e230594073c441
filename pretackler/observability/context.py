"""Run ID context for batch tracing.

A batch run gets one ID; every log line emitted while it is active carries
it, including lines from worker slots, since ContextVars are copied into
each task the scheduler spawns.

Usage:
    with correlation_id_context() as run_id:
        await scheduler.run()
"""

import uuid
from contextlib import contextmanager
from contextvars import ContextVar
from typing import Generator, Optional

_correlation_id_var: ContextVar[Optional[str]] = ContextVar("correlation_id", default=None)


def new_run_id() -> str:
    return uuid.uuid4().hex[:12]


def get_correlation_id() -> Optional[str]:
    return _correlation_id_var.get()


@contextmanager
def correlation_id_context(
    corr_id: Optional[str] = None,
) -> Generator[str, None, None]:
    """Scope a run ID; the previous value is restored on exit.

    Args:
        corr_id: Explicit ID. If None, a fresh one is generated.

    Yields:
        The ID active inside the block.
    """
    if corr_id is None:
        corr_id = new_run_id()

    token = _correlation_id_var.set(corr_id)
    try:
        yield corr_id
    finally:
        _correlation_id_var.reset(token)

"""
GenerationInvoker -- contract for the invoice-creation collaborator.

Contract:
    ``generate(tenant_id, tenant_name)`` creates (or starts creating) one
    invoice and returns a ``GenerationResult`` carrying a reference id, or
    raises with a human-readable message.  Pricing and rendering live
    behind this interface.

    ``invoke_with_timeout()`` bounds one call.  A timed-out call raises
    ``GenerationTimeoutError`` and is handled exactly like any other
    generation failure by the caller.

Non-goals:
    - Does NOT cancel the underlying work on timeout; the worker thread is
      abandoned and finishes on its own.  ``abandoned_worker_count()`` and
      the ``abandoned_workers`` log field show how many are still running.
"""

from __future__ import annotations

import threading
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeoutError
from typing import Protocol, runtime_checkable
from uuid import UUID

from billing_kernel.exceptions import GenerationTimeoutError
from billing_kernel.logging_config import get_logger

from billing_scheduler.domain.types import GenerationResult

logger = get_logger("scheduler.invoker")

_abandoned_lock = threading.Lock()
_abandoned_workers = 0


def abandoned_worker_count() -> int:
    """Timed-out generation calls whose worker thread is still running."""
    with _abandoned_lock:
        return _abandoned_workers


def _abandon(future, tenant_id: UUID) -> int:
    global _abandoned_workers
    with _abandoned_lock:
        _abandoned_workers += 1
        count = _abandoned_workers

    def _finished(_) -> None:
        global _abandoned_workers
        with _abandoned_lock:
            _abandoned_workers -= 1
            remaining = _abandoned_workers
        logger.info(
            "abandoned_generation_finished",
            extra={"tenant_id": str(tenant_id), "abandoned_workers": remaining},
        )

    future.add_done_callback(_finished)
    return count


@runtime_checkable
class GenerationInvoker(Protocol):
    """Performs invoice creation for one tenant."""

    def generate(self, tenant_id: UUID, tenant_name: str) -> GenerationResult:
        ...


def invoke_with_timeout(
    invoker: GenerationInvoker,
    tenant_id: UUID,
    tenant_name: str,
    timeout_seconds: float | None,
) -> GenerationResult:
    """Call ``invoker.generate`` and wait at most ``timeout_seconds``.

    ``None`` disables the bound and calls the invoker inline.

    Raises:
        GenerationTimeoutError: If the call does not return in time.
        Exception: Whatever the invoker raises.
    """
    if timeout_seconds is None:
        return invoker.generate(tenant_id, tenant_name)

    # One worker per call: a hung call must not queue the next tenant behind it.
    executor = ThreadPoolExecutor(
        max_workers=1, thread_name_prefix="invoice-generation",
    )
    try:
        future = executor.submit(invoker.generate, tenant_id, tenant_name)
        try:
            return future.result(timeout=timeout_seconds)
        except FutureTimeoutError:
            # The invoker itself raised TimeoutError.
            if future.done():
                raise
            abandoned = _abandon(future, tenant_id)
            logger.warning(
                "invoice_generation_timed_out",
                extra={
                    "tenant_id": str(tenant_id),
                    "timeout_seconds": timeout_seconds,
                    "abandoned_workers": abandoned,
                },
            )
            raise GenerationTimeoutError(str(tenant_id), timeout_seconds) from None
    finally:
        executor.shutdown(wait=False)

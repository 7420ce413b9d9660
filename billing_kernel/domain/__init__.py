"""billing_kernel.domain -- pure kernel abstractions (clock)."""

from billing_kernel.domain.clock import Clock, DeterministicClock, SystemClock

__all__ = ["Clock", "DeterministicClock", "SystemClock"]

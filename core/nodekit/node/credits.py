"""CreditMeter: per-invocation usage-cost accumulator.

The meter starts at the node's declared cost and is read once when the result
payload is built. Sibling tool calls on the same node may run concurrently
(threads or asyncio tasks), so every mutation goes through one lock.

Per-call adjustments are buffered in a :class:`CreditTransaction` and applied
atomically on success; a failed call leaves no charge standing.

Usage::

    meter = CreditMeter(initial=65)
    with meter.transaction() as tx:
        tx.charge(10)  # applied only if the block exits cleanly
    meter.read()  # 75
"""

from __future__ import annotations

import threading
from collections.abc import Iterator
from contextlib import contextmanager


class CreditMeter:
    """Mutable credit counter; ``None`` means the cost is unset."""

    def __init__(self, initial: int | None = 0) -> None:
        if initial is not None and initial < 0:
            raise ValueError(f"Initial credit must be non-negative, got {initial}")
        self._value = initial
        self._lock = threading.Lock()

    def read(self) -> int | None:
        with self._lock:
            return self._value

    def charge(self, amount: int) -> int:
        """Add a non-negative amount and return the new value."""
        if amount < 0:
            raise ValueError(f"charge() takes a non-negative amount, got {amount}; use adjust()")
        return self.adjust(amount)

    def adjust(self, delta: int) -> int:
        """Add a signed delta; the result is clamped at 0."""
        with self._lock:
            self._value = max(0, (self._value or 0) + delta)
            return self._value

    def set(self, amount: int) -> int:
        if amount < 0:
            raise ValueError(f"Credit must be non-negative, got {amount}")
        with self._lock:
            self._value = amount
            return self._value

    def reset(self) -> None:
        """Force the meter to 0 (no billable output)."""
        with self._lock:
            self._value = 0

    @contextmanager
    def transaction(self) -> Iterator[CreditTransaction]:
        """Buffer one call's adjustments; commit on clean exit, discard on exception."""
        tx = CreditTransaction()
        yield tx
        self._commit(tx)

    def _commit(self, tx: CreditTransaction) -> None:
        with self._lock:
            base = tx.replacement if tx.replacement is not None else self._value
            if base is None and tx.delta == 0:
                return
            self._value = max(0, (base or 0) + tx.delta)
        tx.committed = True

    def __repr__(self) -> str:
        return f"CreditMeter({self._value!r})"


class CreditTransaction:
    """Pending credit changes of one action run.

    ``set`` replaces the meter's value at commit time; ``charge``/``adjust``
    accumulate on top of it.
    """

    def __init__(self) -> None:
        self.delta = 0
        self.replacement: int | None = None
        self.committed = False

    def charge(self, amount: int) -> None:
        if amount < 0:
            raise ValueError(f"charge() takes a non-negative amount, got {amount}; use adjust()")
        self.delta += amount

    def adjust(self, delta: int) -> None:
        self.delta += delta

    def set(self, amount: int) -> None:
        if amount < 0:
            raise ValueError(f"Credit must be non-negative, got {amount}")
        self.replacement = amount
        self.delta = 0

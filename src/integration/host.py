"""
In-memory host environment for the farm.

The host plays the role of the chain the farm would normally run on:
- a monotonic clock (`now()`), advanced explicitly,
- the token ledger,
- all-or-nothing transactions over every registered component.

`transaction()` snapshots each registered component on entry and restores all
of them if an exception escapes. Nested transactions join the outermost one.
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Any, Iterator, List, Optional

from ..core.ports import Snapshottable
from .tokens import TokenLedger

logger = logging.getLogger(__name__)


class LedgerHost:
    def __init__(self, *, start_time: int = 0, tokens: Optional[TokenLedger] = None) -> None:
        if not isinstance(start_time, int) or isinstance(start_time, bool) or start_time < 0:
            raise ValueError("start_time must be a non-negative int")
        self.tokens = tokens if tokens is not None else TokenLedger()
        self._now = start_time
        self._components: List[Snapshottable] = [self.tokens]
        self._depth = 0

    # -- clock ----------------------------------------------------------

    def now(self) -> int:
        return self._now

    def set_time(self, timestamp: int) -> None:
        if not isinstance(timestamp, int) or isinstance(timestamp, bool):
            raise ValueError("timestamp must be an int")
        if timestamp < self._now:
            raise ValueError(f"clock is monotonic: {timestamp} < {self._now}")
        if self._depth:
            raise RuntimeError("cannot move the clock inside a transaction")
        self._now = timestamp

    def advance(self, seconds: int) -> int:
        if not isinstance(seconds, int) or isinstance(seconds, bool) or seconds < 0:
            raise ValueError("seconds must be a non-negative int")
        self.set_time(self._now + seconds)
        return self._now

    # -- transactions ---------------------------------------------------

    def register(self, component: Snapshottable) -> None:
        if component not in self._components:
            self._components.append(component)

    @property
    def in_transaction(self) -> bool:
        return self._depth > 0

    @contextmanager
    def transaction(self) -> Iterator[None]:
        if self._depth:
            self._depth += 1
            try:
                yield
            finally:
                self._depth -= 1
            return

        snaps: List[tuple[Snapshottable, Any]] = [(c, c.snapshot()) for c in self._components]
        self._depth = 1
        try:
            yield
        except Exception as exc:
            for component, snap in snaps:
                component.restore(snap)
            logger.warning(
                "Transaction rolled back",
                extra={"event": "host.rollback", "error": type(exc).__name__},
            )
            raise
        finally:
            self._depth = 0

    def __repr__(self) -> str:
        return f"LedgerHost(now={self._now}, components={len(self._components)})"

"""Identifier allocation shared by documents and chunks."""

from __future__ import annotations

from typing import Iterable


class IdAllocator:
    """
    Monotonic ID source for one :class:`~codecli.index.store.IndexStore`.

    Documents and chunks draw from the same counter so their IDs never
    collide.  Not thread-safe on its own: callers hold the store's write
    lock around :meth:`next` and :meth:`reset`.
    """

    def __init__(self, start: int = 1) -> None:
        if start < 1:
            raise ValueError(f"IDs start at 1, got {start}")
        self._next = start

    def next(self) -> int:
        """Return a fresh ID and advance the counter."""
        value = self._next
        self._next += 1
        return value

    def peek(self) -> int:
        """Return the ID the next call to :meth:`next` will hand out."""
        return self._next

    def reset(self, floor: int = 0) -> None:
        """Continue allocating after *floor* (``floor + 1`` comes next)."""
        self._next = max(floor, 0) + 1

    def reset_from(self, ids: Iterable[int]) -> None:
        """Continue allocating after the largest of *ids*, or from 1 if empty."""
        self.reset(max(ids, default=0))

"""PriorityHeap - fixed-capacity binary heap with in-place index updates."""
from __future__ import annotations

from typing import Generic, Protocol, TypeVar

from grid_astar.types import HeapOverflowError


class HeapItem(Protocol):
    """Item stored in a PriorityHeap.

    ``heap_index`` is owned by the heap while the item is inside it.
    ``compare_to`` returns a positive number when ``self`` should come out
    of the heap before ``other``, negative when after, zero when tied.
    """

    heap_index: int

    def compare_to(self, other: HeapItem) -> int: ...


T = TypeVar("T", bound=HeapItem)


class PriorityHeap(Generic[T]):
    """Array-backed binary heap sized once at construction.

    The highest-priority item (by ``compare_to``) sits at the root.
    Capacity never grows: size it to the largest number of items that can
    be inside at once (for a path search, the grid's cell count).
    """

    def __init__(self, capacity: int) -> None:
        if capacity < 0:
            raise ValueError(f"capacity must be >= 0, got {capacity}")
        self._items: list[T | None] = [None] * capacity
        self._count = 0

    @property
    def count(self) -> int:
        return self._count

    @property
    def capacity(self) -> int:
        return len(self._items)

    def __len__(self) -> int:
        return self._count

    def add(self, item: T) -> None:
        """Insert an item. Raises HeapOverflowError when the heap is full."""
        if self._count >= len(self._items):
            raise HeapOverflowError(
                f"PriorityHeap capacity {len(self._items)} exceeded"
            )
        item.heap_index = self._count
        self._items[self._count] = item
        self._count += 1
        self._sort_up(item)

    def remove_first(self) -> T:
        """Pop the highest-priority item.

        Precondition: ``count > 0``. Check it before calling; an empty heap
        raises IndexError.
        """
        if self._count == 0:
            raise IndexError("remove_first() called on an empty PriorityHeap")
        first = self._items[0]
        self._count -= 1
        last = self._items[self._count]
        self._items[self._count] = None
        if self._count > 0:
            last.heap_index = 0
            self._items[0] = last
            self._sort_down(last)
        return first

    def peek(self) -> T:
        if self._count == 0:
            raise IndexError("peek() called on an empty PriorityHeap")
        return self._items[0]

    def update_item(self, item: T) -> None:
        """Restore heap order after ``item``'s priority increased."""
        self._sort_up(item)

    def contains(self, item: T) -> bool:
        """O(1) membership through the item's stored heap index.

        Only meaningful for items that were added to this heap instance.
        """
        index = item.heap_index
        return 0 <= index < self._count and self._items[index] is item

    def __contains__(self, item: T) -> bool:
        return self.contains(item)

    def clear(self) -> None:
        for i in range(self._count):
            self._items[i] = None
        self._count = 0

    def _sort_up(self, item: T) -> None:
        items = self._items
        while item.heap_index > 0:
            parent = items[(item.heap_index - 1) // 2]
            if item.compare_to(parent) > 0:
                self._swap(item, parent)
            else:
                break

    def _sort_down(self, item: T) -> None:
        items = self._items
        while True:
            left = item.heap_index * 2 + 1
            right = left + 1
            if left >= self._count:
                return
            swap_index = left
            if right < self._count and items[left].compare_to(items[right]) < 0:
                swap_index = right
            if item.compare_to(items[swap_index]) < 0:
                self._swap(item, items[swap_index])
            else:
                return

    def _swap(self, a: T, b: T) -> None:
        self._items[a.heap_index] = b
        self._items[b.heap_index] = a
        a.heap_index, b.heap_index = b.heap_index, a.heap_index

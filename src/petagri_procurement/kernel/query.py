"""Lazy, restartable result sequences for list operations"""

from collections.abc import Callable, Iterable, Iterator
from typing import Generic, TypeVar

T = TypeVar("T")


class RestartableQuery(Generic[T]):
    """
    Iterable that re-runs its query every time iteration starts

    Nothing is fetched until iteration begins, and each new iteration
    reflects the store as it is at that moment. Callers can stop early
    without leaking resources.

    Example:
        >>> q = RestartableQuery(lambda: iter([1, 2, 3]))
        >>> list(q), list(q)
        ([1, 2, 3], [1, 2, 3])
    """

    def __init__(self, factory: Callable[[], Iterable[T]]) -> None:
        self._factory = factory

    def __iter__(self) -> Iterator[T]:
        return iter(self._factory())

    def first(self) -> T | None:
        for item in self:
            return item
        return None

    def count(self) -> int:
        return sum(1 for _ in self)

    def __repr__(self) -> str:
        return f"RestartableQuery({self._factory!r})"

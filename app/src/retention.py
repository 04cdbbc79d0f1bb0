from typing import Iterator, List, Sequence, TypeVar

T = TypeVar("T")


def thinSession(pointIds: Sequence[T], keepEveryNth: int) -> List[T]:
    """
    Pick the location points of a session that can be deleted.

    The first and last points are always kept, as is every point whose index
    is a multiple of `keepEveryNth`. Sessions with `keepEveryNth` points or
    fewer are left untouched.

    Args:
        pointIds (Sequence): Point ids in chronological order.
        keepEveryNth (int): Sampling stride, must be positive.

    Returns:
        List: Ids to delete, in chronological order.

    Example:
        >>> len(thinSession(list(range(23)), 5))
        17
    """
    total = len(pointIds)
    if total <= keepEveryNth:
        return []
    return [
        pointIds[i] for i in range(1, total - 1) if i % keepEveryNth != 0
    ]


def batched(items: Sequence[T], size: int) -> Iterator[List[T]]:
    """Yield consecutive slices of at most `size` items."""
    for start in range(0, len(items), size):
        yield list(items[start : start + size])

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Optional, Sequence, TypeVar, Union

T = TypeVar("T")


class BoundaryNotFound(LookupError):
    def __init__(self, name: str) -> None:
        super().__init__(f'Chapter titled "{name}" not found')
        self.name = name


@dataclass(frozen=True)
class IndexBoundary:
    value: int


@dataclass(frozen=True)
class NameBoundary:
    name: str


Boundary = Union[IndexBoundary, NameBoundary]


def make_boundary(index: Optional[int], name: Optional[str]) -> Optional[Boundary]:
    name = (name or "").strip()
    if name:
        return NameBoundary(name)
    if index is None:
        return None
    return IndexBoundary(int(index))


def index_by_name(items: Sequence[T], selector: Callable[[T], str], name: str) -> int:
    target = name.strip().casefold()
    for idx, item in enumerate(items, start=1):
        if (selector(item) or "").strip().casefold() == target:
            return idx
    raise BoundaryNotFound(name.strip())


def resolve_start(
    boundary: Boundary, items: Sequence[T], selector: Callable[[T], str]
) -> int:
    if isinstance(boundary, NameBoundary):
        return index_by_name(items, selector, boundary.name)
    value = boundary.value
    return value if value >= 0 else len(items) + value + 1


def resolve_end(
    boundary: Boundary, items: Sequence[T], selector: Callable[[T], str]
) -> int:
    if isinstance(boundary, NameBoundary):
        return index_by_name(items, selector, boundary.name)
    value = boundary.value
    # -1 is the last item, the same way a negative start counts.
    return value if value >= 0 else len(items) + value + 1


def slice_toc(
    items: Sequence[T],
    selector: Callable[[T], str],
    start: Optional[int] = None,
    end: Optional[int] = None,
    start_name: Optional[str] = None,
    end_name: Optional[str] = None,
) -> list[T]:
    """Select the chapters between two 1-based, inclusive boundaries.

    Each boundary is a position (negative counts from the end) or a title,
    and a title overrides a position given for the same side. Positions
    outside the table are clamped by slicing, so an inverted range is empty.
    """
    start_boundary = make_boundary(start, start_name)
    end_boundary = make_boundary(end, end_name)

    first = 1
    last = len(items)
    if start_boundary is not None:
        first = max(1, resolve_start(start_boundary, items, selector))
    if end_boundary is not None:
        last = resolve_end(end_boundary, items, selector)
    if start_boundary is None and end_boundary is None:
        return list(items)
    return list(items[first - 1 : max(0, last)])

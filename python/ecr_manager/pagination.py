"""Drain cursor-based listing APIs into complete in-memory lists"""

from typing import Callable, Iterator, List, Optional, Sequence, Tuple, TypeVar

T = TypeVar("T")

FetchPage = Callable[[Optional[str]], Tuple[Sequence[T], Optional[str]]]


def iter_pages(fetch_page: FetchPage) -> Iterator[Sequence[T]]:
    """Yield every page of a listing, starting without a cursor.

    ``fetch_page(cursor)`` returns ``(items, next_cursor)``; iteration stops at
    the first response without a next cursor. An empty-string cursor counts as
    no next cursor, the same as ``None``. Errors from ``fetch_page``
    propagate unchanged.
    """
    cursor = None
    while True:
        items, cursor = fetch_page(cursor)
        yield items
        if not cursor:
            return


def collect_all(fetch_page: FetchPage) -> List[T]:
    """Return the concatenation of all pages, in page order.

    Either every page is fetched or the first failing page's exception is
    raised; partial results are never returned.
    """
    collected: List[T] = []
    for items in iter_pages(fetch_page):
        collected.extend(items)
    return collected

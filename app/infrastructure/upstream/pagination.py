"""
Cursor pagination as a lazy sequence of pages.
"""

from dataclasses import dataclass
from typing import AsyncIterator, Awaitable, Callable, Generic, List, Optional, Tuple, TypeVar

from app.core.logging import get_logger

logger = get_logger(__name__)

T = TypeVar("T")

FetchPage = Callable[[Optional[str]], Awaitable[Tuple[List[T], Optional[str]]]]


@dataclass
class Page(Generic[T]):
    """One fetched page and the cursor for the next one."""

    number: int
    items: List[T]
    next_cursor: Optional[str]


async def iterate_pages(fetch: FetchPage, max_pages: int, label: str = "pages") -> AsyncIterator[Page]:
    """
    Yield pages in upstream order until there is no cursor, a page is empty,
    or `max_pages` pages have been fetched.

    A failing fetch raises out of the iteration; pages already yielded stay
    with the consumer.
    """
    cursor: Optional[str] = None
    for number in range(1, max_pages + 1):
        items, next_cursor = await fetch(cursor)
        yield Page(number=number, items=items, next_cursor=next_cursor)

        if not items or not next_cursor:
            return
        cursor = next_cursor

    logger.warning(f"Stopped enumerating {label} at the {max_pages}-page cap")

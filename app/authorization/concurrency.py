import asyncio
from app.config.settings import settings
from typing import Awaitable, Callable, Iterable, List, Optional, TypeVar

T = TypeVar("T")
R = TypeVar("R")


async def gather_bounded(
    items: Iterable[T],
    func: Callable[[T], Awaitable[R]],
    limit: Optional[int] = None
) -> List[R]:
    """Run func over items concurrently, at most `limit` at a time. Results keep input order."""
    semaphore = asyncio.Semaphore(max(1, limit or settings.permission_check_concurrency))

    async def run(item: T) -> R:
        async with semaphore:
            return await func(item)

    return await asyncio.gather(*(run(item) for item in items))

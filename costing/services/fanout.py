from __future__ import annotations

import asyncio
from typing import Any, Awaitable, List


async def gather_all(*awaitables: Awaitable[Any]) -> List[Any]:
    """Await every call, then raise the first failure.

    Unlike a bare ``asyncio.gather`` no sibling is left running unobserved
    when one of them fails.
    """
    results = await asyncio.gather(*awaitables, return_exceptions=True)
    for result in results:
        if isinstance(result, BaseException):
            raise result
    return list(results)

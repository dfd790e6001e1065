"""
Lift — helpers for lifting store calls into LazyCoroResult.

Re-exports catching_async from combinators.lift with nitebite additions.
"""

from __future__ import annotations

from collections.abc import Callable, Awaitable

from kungfu import LazyCoroResult, Result, Error

from combinators.lift import catching_async


# ═══════════════════════════════════════════════════════════════════════════════
# nitebite-specific helpers
# ═══════════════════════════════════════════════════════════════════════════════

def from_result[T, E](result: Result[T, E]) -> LazyCoroResult[T, E]:
    """Lift a Result into LazyCoroResult."""
    async def _run() -> Result[T, E]:
        return result
    return LazyCoroResult(_run)


def guarded[T, E](
    result_fn: Callable[[], Awaitable[Result[T, E]]],
    on_error: Callable[[Exception], E],
) -> LazyCoroResult[T, E]:
    """
    Like catching_async, for calls that already return Result.

    Store methods report failures as Error values but a driver can still
    raise; both end up as Error.

    Example:
        lookup = guarded(
            lambda: catalog.get_product(pid),
            on_error=lambda e: StoreError(str(e), e),
        )
    """
    async def _run() -> Result[T, E]:
        try:
            return await result_fn()
        except Exception as e:
            return Error(on_error(e))
    return LazyCoroResult(_run)


__all__ = (
    "catching_async",
    "from_result",
    "guarded",
)

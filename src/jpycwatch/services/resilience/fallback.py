"""Primary/fallback execution with outcome tracking.

Primary and fallback each get their own deadline (``source_timeout``), so a
hanging primary still leaves time for the fallback inside the overall
per-operation deadline of the parallel variant.
"""

import asyncio
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass, field
from enum import Enum
from typing import Generic, TypeVar

import structlog

from jpycwatch.constants.resilience import PARALLEL_DEFAULT_TIMEOUT_SECONDS
from jpycwatch.core.exceptions import RequestTimeoutError
from jpycwatch.services.resilience.parallel import (
    ParallelRequest,
    ParallelStatus,
    execute_parallel_with_timeout,
)

log = structlog.get_logger(__name__)

T = TypeVar("T")


class FallbackStatus(str, Enum):
    """Which path satisfied the request."""

    SUCCESS = "success"
    FALLBACK_USED = "fallback_used"
    FAILED = "failed"


@dataclass
class FallbackResult(Generic[T]):
    """Outcome of a primary/fallback pair.

    Both errors are kept when both paths fail. ``error`` is the error to
    surface: the fallback's when one ran, the primary's otherwise.
    """

    status: FallbackStatus
    data: T | None = None
    used_fallback: bool = False
    primary_error: BaseException | None = None
    fallback_error: BaseException | None = None
    name: str | None = None

    @property
    def ok(self) -> bool:
        return self.status != FallbackStatus.FAILED

    @property
    def error(self) -> BaseException | None:
        return self.fallback_error or self.primary_error


@dataclass
class FallbackOperation(Generic[T]):
    """Named primary with an optional fallback, for the parallel variant.

    Attributes:
        timeout: Deadline for the whole pair (None uses the shared default).
        source_timeout: Deadline for each of primary and fallback on its own.
    """

    name: str
    primary: Callable[[], Awaitable[T]]
    fallback: Callable[[], Awaitable[T]] | None = None
    timeout: float | None = None
    source_timeout: float | None = None


@dataclass
class ParallelFallbackResult(Generic[T]):
    """Aggregate of several fallback-wrapped operations."""

    results: list[FallbackResult[T]] = field(default_factory=list)
    has_any_success: bool = False
    has_partial_success: bool = False
    success_count: int = 0
    fallback_count: int = 0
    failure_count: int = 0


async def _within(
    source: Callable[[], Awaitable[T]], source_timeout: float | None, label: str
) -> T:
    if source_timeout is None:
        return await source()
    try:
        return await asyncio.wait_for(source(), timeout=source_timeout)
    except TimeoutError as e:
        raise RequestTimeoutError(label, source_timeout) from e


async def execute_with_fallback(
    primary: Callable[[], Awaitable[T]],
    fallback: Callable[[], Awaitable[T]] | None = None,
    name: str | None = None,
    source_timeout: float | None = None,
) -> FallbackResult[T]:
    """Try ``primary``, then ``fallback`` if it fails.

    Never raises for operation failures; the outcome is in the result.
    Cancellation still propagates. With ``source_timeout`` set, a primary
    that runs past it counts as failed and the fallback gets a fresh
    deadline of the same length.
    """
    label = name or "operation"
    try:
        data = await _within(primary, source_timeout, f"{label} (primary)")
        return FallbackResult(status=FallbackStatus.SUCCESS, data=data, name=name)
    except asyncio.CancelledError:
        raise
    except Exception as primary_error:
        if fallback is None:
            log.debug("fallback_unavailable", operation=name, error=str(primary_error))
            return FallbackResult(
                status=FallbackStatus.FAILED, primary_error=primary_error, name=name
            )

        log.info("fallback_attempt", operation=name, primary_error=str(primary_error))
        try:
            data = await _within(fallback, source_timeout, f"{label} (fallback)")
        except asyncio.CancelledError:
            raise
        except Exception as fallback_error:
            log.warning(
                "fallback_failed",
                operation=name,
                primary_error=str(primary_error),
                fallback_error=str(fallback_error),
            )
            return FallbackResult(
                status=FallbackStatus.FAILED,
                used_fallback=True,
                primary_error=primary_error,
                fallback_error=fallback_error,
                name=name,
            )
        return FallbackResult(
            status=FallbackStatus.FALLBACK_USED,
            data=data,
            used_fallback=True,
            primary_error=primary_error,
            name=name,
        )


async def execute_parallel_with_fallback(
    operations: Sequence[FallbackOperation[T]],
    timeout: float = PARALLEL_DEFAULT_TIMEOUT_SECONDS,
    cancel_event: asyncio.Event | None = None,
) -> ParallelFallbackResult[T]:
    """Run fallback-wrapped operations concurrently.

    A timeout or abort of the whole pair counts as a failure with the
    orchestrator's error as ``primary_error``.
    """

    def wrap(op: FallbackOperation[T]) -> Callable[[], Awaitable[FallbackResult[T]]]:
        return lambda: execute_with_fallback(
            op.primary, op.fallback, name=op.name, source_timeout=op.source_timeout
        )

    execution = await execute_parallel_with_timeout(
        [ParallelRequest(name=op.name, fn=wrap(op), timeout=op.timeout) for op in operations],
        timeout=timeout,
        cancel_event=cancel_event,
    )

    results: list[FallbackResult[T]] = []
    for settled in execution.results:
        if settled.status == ParallelStatus.SUCCESS and settled.data is not None:
            results.append(settled.data)
        else:
            results.append(
                FallbackResult(
                    status=FallbackStatus.FAILED,
                    primary_error=settled.error,
                    name=settled.name,
                )
            )

    success_count = sum(1 for r in results if r.status == FallbackStatus.SUCCESS)
    fallback_count = sum(1 for r in results if r.status == FallbackStatus.FALLBACK_USED)
    failure_count = sum(1 for r in results if r.status == FallbackStatus.FAILED)
    has_any_success = success_count + fallback_count > 0

    return ParallelFallbackResult(
        results=results,
        has_any_success=has_any_success,
        has_partial_success=has_any_success and failure_count > 0,
        success_count=success_count,
        fallback_count=fallback_count,
        failure_count=failure_count,
    )

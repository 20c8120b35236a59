"""Run named async operations concurrently with per-operation deadlines.

Every operation settles independently as success, error or timeout; the
orchestrator always waits for all of them and reports per-operation detail
plus aggregate counts. An optional ``asyncio.Event`` acts as a cooperative
cancellation token: once set, operations still in flight stop being
awaited and are recorded as aborted errors.
"""

import asyncio
import time
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Generic, TypeVar

import structlog

from jpycwatch.constants.resilience import PARALLEL_DEFAULT_TIMEOUT_SECONDS
from jpycwatch.core.exceptions import RequestAbortedError, RequestTimeoutError

log = structlog.get_logger(__name__)

T = TypeVar("T")

ProgressCallback = Callable[[int, int], None]


class ParallelStatus(str, Enum):
    """Outcome of one parallel operation."""

    SUCCESS = "success"
    ERROR = "error"
    TIMEOUT = "timeout"


@dataclass
class ParallelRequest(Generic[T]):
    """A named operation.

    Attributes:
        name: Identifier used in results and logs.
        fn: Zero-argument coroutine function.
        timeout: Deadline override in seconds (None uses the shared default).
    """

    name: str
    fn: Callable[[], Awaitable[T]]
    timeout: float | None = None


@dataclass
class ParallelRequestResult(Generic[T]):
    """Settled outcome of one operation."""

    name: str
    status: ParallelStatus
    data: T | None = None
    error: BaseException | None = None
    duration: float = 0.0

    @property
    def ok(self) -> bool:
        return self.status == ParallelStatus.SUCCESS


@dataclass
class ParallelExecutionResult(Generic[T]):
    """All outcomes, in request order, with aggregate counts."""

    results: list[ParallelRequestResult[T]] = field(default_factory=list)
    success_count: int = 0
    failure_count: int = 0
    timeout_count: int = 0
    duration: float = 0.0


async def _settle(
    request: ParallelRequest[T],
    timeout: float,
    cancel_event: asyncio.Event | None,
) -> ParallelRequestResult[T]:
    async def invoke() -> T:
        # Calling inside the coroutine turns synchronous raises into task errors
        return await request.fn()

    start = time.perf_counter()
    task = asyncio.ensure_future(invoke())
    waiters: set[asyncio.Future[Any]] = {task}
    cancel_waiter: asyncio.Future[Any] | None = None
    if cancel_event is not None:
        cancel_waiter = asyncio.ensure_future(cancel_event.wait())
        waiters.add(cancel_waiter)

    try:
        done, _ = await asyncio.wait(
            waiters, timeout=timeout, return_when=asyncio.FIRST_COMPLETED
        )
    except asyncio.CancelledError:
        task.cancel()
        raise
    finally:
        if cancel_waiter is not None and not cancel_waiter.done():
            cancel_waiter.cancel()

    duration = time.perf_counter() - start

    if task in done:
        error = task.exception()
        if error is None:
            return ParallelRequestResult(
                name=request.name,
                status=ParallelStatus.SUCCESS,
                data=task.result(),
                duration=duration,
            )
        log.debug("parallel_request_failed", request=request.name, error=str(error))
        return ParallelRequestResult(
            name=request.name,
            status=ParallelStatus.ERROR,
            error=error,
            duration=duration,
        )

    task.cancel()

    if cancel_waiter is not None and cancel_waiter in done:
        log.debug("parallel_request_aborted", request=request.name)
        return ParallelRequestResult(
            name=request.name,
            status=ParallelStatus.ERROR,
            error=RequestAbortedError(request.name),
            duration=duration,
        )

    log.warning("parallel_request_timeout", request=request.name, timeout=timeout)
    return ParallelRequestResult(
        name=request.name,
        status=ParallelStatus.TIMEOUT,
        error=RequestTimeoutError(request.name, timeout),
        duration=duration,
    )


async def execute_parallel_with_timeout(
    requests: Sequence[ParallelRequest[T]],
    timeout: float = PARALLEL_DEFAULT_TIMEOUT_SECONDS,
    cancel_event: asyncio.Event | None = None,
    on_progress: ProgressCallback | None = None,
) -> ParallelExecutionResult[T]:
    """Run every request concurrently and wait for all of them to settle.

    Args:
        requests: Named operations.
        timeout: Default deadline per operation, in seconds.
        cancel_event: Cooperative cancellation token.
        on_progress: Called as ``on_progress(completed, total)`` after each settles.

    Returns:
        Per-request results in input order plus success/failure/timeout counts.

    Raises:
        RequestAbortedError: If ``cancel_event`` is already set before start.
    """
    if cancel_event is not None and cancel_event.is_set():
        raise RequestAbortedError("parallel requests")

    start = time.perf_counter()
    total = len(requests)
    completed = 0

    async def run(request: ParallelRequest[T]) -> ParallelRequestResult[T]:
        nonlocal completed
        deadline = request.timeout if request.timeout is not None else timeout
        result = await _settle(request, deadline, cancel_event)
        completed += 1
        if on_progress is not None:
            on_progress(completed, total)
        return result

    results = list(await asyncio.gather(*(run(request) for request in requests)))

    execution = ParallelExecutionResult(
        results=results,
        success_count=sum(1 for r in results if r.status == ParallelStatus.SUCCESS),
        failure_count=sum(1 for r in results if r.status == ParallelStatus.ERROR),
        timeout_count=sum(1 for r in results if r.status == ParallelStatus.TIMEOUT),
        duration=time.perf_counter() - start,
    )
    log.debug(
        "parallel_requests_settled",
        total=total,
        success=execution.success_count,
        failed=execution.failure_count,
        timed_out=execution.timeout_count,
        duration_ms=round(execution.duration * 1000, 2),
    )
    return execution


def extract_success_data(execution: ParallelExecutionResult[T]) -> dict[str, T]:
    """Map request name to payload for successful requests."""
    return {
        result.name: result.data  # type: ignore[misc]
        for result in execution.results
        if result.status == ParallelStatus.SUCCESS
    }


def extract_errors(execution: ParallelExecutionResult[T]) -> dict[str, BaseException]:
    """Map request name to error for failed and timed-out requests."""
    return {
        result.name: result.error
        for result in execution.results
        if result.status != ParallelStatus.SUCCESS and result.error is not None
    }

"""
Job dispatcher: one silent print job end-to-end.

Every ticket goes through the same path:

    created -> surface_allocated -> content_loading
        -> load_failed
        -> render_delay -> printing -> completed | print_failed
    (any point) -> timed_out

Device resolution happens right after creation; when it fails the job ends in
`no_device` without allocating a surface. The timeout is measured from job
creation and races the whole pipeline. Whatever the outcome, the job's
surface is released exactly once before the result is returned.
"""

from __future__ import annotations

import asyncio
import logging
import threading
import time
from enum import Enum
from typing import Any, Callable, List, Optional, Sequence

from kot_printer.core.config import DEFAULT_NAME_PATTERNS
from kot_printer.printing.devices import DeviceRegistry
from kot_printer.printing.errors import (
    DeviceQueryError,
    ErrorKind,
    LoadFailure,
    NoDeviceFound,
    PrintError,
    PrintFailure,
)
from kot_printer.printing.models import JobResult, TicketJob
from kot_printer.printing.selection import select_device
from kot_printer.printing.surface import PrintOptions, RenderSurface

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 20.0
DEFAULT_RENDER_DELAY = 1.5


class JobState(str, Enum):
    CREATED = "created"
    NO_DEVICE = "no_device"
    SURFACE_ALLOCATED = "surface_allocated"
    CONTENT_LOADING = "content_loading"
    LOAD_FAILED = "load_failed"
    RENDER_DELAY = "render_delay"
    PRINTING = "printing"
    COMPLETED = "completed"
    PRINT_FAILED = "print_failed"
    TIMED_OUT = "timed_out"


TERMINAL_STATES = frozenset(
    {JobState.NO_DEVICE, JobState.LOAD_FAILED, JobState.COMPLETED, JobState.PRINT_FAILED, JobState.TIMED_OUT}
)


class JobRun:
    """Mutable bookkeeping for one dispatch: state history, device, surface."""

    def __init__(self, job: TicketJob):
        self.job = job
        self.state = JobState.CREATED
        self.history: List[JobState] = [JobState.CREATED]
        self.device: Optional[str] = None
        self.surface: Optional[RenderSurface] = None
        self.releases = 0

    def transition(self, state: JobState) -> None:
        if self.state in TERMINAL_STATES:
            return
        logger.debug("job %s [%s]: %s -> %s", self.job.id, self.job.kind.value, self.state.value, state.value)
        self.state = state
        self.history.append(state)

    def release_surface(self) -> None:
        surface, self.surface = self.surface, None
        if surface is None:
            return
        self.releases += 1
        try:
            surface.release()
        except Exception:
            logger.exception("job %s: surface release failed", self.job.id)


class JobDispatcher:
    """
    Executes TicketJobs against a backend. Safe to share across concurrent
    jobs: all per-job state lives in a JobRun.
    """

    def __init__(
        self,
        backend: Any,
        registry: DeviceRegistry,
        *,
        options: Optional[PrintOptions] = None,
        timeout: float = DEFAULT_TIMEOUT,
        render_delay: float = DEFAULT_RENDER_DELAY,
        name_patterns: Sequence[str] = DEFAULT_NAME_PATTERNS,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._backend = backend
        self._registry = registry
        self.options = options or PrintOptions()
        self.timeout = float(timeout)
        self.render_delay = max(0.0, float(render_delay))
        self.name_patterns = tuple(name_patterns)
        self._clock = clock
        # Observers for tests and diagnostics; called with each finished JobRun
        self.on_finished: List[Callable[[JobRun], None]] = []

    async def dispatch(self, job: TicketJob) -> JobResult:
        """
        Run one job to a terminal state and return its result. Never raises
        for print failures; cancellation by the caller still releases the surface.
        """
        run = JobRun(job)
        remaining = self.timeout - (self._clock() - job.created_monotonic)
        logger.info("Dispatching %s job %s (target=%s)", job.kind.value, job.id, job.target_device or "auto")
        try:
            result = await asyncio.wait_for(self._execute(run), timeout=max(0.0, remaining))
        except asyncio.TimeoutError:
            run.transition(JobState.TIMED_OUT)
            result = JobResult.failed(
                job,
                ErrorKind.TIMEOUT,
                f"Print timed out after {self.timeout:g}s - printer may be busy",
                device=run.device,
            )
        except PrintError as e:
            run.transition(_failure_state(e))
            result = JobResult.failed(job, e.kind, str(e), device=run.device)
        except Exception as e:
            logger.exception("job %s: unexpected dispatch error", job.id)
            run.transition(JobState.PRINT_FAILED)
            result = JobResult.failed(job, ErrorKind.PRINT_FAILURE, f"Print execution failed: {e}", device=run.device)
        finally:
            run.release_surface()
            for cb in self.on_finished:
                try:
                    cb(run)
                except Exception:
                    logger.exception("job %s: on_finished observer failed", job.id)

        if result.success:
            logger.info("job %s printed on %s", job.id, result.device)
        else:
            logger.warning(
                "job %s failed (%s): %s", job.id, result.error_kind.value if result.error_kind else "?", result.message
            )
        return result

    async def _resolve_device(self, job: TicketJob) -> str:
        if job.target_device and job.target_device.strip():
            return job.target_device.strip()
        try:
            devices = await _call_in_daemon_thread(self._registry.get_cached_or_fresh)
        except DeviceQueryError as e:
            raise NoDeviceFound(f"No printer found ({e})") from e
        return select_device(devices, self.name_patterns).name

    async def _execute(self, run: JobRun) -> JobResult:
        job = run.job
        run.device = await self._resolve_device(job)

        run.surface = self._backend.create_surface(self.options)
        run.transition(JobState.SURFACE_ALLOCATED)

        run.transition(JobState.CONTENT_LOADING)
        try:
            await run.surface.load(job.content)
        except LoadFailure:
            raise
        except Exception as e:
            raise LoadFailure(f"Failed to load print content: {e}") from e

        # Let asynchronous layout in the surface settle before printing
        run.transition(JobState.RENDER_DELAY)
        await asyncio.sleep(self.render_delay)

        run.transition(JobState.PRINTING)
        success, reason = await self._print(run.surface, self.options.for_device(run.device))
        if not success:
            raise PrintFailure(f"Print failed: {reason or 'Print operation failed'}")

        run.transition(JobState.COMPLETED)
        return JobResult.ok(job, run.device)

    async def _print(self, surface: RenderSurface, options: PrintOptions) -> tuple[bool, Optional[str]]:
        """
        Issue the print instruction and wait for the platform callback. The
        callback may fire on any thread, and only its first call counts.
        """
        loop = asyncio.get_running_loop()
        done: asyncio.Future = loop.create_future()

        def _settle(success: bool, reason: Optional[str]) -> None:
            if not done.done():
                done.set_result((bool(success), reason))

        def _on_complete(success: bool, reason: Optional[str] = None) -> None:
            try:
                loop.call_soon_threadsafe(_settle, success, reason)
            except RuntimeError:
                # Loop already closed: the job timed out and nobody is waiting
                logger.debug("Print completion for %s arrived after the job ended", options.device_name)

        surface.print(options, _on_complete)
        return await done


async def _call_in_daemon_thread(fn: Callable[[], Any]) -> Any:
    """
    Run a blocking call on a daemon thread and await its outcome.

    Unlike asyncio.to_thread, a call that hangs (a stuck `lpstat`) does not
    hold up asyncio.run() at exit: once the job times out the thread is
    abandoned and its late result is dropped.
    """
    loop = asyncio.get_running_loop()
    done: asyncio.Future = loop.create_future()

    def _settle(value: Any, error: Optional[BaseException]) -> None:
        if done.done():
            return
        if error is not None:
            done.set_exception(error)
        else:
            done.set_result(value)

    def _post(value: Any, error: Optional[BaseException]) -> None:
        try:
            loop.call_soon_threadsafe(_settle, value, error)
        except RuntimeError:
            logger.debug("Device query finished after the job ended")

    def _run() -> None:
        try:
            value = fn()
        except Exception as e:
            _post(None, e)
            return
        _post(value, None)

    threading.Thread(target=_run, daemon=True, name="kot-printer-device-query").start()
    return await done


def _failure_state(error: PrintError) -> JobState:
    if isinstance(error, NoDeviceFound):
        return JobState.NO_DEVICE
    if isinstance(error, LoadFailure):
        return JobState.LOAD_FAILED
    return JobState.PRINT_FAILED


__all__ = ["DEFAULT_RENDER_DELAY", "DEFAULT_TIMEOUT", "JobDispatcher", "JobRun", "JobState", "TERMINAL_STATES"]

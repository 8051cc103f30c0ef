"""Background execution of expensive, resolution-sensitive work.

Dense contouring and phase-portrait sweeps run in a process pool so the
interactive caller is never blocked. Each submitted job carries a
cancellation token backed by a shared ``multiprocessing.Manager`` dict; a
cancelled job's result is discarded, and long sweeps poll the flag so they
stop early.

Every worker process builds its own ``EngineContext`` on first use, so no
cache entry ever crosses a process boundary.
"""

from __future__ import annotations

import uuid
from concurrent.futures import CancelledError, Future, ProcessPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeoutError
from dataclasses import dataclass, field
from multiprocessing import Manager
from typing import Any, Mapping

from .config import WORKER_POOL_SIZE, WORKER_TIMEOUT
from .context import EngineContext
from .logging_config import get_logger
from .types import SolverError

logger = get_logger("worker")

_PROCESS_CONTEXT: EngineContext | None = None


def _process_context() -> EngineContext:
    global _PROCESS_CONTEXT
    if _PROCESS_CONTEXT is None:
        _PROCESS_CONTEXT = EngineContext()
    return _PROCESS_CONTEXT


def _cancelled(cancel_flags: Any, job_id: str) -> bool:
    if cancel_flags is None:
        return False
    try:
        return bool(cancel_flags.get(job_id, False))
    except (OSError, EOFError, BrokenPipeError):
        # manager gone: the owner has shut down
        return True


def _cancelled_payload() -> dict[str, Any]:
    return {"ok": False, "error": "Request cancelled", "error_code": "CANCELLED"}


def _contour_task(
    job_id: str,
    cancel_flags: Any,
    expr: str,
    viewport: tuple[float, float, float, float],
    grid_size: int | None,
    scope: Mapping[str, float] | None,
) -> dict[str, Any]:
    """Worker entry point: contour ``expr`` and chain the segments into rings."""
    from .implicit import adaptive_grid_size, marching_squares, segments_to_rings

    if _cancelled(cancel_flags, job_id):
        return _cancelled_payload()
    x_min, x_max, y_min, y_max = viewport
    size = grid_size or adaptive_grid_size(x_max - x_min, y_max - y_min)
    try:
        segments = marching_squares(
            expr, x_min, x_max, y_min, y_max, size, scope=scope, context=_process_context()
        )
    except Exception as e:
        logger.error("Contour job %s failed: %s", job_id, e, exc_info=True)
        return {"ok": False, "error": str(e), "error_code": "CONTOUR_ERROR"}
    if _cancelled(cancel_flags, job_id):
        return _cancelled_payload()
    return {"ok": True, "segments": segments, "rings": segments_to_rings(segments)}


def _phase_portrait_task(
    job_id: str,
    cancel_flags: Any,
    dx_text: str,
    dy_text: str,
    viewport: tuple[float, float, float, float],
    steps: tuple[float, float],
) -> dict[str, Any]:
    """Worker entry point: seed and integrate a phase portrait."""
    from .ode import phase_portrait

    if _cancelled(cancel_flags, job_id):
        return _cancelled_payload()
    x_min, x_max, y_min, y_max = viewport
    try:
        trajectories = phase_portrait(
            dx_text,
            dy_text,
            x_min,
            x_max,
            y_min,
            y_max,
            steps[0],
            steps[1],
            context=_process_context(),
            should_stop=lambda: _cancelled(cancel_flags, job_id),
        )
    except Exception as e:
        logger.error("Phase portrait job %s failed: %s", job_id, e, exc_info=True)
        return {"ok": False, "error": str(e), "error_code": "PHASE_PORTRAIT_ERROR"}
    if _cancelled(cancel_flags, job_id):
        return _cancelled_payload()
    return {"ok": True, "trajectories": trajectories}


class CancellationToken:
    """Cancellation flag for one job, visible to the worker process."""

    def __init__(self, job_id: str, flags: Any):
        self.job_id = job_id
        self._flags = flags
        self._local = False

    def cancel(self) -> None:
        self._local = True
        if self._flags is not None:
            try:
                self._flags[self.job_id] = True
            except (OSError, EOFError, BrokenPipeError) as e:
                logger.debug("Could not publish cancellation of %s: %s", self.job_id, e)

    @property
    def cancelled(self) -> bool:
        return self._local


@dataclass
class Job:
    """Handle to background work; ``result()`` is None once cancelled."""

    id: str
    kind: str
    future: Future
    token: CancellationToken
    key: Any = None
    _runner: Any = field(default=None, repr=False)

    @property
    def cancelled(self) -> bool:
        return self.token.cancelled

    def done(self) -> bool:
        return self.future.done()

    def result(self, timeout: float | None = WORKER_TIMEOUT) -> Any:
        """Wait for the job and return its payload.

        Returns:
            Contour rings/segments dict or trajectory list, or None when the
            job was cancelled

        Raises:
            SolverError: If the worker reported an error or timed out
                (``transient=True`` for timeouts)
        """
        try:
            if self.cancelled:
                return None
            payload = self.future.result(timeout=timeout)
        except CancelledError:
            return None
        except FutureTimeoutError as e:
            self.token.cancel()
            raise SolverError(
                f"{self.kind} job timed out after {timeout}s", "TIMEOUT", transient=True
            ) from e
        finally:
            if self._runner is not None and self.future.done():
                self._runner._forget(self.id)
        if self.cancelled or payload.get("error_code") == "CANCELLED":
            return None
        if not payload.get("ok"):
            raise SolverError(payload.get("error", "Worker error"), payload.get("error_code", "WORKER_ERROR"))
        if self.kind == "contour":
            return {"segments": payload["segments"], "rings": payload["rings"]}
        return payload["trajectories"]


class BackgroundRunner:
    """Process pool for contour and phase-portrait jobs.

    Usable as a context manager; the pool and the flag manager start lazily.
    """

    def __init__(self, max_workers: int = WORKER_POOL_SIZE):
        self.max_workers = max(1, int(max_workers or 1))
        self._executor: ProcessPoolExecutor | None = None
        self._manager = None
        self._cancel_flags: Any = None

    def start(self) -> None:
        if self._executor is not None:
            return
        if self._manager is None:
            try:
                self._manager = Manager()
                self._cancel_flags = self._manager.dict()
            except (OSError, EOFError) as e:
                logger.warning("Cancellation manager unavailable, cancelling locally only: %s", e)
                self._manager = None
                self._cancel_flags = None
        self._executor = ProcessPoolExecutor(max_workers=self.max_workers)
        logger.debug("Started %d worker process(es)", self.max_workers)

    def shutdown(self) -> None:
        """Stop the pool, dropping queued jobs."""
        if self._executor is not None:
            self._executor.shutdown(wait=False, cancel_futures=True)
            self._executor = None
        if self._manager is not None:
            try:
                self._manager.shutdown()
            except (OSError, EOFError) as e:
                logger.debug("Manager shutdown error: %s", e)
            self._manager = None
            self._cancel_flags = None

    def __enter__(self) -> BackgroundRunner:
        self.start()
        return self

    def __exit__(self, *exc_info) -> None:
        self.shutdown()

    def _submit(self, kind: str, fn: Any, *args: Any, key: Any = None) -> Job:
        self.start()
        job_id = str(uuid.uuid4())
        if self._cancel_flags is not None:
            self._cancel_flags[job_id] = False
        future = self._executor.submit(fn, job_id, self._cancel_flags, *args)
        # the flag must outlive a running worker, so drop it once the future settles
        future.add_done_callback(lambda _: self._forget(job_id))
        token = CancellationToken(job_id, self._cancel_flags)
        return Job(id=job_id, kind=kind, future=future, token=token, key=key, _runner=self)

    def submit_contour(
        self,
        expr: str,
        x_min: float,
        x_max: float,
        y_min: float,
        y_max: float,
        grid_size: int | None = None,
        scope: Mapping[str, float] | None = None,
        key: Any = None,
    ) -> Job:
        """Contour ``expr`` in the background; ``grid_size`` None adapts to the viewport."""
        return self._submit(
            "contour",
            _contour_task,
            expr,
            (x_min, x_max, y_min, y_max),
            grid_size,
            dict(scope or {}),
            key=key,
        )

    def submit_phase_portrait(
        self,
        dx_text: str,
        dy_text: str,
        x_min: float,
        x_max: float,
        y_min: float,
        y_max: float,
        step_x: float = 1.0,
        step_y: float = 1.0,
        key: Any = None,
    ) -> Job:
        return self._submit(
            "phase_portrait",
            _phase_portrait_task,
            dx_text,
            dy_text,
            (x_min, x_max, y_min, y_max),
            (step_x, step_y),
            key=key,
        )

    def cancel(self, job: Job) -> None:
        """Mark ``job`` cancelled and drop it from the queue if not yet running."""
        job.token.cancel()
        if job.future.cancel() or job.future.done():
            self._forget(job.id)
        logger.debug("Cancelled %s job %s", job.kind, job.id)

    def _forget(self, job_id: str) -> None:
        flags = self._cancel_flags
        if flags is not None:
            try:
                flags.pop(job_id, None)
            except (OSError, EOFError, BrokenPipeError) as e:
                logger.debug("Could not drop cancel flag of %s: %s", job_id, e)


class ContourRequester:
    """Keeps at most one in-flight contour job per key (usually an expression id).

    A new request for a key cancels the previous one, so a stale viewport
    never overwrites a fresh one.
    """

    def __init__(self, runner: BackgroundRunner):
        self.runner = runner
        self._in_flight: dict[Any, Job] = {}

    def request(
        self,
        key: Any,
        expr: str,
        x_min: float,
        x_max: float,
        y_min: float,
        y_max: float,
        grid_size: int | None = None,
        scope: Mapping[str, float] | None = None,
    ) -> Job:
        previous = self._in_flight.get(key)
        if previous is not None and not previous.done():
            self.runner.cancel(previous)
        job = self.runner.submit_contour(
            expr, x_min, x_max, y_min, y_max, grid_size=grid_size, scope=scope, key=key
        )
        self._in_flight[key] = job
        return job

    def current(self, key: Any) -> Job | None:
        return self._in_flight.get(key)

    def collect(self, key: Any, timeout: float | None = WORKER_TIMEOUT) -> Any:
        """Result of the latest job for ``key``, or None if there is none."""
        job = self._in_flight.get(key)
        if job is None:
            return None
        result = job.result(timeout=timeout)
        if self._in_flight.get(key) is job:
            del self._in_flight[key]
        return result

    def cancel_all(self) -> None:
        for job in self._in_flight.values():
            self.runner.cancel(job)
        self._in_flight.clear()

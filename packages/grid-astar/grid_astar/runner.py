"""PathRunner - background path searches on a thread pool.

Searches are synchronous; the runner only moves them off the caller's
thread. Every task carries its own cancellation event, polled by the search
once per iteration.
"""
from __future__ import annotations

import logging
import threading
from concurrent.futures import CancelledError, Future, ThreadPoolExecutor
from dataclasses import dataclass
from typing import Any

from grid_astar.cell import Cell
from grid_astar.path import PathBuilder, PathResult
from grid_astar.types import PathStatus
from grid_astar.vec import Vec3

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PathTask:
    """Handle on a background search: a result slot and its cancel signal."""

    future: Future[PathResult]
    cancel_event: threading.Event

    def cancel(self) -> None:
        """Ask the search to stop. The result then has status CANCELLED."""
        self.cancel_event.set()
        self.future.cancel()

    @property
    def cancelled(self) -> bool:
        return self.cancel_event.is_set()

    def done(self) -> bool:
        return self.future.done()

    def result(self, timeout: float | None = None) -> PathResult:
        return self.future.result(timeout=timeout)


class PathRunner:
    """Runs searches on a ThreadPoolExecutor.

    Call ``shutdown()`` (or use the runner as a context manager) when done.
    """

    def __init__(self, max_workers: int = 4) -> None:
        if max_workers < 1:
            raise ValueError(f"max_workers must be >= 1, got {max_workers}")
        self._executor = ThreadPoolExecutor(
            max_workers=max_workers, thread_name_prefix="grid-astar",
        )
        self._shutdown = False

    def __enter__(self) -> PathRunner:
        return self

    def __exit__(self, *exc: Any) -> None:
        self.shutdown(wait=True)

    @property
    def is_shutdown(self) -> bool:
        return self._shutdown

    def submit(
        self,
        builder: PathBuilder,
        start: Cell | Vec3 | None,
        target: Cell | Vec3 | None,
        reversed: bool = False,
        with_connections: bool = True,
        cancel_event: threading.Event | None = None,
    ) -> PathTask:
        """Run ``builder.run(start, target)`` in the background."""
        self._check_open()
        event = cancel_event if cancel_event is not None else threading.Event()
        future = self._executor.submit(
            builder.run, start, target, reversed, with_connections, event,
        )
        return PathTask(future, event)

    def race(
        self,
        builder: PathBuilder,
        start: Cell | Vec3 | None,
        target: Cell | Vec3 | None,
    ) -> PathTask:
        """Search both directions at once and keep the first path found.

        The backward search walks plain neighbours only, since connections
        are one-way, and never accepts partial paths. The first FOUND result
        cancels the other search. When neither finds a path the forward
        result is returned.
        """
        self._check_open()
        start_cell = builder.resolve(start)
        target_cell = builder.resolve(target)
        event = threading.Event()
        outcome: Future[PathResult] = Future()
        outcome.set_running_or_notify_cancel()
        lock = threading.Lock()
        finished: dict[str, PathResult | None] = {}

        forward = self._executor.submit(
            builder.run, start_cell, target_cell, False, True, event,
        )
        backward = self._executor.submit(
            builder.with_partial_enabled(False).run,
            target_cell, start_cell, True, False, event,
        )

        def harvest(label: str, future: Future[PathResult]) -> None:
            try:
                result: PathResult | None = future.result()
            except CancelledError:
                result = None
            except Exception as exc:
                with lock:
                    if not outcome.done():
                        event.set()
                        outcome.set_exception(exc)
                return

            with lock:
                if outcome.done():
                    return
                finished[label] = result
                if result is not None and result.status is PathStatus.FOUND:
                    logger.debug("Race %s -> %s won by %s search", start_cell, target_cell, label)
                    event.set()
                    outcome.set_result(result)
                    return
                if len(finished) == 2:
                    fallback = finished["forward"]
                    if fallback is None:
                        fallback = finished["backward"]
                    if fallback is None:
                        fallback = PathResult.empty(builder, PathStatus.CANCELLED)
                    outcome.set_result(fallback)

        forward.add_done_callback(lambda f: harvest("forward", f))
        backward.add_done_callback(lambda f: harvest("backward", f))
        return PathTask(outcome, event)

    def shutdown(self, wait: bool = False) -> None:
        """Stop accepting work and drop queued searches."""
        self._shutdown = True
        self._executor.shutdown(wait=wait, cancel_futures=True)

    def _check_open(self) -> None:
        if self._shutdown:
            raise RuntimeError("PathRunner has been shut down")

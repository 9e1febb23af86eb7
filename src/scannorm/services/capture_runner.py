"""
ScanNorm - Capture Runner Module

Runs the pipeline off the caller's thread. Each capture source keeps a
generation counter; a newer capture from the same source makes older runs
stale, and stale results are never published.
"""

import logging
import threading
import time
from collections.abc import Callable
from concurrent.futures import Future, ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeoutError
from dataclasses import dataclass

from scannorm.constants import DEFAULT_RUN_TIMEOUT_SECS, DEFAULT_RUNNER_WORKERS
from scannorm.services.pipeline import DocumentPipeline
from scannorm.utils.exceptions import ProcessTimeoutError

logger = logging.getLogger(__name__)


@dataclass
class CaptureOutcome:
    """Result of one background run.

    Attributes:
        source: Capture source name (e.g. "highCamera")
        generation: Token the run was submitted with
        payload: Normalized payload, or the original one on failure/skip
        superseded: A newer capture made this run stale
        skipped: The run never started because it was already stale
        error: Failure description, if any
        elapsed: Wall time spent in the pipeline, seconds
    """

    source: str
    generation: int
    payload: bytes | str
    superseded: bool = False
    skipped: bool = False
    error: str | None = None
    elapsed: float = 0.0


class CaptureRunner:
    """Background pipeline runner with stale-run discarding."""

    def __init__(
        self,
        pipeline: DocumentPipeline | None = None,
        max_workers: int = DEFAULT_RUNNER_WORKERS,
        timeout: float = DEFAULT_RUN_TIMEOUT_SECS,
        on_result: Callable[[CaptureOutcome], None] | None = None,
    ) -> None:
        """Initialize the runner.

        Args:
            pipeline: Pipeline to run; a default one is built when omitted
            max_workers: Thread pool size
            timeout: Default wait bound for :meth:`process`, seconds
            on_result: Called from the worker thread with every current result,
                while submissions are held off
        """
        self.pipeline = pipeline or DocumentPipeline()
        self.timeout = timeout
        self.on_result = on_result
        # Held across the staleness check and on_result; reentrant so a
        # callback may submit again
        self._lock = threading.RLock()
        self._generations: dict[str, int] = {}
        self._pool = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="scannorm")

    def __enter__(self) -> "CaptureRunner":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.shutdown()

    def _next_generation(self, source: str) -> int:
        with self._lock:
            generation = self._generations.get(source, 0) + 1
            self._generations[source] = generation
            return generation

    def is_current(self, source: str, generation: int) -> bool:
        with self._lock:
            return self._generations.get(source) == generation

    def cancel(self, source: str, generation: int | None = None) -> None:
        """Make the pending run of ``source`` stale.

        With ``generation`` given, only that run is invalidated; a newer
        submission is left alone.
        """
        with self._lock:
            current = self._generations.get(source, 0)
            if generation is None or generation == current:
                self._generations[source] = current + 1

    def _submit(self, source: str, payload: bytes | str) -> tuple[int, Future]:
        generation = self._next_generation(source)
        logger.debug(f"Submitting capture from {source}, generation {generation}")
        return generation, self._pool.submit(self._run, source, generation, payload)

    def submit(self, source: str, payload: bytes | str) -> "Future[CaptureOutcome]":
        """Queue a capture; any earlier run from ``source`` becomes stale."""
        return self._submit(source, payload)[1]

    def _run(self, source: str, generation: int, payload: bytes | str) -> CaptureOutcome:
        if not self.is_current(source, generation):
            logger.debug(f"Skipping stale capture from {source}, generation {generation}")
            return CaptureOutcome(source, generation, payload, superseded=True, skipped=True)

        started = time.perf_counter()
        output = self.pipeline.normalize_capture(payload)
        outcome = CaptureOutcome(
            source, generation, output, elapsed=time.perf_counter() - started
        )

        with self._lock:
            if not self.is_current(source, generation):
                logger.info(
                    f"Discarding superseded result from {source}, generation {generation}"
                )
                outcome.superseded = True
                return outcome

            if self.on_result is not None:
                try:
                    self.on_result(outcome)
                except Exception as e:
                    logger.error(f"Result callback failed for {source}: {e}")
                    outcome.error = str(e)
        return outcome

    def process(
        self, source: str, payload: bytes | str, timeout: float | None = None
    ) -> CaptureOutcome:
        """Run a capture and wait for it.

        On timeout the run is made stale and the original payload comes
        back with ``error`` set.
        """
        wait = self.timeout if timeout is None else timeout
        generation, future = self._submit(source, payload)
        try:
            return future.result(timeout=wait)
        except FutureTimeoutError:
            self.cancel(source, generation)
            error = ProcessTimeoutError(source, wait)
            logger.warning(str(error))
            return CaptureOutcome(
                source, generation, payload, superseded=True, error=str(error), elapsed=wait
            )

    def shutdown(self, wait: bool = True) -> None:
        """Stop accepting work; queued runs that have not started are dropped."""
        self._pool.shutdown(wait=wait, cancel_futures=True)

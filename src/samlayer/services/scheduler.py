"""Off-thread inference queue with last-writer-wins result delivery.

All engine work runs on one worker thread, so image encoding and prompt
inference for an image are serialized. Every segmentation request gets a
generation number; submitting a newer one cancels queued older requests and
marks a running one stale. Results are queued and only handed to the caller
when it drains them on its own thread.
"""

from __future__ import annotations

import logging
import queue
import threading
from collections.abc import Callable
from concurrent.futures import Future, ThreadPoolExecutor, wait

from PIL import Image

from samlayer.enums import TaskKind
from samlayer.models import InferenceResult, PromptInput, Size
from samlayer.services.inference import InferenceOrchestrator

logger = logging.getLogger(__name__)


class InferenceScheduler:
    """Single-worker task queue keyed by image session and edit generation."""

    def __init__(self, orchestrator: InferenceOrchestrator, executor: ThreadPoolExecutor | None = None) -> None:
        self._orchestrator = orchestrator
        self._executor = executor or ThreadPoolExecutor(max_workers=1, thread_name_prefix="samlayer-inference")
        self._results: queue.SimpleQueue[InferenceResult] = queue.SimpleQueue()
        self._lock = threading.Lock()
        self._futures: set[Future[None]] = set()
        self._segment_futures: dict[int, Future[None]] = {}
        self._generation = 0
        self._latest_segment = 0
        self._session = 0

    @property
    def orchestrator(self) -> InferenceOrchestrator:
        return self._orchestrator

    @property
    def session_id(self) -> int:
        return self._session

    @property
    def latest_generation(self) -> int:
        return self._latest_segment

    def _submit(self, kind: TaskKind, session_id: int, work: Callable[[], Image.Image | None]) -> int:
        with self._lock:
            self._generation += 1
            generation = self._generation
            if kind == TaskKind.SEGMENT:
                self._latest_segment = generation

        def run() -> None:
            if kind == TaskKind.SEGMENT and self.is_stale(generation, session_id):
                logger.debug(f"Skipping superseded segmentation {generation}")
                return
            try:
                mask = work()
            except Exception as e:
                logger.exception(f"{kind.value} task {generation} failed")
                self._results.put(InferenceResult(kind, generation, session_id, error=e))
                return
            self._results.put(InferenceResult(kind, generation, session_id, mask=mask))

        future = self._executor.submit(run)
        with self._lock:
            self._futures.add(future)
            if kind == TaskKind.SEGMENT:
                self._segment_futures[generation] = future
        future.add_done_callback(lambda f: self._forget(generation, f))
        return generation

    def _forget(self, generation: int, future: Future[None]) -> None:
        with self._lock:
            self._futures.discard(future)
            self._segment_futures.pop(generation, None)

    def _cancel_pending_segments(self) -> None:
        with self._lock:
            pending = list(self._segment_futures.values())
        for future in pending:
            future.cancel()

    def is_stale(self, generation: int, session_id: int) -> bool:
        """Whether a segmentation result was superseded by a newer edit or image."""
        return generation != self._latest_segment or session_id != self._session

    def submit_load(self) -> int:
        """Queue the one-shot model load."""
        return self._submit(TaskKind.LOAD_MODEL, self._session, self._load)

    def _load(self) -> None:
        self._orchestrator.load_model()

    def submit_image(self, image: Image.Image) -> int:
        """Queue encoding of a new source image, invalidating prompt work for the old one."""
        with self._lock:
            self._session += 1
            session_id = self._session
            self._latest_segment = 0
        self._cancel_pending_segments()

        def encode() -> None:
            self._orchestrator.encode_image(image, session_id)

        self._submit(TaskKind.ENCODE_IMAGE, session_id, encode)
        return session_id

    def submit_segment(self, prompt: PromptInput, target_size: Size) -> int:
        """Queue a segmentation request. Any earlier request becomes stale."""
        self._cancel_pending_segments()
        session_id = self._session

        def segment() -> Image.Image:
            return self._orchestrator.segment(prompt, target_size, session_id)

        generation = self._submit(TaskKind.SEGMENT, session_id, segment)
        logger.debug(f"Queued segmentation {generation} for session {session_id}")
        return generation

    def invalidate(self) -> None:
        """Drop all outstanding segmentation work without queuing new work."""
        with self._lock:
            self._generation += 1
            self._latest_segment = self._generation
        self._cancel_pending_segments()

    def drain(self) -> list[InferenceResult]:
        """Collect finished results, dropping stale segmentations."""
        delivered: list[InferenceResult] = []
        while True:
            try:
                result = self._results.get_nowait()
            except queue.Empty:
                break
            if result.kind == TaskKind.SEGMENT and self.is_stale(result.generation, result.session_id):
                logger.debug(f"Discarding stale segmentation {result.generation}")
                continue
            delivered.append(result)
        return delivered

    def wait_idle(self, timeout: float | None = None) -> bool:
        """Block until all queued tasks have finished.

        Returns:
            True if the queue is idle, False on timeout.
        """
        with self._lock:
            futures = list(self._futures)
        if not futures:
            return True
        _, not_done = wait(futures, timeout=timeout)
        return not not_done

    def shutdown(self, wait_for_tasks: bool = True) -> None:
        """Stop the worker thread."""
        self._cancel_pending_segments()
        self._executor.shutdown(wait=wait_for_tasks, cancel_futures=not wait_for_tasks)

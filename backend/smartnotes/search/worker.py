# @TASK P2-T2.6 - Isolated embedding worker process
# @TEST tests/test_worker.py

"""Embedding worker processes and the transport that talks to them.

Workers share no memory with the engine.  They receive request dicts on
one ``multiprocessing`` queue and post reply dicts on another.  With more
than one worker, all of them consume the same request queue, so requests
are spread over whichever worker is idle.
"""

from __future__ import annotations

import asyncio
import logging
import multiprocessing
import os
import queue
import threading
from collections.abc import Callable
from typing import Any

from pydantic import ValidationError

from smartnotes.search.embeddings import BackendSpec, EmbeddingBackend, create_backend
from smartnotes.search.errors import EmbeddingError, WorkerUnavailableError
from smartnotes.search.messages import WorkerAction, WorkerRequest, WorkerResponse

logger = logging.getLogger(__name__)

_STOP = None
_POLL_INTERVAL = 0.2
DEFAULT_LOAD_TIMEOUT = 30.0


def handle_request(backend: EmbeddingBackend | None, message: dict[str, Any]) -> dict[str, Any] | None:
    """Execute one request and build its reply.

    Returns ``None`` when the message has no usable correlation id, since
    nothing could be matched to a reply anyway.
    """
    try:
        request = WorkerRequest.model_validate(message)
    except ValidationError as exc:
        correlation_id = message.get("correlation_id") if isinstance(message, dict) else None
        if not isinstance(correlation_id, str):
            logger.warning("Dropping malformed worker request: %r", message)
            return None
        return WorkerResponse.failure(correlation_id, f"Malformed request: {exc.errors()[0]['msg']}")

    if backend is None:
        return WorkerResponse.failure(request.correlation_id, "Embedding backend unavailable")

    try:
        if request.action == WorkerAction.INITIALIZE:
            backend.load()
            return WorkerResponse.success(
                request.correlation_id,
                {"success": True, "backend": backend.name, "pid": os.getpid()},
            )

        text = request.payload.get("text")
        if not isinstance(text, str):
            return WorkerResponse.failure(request.correlation_id, "embed payload requires a 'text' string")
        return WorkerResponse.success(request.correlation_id, {"embedding": backend.embed(text)})
    except EmbeddingError as exc:
        return WorkerResponse.failure(request.correlation_id, str(exc))
    except Exception as exc:
        logger.exception("Unexpected worker failure for %s", request.action)
        return WorkerResponse.failure(request.correlation_id, f"{type(exc).__name__}: {exc}")


def run_worker(
    spec: BackendSpec,
    requests: Any,
    responses: Any,
    load_barrier: Any = None,
    load_timeout: float = DEFAULT_LOAD_TIMEOUT,
) -> None:
    """Worker process entry point: serve requests until the stop sentinel arrives.

    With *load_barrier* set, a worker that handled ``initialize`` holds its
    reply until every worker sharing the barrier has handled one too.  A
    worker blocked there cannot take a second ``initialize`` off the shared
    queue, so one ``initialize`` per worker loads every worker's model.
    """
    try:
        backend: EmbeddingBackend | None = create_backend(spec)
    except EmbeddingError as exc:
        logger.error("Worker could not build backend: %s", exc)
        backend = None

    try:
        while True:
            message = requests.get()
            if message is _STOP:
                break
            reply = handle_request(backend, message)
            if reply is not None and load_barrier is not None and _is_initialize(message):
                reply = _wait_for_peers(load_barrier, load_timeout, reply)
            if reply is not None:
                responses.put(reply)
    finally:
        if backend is not None:
            backend.close()


def _is_initialize(message: Any) -> bool:
    return isinstance(message, dict) and message.get("action") == WorkerAction.INITIALIZE


def _wait_for_peers(load_barrier: Any, timeout: float, reply: dict[str, Any]) -> dict[str, Any]:
    try:
        load_barrier.wait(timeout)
    except threading.BrokenBarrierError:
        if "error" not in reply:
            logger.error("Embedding workers did not all load within %.1fs", timeout)
            return WorkerResponse.failure(reply["correlation_id"], "Other embedding workers failed to load")
    return reply


class ProcessWorkerTransport:
    """:class:`~smartnotes.search.dispatch.WorkerTransport` backed by worker processes.

    Args:
        spec: Backend each worker builds.
        process_count: Number of worker processes (at least 1).
        start_method: ``multiprocessing`` start method.
        load_timeout: Seconds a loaded worker waits for the others to load.
    """

    def __init__(
        self,
        spec: BackendSpec,
        process_count: int = 1,
        start_method: str = "spawn",
        load_timeout: float = DEFAULT_LOAD_TIMEOUT,
    ) -> None:
        self._spec = spec
        self._process_count = max(1, process_count)
        self._start_method = start_method
        self._load_timeout = load_timeout
        self._processes: list[multiprocessing.process.BaseProcess] = []
        self._requests: Any = None
        self._responses: Any = None
        self._reader: threading.Thread | None = None
        self._stopping = threading.Event()
        self._loop: asyncio.AbstractEventLoop | None = None
        self._on_message: Callable[[dict[str, Any]], None] | None = None

    @property
    def process_count(self) -> int:
        return self._process_count

    def start(self, on_message: Callable[[dict[str, Any]], None]) -> None:
        self._loop = asyncio.get_running_loop()
        self._on_message = on_message
        try:
            context = multiprocessing.get_context(self._start_method)
            self._requests = context.Queue()
            self._responses = context.Queue()
            load_barrier = context.Barrier(self._process_count) if self._process_count > 1 else None
            for index in range(self._process_count):
                process = context.Process(
                    target=run_worker,
                    args=(self._spec, self._requests, self._responses, load_barrier, self._load_timeout),
                    name=f"smartnotes-embedder-{index}",
                    daemon=True,
                )
                process.start()
                self._processes.append(process)
        except (OSError, ValueError) as exc:
            self.close()
            raise WorkerUnavailableError(f"Could not start embedding worker: {exc}") from exc

        self._reader = threading.Thread(target=self._read_responses, name="smartnotes-embedder-reader", daemon=True)
        self._reader.start()
        logger.info("Started %d embedding worker(s) with %s backend", self._process_count, self._spec.backend)

    def send(self, message: dict[str, Any]) -> None:
        if self._requests is None or self._stopping.is_set():
            raise WorkerUnavailableError("Embedding worker is not running")
        self._requests.put(message)

    def close(self) -> None:
        self._stopping.set()
        if self._requests is not None:
            for process in self._processes:
                if process.is_alive():
                    self._requests.put(_STOP)
        for process in self._processes:
            process.join(timeout=5)
            if process.is_alive():
                logger.warning("Terminating unresponsive worker %s", process.name)
                process.terminate()
                process.join(timeout=1)
        self._processes.clear()
        if self._reader is not None:
            self._reader.join(timeout=1)
            self._reader = None

    def _read_responses(self) -> None:
        while not self._stopping.is_set():
            try:
                message = self._responses.get(timeout=_POLL_INTERVAL)
            except queue.Empty:
                continue
            except (EOFError, OSError):
                break
            try:
                self._loop.call_soon_threadsafe(self._on_message, message)
            except RuntimeError:
                # Event loop already closed.
                break

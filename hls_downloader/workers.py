"""Concurrent fetch, verify, decrypt, and stage of planned segments."""

import queue
import threading
from dataclasses import dataclass, field
from typing import List, Optional

from .crypto import decrypt_segment, trim_to_sync_byte
from .errors import ErrorAnalyzer, HLSDownloadError, IntegrityError
from .keys import KeyResolver
from .logger import DownloadLogger, ProgressSink
from .models import DownloadPlan, FetchOutcome, PipelineState, ProgressEvent, SegmentDescriptor
from .network import FetchedResource, HttpClient
from .retry import RetryPolicy
from .staging import StagingStore

SEGMENT_FAILED_PHASE = "segment-failed"

_STOP = None


def verify_length(resource: FetchedResource) -> None:
    """Reject empty bodies and bodies shorter or longer than declared."""
    if not resource.content:
        raise IntegrityError(f"{resource.url}: empty response body")
    if resource.declared_length is not None and resource.declared_length != len(resource.content):
        raise IntegrityError(
            f"{resource.url}: received {len(resource.content)} bytes, "
            f"Content-Length declared {resource.declared_length}"
        )


@dataclass
class PoolResult:
    """Aggregate of one pool run."""
    total: int
    completed: int = 0
    outcomes: List[FetchOutcome] = field(default_factory=list)
    fatal_error: Optional[BaseException] = None
    cancelled: bool = False

    @property
    def complete(self) -> bool:
        return self.completed == self.total and self.fatal_error is None

    @property
    def failed(self) -> int:
        return sum(1 for outcome in self.outcomes if not outcome.success)

    @property
    def fetched(self) -> int:
        return sum(1 for outcome in self.outcomes if outcome.success and not outcome.skipped)


class FetchWorkerPool:
    """A fixed number of worker threads draining one job queue.

    The queue is filled with the whole plan before the workers start, followed
    by one stop sentinel per worker. :meth:`run` returns only after every
    worker thread has exited.
    """

    def __init__(
        self,
        client: HttpClient,
        staging: StagingStore,
        key_resolver: KeyResolver,
        workers: int,
        retry_policy: Optional[RetryPolicy] = None,
        sink: Optional[ProgressSink] = None,
        logger: Optional[DownloadLogger] = None,
        analyzer: Optional[ErrorAnalyzer] = None,
        cancel_event: Optional[threading.Event] = None,
    ) -> None:
        if workers < 1:
            raise ValueError("workers must be at least 1")
        self.client = client
        self.staging = staging
        self.key_resolver = key_resolver
        self.workers = workers
        self.retry_policy = retry_policy or RetryPolicy()
        self.sink = sink or ProgressSink()
        self.logger = logger or DownloadLogger()
        self.analyzer = analyzer or ErrorAnalyzer()
        self.cancel_event = cancel_event or threading.Event()
        self._abort_event = threading.Event()
        self._lock = threading.Lock()
        self._result = PoolResult(total=0)

    def _stopping(self) -> bool:
        return self.cancel_event.is_set() or self._abort_event.is_set()

    def process(self, segment: SegmentDescriptor) -> None:
        """One attempt: fetch, verify, decrypt, trim, persist."""
        resource = self.client.fetch(segment.source_url)
        verify_length(resource)
        content = resource.content
        if segment.key_ref is not None:
            key = self.key_resolver.resolve(segment.key_ref)
            content = decrypt_segment(content, key)
        content = trim_to_sync_byte(content)
        self.staging.write(segment.ordinal, content)

    def work(self, segment: SegmentDescriptor) -> FetchOutcome:
        """Stage *segment*, retrying per the policy.

        Errors the policy does not retry are raised to the caller.
        """
        if self.staging.exists(segment.ordinal):
            return FetchOutcome(segment.ordinal, True, skipped=True)

        attempt = 0
        while True:
            attempt += 1
            try:
                self.process(segment)
                return FetchOutcome(segment.ordinal, True, attempts=attempt)
            except HLSDownloadError as exc:
                if not self.retry_policy.is_retryable(exc):
                    raise
                if not self.retry_policy.should_retry(attempt, exc) or self._stopping():
                    self.logger.warning(f"Giving up after {attempt} attempt(s): {exc}")
                    self.analyzer.categorize_and_record(segment.ordinal, exc)
                    return FetchOutcome(segment.ordinal, False, error_kind=exc.kind, attempts=attempt)
                self.logger.debug(
                    f"Attempt {attempt}/{self.retry_policy.max_attempts} failed: {exc}"
                )

            delay = self.retry_policy.delay(attempt)
            if delay and self.cancel_event.wait(delay):
                return FetchOutcome(segment.ordinal, False, error_kind="cancelled", attempts=attempt)

    def _record(self, segment: SegmentDescriptor, outcome: FetchOutcome) -> None:
        with self._lock:
            self._result.outcomes.append(outcome)
            if outcome.success:
                self._result.completed += 1
            ratio = self._result.completed / self._result.total if self._result.total else 1.0
        phase = PipelineState.SEGMENTS_FETCHING.value if outcome.success else SEGMENT_FAILED_PHASE
        self.sink.emit(ProgressEvent(phase, ratio, segment.source_url))

    def _abort(self, segment: SegmentDescriptor, error: BaseException) -> None:
        self.analyzer.categorize_and_record(segment.ordinal, error)
        with self._lock:
            if self._result.fatal_error is None:
                self._result.fatal_error = error
            self._result.outcomes.append(
                FetchOutcome(segment.ordinal, False, error_kind=getattr(error, "kind", "unknown"))
            )
        self._abort_event.set()
        self.logger.error(f"Stopping download: {error}")

    def _worker(self, jobs: "queue.Queue[Optional[SegmentDescriptor]]") -> None:
        while True:
            segment = jobs.get()
            if segment is _STOP:
                return
            if self._stopping():
                continue
            self.logger.set_context(segment.ordinal, segment.source_url)
            try:
                outcome = self.work(segment)
            except Exception as exc:
                self._abort(segment, exc)
            else:
                self._record(segment, outcome)
            finally:
                self.logger.clear_context()

    def run(self, plan: DownloadPlan) -> PoolResult:
        self._result = PoolResult(total=len(plan))
        self._abort_event.clear()

        jobs: "queue.Queue[Optional[SegmentDescriptor]]" = queue.Queue()
        for segment in plan:
            jobs.put(segment)
        worker_count = max(1, min(self.workers, len(plan)))
        for _ in range(worker_count):
            jobs.put(_STOP)

        threads = [
            threading.Thread(target=self._worker, args=(jobs,), name=f"segment-worker-{i + 1}", daemon=True)
            for i in range(worker_count)
        ]
        for thread in threads:
            thread.start()

        try:
            for thread in threads:
                while thread.is_alive():
                    thread.join(timeout=0.5)
        except KeyboardInterrupt:
            self.cancel_event.set()
            for thread in threads:
                thread.join()
            raise

        self._result.cancelled = self.cancel_event.is_set()
        return self._result

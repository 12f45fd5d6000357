"""Core download orchestration logic."""

import os
import threading
from typing import Optional

from .assembler import Assembler
from .config import DownloaderConfig
from .errors import ErrorAnalyzer, FilesystemError, HLSDownloadError, IncompletePlanError
from .keys import KeyResolver
from .logger import DownloadLogger, ProgressSink
from .models import DownloadPlan, PipelineState, ProgressEvent, RunResult, url_origin
from .network import HttpClient
from .planner import plan_segments
from .playlist import load_playlist_text, parse_playlist
from .retry import RetryPolicy
from .staging import StagingStore
from .workers import FetchWorkerPool, PoolResult


class HLSDownloader:
    """Runs one playlist through plan, fetch, and assembly.

    Collaborators may be injected; by default an :class:`HttpClient` is built
    from the configuration and closed when the run ends.
    """

    def __init__(
        self,
        config: DownloaderConfig,
        client: Optional[HttpClient] = None,
        sink: Optional[ProgressSink] = None,
        logger: Optional[DownloadLogger] = None,
        analyzer: Optional[ErrorAnalyzer] = None,
        retry_policy: Optional[RetryPolicy] = None,
        cancel_event: Optional[threading.Event] = None,
    ) -> None:
        self.config = config
        self._owns_client = client is None
        self.client = client or HttpClient(
            cookie=config.cookie,
            referer=config.referer or url_origin(config.url),
            timeout=config.timeout,
            pool_size=config.workers,
        )
        self.sink = sink or ProgressSink()
        self.logger = logger or DownloadLogger(verbose=config.verbose)
        self.analyzer = analyzer or ErrorAnalyzer()
        if config.error_log:
            self.analyzer.set_error_log_path(config.error_log)
        self.retry_policy = retry_policy or RetryPolicy(
            max_attempts=config.max_attempts,
            base_delay=config.retry_delay,
        )
        self.cancel_event = cancel_event or threading.Event()
        self.staging = StagingStore(config.target_dir, config.output_name)
        self.state = PipelineState.INIT
        self.plan: Optional[DownloadPlan] = None
        self.pool_result: Optional[PoolResult] = None

    def _transition(self, state: PipelineState, ratio: float, subject: str) -> None:
        self.state = state
        self.sink.emit(ProgressEvent(state.value, ratio, subject))

    def _fail(self, reason: str) -> RunResult:
        total = len(self.plan) if self.plan is not None else 0
        completed = self.pool_result.completed if self.pool_result is not None else 0
        # Staged segments are kept for resume; a staging dir without any is discarded.
        try:
            if self.staging.count_staged() == 0:
                self.staging.remove()
        except FilesystemError as exc:
            self.logger.warning(str(exc))
        result = RunResult(
            state=PipelineState.FAILED,
            total=total,
            completed=completed,
            reason=reason,
        )
        self._transition(PipelineState.FAILED, result.ratio, result.summary())
        return result

    def download(self) -> RunResult:
        """Run the pipeline to a terminal state and report the outcome."""
        try:
            return self._run()
        finally:
            self.sink.close()
            if self._owns_client:
                self.client.close()

    def _run(self) -> RunResult:
        config = self.config
        self._transition(PipelineState.INIT, 0.0, config.url)

        final_path = self.staging.final_artifact_path
        if not config.force and os.path.isfile(final_path):
            self.logger.info(f"{final_path} already exists; use --force to download it again")
            self._transition(PipelineState.COMPLETED, 1.0, final_path)
            return RunResult(state=PipelineState.COMPLETED, output_path=final_path)

        try:
            self.staging.prepare(force=config.force)
            text, _ = load_playlist_text(self.client, config.url, self.staging, self.logger)
            self._transition(PipelineState.PLAYLIST_FETCHED, 0.0, config.url)
            self.plan = plan_segments(parse_playlist(text, config.url))
        except HLSDownloadError as exc:
            return self._fail(str(exc))
        self._transition(PipelineState.PLAYLIST_PARSED, 0.0, config.url)

        key_resolver = KeyResolver(self.client, self.logger)
        pool = FetchWorkerPool(
            client=self.client,
            staging=self.staging,
            key_resolver=key_resolver,
            workers=config.workers,
            retry_policy=self.retry_policy,
            sink=self.sink,
            logger=self.logger,
            analyzer=self.analyzer,
            cancel_event=self.cancel_event,
        )
        self._transition(PipelineState.SEGMENTS_FETCHING, 0.0, config.url)
        self.pool_result = pool.run(self.plan)

        fatal = self.pool_result.fatal_error
        if fatal is not None:
            if not isinstance(fatal, HLSDownloadError):
                raise fatal
            return self._fail(str(fatal))

        if not self.pool_result.complete:
            self.analyzer.print_summary()
            reason = "download cancelled" if self.pool_result.cancelled else "some segments failed"
            return self._fail(reason)

        self._transition(PipelineState.ASSEMBLING, 0.0, config.output_name)
        try:
            output_path = Assembler(self.staging, self.sink).assemble(self.plan)
        except (IncompletePlanError, FilesystemError) as exc:
            return self._fail(str(exc))

        self._transition(PipelineState.COMPLETED, 1.0, output_path)
        return RunResult(
            state=PipelineState.COMPLETED,
            total=len(self.plan),
            completed=self.pool_result.completed,
            output_path=output_path,
        )

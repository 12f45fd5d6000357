"""Tests for the segment worker pool."""

from __future__ import annotations

import random
import sys
import threading
import time
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from fakes import IV, KEY, FakeClient, encrypt, fail_then_succeed, ts_payload
from hls_downloader.errors import ErrorAnalyzer, IntegrityError, KeyFetchError, NetworkError
from hls_downloader.keys import KeyResolver
from hls_downloader.logger import RecordingProgressSink
from hls_downloader.models import DownloadPlan, KeyReference, SegmentDescriptor
from hls_downloader.network import FetchedResource
from hls_downloader.retry import RetryPolicy
from hls_downloader.staging import StagingStore
from hls_downloader.workers import SEGMENT_FAILED_PHASE, FetchWorkerPool, verify_length

BASE = "https://cdn.example.com/videos/show/"
KEY_URL = BASE + "enc.key"


def url(ordinal: int) -> str:
    return f"{BASE}{ordinal}.ts"


def make_plan(count: int, key_ref=None) -> DownloadPlan:
    return DownloadPlan(
        segments=tuple(SegmentDescriptor(i, url(i), key_ref) for i in range(1, count + 1))
    )


def make_pool(tmp_path, client, workers=4, **kwargs):
    staging = StagingStore(str(tmp_path), "movie.mp4")
    staging.prepare()
    kwargs.setdefault("retry_policy", RetryPolicy(base_delay=0))
    pool = FetchWorkerPool(
        client=client,
        staging=staging,
        key_resolver=KeyResolver(client),
        workers=workers,
        **kwargs,
    )
    return pool, staging


def test_verify_length():
    verify_length(FetchedResource("u", b"abc", 3))
    verify_length(FetchedResource("u", b"abc", None))
    with pytest.raises(IntegrityError):
        verify_length(FetchedResource("u", b"ab", 3))
    with pytest.raises(IntegrityError):
        verify_length(FetchedResource("u", b"", None))


def test_all_segments_are_staged_with_trimmed_content(tmp_path):
    payloads = {i: ts_payload(chr(ord("a") + i)) for i in range(1, 9)}
    client = FakeClient({url(i): b"\x00\x00" + payloads[i] for i in payloads})
    pool, staging = make_pool(tmp_path, client)
    sink = RecordingProgressSink()
    pool.sink = sink

    result = pool.run(make_plan(8))

    assert result.complete
    assert result.completed == 8
    assert result.fetched == 8
    for ordinal, payload in payloads.items():
        assert Path(staging.path_for(ordinal)).read_bytes() == payload
    assert len(sink.events) == 8
    assert sorted(e.ratio for e in sink.events)[-1] == 1.0


def test_completion_order_does_not_matter(tmp_path):
    def slow(body):
        def respond(call):
            time.sleep(random.uniform(0, 0.02))
            return body
        return respond

    payloads = {i: ts_payload(str(i)) for i in range(1, 7)}
    client = FakeClient({url(i): slow(payloads[i]) for i in payloads})
    pool, staging = make_pool(tmp_path, client, workers=6)

    result = pool.run(make_plan(6))

    assert result.complete
    assert [name for name in staging.staged_names()] == [f"{i:05d}.ts" for i in range(1, 7)]


def test_segment_succeeding_on_fifth_attempt_counts_once(tmp_path):
    client = FakeClient({
        url(1): ts_payload("a"),
        url(2): fail_then_succeed(4, ts_payload("b")),
    })
    pool, staging = make_pool(tmp_path, client, workers=2)

    result = pool.run(make_plan(2))

    assert result.complete
    assert result.completed == 2
    assert client.count(url(2)) == 5
    outcome = next(o for o in result.outcomes if o.ordinal == 2)
    assert outcome.success and outcome.attempts == 5
    assert Path(staging.path_for(2)).read_bytes() == ts_payload("b")


def test_segment_failing_five_times_is_one_failure(tmp_path):
    client = FakeClient({
        url(1): ts_payload("a"),
        url(2): fail_then_succeed(5, ts_payload("b")),
        url(3): ts_payload("c"),
    })
    analyzer = ErrorAnalyzer()
    sink = RecordingProgressSink()
    pool, staging = make_pool(tmp_path, client, analyzer=analyzer, sink=sink)

    result = pool.run(make_plan(3))

    assert not result.complete
    assert (result.completed, result.total, result.failed) == (2, 3, 1)
    assert client.count(url(2)) == 5
    assert not staging.exists(2)
    assert analyzer.total_errors == 1
    assert analyzer.patterns["network"].ordinals == [2]
    assert SEGMENT_FAILED_PHASE in sink.phases


def test_truncated_body_is_retried(tmp_path):
    body = ts_payload("t")

    def respond(call):
        if call == 1:
            return FetchedResource(url(1), body[:50], len(body))
        return body

    client = FakeClient({url(1): respond})
    pool, staging = make_pool(tmp_path, client)

    result = pool.run(make_plan(1))

    assert result.complete
    assert client.count(url(1)) == 2
    assert Path(staging.path_for(1)).read_bytes() == body


def test_already_staged_segments_are_not_fetched(tmp_path):
    client = FakeClient({url(i): ts_payload(str(i)) for i in range(1, 4)})
    pool, staging = make_pool(tmp_path, client)
    staging.write(2, b"\x47previous")

    result = pool.run(make_plan(3))

    assert result.complete
    assert client.count(url(2)) == 0
    assert result.fetched == 2
    assert Path(staging.path_for(2)).read_bytes() == b"\x47previous"


def test_encrypted_segments_share_one_key_fetch(tmp_path):
    payloads = {i: ts_payload(str(i)) for i in range(1, 4)}
    responses = {url(i): encrypt(payloads[i]) for i in payloads}
    responses[KEY_URL] = KEY
    client = FakeClient(responses)
    pool, staging = make_pool(tmp_path, client, workers=3)

    result = pool.run(make_plan(3, KeyReference(KEY_URL, iv=IV)))

    assert result.complete
    assert client.count(KEY_URL) == 1
    for ordinal, payload in payloads.items():
        assert Path(staging.path_for(ordinal)).read_bytes() == payload


def test_corrupt_ciphertext_is_retried_then_fails(tmp_path):
    client = FakeClient({url(1): b"\x00" * 17, KEY_URL: KEY})
    pool, staging = make_pool(tmp_path, client, workers=1)

    result = pool.run(make_plan(1, KeyReference(KEY_URL, iv=IV)))

    assert result.completed == 0
    assert result.outcomes[0].error_kind == "crypto"
    assert client.count(url(1)) == 5
    assert client.count(KEY_URL) == 1


def test_unreachable_key_stops_the_pool(tmp_path):
    responses = {url(i): encrypt(ts_payload(str(i))) for i in range(1, 6)}
    responses[KEY_URL] = NetworkError("HTTP 403", status=403)
    client = FakeClient(responses)
    pool, staging = make_pool(tmp_path, client, workers=2)

    result = pool.run(make_plan(5, KeyReference(KEY_URL)))

    assert isinstance(result.fatal_error, KeyFetchError)
    assert not result.complete
    assert result.completed == 0
    assert client.count(KEY_URL) == 1
    assert staging.count_staged() == 0


def test_cancellation_stops_claiming_new_jobs(tmp_path):
    cancel = threading.Event()

    def cancel_after_first(call):
        cancel.set()
        return ts_payload("1")

    responses = {url(i): ts_payload(str(i)) for i in range(2, 11)}
    responses[url(1)] = cancel_after_first
    client = FakeClient(responses)
    pool, staging = make_pool(tmp_path, client, workers=1, cancel_event=cancel)

    result = pool.run(make_plan(10))

    assert result.cancelled
    assert result.completed == 1
    assert client.calls == [url(1)]


def test_cancellation_interrupts_retry_wait(tmp_path):
    cancel = threading.Event()
    client = FakeClient({url(1): NetworkError("HTTP 503", status=503)})
    pool, staging = make_pool(
        tmp_path, client, workers=1, cancel_event=cancel,
        retry_policy=RetryPolicy(base_delay=30.0, max_delay=30.0),
    )
    threading.Timer(0.1, cancel.set).start()

    started = time.monotonic()
    result = pool.run(make_plan(1))

    assert time.monotonic() - started < 10
    assert result.outcomes[0].error_kind == "cancelled"
    assert client.count(url(1)) == 1


def test_pool_rejects_zero_workers(tmp_path):
    with pytest.raises(ValueError):
        make_pool(tmp_path, FakeClient({}), workers=0)

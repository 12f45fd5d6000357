"""Tests for turning a decoded playlist into a download plan."""

from __future__ import annotations

import sys
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from fakes import IV, PLAYLIST_URL
from hls_downloader.errors import PlaylistError, UnsupportedEncryptionError
from hls_downloader.models import DownloadPlan, EncryptionMethod, ParsedPlaylist, RawKey, RawSegment, SegmentDescriptor
from hls_downloader.planner import SegmentPlanner, plan_segments, resolve_url


def make_playlist(*segments: RawSegment) -> ParsedPlaylist:
    return ParsedPlaylist(url=PLAYLIST_URL, segments=tuple(segments))


@pytest.mark.parametrize(
    "uri, expected",
    [
        ("seg1.ts", "https://cdn.example.com/videos/show/seg1.ts"),
        ("hi/seg1.ts", "https://cdn.example.com/videos/show/hi/seg1.ts"),
        ("/root/seg1.ts", "https://cdn.example.com/root/seg1.ts"),
        ("../seg1.ts", "https://cdn.example.com/videos/seg1.ts"),
        ("https://other.example.net/a.ts", "https://other.example.net/a.ts"),
    ],
)
def test_resolve_url_is_directory_relative(uri, expected):
    assert resolve_url(PLAYLIST_URL, uri) == expected


def test_ordinals_follow_playlist_order_and_skip_empty_uris():
    plan = plan_segments(
        make_playlist(RawSegment("a.ts"), RawSegment(""), RawSegment("b.ts"), RawSegment("c.ts"))
    )

    assert [s.ordinal for s in plan] == [1, 2, 3]
    assert [s.source_url.rsplit("/", 1)[1] for s in plan] == ["a.ts", "b.ts", "c.ts"]
    assert [s.staged_name for s in plan] == ["00001.ts", "00002.ts", "00003.ts"]


def test_single_playlist_key_is_shared_by_reference():
    key = RawKey(method="AES-128", uri="keys/k1.key", iv="0x000102030405060708090a0b0c0d0e0f")
    plan = plan_segments(make_playlist(*(RawSegment(f"{i}.ts", key) for i in range(3))))

    refs = [segment.key_ref for segment in plan]
    assert refs[0] is refs[1] is refs[2]
    assert refs[0].identifier == "https://cdn.example.com/videos/show/keys/k1.key"
    assert refs[0].method is EncryptionMethod.AES_128
    assert refs[0].iv == IV
    assert plan.key_identifiers == ["https://cdn.example.com/videos/show/keys/k1.key"]


def test_key_rotation_gives_each_group_its_key():
    first = RawKey(method="AES-128", uri="k1.key")
    second = RawKey(method="AES-128", uri="k2.key")
    plan = plan_segments(
        make_playlist(RawSegment("1.ts", first), RawSegment("2.ts", first), RawSegment("3.ts", second))
    )

    assert plan.segments[0].key_ref is plan.segments[1].key_ref
    assert plan.segments[2].key_ref.identifier.endswith("/k2.key")
    assert plan.segments[0].key_ref.iv is None
    assert len(plan.key_identifiers) == 2


def test_method_none_means_unencrypted():
    plan = plan_segments(make_playlist(RawSegment("1.ts", RawKey(method="NONE"))))

    assert plan.segments[0].key_ref is None


@pytest.mark.parametrize("method", ["SAMPLE-AES", "SAMPLE-AES-CTR", "AES-256"])
def test_unsupported_method_aborts_planning(method):
    planner = SegmentPlanner(PLAYLIST_URL)
    playlist = make_playlist(RawSegment("1.ts"), RawSegment("2.ts", RawKey(method=method, uri="k.key")))

    with pytest.raises(UnsupportedEncryptionError):
        planner.plan(playlist)


def test_aes_key_without_uri_is_a_playlist_error():
    with pytest.raises(PlaylistError):
        plan_segments(make_playlist(RawSegment("1.ts", RawKey(method="AES-128"))))


def test_plan_rejects_gaps_in_ordinals():
    with pytest.raises(ValueError):
        DownloadPlan(segments=(SegmentDescriptor(1, "https://x/1.ts"), SegmentDescriptor(3, "https://x/3.ts")))

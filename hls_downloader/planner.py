"""Turns a decoded playlist into a download plan."""

import urllib.parse
from typing import Dict, List, Optional, Tuple

from .crypto import parse_iv
from .errors import PlaylistError, UnsupportedEncryptionError
from .models import (
    DownloadPlan,
    EncryptionMethod,
    KeyReference,
    ParsedPlaylist,
    RawKey,
    SegmentDescriptor,
)


def resolve_url(base_url: str, uri: str) -> str:
    """Resolve *uri* against the playlist's directory."""
    return urllib.parse.urljoin(base_url, uri)


class SegmentPlanner:
    """Assigns ordinals, absolute URLs, and shared key references."""

    def __init__(self, base_url: str) -> None:
        self.base_url = base_url
        self._keys: Dict[Tuple[str, Optional[bytes]], KeyReference] = {}

    def key_reference(self, raw: Optional[RawKey]) -> Optional[KeyReference]:
        if raw is None:
            return None

        method = EncryptionMethod.from_playlist(raw.method)
        if method is None:
            raise UnsupportedEncryptionError(
                f"Unsupported encryption method {raw.method!r}; only AES-128 is supported"
            )
        if method is EncryptionMethod.NONE:
            return None
        if not raw.uri:
            raise PlaylistError("AES-128 key without a URI")

        try:
            iv = parse_iv(raw.iv)
        except ValueError as exc:
            raise PlaylistError(str(exc)) from exc

        identifier = resolve_url(self.base_url, raw.uri)
        cache_key = (identifier, iv)
        ref = self._keys.get(cache_key)
        if ref is None:
            ref = KeyReference(identifier=identifier, method=method, iv=iv)
            self._keys[cache_key] = ref
        return ref

    def plan(self, playlist: ParsedPlaylist) -> DownloadPlan:
        segments: List[SegmentDescriptor] = []
        for raw in playlist.segments:
            # The key is checked even for skipped lines so an unsupported
            # method anywhere in the playlist stops the run before any fetch.
            key_ref = self.key_reference(raw.key)
            if not raw.uri:
                continue
            segments.append(
                SegmentDescriptor(
                    ordinal=len(segments) + 1,
                    source_url=resolve_url(self.base_url, raw.uri),
                    key_ref=key_ref,
                )
            )
        return DownloadPlan(segments=tuple(segments), playlist_url=self.base_url)


def plan_segments(playlist: ParsedPlaylist) -> DownloadPlan:
    return SegmentPlanner(playlist.url).plan(playlist)

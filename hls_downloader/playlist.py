"""Fetching and decoding the media playlist."""

from typing import List, Optional, Tuple

import m3u8

from .errors import FilesystemError, HLSDownloadError, PlaylistError
from .logger import DownloadLogger
from .models import ParsedPlaylist, RawKey, RawSegment
from .network import HttpClient
from .staging import StagingStore


def decode_playlist_body(content: bytes) -> str:
    text = content.decode("utf-8-sig", errors="replace")
    if "#EXTM3U" not in text[:1024]:
        raise PlaylistError("response is not an M3U8 playlist (missing #EXTM3U)")
    return text


def load_playlist_text(
    client: HttpClient,
    url: str,
    staging: StagingStore,
    logger: Optional[DownloadLogger] = None,
) -> Tuple[str, bool]:
    """Return the playlist text and whether it came from the network.

    A copy saved in the staging directory by an earlier run is preferred, so a
    resumed run plans against the same segment list.
    """
    cached = staging.read_playlist()
    if cached is not None:
        if logger:
            logger.debug(f"Using cached playlist {staging.playlist_path}")
        return cached, False

    try:
        resource = client.fetch(url)
    except HLSDownloadError as exc:
        raise PlaylistError(f"Failed to fetch playlist: {exc}") from exc

    text = decode_playlist_body(resource.content)
    try:
        staging.write_playlist(text)
    except FilesystemError as exc:
        if logger:
            logger.warning(f"Playlist will not be cached: {exc}")
    return text, True


def _raw_key(key) -> Optional[RawKey]:
    if key is None:
        return None
    method = getattr(key, "method", None)
    if not method:
        return None
    return RawKey(
        method=method,
        uri=getattr(key, "uri", None),
        iv=getattr(key, "iv", None),
    )


def parse_playlist(text: str, url: str) -> ParsedPlaylist:
    """Decode a media playlist into raw segment lines and their keys."""
    try:
        document = m3u8.loads(text, uri=url)
    except Exception as exc:
        raise PlaylistError(f"Failed to parse playlist: {exc}") from exc

    if document.is_variant:
        raise PlaylistError(
            "Master playlist given; pass the URL of one of its media playlists instead"
        )

    segments: List[RawSegment] = []
    for segment in document.segments:
        segments.append(RawSegment(uri=(segment.uri or "").strip(), key=_raw_key(segment.key)))

    if not any(segment.uri for segment in segments):
        raise PlaylistError("Playlist contains no segments")

    return ParsedPlaylist(
        url=url,
        segments=tuple(segments),
    )

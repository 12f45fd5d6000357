"""Data models, enums, and constants for the HLS downloader."""

import re
import time
import urllib.parse
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional, Tuple


# Constants
DEFAULT_OUTPUT_NAME = "movie.mp4"
DEFAULT_OUTPUT_SUFFIX = ".mp4"
PLAYLIST_FILE_NAME = "m3u8"
STAGED_SEGMENT_SUFFIX = ".ts"
STAGED_NAME_WIDTH = 5
DEFAULT_MAX_ATTEMPTS = 5
DEFAULT_RETRY_DELAY = 0.5
DEFAULT_TIMEOUT = 60.0

TS_SYNC_BYTE = 0x47
AES_BLOCK_SIZE = 16

DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)
DEFAULT_ACCEPT = "*/*"
# Content-Length is compared against the raw body, so transfer compression is refused.
DEFAULT_ACCEPT_ENCODING = "identity"
DEFAULT_ACCEPT_LANGUAGE = "zh-CN,zh;q=0.9,en;q=0.8,de;q=0.7,*;q=0.5"

# Environment variable names
ENV_COOKIE = "HLS_DOWNLOADER_COOKIE"
ENV_REFERER = "HLS_DOWNLOADER_REFERER"


class EncryptionMethod(Enum):
    """Segment encryption methods the downloader understands."""
    NONE = "NONE"
    AES_128 = "AES-128"

    @classmethod
    def from_playlist(cls, value: Optional[str]) -> Optional["EncryptionMethod"]:
        """Map a METHOD attribute to a member, or None when unsupported."""
        normalized = (value or "NONE").strip().upper()
        for member in cls:
            if member.value == normalized:
                return member
        return None


class PipelineState(Enum):
    """Lifecycle of one download run."""
    INIT = "init"
    PLAYLIST_FETCHED = "playlist-fetched"
    PLAYLIST_PARSED = "playlist-parsed"
    SEGMENTS_FETCHING = "downloading"
    ASSEMBLING = "merging"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass(frozen=True)
class KeyReference:
    """An EXT-X-KEY line as seen by the planner, with its URI made absolute."""
    identifier: str
    method: EncryptionMethod = EncryptionMethod.AES_128
    iv: Optional[bytes] = None


@dataclass(frozen=True)
class EncryptionKey:
    """Resolved key material for one segment."""
    identifier: str
    method: EncryptionMethod
    raw_key: bytes
    iv: bytes


@dataclass(frozen=True)
class SegmentDescriptor:
    """A planned segment download."""
    ordinal: int
    source_url: str
    key_ref: Optional[KeyReference] = None

    @property
    def staged_name(self) -> str:
        return staged_segment_name(self.ordinal)


@dataclass(frozen=True)
class DownloadPlan:
    """Ordered segments; ordinals run 1..N in playlist order."""
    segments: Tuple[SegmentDescriptor, ...]
    playlist_url: str = ""

    def __post_init__(self) -> None:
        for expected, segment in enumerate(self.segments, start=1):
            if segment.ordinal != expected:
                raise ValueError(
                    f"plan ordinals must be contiguous from 1 (got {segment.ordinal} at position {expected})"
                )

    def __len__(self) -> int:
        return len(self.segments)

    def __iter__(self):
        return iter(self.segments)

    @property
    def key_identifiers(self) -> List[str]:
        seen: List[str] = []
        for segment in self.segments:
            if segment.key_ref and segment.key_ref.identifier not in seen:
                seen.append(segment.key_ref.identifier)
        return seen


@dataclass(frozen=True)
class RawKey:
    """Key attributes exactly as the playlist states them."""
    method: Optional[str]
    uri: Optional[str] = None
    iv: Optional[str] = None


@dataclass(frozen=True)
class RawSegment:
    """Segment line exactly as the playlist states it."""
    uri: str
    key: Optional[RawKey] = None


@dataclass(frozen=True)
class ParsedPlaylist:
    """Output of the playlist collaborator."""
    url: str
    segments: Tuple[RawSegment, ...]


@dataclass(frozen=True)
class FetchOutcome:
    """Result of working one job to completion or exhaustion."""
    ordinal: int
    success: bool
    error_kind: Optional[str] = None
    attempts: int = 0
    skipped: bool = False


@dataclass(frozen=True)
class ProgressEvent:
    """A status update for the progress sink."""
    phase: str
    ratio: float
    subject: str


@dataclass
class RunResult:
    """Run-level outcome of one pipeline invocation."""
    state: PipelineState
    total: int = 0
    completed: int = 0
    output_path: Optional[str] = None
    reason: Optional[str] = None

    @property
    def succeeded(self) -> bool:
        return self.state is PipelineState.COMPLETED

    @property
    def ratio(self) -> float:
        if self.total <= 0:
            return 1.0 if self.succeeded else 0.0
        return self.completed / self.total

    def summary(self) -> str:
        if self.succeeded:
            return f"Download complete: {self.output_path}"
        if self.total and self.completed < self.total:
            return (
                f"Download failed: {self.reason} ({self.completed}/{self.total} segments, "
                f"{self.ratio * 100:.2f}%). Run the same command again to resume."
            )
        return f"Download failed: {self.reason}"


@dataclass
class ErrorPattern:
    """Tracks a specific error pattern and its occurrences."""
    error_type: str
    count: int = 0
    ordinals: List[int] = field(default_factory=list)
    sample_messages: List[str] = field(default_factory=list)
    first_seen: Optional[float] = None
    last_seen: Optional[float] = None

    def record(self, ordinal: Optional[int], message: str) -> None:
        """Record an occurrence of this error pattern."""
        self.count += 1
        timestamp = time.time()

        if self.first_seen is None:
            self.first_seen = timestamp
        self.last_seen = timestamp

        if ordinal is not None and ordinal not in self.ordinals:
            self.ordinals.append(ordinal)

        if len(self.sample_messages) < 5 and message not in self.sample_messages:
            self.sample_messages.append(message)


def staged_segment_name(ordinal: int) -> str:
    """Fixed-width name so lexicographic order equals ordinal order."""
    if ordinal < 1:
        raise ValueError(f"ordinal must be >= 1, got {ordinal}")
    return f"{ordinal:0{STAGED_NAME_WIDTH}d}{STAGED_SEGMENT_SUFFIX}"


def normalize_url(url: str) -> str:
    """Normalize and validate a playlist URL."""
    cleaned = url.strip()
    if not cleaned:
        raise ValueError("missing URL")

    if not re.match(r"^[a-zA-Z][a-zA-Z0-9+.-]*://", cleaned):
        cleaned = "https://" + cleaned.lstrip("/")

    parsed = urllib.parse.urlparse(cleaned)
    if parsed.scheme not in ("http", "https") or not parsed.netloc:
        raise ValueError(f"unsupported URL: {url}")
    return cleaned


def url_origin(url: str) -> str:
    """Return ``scheme://host`` for *url*, or an empty string."""
    parsed = urllib.parse.urlparse(url)
    if not parsed.scheme or not parsed.netloc:
        return ""
    return f"{parsed.scheme}://{parsed.netloc}"


def normalize_output_name(name: Optional[str]) -> str:
    """Apply the default output name and container suffix."""
    cleaned = (name or "").strip()
    if not cleaned:
        return DEFAULT_OUTPUT_NAME
    if "/" in cleaned or "\\" in cleaned or cleaned in (".", ".."):
        raise ValueError(f"output name must be a plain file name: {name}")
    if "." not in cleaned.lstrip("."):
        cleaned += DEFAULT_OUTPUT_SUFFIX
    return cleaned

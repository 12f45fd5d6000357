"""HLS (m3u8) video-on-demand downloader package."""

# Import main components for easier access
from .assembler import Assembler
from .config import (
    DownloaderConfig,
    apply_environment_defaults,
    config_from_args,
    parse_args,
    positive_int,
)
from .crypto import decrypt_aes128_cbc, parse_iv, trim_to_sync_byte
from .downloader import HLSDownloader
from .errors import (
    CryptoError,
    ErrorAnalyzer,
    FilesystemError,
    HLSDownloadError,
    IncompletePlanError,
    IntegrityError,
    KeyFetchError,
    NetworkError,
    PlaylistError,
    UnsupportedEncryptionError,
)
from .keys import KeyResolver
from .logger import ConsoleProgressBar, DownloadLogger, ProgressSink, RecordingProgressSink
from .models import (
    DownloadPlan,
    EncryptionKey,
    EncryptionMethod,
    FetchOutcome,
    KeyReference,
    PipelineState,
    ProgressEvent,
    RunResult,
    SegmentDescriptor,
    staged_segment_name,
)
from .network import HttpClient
from .planner import SegmentPlanner, plan_segments
from .playlist import load_playlist_text, parse_playlist
from .retry import RetryPolicy
from .staging import StagingStore
from .workers import FetchWorkerPool, PoolResult

__all__ = [
    # Main entry points
    "parse_args",
    "apply_environment_defaults",
    "config_from_args",
    "HLSDownloader",
    # Pipeline components
    "SegmentPlanner",
    "plan_segments",
    "KeyResolver",
    "FetchWorkerPool",
    "PoolResult",
    "StagingStore",
    "Assembler",
    "HttpClient",
    "RetryPolicy",
    "load_playlist_text",
    "parse_playlist",
    # Models and data structures
    "DownloaderConfig",
    "DownloadPlan",
    "SegmentDescriptor",
    "KeyReference",
    "EncryptionKey",
    "EncryptionMethod",
    "FetchOutcome",
    "PipelineState",
    "ProgressEvent",
    "RunResult",
    "staged_segment_name",
    # Reporting
    "ProgressSink",
    "ConsoleProgressBar",
    "RecordingProgressSink",
    "DownloadLogger",
    "ErrorAnalyzer",
    # Errors
    "HLSDownloadError",
    "NetworkError",
    "IntegrityError",
    "CryptoError",
    "KeyFetchError",
    "UnsupportedEncryptionError",
    "PlaylistError",
    "FilesystemError",
    "IncompletePlanError",
    # Crypto helpers
    "decrypt_aes128_cbc",
    "parse_iv",
    "trim_to_sync_byte",
    # Configuration
    "positive_int",
]

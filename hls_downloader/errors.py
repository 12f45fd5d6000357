"""Error types and failure analysis for the HLS downloader."""

import sys
import threading
from datetime import datetime
from typing import Dict, List, Optional

from .models import ErrorPattern


class HLSDownloadError(Exception):
    """Base class for every error raised by the downloader."""

    kind = "unknown"


class NetworkError(HLSDownloadError):
    """Raised for transport failures and non-2xx responses."""

    kind = "network"

    def __init__(self, message: str, url: Optional[str] = None, status: Optional[int] = None) -> None:
        super().__init__(message)
        self.url = url
        self.status = status


class IntegrityError(HLSDownloadError):
    """Raised when a body does not match its declared length."""

    kind = "integrity"


class CryptoError(HLSDownloadError):
    """Raised when decryption, unpadding, or sync-byte trimming fails."""

    kind = "crypto"


class KeyFetchError(HLSDownloadError):
    """Raised when a decryption key cannot be obtained."""

    kind = "key"


class UnsupportedEncryptionError(HLSDownloadError):
    """Raised at planning time for encryption methods other than AES-128."""

    kind = "unsupported_encryption"


class PlaylistError(HLSDownloadError):
    """Raised when the playlist cannot be fetched or understood."""

    kind = "playlist"


class FilesystemError(HLSDownloadError):
    """Raised when staging or output paths cannot be used."""

    kind = "filesystem"


class IncompletePlanError(HLSDownloadError):
    """Raised when fewer segments were staged than planned."""

    kind = "incomplete"

    def __init__(self, completed: int, total: int) -> None:
        super().__init__(f"{completed} of {total} segments downloaded")
        self.completed = completed
        self.total = total


# Retried locally by the worker pool.
RETRYABLE_ERRORS = (NetworkError, IntegrityError, CryptoError)


class ErrorAnalyzer:
    """Collects exhausted segment failures and suggests remediation."""

    def __init__(self) -> None:
        self.patterns: Dict[str, ErrorPattern] = {
            "forbidden": ErrorPattern("forbidden"),
            "not_found": ErrorPattern("not_found"),
            "network": ErrorPattern("network"),
            "integrity": ErrorPattern("integrity"),
            "crypto": ErrorPattern("crypto"),
            "key": ErrorPattern("key"),
            "unknown": ErrorPattern("unknown"),
        }
        self.total_errors = 0
        self.error_log_path: Optional[str] = None
        self._lock = threading.Lock()

    def set_error_log_path(self, path: Optional[str]) -> None:
        """Set the path for the detailed error log file."""
        self.error_log_path = path

    @staticmethod
    def categorize(error: BaseException) -> str:
        if isinstance(error, NetworkError):
            if error.status in (401, 403):
                return "forbidden"
            if error.status in (404, 410):
                return "not_found"
            return "network"
        if isinstance(error, HLSDownloadError) and error.kind in ("integrity", "crypto", "key"):
            return error.kind
        return "unknown"

    def categorize_and_record(self, ordinal: Optional[int], error: BaseException) -> str:
        """Categorize an error and record it. Returns the error category."""
        category = self.categorize(error)
        message = str(error) or error.__class__.__name__

        with self._lock:
            self.total_errors += 1
            self.patterns[category].record(ordinal, message)
            if self.error_log_path:
                self._append_to_error_log(ordinal, category, message)

        return category

    def _append_to_error_log(self, ordinal: Optional[int], category: str, message: str) -> None:
        """Append error details to the error log file."""
        try:
            timestamp = datetime.now().isoformat()
            label = f"segment {ordinal}" if ordinal is not None else "run"
            with open(self.error_log_path, "a", encoding="utf-8") as f:
                f.write(f"[{timestamp}] [{category}] {label}: {message}\n")
        except OSError as e:
            # Don't fail the download if error logging fails
            print(f"Warning: Failed to write to error log: {e}", file=sys.stderr)

    def get_recommendations(self) -> List[str]:
        """Generate recommendations based on error patterns."""
        if self.total_errors == 0:
            return ["No errors detected - download completed successfully!"]

        recommendations = []

        if self.patterns["forbidden"].count > 0:
            recommendations.append(
                f"Forbidden ({self.patterns['forbidden'].count} segments): "
                "The server rejected the request. Pass the page's --cookie and --referer values."
            )

        if self.patterns["not_found"].count > 0:
            recommendations.append(
                f"Not found ({self.patterns['not_found'].count} segments): "
                "The playlist may have expired. Re-fetch the playlist URL from the page and retry with --force."
            )

        if self.patterns["network"].count > 0:
            recommendations.append(
                f"Network ({self.patterns['network'].count} segments): "
                "Transient transport failures. Run the same command again to resume, "
                "or lower --threads and raise --timeout."
            )

        if self.patterns["integrity"].count > 0:
            recommendations.append(
                f"Truncated ({self.patterns['integrity'].count} segments): "
                "Bodies did not match Content-Length. Run the same command again to resume."
            )

        if self.patterns["crypto"].count > 0:
            recommendations.append(
                f"Decryption ({self.patterns['crypto'].count} segments): "
                "Segments could not be decrypted. If this persists the key or IV is wrong; retry with --force."
            )

        if self.patterns["key"].count > 0:
            recommendations.append(
                f"Key ({self.patterns['key'].count} segments): "
                "The decryption key could not be fetched. Check --cookie and --referer."
            )

        if self.patterns["unknown"].count > 0:
            recommendations.append(
                f"Unknown errors ({self.patterns['unknown'].count}): "
                "Check the error log for details."
            )

        return recommendations

    def print_summary(self) -> None:
        """Print a formatted summary of error patterns."""
        if self.total_errors == 0:
            return

        print("\n" + "=" * 70, file=sys.stderr)
        print("Failed segments", file=sys.stderr)
        print("=" * 70, file=sys.stderr)
        print(f"Total failed segments: {self.total_errors}\n", file=sys.stderr)

        sorted_patterns = sorted(
            self.patterns.items(),
            key=lambda x: x[1].count,
            reverse=True,
        )

        for name, pattern in sorted_patterns:
            if pattern.count > 0:
                print(f"{name.replace('_', ' ').title()}: {pattern.count} segments", file=sys.stderr)
                ordinals = ", ".join(str(o) for o in sorted(pattern.ordinals)[:10])
                print(f"  Ordinals: {ordinals}", file=sys.stderr)
                if pattern.sample_messages:
                    print(f"  Sample: {pattern.sample_messages[0][:80]}", file=sys.stderr)
                print(file=sys.stderr)

        for rec in self.get_recommendations():
            print(rec, file=sys.stderr)

        if self.error_log_path:
            print(f"\nDetailed error log: {self.error_log_path}", file=sys.stderr)

"""Configuration and argument parsing for the HLS downloader."""

import argparse
import json
import os
import sys
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from .models import (
    DEFAULT_MAX_ATTEMPTS,
    DEFAULT_RETRY_DELAY,
    DEFAULT_TIMEOUT,
    ENV_COOKIE,
    ENV_REFERER,
    normalize_output_name,
    normalize_url,
)

DEFAULT_CONFIG_PATH = "hls_downloader.json"

VALID_CONFIG_KEYS = {
    "dir", "output", "threads", "cookie", "referer", "force",
    "timeout", "retries", "retry_delay", "error_log", "verbose",
}


def default_workers() -> int:
    return os.cpu_count() or 4


def positive_int(value: str) -> int:
    """Return *value* parsed as a positive integer for argparse."""

    try:
        parsed = int(value)
    except (TypeError, ValueError) as exc:
        raise argparse.ArgumentTypeError(
            "Expected a positive integer"
        ) from exc

    if parsed <= 0:
        raise argparse.ArgumentTypeError("Expected a positive integer")

    return parsed


def non_negative_float(value: str) -> float:
    try:
        parsed = float(value)
    except (TypeError, ValueError) as exc:
        raise argparse.ArgumentTypeError("Expected a number") from exc
    if parsed < 0:
        raise argparse.ArgumentTypeError("Expected a non-negative number")
    return parsed


def positive_float(value: str) -> float:
    parsed = non_negative_float(value)
    if parsed == 0:
        raise argparse.ArgumentTypeError("Expected a positive number")
    return parsed


def load_config_file(config_path: str) -> Dict[str, Any]:
    """Load argument defaults from a JSON file.

    Missing or invalid files yield an empty dictionary; unknown keys are
    reported and dropped.
    """
    if not os.path.exists(config_path):
        return {}

    try:
        with open(config_path, "r", encoding="utf-8") as f:
            config = json.load(f)
    except json.JSONDecodeError as exc:
        print(f"Warning: Failed to parse config file {config_path}: {exc}. Ignoring.", file=sys.stderr)
        return {}
    except OSError as exc:
        print(f"Warning: Failed to read config file {config_path}: {exc}. Ignoring.", file=sys.stderr)
        return {}

    if not isinstance(config, dict):
        print(f"Warning: Config file {config_path} must contain a JSON object. Ignoring.", file=sys.stderr)
        return {}

    invalid_keys = set(config.keys()) - VALID_CONFIG_KEYS
    if invalid_keys:
        print(f"Warning: Unknown config keys ignored: {', '.join(sorted(invalid_keys))}", file=sys.stderr)

    return {k: v for k, v in config.items() if k in VALID_CONFIG_KEYS}


def _config_path_from_argv(argv: List[str]) -> str:
    for index, arg in enumerate(argv):
        if arg == "--config" and index + 1 < len(argv):
            return argv[index + 1]
        if arg.startswith("--config="):
            return arg.split("=", 1)[1]
    return DEFAULT_CONFIG_PATH


def build_parser(config: Optional[Dict[str, Any]] = None) -> argparse.ArgumentParser:
    config = config or {}
    parser = argparse.ArgumentParser(
        description="Download an HLS (m3u8) video-on-demand stream into a single file.",
    )
    parser.add_argument(
        "--config",
        default=DEFAULT_CONFIG_PATH,
        help=f"Path to JSON configuration file (default: {DEFAULT_CONFIG_PATH})",
    )
    parser.add_argument(
        "-m", "--url",
        required=True,
        help="Media playlist URL (http(s)://host/path/index.m3u8)",
    )
    parser.add_argument(
        "-d", "--dir",
        default=config.get("dir"),
        help="Directory the file is saved to (default: current directory)",
    )
    parser.add_argument(
        "-o", "--output",
        default=config.get("output", "movie"),
        help="Output file name; .mp4 is appended when it has no extension (default: movie)",
    )
    parser.add_argument(
        "-t", "--threads",
        type=positive_int,
        default=config.get("threads"),
        help="Number of concurrent segment downloads (default: number of CPUs)",
    )
    parser.add_argument("-c", "--cookie", default=config.get("cookie"), help="Cookie header sent with every request")
    parser.add_argument(
        "-r", "--referer",
        default=config.get("referer"),
        help="Referer header sent with every request (default: the playlist's origin)",
    )
    parser.add_argument(
        "-f", "--force",
        action="store_true",
        default=config.get("force", False),
        help="Discard previously downloaded segments and start over",
    )
    parser.add_argument(
        "--timeout",
        type=positive_float,
        default=config.get("timeout", DEFAULT_TIMEOUT),
        help=f"Overall timeout per request in seconds (default: {DEFAULT_TIMEOUT:g})",
    )
    parser.add_argument(
        "--retries",
        type=positive_int,
        default=config.get("retries", DEFAULT_MAX_ATTEMPTS),
        help=f"Attempts per segment before giving up (default: {DEFAULT_MAX_ATTEMPTS})",
    )
    parser.add_argument(
        "--retry-delay",
        type=non_negative_float,
        default=config.get("retry_delay", DEFAULT_RETRY_DELAY),
        help=f"Initial delay between attempts, doubled each time (default: {DEFAULT_RETRY_DELAY:g})",
    )
    parser.add_argument("--error-log", default=config.get("error_log"), help="Append failed segment details to this file")
    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        default=config.get("verbose", False),
        help="Print every retry",
    )
    return parser


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    """Parse command-line arguments, using the JSON config file for defaults."""
    if argv is None:
        argv = sys.argv[1:]

    config_path = _config_path_from_argv(argv)
    config = load_config_file(config_path)
    if config:
        print(f"Loaded configuration from {config_path}")

    return build_parser(config).parse_args(argv)


def _normalize_env_str(value: Optional[str]) -> Optional[str]:
    """Normalize environment variable string value."""
    if not value:
        return None
    stripped = value.strip()
    return stripped if stripped else None


def apply_environment_defaults(args, environ: Optional[Dict[str, str]] = None) -> None:
    """Populate cookie and referer from the environment when missing."""

    if environ is None:
        environ = os.environ

    if not getattr(args, "cookie", None):
        args.cookie = _normalize_env_str(environ.get(ENV_COOKIE))

    if not getattr(args, "referer", None):
        args.referer = _normalize_env_str(environ.get(ENV_REFERER))


@dataclass(frozen=True)
class DownloaderConfig:
    """Everything one pipeline run needs to know."""
    url: str
    target_dir: str
    output_name: str
    workers: int
    cookie: Optional[str] = None
    referer: Optional[str] = None
    force: bool = False
    timeout: float = DEFAULT_TIMEOUT
    max_attempts: int = DEFAULT_MAX_ATTEMPTS
    retry_delay: float = DEFAULT_RETRY_DELAY
    error_log: Optional[str] = None
    verbose: bool = False

    @classmethod
    def create(
        cls,
        url: str,
        target_dir: Optional[str] = None,
        output_name: Optional[str] = None,
        workers: Optional[int] = None,
        **kwargs,
    ) -> "DownloaderConfig":
        """Validate and fill defaults.

        Raises ValueError for an unusable URL or output name.
        """
        return cls(
            url=normalize_url(url),
            target_dir=os.path.abspath(target_dir or os.getcwd()),
            output_name=normalize_output_name(output_name),
            workers=workers if workers and workers > 0 else default_workers(),
            **kwargs,
        )


def config_from_args(args) -> DownloaderConfig:
    return DownloaderConfig.create(
        url=args.url,
        target_dir=args.dir,
        output_name=args.output,
        workers=args.threads,
        cookie=args.cookie or None,
        referer=args.referer or None,
        force=bool(args.force),
        timeout=args.timeout,
        max_attempts=args.retries,
        retry_delay=args.retry_delay,
        error_log=args.error_log,
        verbose=bool(args.verbose),
    )

#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
download_hls.py

Download an HLS (m3u8) video-on-demand stream into a single file.
Segments are fetched in parallel, decrypted when the playlist uses AES-128,
and kept in a hidden staging directory next to the output so an interrupted
or partially failed run resumes where it stopped.

Usage:
    python download_hls.py -m https://example.com/video/index.m3u8
    python download_hls.py -m URL -o episode-01 -d ~/Videos -t 16
    python download_hls.py -m URL --cookie "session=abc" --referer https://example.com/
    python download_hls.py -m URL --force
"""

from __future__ import annotations

import sys
from typing import List, Optional

from hls_downloader import (
    ConsoleProgressBar,
    HLSDownloader,
    apply_environment_defaults,
    config_from_args,
    parse_args,
)


def main(argv: Optional[List[str]] = None) -> int:
    args = parse_args(argv)
    apply_environment_defaults(args)

    try:
        config = config_from_args(args)
    except ValueError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 2

    downloader = HLSDownloader(config, sink=ConsoleProgressBar())
    try:
        result = downloader.download()
    except KeyboardInterrupt:
        print("\nInterrupted. Run the same command again to resume.", file=sys.stderr)
        return 130

    if result.succeeded:
        print(result.summary())
        return 0

    print(result.summary(), file=sys.stderr)
    return 1


if __name__ == "__main__":
    sys.exit(main())

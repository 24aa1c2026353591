#!/usr/bin/env python3
"""Upload one video from the command line and print the outcome as JSON."""
from __future__ import annotations

import argparse
import json
import logging
import signal
import sys
import threading
from pathlib import Path
from typing import Dict, List, Optional

from .logging_config import configure_logging
from .models import MediaFile
from .orchestrator import TranscodeCallbacks
from .pipeline import UploadPipeline
from .settings import build_default_config

LOGGER = logging.getLogger("video_uploader.cli")

EXIT_SUCCESS = 0
EXIT_FAILURE = 1
EXIT_CANCELLED = 130


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description=(
            "Validate a video, then store it directly or send it through the "
            "transcoding server chain."
        )
    )
    parser.add_argument("path", nargs="?", help="Path to the video file to upload.")
    parser.add_argument("--mime", help="Override the detected mime type.")
    parser.add_argument("--name", help="Display name sent with the upload.")
    parser.add_argument(
        "--duration",
        type=float,
        help="Known clip duration in seconds (skips ffprobe).",
    )
    parser.add_argument(
        "--preprocessed",
        action="store_true",
        help="Treat the file as already re-encoded and upload it directly.",
    )
    parser.add_argument(
        "--context",
        action="append",
        default=[],
        metavar="KEY=VALUE",
        help="Telemetry field forwarded with every attempt (repeatable).",
    )
    parser.add_argument("--log-dir", type=Path, help="Directory for log files.")
    parser.add_argument("--no-log-file", action="store_true", help="Log to stderr only.")
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging.")
    parser.add_argument(
        "--list-servers",
        action="store_true",
        help="Print the configured transcoding servers in failover order and exit.",
    )
    args = parser.parse_args(argv)
    if args.path is None and not args.list_servers:
        parser.error("the following arguments are required: path")
    return args


def _parse_context(pairs: List[str]) -> Dict[str, str]:
    context: Dict[str, str] = {}
    for pair in pairs:
        key, sep, value = pair.partition("=")
        if not sep or not key.strip():
            raise SystemExit(f"Invalid --context value (expected KEY=VALUE): {pair}")
        context[key.strip()] = value
    return context


def main(argv: Optional[List[str]] = None) -> int:
    args = parse_args(argv)
    if args.list_servers:
        registry = build_default_config().registry
        print(json.dumps([server.to_dict() for server in registry], indent=2))
        return EXIT_SUCCESS

    configure_logging(
        "video-uploader",
        log_dir=args.log_dir,
        level=logging.DEBUG if args.verbose else logging.INFO,
        to_file=not args.no_log_file,
    )
    context = _parse_context(args.context)

    try:
        media = MediaFile.from_path(
            args.path,
            mime_type=args.mime,
            name=args.name,
            duration=args.duration,
            preprocessed=args.preprocessed,
        )
    except FileNotFoundError as exc:
        raise SystemExit(str(exc)) from exc

    stop_event = threading.Event()

    def _request_stop(signum, _frame) -> None:
        LOGGER.info("Signal %s received; cancelling upload", signum)
        stop_event.set()

    previous = {sig: signal.signal(sig, _request_stop) for sig in (signal.SIGINT, signal.SIGTERM)}

    callbacks = TranscodeCallbacks(
        on_progress=lambda percent, stage: LOGGER.info("%5.1f%% %s", percent, stage),
        on_server_attempt=lambda key, name, priority: LOGGER.info(
            "Trying %s (%s, priority %d)", name, key, priority
        ),
        on_server_failed=lambda key: LOGGER.warning("Server %s failed", key),
    )

    pipeline = UploadPipeline(build_default_config())
    try:
        outcome = pipeline.upload(media, context, callbacks, stop_event=stop_event)
    finally:
        pipeline.close()
        for sig, handler in previous.items():
            if handler is not None:
                signal.signal(sig, handler)

    print(json.dumps(outcome.to_dict(), indent=2))
    if outcome.succeeded:
        return EXIT_SUCCESS
    if outcome.cancelled:
        return EXIT_CANCELLED
    return EXIT_FAILURE


if __name__ == "__main__":
    sys.exit(main())

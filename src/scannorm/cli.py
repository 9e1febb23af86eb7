#!/usr/bin/env python3
"""
ScanNorm CLI - normalize scanner captures from the terminal.

Usage:
    python -m scannorm.cli <command> [options]

Commands:
    process     Normalize photographed documents (JPEG in, JPEG out)
    detect      Print the detected document boundary as JSON
    replay      Normalize captures found in recorded hardware responses

Examples:
    # One file
    scannorm process photo.jpg -o page.jpg

    # Several files into a directory, keep the original colours
    scannorm process a.jpg b.jpg -o out/ --no-illumination --no-tone

    # Black fill outside the page, custom settings file
    scannorm process photo.jpg -o page.jpg --fill black --config ./settings.json

    # Inspect detection
    scannorm detect photo.jpg

    # Recorded responses, one JSON message per line
    scannorm replay responses.jsonl -o downloads/ --purpose scanner-photo
"""

import argparse
import dataclasses
import json
import logging
import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path

from scannorm.config import DEFAULT_DOWNLOAD_PURPOSE
from scannorm.constants import DEFAULT_RUNNER_WORKERS
from scannorm.utils.i18n import _

# ---------------------------------------------------------------------------
# Argument parser construction
# ---------------------------------------------------------------------------


def build_parser() -> argparse.ArgumentParser:
    """Build the argument parser with subcommands."""
    p = argparse.ArgumentParser(
        prog="scannorm",
        description="ScanNorm: document capture normalization.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    p.add_argument("-v", "--verbose", action="store_true", help=_("Verbose logging (DEBUG)"))

    sub = p.add_subparsers(dest="command", help=_("Available commands"))

    # --- process ---
    proc_p = sub.add_parser("process", help=_("Normalize photographed documents"))
    proc_p.add_argument("inputs", type=Path, nargs="+", help=_("Input image files"))
    proc_p.add_argument(
        "-o",
        "--output",
        type=Path,
        required=True,
        help=_("Output file (single input) or directory"),
    )
    proc_p.add_argument(
        "--workers",
        type=int,
        default=DEFAULT_RUNNER_WORKERS,
        help=_("Parallel workers. Default: %(default)s."),
    )
    _add_pipeline_options(proc_p)

    # --- detect ---
    detect_p = sub.add_parser("detect", help=_("Print the detected document boundary"))
    detect_p.add_argument("input", type=Path, help=_("Input image file"))
    detect_p.add_argument("--config", type=Path, default=None, help=_("Settings file"))

    # --- replay ---
    replay_p = sub.add_parser(
        "replay", help=_("Normalize captures from recorded hardware responses")
    )
    replay_p.add_argument(
        "responses", type=Path, help=_("File with one JSON response message per line")
    )
    replay_p.add_argument(
        "-o", "--output", type=Path, required=True, help=_("Download directory")
    )
    replay_p.add_argument(
        "--purpose",
        default=DEFAULT_DOWNLOAD_PURPOSE,
        help=_("Leading part of the download filename. Default: %(default)s."),
    )
    _add_pipeline_options(replay_p)

    return p


def _add_pipeline_options(parser: argparse.ArgumentParser) -> None:
    group = parser.add_argument_group(_("Pipeline"))
    group.add_argument("--config", type=Path, default=None, help=_("Settings file"))
    group.add_argument(
        "--no-orientation", action="store_true", help=_("Keep the detected rotation")
    )
    group.add_argument(
        "--no-illumination", action="store_true", help=_("Skip shadow/lighting correction")
    )
    group.add_argument("--no-tone", action="store_true", help=_("Skip the brightness curve"))
    group.add_argument(
        "--no-overcrop", action="store_true", help=_("Do not trim the edges after a warp")
    )
    group.add_argument(
        "--fill",
        choices=["white", "black"],
        default=None,
        help=_("Colour outside the photographed page"),
    )
    group.add_argument(
        "--quality",
        type=float,
        default=None,
        help=_("JPEG quality 1-100 or a 0-1 fraction (default from settings, 92)"),
    )


# ---------------------------------------------------------------------------
# Shared helpers
# ---------------------------------------------------------------------------


def _load_config(args):
    """Pipeline settings from --config (if any) with command-line overrides applied."""
    from scannorm.services.pipeline_config import PipelineConfig
    from scannorm.utils.config_manager import ConfigManager

    if args.config is not None:
        config = ConfigManager(str(args.config)).pipeline_config()
    else:
        config = PipelineConfig()

    overrides = {}
    if getattr(args, "no_orientation", False):
        overrides["enable_orientation"] = False
    if getattr(args, "no_illumination", False):
        overrides["enable_illumination"] = False
    if getattr(args, "no_tone", False):
        overrides["enable_tone_curve"] = False
    if getattr(args, "no_overcrop", False):
        overrides["enable_overcrop"] = False
    if getattr(args, "fill", None):
        overrides["fill_color"] = args.fill
    if getattr(args, "quality", None) is not None:
        overrides["jpeg_quality"] = args.quality

    return dataclasses.replace(config, **overrides).validate()


def _output_paths(inputs: list[Path], output: Path) -> list[Path]:
    """Single input with a file-like output keeps the name; otherwise a directory."""
    if len(inputs) == 1 and not output.is_dir() and output.suffix:
        output.parent.mkdir(parents=True, exist_ok=True)
        return [output]
    output.mkdir(parents=True, exist_ok=True)
    return [output / f"{path.stem}.jpg" for path in inputs]


def _unique_download_path(directory: Path, purpose: str) -> Path:
    from scannorm.utils.format_utils import download_filename

    when = datetime.now(timezone.utc)
    path = directory / download_filename(purpose, when)
    while path.exists():
        when += timedelta(milliseconds=1)
        path = directory / download_filename(purpose, when)
    return path


# ---------------------------------------------------------------------------
# Command handlers
# ---------------------------------------------------------------------------


def _cmd_process(args, logger) -> int:
    """Handle the 'process' command."""
    from scannorm.services.capture_runner import CaptureRunner
    from scannorm.services.pipeline import DocumentPipeline
    from scannorm.utils.format_utils import format_elapsed_ms, format_file_size

    for path in args.inputs:
        if not path.is_file():
            print(f"Error: {path} not found", file=sys.stderr)
            return 1
    if args.workers < 1:
        print("Error: --workers must be at least 1", file=sys.stderr)
        return 1

    pipeline = DocumentPipeline(_load_config(args))
    outputs = _output_paths(args.inputs, args.output)

    failures = 0
    with CaptureRunner(pipeline, max_workers=args.workers) as runner:
        jobs = []
        for path, out_path in zip(args.inputs, outputs):
            data = path.read_bytes()
            jobs.append((path, out_path, data, runner.submit(str(path), data)))

        for path, out_path, data, future in jobs:
            outcome = future.result()
            if outcome.payload == data:
                print(f"Error: {path} could not be normalized", file=sys.stderr)
                failures += 1
                continue
            out_path.write_bytes(outcome.payload)
            print(
                f"{path} → {out_path} "
                f"({format_file_size(len(outcome.payload))}, "
                f"{format_elapsed_ms(outcome.elapsed)})"
            )

    logger.debug(f"Processed {len(args.inputs)} file(s), {failures} failure(s)")
    return 1 if failures else 0


def _cmd_detect(args, logger) -> int:
    """Handle the 'detect' command."""
    from scannorm.services.boundary_detection import BoundaryDetector
    from scannorm.services.codec import decode

    result = BoundaryDetector(_load_config(args)).detect(decode(args.input.read_bytes()))
    print(json.dumps(result.to_dict(), indent=2))
    return 0


def _cmd_replay(args, logger) -> int:
    """Handle the 'replay' command."""
    from scannorm.services.capture_runner import CaptureRunner
    from scannorm.services.codec import payload_to_bytes
    from scannorm.services.hardware_protocol import CaptureTracker, HardwareResponse
    from scannorm.services.pipeline import DocumentPipeline
    from scannorm.utils.exceptions import ProtocolError

    pipeline = DocumentPipeline(_load_config(args))
    tracker = CaptureTracker()
    args.output.mkdir(parents=True, exist_ok=True)

    saved = 0
    malformed = 0
    with CaptureRunner(pipeline, max_workers=1) as runner, args.responses.open(
        encoding="utf-8"
    ) as lines:
        for line_no, line in enumerate(lines, start=1):
            if not line.strip():
                continue
            try:
                response = HardwareResponse.from_json(line)
            except ProtocolError as e:
                logger.warning(f"Line {line_no}: {e}")
                malformed += 1
                continue

            capture = tracker.accept(response)
            if capture is None:
                continue

            outcome = runner.process(response.device_type or "capture", capture)
            if outcome.error:
                logger.warning(f"Line {line_no}: {outcome.error}; saving the original")
            path = _unique_download_path(args.output, args.purpose)
            path.write_bytes(payload_to_bytes(outcome.payload))
            print(f"{path}")
            saved += 1

    print(f"Saved {saved} capture(s), skipped {malformed} malformed message(s)")
    return 1 if malformed else 0


# ---------------------------------------------------------------------------
# Main entry point
# ---------------------------------------------------------------------------


def main(argv: list[str] | None = None) -> int:
    """CLI entry point."""
    from scannorm.utils.exceptions import ScanNormError
    from scannorm.utils.logger import set_verbose

    parser = build_parser()
    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        return 0

    # Configure logging
    set_verbose(args.verbose)
    logger = logging.getLogger("scannorm.cli")

    # Validate input file existence
    for attr in ("input", "responses"):
        path = getattr(args, attr, None)
        if path is not None and not path.exists():
            print(f"Error: {path} not found", file=sys.stderr)
            return 1

    # Dispatch to command handler
    handlers = {
        "process": _cmd_process,
        "detect": _cmd_detect,
        "replay": _cmd_replay,
    }

    handler = handlers.get(args.command)
    if handler is None:
        parser.print_help()
        return 1

    try:
        return handler(args, logger)
    except ScanNormError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())

# Copyright 2026 Zsolt Kulcsar and Contributors. Licensed under the EUPL-1.2 or later
"""Command line entry point for documentation snippet validation."""

import argparse
import json
import logging
import signal
import sys
import threading
from dataclasses import replace
from pathlib import Path
from types import FrameType
from typing import TextIO

from rich.console import Console
from rich.logging import RichHandler
from rich.style import Style
from rich.table import Table
from rich.text import Text

from snipcheck.config import ConfigError, ValidatorConfig, load_config
from snipcheck.database import SQLiteSnippetCache
from snipcheck.discovery import DiscoveryError
from snipcheck.model import CodeSnippet, DocumentError
from snipcheck.pipeline import ValidationPipeline
from snipcheck.renderer import REPORT_FORMATS, ReportRenderer
from snipcheck.runner import ToolchainNotFoundError

logger = logging.getLogger(__name__)

TABLE_COLUMN_RATIOS: dict[str, int] = {
    "ordinal": 1,
    "line": 1,
    "language": 1,
    "heading_path": 4,
    "status": 3,
}


def configure_logging(level: int = logging.INFO) -> None:
    """Configure application logging with Rich handler.

    Args:
        level: Logging severity threshold.
    """
    logging.basicConfig(
        level=level,
        format="%(message)s",
        handlers=[
            RichHandler(console=Console(stderr=True), rich_tracebacks=True, show_path=False)
        ],
    )


def build_parser() -> argparse.ArgumentParser:
    """Build the top-level CLI parser.

    Returns:
        Configured argument parser instance.
    """
    parser = argparse.ArgumentParser(prog="snipcheck")
    subparsers = parser.add_subparsers(dest="command", required=True)

    validate_parser = subparsers.add_parser("validate")
    validate_parser.add_argument(
        "paths", nargs="+", help="Documentation files, directories or glob patterns."
    )
    validate_parser.add_argument("--config", required=False, help="Configuration file path.")
    validate_parser.add_argument(
        "--format", choices=REPORT_FORMATS, default="text", help="Report format."
    )
    validate_parser.add_argument(
        "--output", required=False, help="Optional file receiving the report."
    )
    validate_parser.add_argument(
        "--timeout", type=float, required=False, help="Per-snippet compile timeout in seconds."
    )
    validate_parser.add_argument(
        "--workers", type=int, required=False, help="Number of parallel compilations."
    )
    cache_group = validate_parser.add_mutually_exclusive_group()
    cache_group.add_argument(
        "--cache", required=False, help="SQLite file remembering passing snippets."
    )
    cache_group.add_argument(
        "--no-cache", action="store_true", help="Ignore any configured snippet cache."
    )
    validate_parser.add_argument("--verbose", action="store_true", help="Enable debug logs.")

    extract_parser = subparsers.add_parser("extract")
    extract_parser.add_argument(
        "paths", nargs="+", help="Documentation files, directories or glob patterns."
    )
    extract_parser.add_argument("--config", required=False, help="Configuration file path.")
    extract_parser.add_argument(
        "--format", choices=("table", "json"), default="table", help="Output format."
    )
    extract_parser.add_argument("--verbose", action="store_true", help="Enable debug logs.")
    return parser


def run(
    argv: list[str],
    stdout: TextIO,
    stderr: TextIO,
    cancel_event: threading.Event | None = None,
) -> int:
    """Run CLI command.

    Args:
        argv: CLI arguments.
        stdout: Standard output stream.
        stderr: Standard error stream.
        cancel_event: Event stopping a validation run between documents.

    Returns:
        Exit code.
    """
    parser = build_parser()
    try:
        args = parser.parse_args(argv)
    except SystemExit:
        logger.warning(f"Argument parsing failed (argv={argv})")
        return 2
    if args.verbose:
        logging.getLogger().setLevel(logging.DEBUG)

    try:
        config = load_config(Path(args.config) if args.config else None)
    except ConfigError as exc:
        logger.warning(f"Invalid configuration (error={exc})")
        stderr.write(f"Invalid configuration: {exc}\n")
        return 2

    if args.command == "validate":
        return _run_validate(
            args=args, config=config, stdout=stdout, stderr=stderr, cancel_event=cancel_event
        )
    if args.command == "extract":
        return _run_extract(args=args, config=config, stdout=stdout, stderr=stderr)

    logger.warning(f"Unsupported command (command={args.command})")
    stderr.write(f"Unsupported command: {args.command}\n")
    return 2


def _run_validate(
    args: argparse.Namespace,
    config: ValidatorConfig,
    stdout: TextIO,
    stderr: TextIO,
    cancel_event: threading.Event | None,
) -> int:
    """Run validate command.

    Args:
        args: Parsed CLI arguments.
        config: Effective configuration.
        stdout: Standard output stream.
        stderr: Standard error stream.
        cancel_event: Event stopping the run; one bound to SIGINT when omitted.

    Returns:
        Exit code.
    """
    try:
        config = _apply_overrides(args=args, config=config)
    except ValueError as exc:
        logger.warning(f"Invalid argument (error={exc})")
        stderr.write(f"{exc}\n")
        return 2

    cache = SQLiteSnippetCache(config.cache_path) if config.cache_path else None
    event = cancel_event if cancel_event is not None else threading.Event()
    pipeline = ValidationPipeline(config=config, cache=cache, cancel_event=event)

    previous_handler = _install_interrupt_handler(event) if cancel_event is None else None
    try:
        report = pipeline.run(list(args.paths))
    except DiscoveryError as exc:
        logger.warning(f"Document discovery failed (error={exc})")
        stderr.write(f"{exc}\n")
        return 2
    except ToolchainNotFoundError as exc:
        logger.warning(f"Toolchain missing (language={exc.language} executable={exc.executable})")
        stderr.write(f"{exc}\n")
        return 2
    finally:
        if previous_handler is not None:
            signal.signal(signal.SIGINT, previous_handler)

    renderer = ReportRenderer(report_format=args.format)
    if args.output:
        output_path = Path(args.output)
        try:
            output_path.parent.mkdir(parents=True, exist_ok=True)
            with output_path.open("w", encoding="utf-8") as handle:
                renderer.render(report, handle)
        except OSError as exc:
            logger.warning(
                f"Failed to write report file (output_path={args.output} error={exc})"
            )
            stderr.write(f"Failed to write report file: {args.output}\n")
            return 2
    else:
        renderer.render(report, stdout)

    logger.info(
        f"Validation completed (checked={report.checked} passed={report.passed} "
        f"failed={report.failed} skipped={report.skipped} exit_code={report.exit_code()})"
    )
    return report.exit_code()


def _run_extract(
    args: argparse.Namespace, config: ValidatorConfig, stdout: TextIO, stderr: TextIO
) -> int:
    """Run extract command.

    Args:
        args: Parsed CLI arguments.
        config: Effective configuration.
        stdout: Standard output stream.
        stderr: Standard error stream.

    Returns:
        Exit code.
    """
    pipeline = ValidationPipeline(config=config)
    try:
        snippets, errors = pipeline.extract(list(args.paths))
    except DiscoveryError as exc:
        logger.warning(f"Document discovery failed (error={exc})")
        stderr.write(f"{exc}\n")
        return 2
    _write_errors(errors=errors, stderr=stderr)
    if args.format == "json":
        _write_json(snippets=snippets, errors=errors, stdout=stdout)
    else:
        _write_table(snippets=snippets, stdout=stdout)
    return 1 if errors else 0


def _apply_overrides(args: argparse.Namespace, config: ValidatorConfig) -> ValidatorConfig:
    """Apply command line overrides on top of the loaded configuration.

    Raises:
        ValueError: If an override value is out of range.
    """
    if args.timeout is not None:
        if args.timeout <= 0:
            raise ValueError("timeout must be > 0")
        config = replace(config, timeout_seconds=args.timeout)
    if args.workers is not None:
        if args.workers <= 0:
            raise ValueError("workers must be > 0")
        config = replace(config, max_workers=args.workers)
    if args.no_cache:
        config = replace(config, cache_path=None)
    elif args.cache:
        config = replace(config, cache_path=Path(args.cache))
    return config


def _install_interrupt_handler(event: threading.Event) -> object | None:
    """Route SIGINT to the cancellation event while a run is active."""
    if threading.current_thread() is not threading.main_thread():
        return None

    def _handle(signum: int, frame: FrameType | None) -> None:
        logger.warning("Interrupt received, finishing in-flight snippets")
        event.set()

    return signal.signal(signal.SIGINT, _handle)


def _write_errors(errors: list[DocumentError], stderr: TextIO) -> None:
    for error in errors:
        stderr.write(f"document_error: {error.document_path}:{error.line}: {error.message}\n")


def _snippet_payload(snippet: CodeSnippet) -> dict[str, object]:
    return {
        "document_path": snippet.document_path,
        "ordinal": snippet.ordinal,
        "start_line": snippet.start_line,
        "language": snippet.language,
        "heading_path": list(snippet.heading_path),
        "fence": snippet.fence,
        "skip": snippet.skip,
        "skip_reason": snippet.skip_reason,
        "raw_text": snippet.raw_text,
    }


def _write_json(
    snippets: list[CodeSnippet], errors: list[DocumentError], stdout: TextIO
) -> None:
    """Write snippets and document errors in JSON format.

    Args:
        snippets: Extracted snippets.
        errors: Document-level failures.
        stdout: Standard output stream.
    """
    payload = {
        "snippets": [_snippet_payload(snippet) for snippet in snippets],
        "errors": [
            {"document_path": error.document_path, "line": error.line, "message": error.message}
            for error in errors
        ],
    }
    console = Console(file=stdout, force_terminal=False, color_system="truecolor")
    console.print(
        json.dumps(payload, indent=2, sort_keys=True),
        markup=False,
        highlight=False,
        soft_wrap=True,
    )


def _write_table(snippets: list[CodeSnippet], stdout: TextIO) -> None:
    """Write snippets as one table per document.

    Args:
        snippets: Extracted snippets.
        stdout: Standard output stream.
    """
    console = Console(file=stdout, force_terminal=False, color_system="truecolor", width=120)
    snippets_by_document: dict[str, list[CodeSnippet]] = {}
    for snippet in snippets:
        snippets_by_document.setdefault(snippet.document_path, []).append(snippet)

    for document_path in sorted(snippets_by_document):
        console.rule(Text(document_path), style=Style(color="cyan"), characters="-")
        table = Table(show_header=True, show_lines=True, expand=True)
        table.add_column("#", ratio=TABLE_COLUMN_RATIOS["ordinal"], justify="right")
        table.add_column("line", ratio=TABLE_COLUMN_RATIOS["line"], justify="right")
        table.add_column("language", ratio=TABLE_COLUMN_RATIOS["language"], overflow="fold")
        table.add_column(
            "heading_path", ratio=TABLE_COLUMN_RATIOS["heading_path"], overflow="fold"
        )
        table.add_column("status", ratio=TABLE_COLUMN_RATIOS["status"], overflow="fold")
        for snippet in snippets_by_document[document_path]:
            table.add_row(
                Text(str(snippet.ordinal)),
                Text(str(snippet.start_line)),
                Text(snippet.language or "-"),
                Text(" > ".join(snippet.heading_path)),
                Text(snippet.skip_reason or "check"),
            )
        console.print(table)


def main() -> None:
    """Run the CLI application and exit."""
    configure_logging()
    exit_code = run(sys.argv[1:], stdout=sys.stdout, stderr=sys.stderr)
    raise SystemExit(exit_code)


if __name__ == "__main__":
    main()

"""
Command-line interface.

Usage:
    localrag ready [--serve]       (a runtime spawned by the command stops on exit)
    localrag download URL [URL ...] --dest DIR
    localrag ingest PATH [PATH ...] --subject ID
    localrag search TEXT [--subject ID] [--limit N]
    localrag delete-file FILE_ID [--subject ID]
    localrag delete-subject SUBJECT_ID
    localrag status

Global options: --config FILE, --verbose, --json-logs.
Results are printed to stdout as JSON; logs go to stderr.
Exit code is 0 on success and 1 on failure.
"""

import argparse
import json
import logging
import sys
import threading
from pathlib import Path
from typing import Any, List, Optional

from downloads import DownloadProgress, DownloadStatus
from runtime import ProgressEvent, RuntimeServiceError, ServiceResult
from runtime.core.logging import configure_logging
from vectorstore import VectorStoreError

from .config import ConfigError, load_config
from .context import AppContext


logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    """Build the argument parser."""
    parser = argparse.ArgumentParser(
        prog="localrag",
        description="Local runtime supervision and document ingestion",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )

    parser.add_argument("--config", type=Path, help="Path to configuration YAML file")
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable verbose/debug logging")
    parser.add_argument("--json-logs", action="store_true", help="Emit JSON-structured logs")

    subparsers = parser.add_subparsers(dest="command", help="Command")

    ready_parser = subparsers.add_parser("ready", help="Download, install, start and pull models")
    ready_parser.add_argument(
        "--serve",
        action="store_true",
        help="Keep the runtime running until interrupted",
    )

    download_parser = subparsers.add_parser("download", help="Download URLs concurrently")
    download_parser.add_argument("urls", nargs="+", help="URLs to download")
    download_parser.add_argument("--dest", type=Path, required=True, help="Destination directory")

    ingest_parser = subparsers.add_parser("ingest", help="Ingest documents into a subject")
    ingest_parser.add_argument("paths", nargs="+", type=Path, help="Documents to ingest")
    ingest_parser.add_argument("--subject", required=True, help="Subject id")

    search_parser = subparsers.add_parser("search", help="Search ingested chunks")
    search_parser.add_argument("text", help="Query text")
    search_parser.add_argument("--subject", help="Restrict to one subject")
    search_parser.add_argument("--limit", type=int, help="Maximum hits (<= 0 for all)")

    delete_file_parser = subparsers.add_parser("delete-file", help="Delete an ingested file")
    delete_file_parser.add_argument("file_id", help="File id")
    delete_file_parser.add_argument("--subject", help="Subject id, used when no record exists")

    delete_subject_parser = subparsers.add_parser("delete-subject", help="Delete a subject and its files")
    delete_subject_parser.add_argument("subject_id", help="Subject id")

    subparsers.add_parser("status", help="Show runtime status")

    return parser


def _print_json(payload: Any) -> None:
    print(json.dumps(payload, indent=2, default=str))


def _report(result: ServiceResult) -> int:
    _print_json(result.to_dict())
    return 0 if result.success else 1


def _log_runtime_progress(event: ProgressEvent) -> None:
    if event.percentage is not None:
        logger.info(f"[{event.phase.value}] {event.status} {event.percentage}%")
    elif event.error:
        logger.error(f"[{event.phase.value}] {event.status}: {event.error}")
    else:
        logger.info(f"[{event.phase.value}] {event.status}")


def _log_download_progress(progress: DownloadProgress) -> None:
    if progress.error:
        logger.error(f"{progress.url}: {progress.error}")
    elif progress.status == DownloadStatus.DOWNLOADING:
        logger.info(f"{progress.filename}: {progress.percentage}%")
    else:
        logger.info(f"{progress.url}: {progress.status.value}")


def _ensure_ready(context: AppContext) -> Optional[ServiceResult]:
    """Bring the runtime up; returns the failed result, or None when ready."""
    result = context.supervisor.ensure_ready(_log_runtime_progress)
    return None if result.success else result


# =============================================================================
# Commands
# =============================================================================

def cmd_ready(context: AppContext, args: argparse.Namespace) -> int:
    result = context.supervisor.ensure_ready(_log_runtime_progress)
    code = _report(result)
    if code != 0 or not args.serve:
        return code

    logger.info("Runtime running; press Ctrl+C to stop")
    try:
        threading.Event().wait()
    except KeyboardInterrupt:
        logger.info("Interrupted by user")
    finally:
        context.supervisor.stop_runtime()
    return 0


def cmd_status(context: AppContext, args: argparse.Namespace) -> int:
    status = context.supervisor.status()
    status["reachable"] = context.client.ping()
    _print_json(status)
    return 0


def cmd_download(context: AppContext, args: argparse.Namespace) -> int:
    results = context.downloader.download_all(args.urls, args.dest, _log_download_progress)
    _print_json([result.to_dict() for result in results])
    return 0 if all(result.success for result in results) else 1


def cmd_ingest(context: AppContext, args: argparse.Namespace) -> int:
    failed = _ensure_ready(context)
    if failed is not None:
        return _report(failed)

    outcomes: List[dict] = []
    for path in args.paths:
        result = context.pipeline.ingest(path, args.subject)
        outcome = result.to_dict()
        outcome["path"] = str(path)
        outcomes.append(outcome)

    _print_json(outcomes)
    return 0 if all(outcome["success"] for outcome in outcomes) else 1


def cmd_search(context: AppContext, args: argparse.Namespace) -> int:
    failed = _ensure_ready(context)
    if failed is not None:
        return _report(failed)
    return _report(context.pipeline.search(args.text, subject_id=args.subject, limit=args.limit))


def cmd_delete_file(context: AppContext, args: argparse.Namespace) -> int:
    return _report(context.pipeline.delete_file(args.file_id, subject_id=args.subject))


def cmd_delete_subject(context: AppContext, args: argparse.Namespace) -> int:
    return _report(context.pipeline.delete_subject(args.subject_id))


COMMANDS = {
    "ready": cmd_ready,
    "status": cmd_status,
    "download": cmd_download,
    "ingest": cmd_ingest,
    "search": cmd_search,
    "delete-file": cmd_delete_file,
    "delete-subject": cmd_delete_subject,
}


def main(argv: Optional[List[str]] = None, context: Optional[AppContext] = None) -> int:
    """
    Main entry point.

    Args:
        argv: Arguments (sys.argv[1:] if None)
        context: Prebuilt application context (built from --config if None)

    Returns:
        Process exit code
    """
    parser = build_parser()
    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        return 1

    configure_logging(
        level=logging.DEBUG if args.verbose else logging.INFO,
        structured=args.json_logs,
    )

    owns_context = context is None
    if context is None:
        try:
            context = AppContext(load_config(args.config))
        except (ConfigError, FileNotFoundError) as e:
            logger.error(f"Configuration error: {e}")
            return 1
        except RuntimeServiceError as e:
            logger.error(f"Cannot initialize runtime: {e}")
            return 1

    try:
        return COMMANDS[args.command](context, args)
    except KeyboardInterrupt:
        logger.info("Interrupted by user")
        return 1
    except (VectorStoreError, RuntimeServiceError) as e:
        logger.error(f"{args.command} failed: {e}")
        return 1
    finally:
        if owns_context:
            context.close(stop_runtime=True)


if __name__ == "__main__":
    sys.exit(main())

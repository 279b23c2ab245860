"""Command line interface for asset_uploader package."""
from __future__ import annotations

import argparse
import asyncio
import logging
import os
import sys
from pathlib import Path
from typing import List, Optional, Sequence

from rich.logging import RichHandler

from .cli_progress import (
    BatchUploadProgressDisplay,
    render_batch_summary,
    render_configuration_summary,
)
from .models import FileRef, ItemStatus, UploadConfig, UploadItem


class CLIError(RuntimeError):
    """Raised when CLI validation/execution fails."""


def _setup_logging(debug: bool, silent: bool, log_level: Optional[str]) -> str:
    """
    Configure logging.

    Default behavior is silent unless --debug or --log-level is provided.
    Returns a string describing effective mode.
    """
    root_logger = logging.getLogger()
    for handler in list(root_logger.handlers):
        root_logger.removeHandler(handler)

    logging.disable(logging.NOTSET)

    if silent or (not debug and not log_level and not os.getenv("LOG_LEVEL")):
        logging.disable(logging.CRITICAL)
        root_logger.setLevel(logging.CRITICAL + 1)
        return "silent"

    if debug:
        level = logging.DEBUG
    else:
        name = log_level or os.getenv("LOG_LEVEL") or "INFO"
        level = getattr(logging, name.upper(), logging.INFO)

    handler = RichHandler(
        rich_tracebacks=True,
        markup=False,
        show_time=False,
        show_path=False,
    )
    handler.setFormatter(logging.Formatter("%(message)s"))
    root_logger.addHandler(handler)
    root_logger.setLevel(level)
    # httpx logs every request at INFO
    logging.getLogger("httpx").setLevel(max(level, logging.WARNING))
    return logging.getLevelName(level)


def _strip_optional_quotes(value: str) -> str:
    if len(value) >= 2 and value[0] == value[-1] and value[0] in {"'", '"'}:
        return value[1:-1]
    return value


def _load_env_file(path: Path, override: bool = False) -> None:
    if not path.exists():
        raise CLIError(f"env file not found: {path}")
    if not path.is_file():
        raise CLIError(f"env path is not a file: {path}")

    try:
        content = path.read_text(encoding="utf-8")
    except OSError as exc:
        raise CLIError(f"could not read env file {path}: {exc}") from exc

    for raw_line in content.splitlines():
        line = raw_line.strip()
        if not line or line.startswith("#"):
            continue
        if line.startswith("export "):
            line = line[len("export ") :].strip()
        if "=" not in line:
            continue

        key, value = line.split("=", 1)
        key = key.strip()
        if not key:
            continue

        value = _strip_optional_quotes(value.strip())
        if override or key not in os.environ:
            os.environ[key] = value


def _resolve_default_env_file() -> Optional[Path]:
    default_env = Path(".env")
    return default_env if default_env.exists() and default_env.is_file() else None


def _parse_tags(raw: Optional[str]) -> Optional[List[str]]:
    if raw is None:
        return None
    return [tag.strip() for tag in raw.split(",") if tag.strip()]


def _collect_files(sources: Sequence[Path]) -> List[FileRef]:
    """Expand sources into file refs; directories contribute their direct files."""
    refs: List[FileRef] = []
    for source in sources:
        source = Path(source).expanduser()
        if source.is_file():
            refs.append(FileRef.from_path(source))
        elif source.is_dir():
            refs.extend(
                FileRef.from_path(child)
                for child in sorted(source.iterdir())
                if child.is_file() and not child.name.startswith(".")
            )
        else:
            raise CLIError(f"source does not exist: {source}")
    if not refs:
        raise CLIError("no files to upload")
    return refs


async def _run_upload(
    files: List[FileRef],
    config: UploadConfig,
    tags: Optional[List[str]],
    show_progress: bool = True,
) -> int:
    from asset_uploader import UploadOrchestrator

    finished: List[UploadItem] = []
    display = BatchUploadProgressDisplay(live=show_progress)

    async with UploadOrchestrator(config, on_complete=finished.extend) as orchestrator:
        orchestrator.on_item_start(display.on_item_start)
        orchestrator.on_item_progress(display.on_item_progress)
        orchestrator.on_item_complete(display.on_item_complete)
        orchestrator.on_item_fail(display.on_item_fail)

        display.start()
        try:
            orchestrator.submit(files, tags=tags)
            await orchestrator.wait_complete()
        finally:
            display.stop()

    render_batch_summary(finished)
    failed = [item for item in finished if item.status is ItemStatus.FAILED]
    return 1 if failed else 0


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="asset-up",
        description="Upload files to the asset storage backend via presigned URLs.",
    )
    parser.add_argument("sources", nargs="*", type=Path, help="Files or folders to upload")
    parser.add_argument(
        "--api-url",
        default=None,
        help="Storage API base URL (default from ASSET_API_URL or http://localhost:5000)",
    )
    parser.add_argument("-t", "--tags", default=None, help="Comma separated tags to attach")
    parser.add_argument(
        "-p",
        "--max-parallel",
        type=int,
        default=None,
        help="Maximum simultaneous uploads (default: unbounded)",
    )
    parser.add_argument(
        "--grace-delay",
        type=float,
        default=None,
        help="Seconds to keep final status before finishing (default 2)",
    )
    parser.add_argument(
        "--retries",
        type=int,
        default=None,
        help="Attempts per protocol step on transient failures (default 1: no retry)",
    )
    parser.add_argument(
        "--env-file",
        type=Path,
        default=None,
        help="Load environment variables from this .env file",
    )
    parser.add_argument("--no-progress", action="store_true", help="Disable live progress bars")
    parser.add_argument("--debug", action="store_true", help="Enable debug logs")
    parser.add_argument("--silent", action="store_true", help="Only print errors")
    parser.add_argument(
        "--log-level",
        default=None,
        help="Explicit log level (DEBUG/INFO/WARNING/ERROR)",
    )
    parser.add_argument("--version", action="version", version="asset-up 0.1.0")
    return parser


def run_cli(argv: Optional[Sequence[str]] = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)

    used_env_file = args.env_file or _resolve_default_env_file()
    if used_env_file is not None:
        try:
            _load_env_file(Path(used_env_file))
        except CLIError as exc:
            print(f"ERROR: {exc}", file=sys.stderr)
            return 1

    effective_log_mode = _setup_logging(
        debug=args.debug,
        silent=args.silent,
        log_level=args.log_level,
    )

    if not args.sources:
        parser.print_help()
        return 0

    try:
        files = _collect_files(args.sources)
        config = UploadConfig.from_env(
            api_url=args.api_url,
            max_concurrency=args.max_parallel,
            grace_delay=args.grace_delay,
            retry_attempts=args.retries,
        )
    except (CLIError, ValueError) as exc:
        print(f"ERROR: {exc}", file=sys.stderr)
        return 1

    tags = _parse_tags(args.tags)
    render_configuration_summary(
        {
            "Files": len(files),
            "API": config.api_url,
            "Max Parallel": config.max_concurrency or "unbounded",
            "Retries": config.retry_attempts,
            "Tags": ", ".join(tags) if tags else "-",
            "Env File": str(used_env_file) if used_env_file else "-",
            "Logging": effective_log_mode,
        }
    )

    try:
        return asyncio.run(
            _run_upload(files, config, tags, show_progress=not args.no_progress)
        )
    except CLIError as exc:
        print(f"ERROR: {exc}", file=sys.stderr)
        return 1
    except KeyboardInterrupt:
        print("Cancelled.", file=sys.stderr)
        return 130


def main() -> None:
    raise SystemExit(run_cli())


if __name__ == "__main__":
    main()

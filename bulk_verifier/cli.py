"""Command line interface for running bulk email verification."""
from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path
from typing import Any, Dict

from .checkpoint import CheckpointStore
from .config import ConfigurationError, VerifierSettings, resolve_settings
from .factory import build_client, build_orchestrator
from .ingestion.exporters import export_records
from .io import LeadFileError, load_leads
from .orchestrator import ResumeBlockedError
from .stores import OutputStore

EXIT_OK = 0
EXIT_FATAL = 1
EXIT_RESUME_BLOCKED = 3
EXIT_INTERRUPTED = 130


def _add_common_options(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--config", help="Optional configuration file (YAML or JSON)")
    parser.add_argument("--output-dir", help="Directory holding valid.json, invalid.json and the checkpoint")
    parser.add_argument("--env-file", help="Path to a .env file providing REOON_API_KEY")
    parser.add_argument(
        "--log-level",
        default="INFO",
        help="Logging level (e.g. DEBUG, INFO, WARNING)",
    )


def build_parser(prog: str | None = None) -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog=prog,
        description="Verify lead email addresses in batches with the Reoon bulk API",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    run = subparsers.add_parser("run", help="Verify every lead not yet classified")
    run.add_argument("input", help="Path to the lead file (JSON array, CSV or Excel)")
    run.add_argument("--batch-size", type=int, help="Emails per bulk task (default 100)")
    run.add_argument("--poll-interval", type=float, help="Seconds between result polls (default 5)")
    run.add_argument("--max-wait", type=float, help="Seconds to wait for one task (default 3600)")
    run.add_argument(
        "--probe-timeout",
        type=float,
        help="Seconds to wait when checking a task left by an interrupted run (default 30)",
    )
    run.add_argument("--email-column", help="Spreadsheet column holding the address (detected when omitted)")
    run.add_argument("--sheet", help="Excel sheet to read (defaults to the first sheet)")
    _add_common_options(run)

    balance = subparsers.add_parser("balance", help="Show remaining account credits")
    _add_common_options(balance)

    status = subparsers.add_parser("status", help="Show the checkpoint and output store sizes")
    _add_common_options(status)

    clear = subparsers.add_parser("clear-checkpoint", help="Abandon the task recorded in the checkpoint")
    _add_common_options(clear)

    export = subparsers.add_parser("export", help="Write an output store to CSV or Excel")
    export.add_argument("destination", help="Target file (.csv, .tsv or .xlsx)")
    export.add_argument("--store", choices=["valid", "invalid"], default="valid", help="Store to export")
    export.add_argument("--sheet", default="Leads", help="Sheet name for Excel exports")
    _add_common_options(export)
    return parser


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    return build_parser().parse_args(argv)


def _settings_from_args(args: argparse.Namespace) -> VerifierSettings:
    overrides: Dict[str, Any] = {"output_dir": args.output_dir}
    for name in ("batch_size", "poll_interval", "max_wait", "probe_timeout"):
        overrides[name] = getattr(args, name, None)
    return resolve_settings(args.config, overrides=overrides, env_file=args.env_file)


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv)
    logging.basicConfig(level=getattr(logging, args.log_level.upper(), logging.INFO))

    try:
        settings = _settings_from_args(args)
        handler = _COMMANDS[args.command]
        return handler(args, settings)
    except (ConfigurationError, LeadFileError) as exc:
        logging.error("%s", exc)
        return EXIT_FATAL


def _run(args: argparse.Namespace, settings: VerifierSettings) -> int:
    leads = load_leads(
        args.input,
        email_column=args.email_column,
        sheet_name=args.sheet if args.sheet is not None else 0,
    )
    client = build_client(settings)
    orchestrator = build_orchestrator(settings, client)
    try:
        orchestrator.run(leads)
    except ResumeBlockedError as exc:
        logging.error("%s", exc)
        return EXIT_RESUME_BLOCKED
    except KeyboardInterrupt:
        logging.warning(
            "Interrupted. Any in-flight task stays recorded in %s for the next run",
            settings.checkpoint_path,
        )
        return EXIT_INTERRUPTED
    finally:
        client.close()

    logging.info("Valid emails saved to: %s", settings.valid_path.resolve())
    logging.info("Invalid emails saved to: %s", settings.invalid_path.resolve())
    return EXIT_OK


def _balance(args: argparse.Namespace, settings: VerifierSettings) -> int:
    with build_client(settings) as client:
        balance = client.check_balance()
    if balance is None:
        print("Account balance unavailable")
        return EXIT_FATAL
    print("Account Balance:")
    print(f"  Daily Credits: {balance.daily_credits}")
    print(f"  Instant Credits: {balance.instant_credits}")
    return EXIT_OK


def _status(args: argparse.Namespace, settings: VerifierSettings) -> int:
    checkpoint = CheckpointStore(settings.checkpoint_path).load()
    if checkpoint is None:
        print("No task in flight")
    else:
        print(f"Task in flight: {checkpoint.task_id}")
        print(f"  Batch: {checkpoint.batch_index + 1}/{checkpoint.total_batches}")
        print(f"  Emails: {checkpoint.email_count}")
        print(f"  Created: {checkpoint.created_at}")
        print(f"  Last status: {checkpoint.status}")
    print(f"Valid: {len(OutputStore(settings.valid_path))}")
    print(f"Invalid: {len(OutputStore(settings.invalid_path))}")
    return EXIT_OK


def _clear_checkpoint(args: argparse.Namespace, settings: VerifierSettings) -> int:
    store = CheckpointStore(settings.checkpoint_path)
    checkpoint = store.load()
    if store.clear():
        task = checkpoint.task_id if checkpoint else "unknown task"
        print(f"Removed checkpoint for {task}")
    else:
        print("No checkpoint to remove")
    return EXIT_OK


def _export(args: argparse.Namespace, settings: VerifierSettings) -> int:
    path = settings.valid_path if args.store == "valid" else settings.invalid_path
    records = OutputStore(path, label=args.store).load()
    try:
        destination = export_records(records, args.destination, sheet_name=args.sheet)
    except ValueError as exc:
        logging.error("%s", exc)
        return EXIT_FATAL
    logging.info("Exported %s %s lead(s) to %s", len(records), args.store, Path(destination).resolve())
    return EXIT_OK


_COMMANDS = {
    "run": _run,
    "balance": _balance,
    "status": _status,
    "clear-checkpoint": _clear_checkpoint,
    "export": _export,
}


if __name__ == "__main__":  # pragma: no cover - CLI entry point
    sys.exit(main())

"""CLI entry point for exporting AgentHub agent outputs as PDF reports."""

from __future__ import annotations

import argparse
import logging
import os
from pathlib import Path
from typing import Any

from dotenv import load_dotenv

from agent_api import AgentApiError, AuthExpiredError, SharedDataNotFoundError, fetch_shared_data, submit_rating
from ingestion import IngestionError, read_json_safely
from report import AGENT_BRANDINGS, DEFAULT_FILENAME, render_report


LOG_FILENAME = "agenthub.log"
DEFAULT_AGENT = "audio-note-summarizer"


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse CLI arguments for the exporter entry point."""
    parser = argparse.ArgumentParser(description="Export AgentHub agent outputs")
    subparsers = parser.add_subparsers(dest="command", required=True)

    export = subparsers.add_parser("export", help="Render an agent output as a PDF report")
    source = export.add_mutually_exclusive_group(required=True)
    source.add_argument("--input", type=Path, help="Path to an agent output JSON file")
    source.add_argument("--share_uuid", help="Share link UUID to fetch from the backend")
    export.add_argument("--filename", default=DEFAULT_FILENAME, help="Name of the PDF file to write")
    export.add_argument("--output_dir", type=Path, default=Path("./out"), help="Output directory")
    export.add_argument("--logo", type=Path, help="Optional logo image for the header and footer")
    export.add_argument("--agent", choices=sorted(AGENT_BRANDINGS), default=DEFAULT_AGENT, help="Agent branding")

    rate = subparsers.add_parser("rate", help="Rate an agent execution")
    rate.add_argument("--agent_id", required=True, help="Agent identifier")
    rate.add_argument("--execution_id", required=True, help="Execution identifier")
    rate.add_argument("--rating", required=True, type=int, help="Rating from 1 to 5")
    rate.add_argument("--feedback", help="Optional free-text feedback")
    rate.add_argument("--output_dir", type=Path, default=Path("./out"), help="Directory for the log file")

    return parser.parse_args(argv)


def _configure_file_logger(output_dir: Path) -> logging.Logger:
    """Send module logs to ``agenthub.log`` in the output directory."""
    output_dir.mkdir(parents=True, exist_ok=True)
    log_path = (output_dir / LOG_FILENAME).resolve()
    root = logging.getLogger()
    logger = logging.getLogger("agenthub")

    for existing in root.handlers:
        if isinstance(existing, logging.FileHandler) and Path(existing.baseFilename) == log_path:
            return logger

    root.setLevel(logging.INFO)
    handler = logging.FileHandler(log_path, encoding="utf-8")
    handler.setFormatter(logging.Formatter("%(asctime)s | %(levelname)s | %(message)s"))
    root.addHandler(handler)
    return logger


def load_payload(args: argparse.Namespace) -> Any:
    """Load the agent output from a local file or a share link."""
    if args.input is not None:
        return read_json_safely(args.input)
    return fetch_shared_data(args.share_uuid)


def run_export(args: argparse.Namespace, logger: logging.Logger) -> int:
    payload = load_payload(args)

    logo_path = args.logo
    if logo_path is None and os.getenv("AGENTHUB_LOGO_PATH"):
        logo_path = Path(os.environ["AGENTHUB_LOGO_PATH"])

    result = render_report(
        payload,
        args.filename,
        args.output_dir,
        branding=AGENT_BRANDINGS[args.agent],
        logo_path=logo_path,
    )
    if not result.success:
        logger.warning("Report generation failed: %s", type(result.error).__name__)
        print(f"Error: {result.message}. Please check the input data and output path permissions.")
        return 1

    logger.info("Export completed successfully")
    print(f"{result.message}. Report written to: {result.path}")
    return 0


def run_rate(args: argparse.Namespace, logger: logging.Logger) -> int:
    submit_rating(args.agent_id, args.execution_id, args.rating, args.feedback)
    logger.info("Rating submitted for execution %s", args.execution_id)
    print("Thank you for your feedback!")
    return 0


def run_cli(args: argparse.Namespace) -> int:
    """Run the selected subcommand from parsed CLI arguments."""
    load_dotenv()

    logger = _configure_file_logger(args.output_dir)

    try:
        if args.command == "rate":
            return run_rate(args, logger)
        return run_export(args, logger)

    except IngestionError as exc:
        logger.warning("Input validation failed: %s", type(exc).__name__)
        print("Error: Input validation failed. Please verify the JSON file.")
        return 1
    except SharedDataNotFoundError as exc:
        logger.warning("Shared data not found: %s", type(exc).__name__)
        print("Error: Shared content not found. The link may have expired or does not exist.")
        return 1
    except AuthExpiredError as exc:
        logger.warning("Authentication failed: %s", type(exc).__name__)
        print("Error: Session expired. Please sign in again and set AGENTHUB_ACCESS_TOKEN.")
        return 1
    except AgentApiError as exc:
        logger.warning("Backend request failed: %s", type(exc).__name__)
        print(f"Error: Backend request failed. {exc}")
        return 1
    except ValueError as exc:
        logger.warning("Invalid arguments: %s", exc)
        print(f"Error: {exc}")
        return 1
    except Exception as exc:
        logger.exception("Unexpected failure: %s", type(exc).__name__)
        print("Error: Unexpected failure.")
        return 1


def main(argv: list[str] | None = None) -> int:
    """Program entrypoint."""
    args = parse_args(argv)
    return run_cli(args)


if __name__ == "__main__":
    raise SystemExit(main())

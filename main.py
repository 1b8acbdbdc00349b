#!/usr/bin/env python3
"""
blob-export: Recurring copy of export blobs into a customer storage account.

Main entry point for the transfer job.
"""

import argparse
import logging
import os
import sys
from datetime import datetime, timezone
from pathlib import Path

from blob_export.config import AppConfig, load_config
from blob_export.exceptions import ConfigurationError, SourceResolutionError
from blob_export.models import RunResult, RunStatus
from blob_export.publisher import LogPublisher
from blob_export.reporter import LOG_FORMAT, RunLogCollector, RunReporter, format_run_summary
from blob_export.schedule_checker import ScheduleChecker
from blob_export.storage import AzureStorageProvider
from blob_export.transfer_engine import TransferEngine, format_size

LOGGER_NAME = "blob_export"


def setup_logging(config: AppConfig, cli_mode: bool = False) -> logging.Logger:
    """Set up logging configuration."""
    log_file_path = Path(config.log_file)
    log_file_path.parent.mkdir(parents=True, exist_ok=True)

    logger = logging.getLogger(LOGGER_NAME)
    # The run log collector needs INFO records whatever the handler levels are
    logger.setLevel(min(logging.getLevelName(config.log_level), logging.INFO))
    logger.propagate = False
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    formatter = logging.Formatter(LOG_FORMAT)

    file_handler = logging.FileHandler(log_file_path, encoding="utf-8")
    file_handler.setLevel(config.log_level)
    file_handler.setFormatter(formatter)
    logger.addHandler(file_handler)

    if cli_mode:
        # In CLI mode, log to both console and file
        console_handler = logging.StreamHandler(sys.stderr)
        console_handler.setLevel(config.log_level)
        console_handler.setFormatter(formatter)
        logger.addHandler(console_handler)

    return logger


def parse_arguments(argv=None) -> argparse.Namespace:
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        description="Copy recent export blobs into the customer storage account",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python main.py                              # Run if the cron schedule fired today
  python main.py --force                      # Run now, ignoring the schedule
  python main.py --force --webhook-data '{"days": 3}'
  python main.py --dry-run                    # List blobs that would be copied
        """,
    )

    parser.add_argument(
        "--config",
        "-c",
        default="config.yaml",
        help="Path to the configuration file (default: config.yaml)",
    )

    parser.add_argument(
        "--force",
        "-f",
        action="store_true",
        help="Run regardless of the configured schedule",
    )

    parser.add_argument(
        "--dry-run",
        "-n",
        action="store_true",
        help="List and filter blobs without copying",
    )

    parser.add_argument(
        "--webhook-data",
        default=None,
        help="JSON trigger payload; its 'days' field overrides retention_days "
        "(falls back to the WEBHOOKDATA environment variable)",
    )

    return parser.parse_args(argv)


def build_engine(config: AppConfig, provider) -> TransferEngine:
    return TransferEngine(
        provider,
        max_workers=config.max_workers,
        copy_timeout=config.copy_timeout,
        poll_interval=config.poll_interval,
    )


def run_dry_run_mode(engine: TransferEngine, transfer_config, logger: logging.Logger) -> int:
    """Execute dry run mode."""
    logger.info("Running in DRY RUN mode - no blobs will be copied")

    plan = engine.plan(transfer_config)

    logger.info("=== DRY RUN SUMMARY ===")
    logger.info(f"Source: {plan.source}")
    logger.info(f"Destination: {plan.destination}")
    logger.info(f"Modified after: {plan.prune_date.isoformat()}")
    logger.info(f"Blobs to copy: {plan.total_files:,}")
    logger.info(f"Total size: {format_size(plan.total_size)}")

    for obj in plan.candidates:
        logger.info(f"  + {obj.name} ({format_size(obj.size_bytes)})")
    for excluded in plan.excluded:
        logger.info(f"  - {excluded.descriptor.name} [{excluded.reason}]")

    return 0


def publish_run(config: AppConfig, provider, transfer_config, result, lines, logger) -> None:
    """Build the run log and upload it next to the copied data."""
    if result.total_blobs == 0 and not config.publish_empty_runs:
        logger.info("No blobs were copied; skipping run log upload")
        return

    artifact = RunReporter(transfer_config).report(result, lines)
    destination = provider.resolve_destination(
        transfer_config.destination_account, transfer_config.destination_credential_token
    )
    LogPublisher(destination, container=config.logs_container).publish(artifact, result)


def main(argv=None, provider=None) -> int:
    """Main application entry point."""
    start_time = datetime.now(timezone.utc)
    logger = None
    site_name = ""

    try:
        args = parse_arguments(argv)
        cli_mode = args.force or args.dry_run

        config = load_config(args.config)
        logger = setup_logging(config, cli_mode=cli_mode)

        if not cli_mode:
            if not ScheduleChecker.should_run_today(config.schedule):
                next_run = ScheduleChecker.next_run_time(config.schedule)
                logger.info(f"Transfer not scheduled to run today; next run at {next_run}")
                return 0

        trigger_payload = args.webhook_data or os.environ.get("WEBHOOKDATA")
        retention_days = config.resolve_retention_days(trigger_payload)

        transfer_config = config.load_parameter_table().to_transfer_config(retention_days)
        site_name = transfer_config.site_name
        logger.info(
            f"Configuration loaded for site '{site_name}' "
            f"(retention {retention_days} day(s), {config.max_workers} worker(s))"
        )

        if provider is None:
            provider = AzureStorageProvider(sas_expiry_hours=config.sas_expiry_hours)
        engine = build_engine(config, provider)

        if args.dry_run:
            return run_dry_run_mode(engine, transfer_config, logger)

        with RunLogCollector.capture(LOGGER_NAME) as collector:
            result = engine.run(transfer_config)
        logger.info("\n" + format_run_summary(result))

        publish_run(config, provider, transfer_config, result, collector.lines, logger)

        print(result.to_json())

        if result.status == RunStatus.PARTIAL_SUCCESS:
            logger.warning("Some blob copies failed - check the run log for details")
        return 0

    except FileNotFoundError as e:
        return _fatal(f"Configuration file error: {e}", logger, start_time, site_name)

    except (ConfigurationError, ValueError) as e:
        return _fatal(f"Configuration validation error: {e}", logger, start_time, site_name)

    except SourceResolutionError as e:
        return _fatal(f"Source resolution error: {e}", logger, start_time, site_name)

    except KeyboardInterrupt:
        error_msg = "Transfer interrupted by user"
        print(f"\nINTERRUPTED: {error_msg}", file=sys.stderr)
        if logger:
            logger.warning(error_msg)
        return 130

    except Exception as e:
        return _fatal(f"Unexpected error: {e}", logger, start_time, site_name, exc_info=True)

    finally:
        if logger:
            total_time = (datetime.now(timezone.utc) - start_time).total_seconds()
            logger.info(f"Transfer process completed in {total_time:.2f} seconds")


def _fatal(error_msg, logger, start_time, site_name, exc_info=False) -> int:
    """Report a run-aborting error and return the failure exit code."""
    print(f"ERROR: {error_msg}", file=sys.stderr)
    if logger:
        logger.critical(error_msg, exc_info=exc_info)

    result = RunResult.failure(
        error_msg, start_time, datetime.now(timezone.utc), site_name=site_name
    )
    print(result.to_json())
    return 1


def run() -> None:
    sys.exit(main())


if __name__ == "__main__":
    run()

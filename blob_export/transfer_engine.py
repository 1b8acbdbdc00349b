"""Core transfer functionality: list, filter and copy export blobs."""

import logging
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timedelta, timezone
from typing import Callable, Dict, Iterable, List, Tuple

from .exceptions import ConfigurationError, CopyError, CopyTimeoutError
from .models import (
    CopyOutcome,
    DryRunResult,
    ExcludedObject,
    ObjectDescriptor,
    RunResult,
    RunStatus,
    TransferConfig,
)

EXCLUDED_TOO_OLD = "too_old"
EXCLUDED_DIRECTORY_MARKER = "directory_marker"


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def validate_transfer_config(config: TransferConfig) -> None:
    """Raise ConfigurationError naming the first blank required field."""
    missing = config.missing_fields()
    if missing:
        raise ConfigurationError(
            f"Required setting '{missing[0]}' is missing or blank", field=missing[0]
        )


def prune_date_for(now: datetime, retention_days: int) -> datetime:
    """Oldest modification time that is still copied (exclusive)."""
    return now - timedelta(days=retention_days)


def filter_candidates(
    objects: Iterable[ObjectDescriptor], prune_date: datetime
) -> Tuple[List[ObjectDescriptor], List[ExcludedObject]]:
    """
    Split listed blobs into copy candidates and excluded entries.

    Args:
        objects: Blobs in listing order
        prune_date: Blobs modified at or before this instant are excluded

    Returns:
        - candidates: Blobs to copy, in listing order
        - excluded: Skipped blobs with the reason they were skipped
    """
    candidates = []
    excluded = []

    for obj in objects:
        if obj.last_modified <= prune_date:
            excluded.append(ExcludedObject(descriptor=obj, reason=EXCLUDED_TOO_OLD))
            continue
        if obj.is_directory_marker:
            excluded.append(ExcludedObject(descriptor=obj, reason=EXCLUDED_DIRECTORY_MARKER))
            continue
        candidates.append(obj)

    return candidates, excluded


def format_size(size_bytes: int) -> str:
    """Format byte size in human-readable format."""
    if size_bytes == 0:
        return "0 B"

    for unit in ["B", "KB", "MB", "GB", "TB"]:
        if size_bytes < 1024.0:
            if unit == "B":
                return f"{size_bytes} {unit}"
            return f"{size_bytes:.1f} {unit}"
        size_bytes /= 1024.0

    return f"{size_bytes:.1f} PB"


def format_duration(seconds: float) -> str:
    """Format duration in human-readable format."""
    if seconds < 60:
        return f"{seconds:.0f}s"
    elif seconds < 3600:
        return f"{seconds // 60:.0f}m {seconds % 60:.0f}s"
    else:
        return f"{seconds // 3600:.0f}h {(seconds % 3600) // 60:.0f}m"


class OutcomeAccumulator:
    """Thread-safe collector of per-blob copy outcomes."""

    def __init__(self):
        self._lock = threading.Lock()
        self._copied: Dict[int, str] = {}
        self._errors: Dict[int, CopyOutcome] = {}

    def record_success(self, index: int, object_name: str) -> None:
        with self._lock:
            self._copied[index] = object_name

    def record_failure(self, index: int, object_name: str, error_detail: str) -> None:
        outcome = CopyOutcome.failed(object_name, error_detail)
        with self._lock:
            self._errors[index] = outcome

    @property
    def copied_files(self) -> List[str]:
        """Copied blob names in listing order."""
        with self._lock:
            return [self._copied[i] for i in sorted(self._copied)]

    @property
    def errors(self) -> List[CopyOutcome]:
        with self._lock:
            return [self._errors[i] for i in sorted(self._errors)]


class TransferEngine:
    """Moves recent export blobs into the customer's site container."""

    def __init__(
        self,
        provider,
        max_workers: int = 1,
        copy_timeout: float = 3600.0,
        poll_interval: float = 2.0,
        clock: Callable[[], datetime] = utc_now,
        sleep: Callable[[float], None] = time.sleep,
        monotonic: Callable[[], float] = time.monotonic,
    ):
        self.provider = provider
        self.max_workers = max(1, max_workers)
        self.copy_timeout = copy_timeout
        self.poll_interval = poll_interval
        self.clock = clock
        self.sleep = sleep
        self.monotonic = monotonic
        self.logger = logging.getLogger(__name__)

    def run(self, config: TransferConfig) -> RunResult:
        """
        Execute one transfer run.

        Configuration and source resolution errors propagate; per-blob copy
        failures are recorded in the returned result.
        """
        start_time = self.clock()
        validate_transfer_config(config)

        self.logger.info(
            f"Starting transfer for site '{config.site_name}': "
            f"{config.source_account}/{config.source_container}/{config.normalized_prefix} -> "
            f"{config.destination_account}/{config.destination_container}"
        )

        source = self.provider.resolve_source(config.source_account, config.source_container)
        destination = self.provider.resolve_destination(
            config.destination_account, config.destination_credential_token
        )

        candidates, _ = self._collect_candidates(source, config)

        if not candidates:
            message = (
                f"No blobs modified in the last {config.retention_days} day(s) "
                f"found under '{config.normalized_prefix}'"
            )
            self.logger.info(message)
            end_time = self.clock()
            return RunResult(
                status=RunStatus.SUCCESS,
                site_name=config.site_name,
                duration=(end_time - start_time).total_seconds(),
                start_time=start_time,
                end_time=end_time,
                message=message,
            )

        container = config.destination_container
        if destination.ensure_container(container):
            self.logger.info(f"Created destination container '{container}'")
        else:
            self.logger.info(f"Using existing destination container '{container}'")

        accumulator = OutcomeAccumulator()
        self._copy_all(source, destination, container, candidates, accumulator)

        copied_files = accumulator.copied_files
        errors = accumulator.errors
        end_time = self.clock()
        status = RunStatus.SUCCESS if not errors else RunStatus.PARTIAL_SUCCESS

        if errors:
            message = f"{len(errors)} of {len(candidates)} blob copies failed"
            self.logger.warning(message)
        else:
            message = f"All {len(candidates)} blobs copied successfully"
            self.logger.info(message)

        return RunResult(
            status=status,
            site_name=config.site_name,
            total_blobs=len(candidates),
            success_count=len(copied_files),
            failed_count=len(errors),
            duration=(end_time - start_time).total_seconds(),
            errors=errors,
            copied_files=copied_files,
            start_time=start_time,
            end_time=end_time,
            message=message,
        )

    def plan(self, config: TransferConfig) -> DryRunResult:
        """Report which blobs a run would copy without touching the destination."""
        validate_transfer_config(config)
        source = self.provider.resolve_source(config.source_account, config.source_container)
        prune_date = prune_date_for(self.clock(), config.retention_days)
        listed = source.list_objects(config.normalized_prefix)
        candidates, excluded = filter_candidates(listed, prune_date)

        self.logger.info(
            f"Analysis complete for '{config.site_name}': "
            f"{len(candidates)} blobs to copy, {len(excluded)} excluded"
        )

        return DryRunResult(
            site_name=config.site_name,
            source=f"{config.source_account}/{config.source_container}/{config.normalized_prefix}",
            destination=f"{config.destination_account}/{config.destination_container}",
            prune_date=prune_date,
            candidates=candidates,
            excluded=excluded,
        )

    def _collect_candidates(
        self, source, config: TransferConfig
    ) -> Tuple[List[ObjectDescriptor], List[ExcludedObject]]:
        prune_date = prune_date_for(self.clock(), config.retention_days)
        self.logger.info(
            f"Listing blobs under '{config.normalized_prefix}' "
            f"modified after {prune_date.isoformat()}"
        )

        listed = source.list_objects(config.normalized_prefix)
        candidates, excluded = filter_candidates(listed, prune_date)

        too_old = sum(1 for e in excluded if e.reason == EXCLUDED_TOO_OLD)
        markers = len(excluded) - too_old
        self.logger.info(
            f"Found {len(candidates)} blobs to copy "
            f"({format_size(sum(c.size_bytes for c in candidates))}); "
            f"skipped {too_old} older blobs and {markers} directory markers"
        )
        return candidates, excluded

    def _copy_all(
        self,
        source,
        destination,
        container: str,
        candidates: List[ObjectDescriptor],
        accumulator: OutcomeAccumulator,
    ) -> None:
        if self.max_workers == 1 or len(candidates) == 1:
            for index, obj in enumerate(candidates):
                self._copy_one(source, destination, container, index, obj, accumulator)
            return

        with ThreadPoolExecutor(max_workers=self.max_workers) as pool:
            futures = [
                pool.submit(
                    self._copy_one, source, destination, container, index, obj, accumulator
                )
                for index, obj in enumerate(candidates)
            ]
            for future in futures:
                future.result()

    def _copy_one(
        self,
        source,
        destination,
        container: str,
        index: int,
        obj: ObjectDescriptor,
        accumulator: OutcomeAccumulator,
    ) -> None:
        """Copy a single blob, recording the outcome instead of raising."""
        try:
            self.copy_blob(source, destination, container, obj.name)
        except CopyTimeoutError as e:
            self.logger.error(f"Timed out copying '{obj.name}': {e}")
            accumulator.record_failure(index, obj.name, f"timeout: {e}")
        except Exception as e:
            self.logger.error(f"Failed to copy '{obj.name}': {e}")
            accumulator.record_failure(index, obj.name, str(e) or type(e).__name__)
        else:
            self.logger.info(f"Copied '{obj.name}' ({format_size(obj.size_bytes)})")
            accumulator.record_success(index, obj.name)

    def copy_blob(self, source, destination, container: str, name: str) -> None:
        """
        Start a server-side copy and wait until it reaches a terminal state.

        Raises:
            CopyTimeoutError: The copy was still pending after copy_timeout
            CopyError: The copy finished with a status other than success
        """
        status, _ = destination.start_copy(container, name, source.object_url(name))
        if not status:
            raise CopyError(name, "copy request returned no copy status")

        description = ""
        deadline = self.monotonic() + self.copy_timeout

        while status == "pending":
            if self.monotonic() >= deadline:
                raise CopyTimeoutError(
                    name, f"copy still pending after {self.copy_timeout:g}s"
                )
            self.sleep(self.poll_interval)
            status, description = destination.copy_status(container, name)
            if not status:
                raise CopyError(name, "blob reported no copy status while copy was pending")

        if status != "success":
            detail = f"copy ended with status '{status}'"
            if description:
                detail += f": {description}"
            raise CopyError(name, detail)

"""Run reporting: captured log lines plus a summary, as an audit log artifact."""

import logging
import uuid
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Iterator, List, Optional

from .models import RunResult, TransferConfig
from .transfer_engine import format_duration

LOG_FORMAT = "%(asctime)s %(levelname)-8s %(message)s"
JOB_NAME = "blob-export"


@dataclass(frozen=True)
class LogArtifact:
    """Human-readable log of one run, ready to upload."""

    name: str
    content: str


def artifact_stem(result: RunResult) -> str:
    """Deterministic file stem derived from the site and run start time."""
    site = result.site_name.lower() or "unknown-site"
    return f"{site}_{result.start_time.strftime('%Y-%m-%d_%H-%M-%S')}"


class RunLogCollector(logging.Handler):
    """Logging handler that keeps every formatted line emitted during a run."""

    def __init__(self, level: int = logging.INFO):
        super().__init__(level)
        self.setFormatter(logging.Formatter(LOG_FORMAT))
        self.lines: List[str] = []

    def emit(self, record: logging.LogRecord) -> None:
        try:
            line = self.format(record)
        except Exception:
            self.handleError(record)
            return
        self.lines.append(line)

    @classmethod
    @contextmanager
    def capture(
        cls, logger_name: str = "blob_export", level: int = logging.INFO
    ) -> Iterator["RunLogCollector"]:
        """Attach a collector to the named logger for the duration of the block."""
        collector = cls(level)
        target = logging.getLogger(logger_name)
        target.addHandler(collector)
        try:
            yield collector
        finally:
            target.removeHandler(collector)


def format_run_summary(result: RunResult) -> str:
    """Format a run result into a readable summary."""
    summary = []
    summary.append("=== Blob Transfer Summary ===\n")
    summary.append(f"Status: {result.status.value}")
    summary.append(f"Total blobs: {result.total_blobs}")
    summary.append(f"Successful: {result.success_count}")
    summary.append(f"Failed: {result.failed_count}")
    summary.append(f"Duration: {format_duration(result.duration)} ({result.duration:.2f} seconds)")
    summary.append(f"Started: {result.start_time.isoformat()}")
    summary.append(f"Finished: {result.end_time.isoformat()}")
    if result.message:
        summary.append(f"Message: {result.message}")

    if result.errors:
        summary.append("")
        summary.append("=== Failed Copies ===")
        for outcome in result.errors:
            summary.append(f"  {outcome.object_name}: {outcome.error_detail}")

    return "\n".join(summary)


class RunReporter:
    """Builds the audit log artifact for a transfer run."""

    def __init__(
        self,
        config: Optional[TransferConfig] = None,
        run_id: Optional[str] = None,
        job_name: str = JOB_NAME,
    ):
        self.config = config
        self.run_id = run_id or str(uuid.uuid4())
        self.job_name = job_name

    def _header(self, result: RunResult, generated_at: datetime) -> List[str]:
        rule = "=" * 64
        lines = [
            rule,
            f"Job:          {self.job_name}",
            f"Run ID:       {self.run_id}",
            f"Site:         {result.site_name}",
        ]
        if self.config is not None:
            if self.config.subscription_name:
                lines.append(f"Subscription: {self.config.subscription_name}")
            if self.config.location:
                lines.append(f"Location:     {self.config.location}")
            lines.append(
                f"Source:       {self.config.source_account}/{self.config.source_container}/"
                f"{self.config.normalized_prefix}"
            )
            lines.append(
                f"Destination:  {self.config.destination_account}/"
                f"{self.config.destination_container}"
            )
        lines.append(f"Generated:    {generated_at.isoformat()}")
        lines.append(rule)
        return lines

    def report(self, result: RunResult, records: Optional[List[str]] = None) -> LogArtifact:
        """Combine header, captured log lines and summary into one artifact."""
        generated_at = datetime.now(timezone.utc)
        lines = self._header(result, generated_at)
        lines.append("")
        lines.extend(records or [])
        lines.append("")
        lines.append(format_run_summary(result))

        return LogArtifact(name=f"{artifact_stem(result)}.log", content="\n".join(lines) + "\n")

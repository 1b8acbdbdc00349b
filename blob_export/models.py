"""Data models shared by the transfer engine, reporter and publisher."""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_pascal

# Fields that must be non-blank before a run may touch any storage account.
REQUIRED_FIELDS: Tuple[str, ...] = (
    "source_account",
    "source_container",
    "source_path_prefix",
    "destination_account",
    "destination_credential_token",
    "site_name",
)


class TransferConfig(BaseModel):
    """Resolved configuration for a single transfer run."""

    model_config = ConfigDict(frozen=True, str_strip_whitespace=True)

    source_account: str = Field(description="Export storage account name")
    source_container: str = Field(description="Container holding the exports")
    source_path_prefix: str = Field(description="Key prefix of the export directory")
    destination_account: str = Field(description="Customer storage account name")
    destination_credential_token: str = Field(
        description="SAS token granting write access to the customer account"
    )
    site_name: str = Field(description="Site identity, also the destination container")
    retention_days: int = Field(
        default=1, ge=0, description="Only blobs modified within this many days are copied"
    )
    subscription_name: str = Field(default="", description="Subscription, reported only")
    location: str = Field(default="", description="Region, reported only")

    def missing_fields(self) -> List[str]:
        """
        Names of required fields that are blank.

        The prefix counts as blank when nothing but separators remain.
        """
        missing = [name for name in REQUIRED_FIELDS if not getattr(self, name)]
        if "source_path_prefix" not in missing and not self.normalized_prefix:
            missing.insert(REQUIRED_FIELDS.index("source_path_prefix"), "source_path_prefix")
        return missing

    @property
    def normalized_prefix(self) -> str:
        """Source prefix without leading or trailing separators."""
        return self.source_path_prefix.strip("/")

    @property
    def destination_container(self) -> str:
        """Container in the customer account that receives the copies."""
        return self.site_name.lower()


class ObjectDescriptor(BaseModel):
    """A blob found while listing the source container."""

    model_config = ConfigDict(frozen=True)

    name: str
    last_modified: datetime
    size_bytes: int = Field(ge=0)

    @property
    def is_directory_marker(self) -> bool:
        """True for folder placeholders that carry no data."""
        return self.name.endswith("/") or self.size_bytes == 0


class CopyStatus(str, Enum):
    SUCCESS = "Success"
    FAILED = "Failed"


class CopyOutcome(BaseModel):
    """Outcome of one attempted blob copy."""

    model_config = ConfigDict(frozen=True, alias_generator=to_pascal, populate_by_name=True)

    object_name: str
    status: CopyStatus
    error_detail: Optional[str] = None

    @model_validator(mode="after")
    def validate_error_detail(self) -> CopyOutcome:
        """A failed copy carries an error detail, a successful one does not."""
        if self.status == CopyStatus.FAILED and not self.error_detail:
            raise ValueError("Failed copy outcome requires an error_detail")
        if self.status == CopyStatus.SUCCESS and self.error_detail is not None:
            raise ValueError("Successful copy outcome must not carry an error_detail")
        return self

    @classmethod
    def failed(cls, object_name: str, error_detail: str) -> CopyOutcome:
        return cls(object_name=object_name, status=CopyStatus.FAILED, error_detail=error_detail)


class RunStatus(str, Enum):
    SUCCESS = "Success"
    PARTIAL_SUCCESS = "PartialSuccess"
    FAILURE = "Failure"


class RunResult(BaseModel):
    """Terminal, machine-readable record of a transfer run."""

    model_config = ConfigDict(frozen=True, alias_generator=to_pascal, populate_by_name=True)

    status: RunStatus
    site_name: str = ""
    total_blobs: int = 0
    success_count: int = 0
    failed_count: int = 0
    duration: float = Field(default=0.0, description="Run duration in seconds")
    errors: List[CopyOutcome] = Field(default_factory=list)
    copied_files: List[str] = Field(default_factory=list)
    start_time: datetime
    end_time: datetime
    message: str = ""

    @classmethod
    def failure(
        cls, message: str, start_time: datetime, end_time: datetime, site_name: str = ""
    ) -> RunResult:
        """Result reported when a run aborts on a fatal error."""
        return cls(
            status=RunStatus.FAILURE,
            site_name=site_name,
            duration=(end_time - start_time).total_seconds(),
            start_time=start_time,
            end_time=end_time,
            message=message,
        )

    @property
    def has_errors(self) -> bool:
        return self.status != RunStatus.SUCCESS

    def to_json(self, indent: Optional[int] = 2) -> str:
        """Serialize with the PascalCase keys consumed by the orchestrator."""
        return self.model_dump_json(by_alias=True, indent=indent)


class ExcludedObject(BaseModel):
    """A listed blob that a dry run would skip, with the reason."""

    model_config = ConfigDict(frozen=True)

    descriptor: ObjectDescriptor
    reason: str


class DryRunResult(BaseModel):
    """What a transfer run would copy, without copying anything."""

    model_config = ConfigDict(frozen=True)

    site_name: str
    source: str
    destination: str
    prune_date: datetime
    candidates: List[ObjectDescriptor] = Field(default_factory=list)
    excluded: List[ExcludedObject] = Field(default_factory=list)

    @property
    def total_files(self) -> int:
        return len(self.candidates)

    @property
    def total_size(self) -> int:
        return sum(obj.size_bytes for obj in self.candidates)

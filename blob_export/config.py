"""Configuration management for the blob export job."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

import yaml
from croniter import croniter
from pydantic import BaseModel, Field, ValidationError, field_validator, model_validator

from .exceptions import ConfigurationError
from .models import TransferConfig

# Parameter table keys mapped onto TransferConfig fields.
PARAMETER_KEYS: Dict[str, str] = {
    "exportStorageAccount": "source_account",
    "exportStorageContainer": "source_container",
    "exportsDirectory": "source_path_prefix",
    "customerStorageAccount": "destination_account",
    "customerToken": "destination_credential_token",
    "siteName": "site_name",
    "subscriptionName": "subscription_name",
    "location": "location",
}

REQUIRED_PARAMETERS = (
    "exportStorageAccount",
    "exportStorageContainer",
    "exportsDirectory",
    "customerStorageAccount",
    "customerToken",
    "siteName",
)


class ParameterTable:
    """Flat string-keyed parameter record for one site."""

    def __init__(self, record: Mapping[str, Any]):
        self.record = {str(k): "" if v is None else str(v) for k, v in record.items()}

    @classmethod
    def from_mapping(cls, record: Mapping[str, Any]) -> ParameterTable:
        return cls(record)

    @classmethod
    def from_file(cls, path: str) -> ParameterTable:
        """Load a parameter table exported as a flat YAML mapping."""
        table_file = Path(path)
        if not table_file.exists():
            raise FileNotFoundError(f"Parameter file not found: {path}")

        try:
            with open(table_file, "r", encoding="utf-8") as f:
                data = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Invalid YAML format in parameter file: {e}")

        if not isinstance(data, dict):
            raise ConfigurationError(f"Parameter file must contain a mapping: {path}")
        return cls(data)

    def get(self, key: str, default: str = "") -> str:
        return self.record.get(key, default).strip()

    def to_transfer_config(self, retention_days: int) -> TransferConfig:
        """Build a validated TransferConfig from the record."""
        for key in REQUIRED_PARAMETERS:
            if not self.get(key):
                raise ConfigurationError(
                    f"Required parameter '{key}' is missing or blank", field=key
                )

        values = {field: self.get(key) for key, field in PARAMETER_KEYS.items()}
        try:
            return TransferConfig(retention_days=retention_days, **values)
        except ValidationError as e:
            raise ConfigurationError(f"Invalid transfer configuration: {e}")


def parse_trigger_payload(raw: Optional[str]) -> Optional[int]:
    """
    Extract the retention override from a webhook trigger payload.

    Accepts either a plain body such as ``{"days": 3}`` or a webhook envelope
    whose ``RequestBody`` holds that body as a JSON string.

    Returns:
        The number of days, or None when the payload carries no override
    """
    if raw is None or not raw.strip():
        return None

    try:
        payload = json.loads(raw)
        if isinstance(payload, dict) and "RequestBody" in payload:
            body = payload["RequestBody"]
            payload = json.loads(body) if isinstance(body, str) and body.strip() else body
    except json.JSONDecodeError as e:
        raise ConfigurationError(f"Trigger payload is not valid JSON: {e}", field="days")

    if not isinstance(payload, dict) or payload.get("days") is None:
        return None

    days = payload["days"]
    if isinstance(days, bool):
        raise ConfigurationError(f"Invalid 'days' in trigger payload: {days!r}", field="days")
    try:
        days = int(days)
    except (TypeError, ValueError):
        raise ConfigurationError(f"Invalid 'days' in trigger payload: {days!r}", field="days")
    if days < 0:
        raise ConfigurationError("'days' in trigger payload must not be negative", field="days")
    return days


class AppConfig(BaseModel):
    """Main application configuration."""

    log_level: str = Field(
        default="INFO", description="Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)"
    )
    log_file: str = Field(
        default="log/blob_export.log",
        description="Path to log file relative to project root",
    )
    schedule: str = Field(
        default="0 5 * * *",
        description="Cron-like schedule: 'minute hour day-of-month month day-of-week'",
    )
    retention_days: int = Field(
        default=1, ge=0, description="Copy blobs modified within this many days"
    )
    max_workers: int = Field(
        default=1, ge=1, description="Concurrent copies, 1 copies strictly one at a time"
    )
    copy_timeout: float = Field(
        default=3600.0, gt=0, description="Seconds to wait for a single copy to finish"
    )
    poll_interval: float = Field(
        default=2.0, gt=0, description="Seconds between copy status checks"
    )
    sas_expiry_hours: int = Field(
        default=24, ge=1, description="Lifetime of the read SAS issued for source blobs"
    )
    logs_container: str = Field(
        default="logs", description="Destination container receiving run logs"
    )
    publish_empty_runs: bool = Field(
        default=True,
        description="Upload the run log even when no blobs were eligible for copy",
    )
    parameter_file: Optional[str] = Field(
        default=None, description="Path to the flat parameter table YAML file"
    )
    parameters: Optional[Dict[str, Any]] = Field(
        default=None, description="Inline parameter table"
    )

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level."""
        valid_levels = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        v_upper = v.upper()
        if v_upper not in valid_levels:
            raise ValueError(f"log_level must be one of: {', '.join(sorted(valid_levels))}")
        return v_upper

    @field_validator("schedule")
    @classmethod
    def validate_schedule(cls, v: str) -> str:
        """Validate the cron schedule format."""
        if len(v.strip().split()) != 5:
            raise ValueError(
                "Schedule must have 5 fields: 'minute hour day-of-month month day-of-week'"
            )
        if not croniter.is_valid(v.strip()):
            raise ValueError(f"Invalid cron schedule format: {v}")
        return v.strip()

    @field_validator("logs_container")
    @classmethod
    def validate_logs_container(cls, v: str) -> str:
        v = v.strip().lower()
        if not v:
            raise ValueError("logs_container must not be blank")
        return v

    @model_validator(mode="after")
    def validate_parameter_source(self) -> AppConfig:
        """Exactly one parameter source must be configured."""
        if (self.parameter_file is None) == (self.parameters is None):
            raise ValueError("Configure exactly one of 'parameter_file' or 'parameters'")
        return self

    def load_parameter_table(self) -> ParameterTable:
        if self.parameters is not None:
            return ParameterTable.from_mapping(self.parameters)
        return ParameterTable.from_file(self.parameter_file)

    def resolve_retention_days(self, trigger_payload: Optional[str] = None) -> int:
        """Retention window, overridden by the trigger payload when it has 'days'."""
        override = parse_trigger_payload(trigger_payload)
        return self.retention_days if override is None else override


def load_config(config_path: str = "config.yaml") -> AppConfig:
    """Load and validate configuration from YAML file."""
    config_file = Path(config_path)

    if not config_file.exists():
        raise FileNotFoundError(f"Configuration file not found: {config_path}")

    try:
        with open(config_file, "r", encoding="utf-8") as f:
            config_data = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ValueError(f"Invalid YAML format in config file: {e}")

    if config_data is None:
        raise ValueError("Configuration file is empty")

    try:
        return AppConfig(**config_data)
    except ValidationError as e:
        raise ValueError(f"Configuration validation error: {e}")

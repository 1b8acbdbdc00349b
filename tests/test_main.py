"""
Tests for the command line entry point.
"""

import json
from datetime import datetime, timedelta, timezone

import yaml

import main
from blob_export.models import ObjectDescriptor
from conftest import FakeDestination, FakeProvider


def blob(name, age=timedelta(hours=1), size=100):
    """Blob aged relative to the real clock used by main."""
    return ObjectDescriptor(
        name=name, last_modified=datetime.now(timezone.utc) - age, size_bytes=size
    )


def write_config(tmp_path, parameter_record, **overrides):
    data = {
        "log_file": str(tmp_path / "log" / "blob_export.log"),
        "parameters": parameter_record,
        **overrides,
    }
    path = tmp_path / "config.yaml"
    path.write_text(yaml.safe_dump(data), encoding="utf-8")
    return str(path)


def stdout_result(capsys):
    return json.loads(capsys.readouterr().out)


def test_forced_run_copies_and_publishes(tmp_path, parameter_record, capsys):
    destination = FakeDestination(fail_on={"exports/2024/b.csv": RuntimeError("boom")})
    provider = FakeProvider(
        [blob("exports/2024/a.csv"), blob("exports/2024/b.csv")], destination=destination
    )
    config_path = write_config(tmp_path, parameter_record, retention_days=30)

    exit_code = main.main(["--config", config_path, "--force"], provider=provider)

    assert exit_code == 0
    result = stdout_result(capsys)
    assert result["Status"] == "PartialSuccess"
    assert result["TotalBlobs"] == 2
    assert result["CopiedFiles"] == ["exports/2024/a.csv"]

    logs = {
        name: text
        for (container, name), text in destination.uploads.items()
        if container == "logs"
    }
    log_name = next(name for name in logs if name.endswith(".log"))
    assert log_name.startswith("contoso-main_")
    assert "Failed to copy 'exports/2024/b.csv'" in logs[log_name]
    assert "Status: PartialSuccess" in logs[log_name]
    assert any(name.endswith("_result.json") for name in logs)
    assert (tmp_path / "log" / "blob_export.log").exists()


def test_webhook_days_override_retention(tmp_path, parameter_record, capsys):
    provider = FakeProvider([blob("exports/2024/a.csv", age=timedelta(days=3))])
    config_path = write_config(tmp_path, parameter_record, retention_days=1)

    main.main(["--config", config_path, "--force"], provider=provider)
    assert stdout_result(capsys)["TotalBlobs"] == 0

    main.main(
        ["--config", config_path, "--force", "--webhook-data", '{"days": 5}'], provider=provider
    )
    assert stdout_result(capsys)["TotalBlobs"] == 1


def test_empty_run_publish_is_configurable(tmp_path, parameter_record, capsys):
    provider = FakeProvider([])
    config_path = write_config(tmp_path, parameter_record, publish_empty_runs=False)

    assert main.main(["--config", config_path, "--force"], provider=provider) == 0
    assert stdout_result(capsys)["Status"] == "Success"
    assert provider.destination.uploads == {}
    assert provider.destination.create_calls == []


def test_missing_parameter_exits_non_zero(tmp_path, parameter_record, capsys):
    parameter_record["customerToken"] = ""
    provider = FakeProvider([blob("exports/2024/a.csv")])
    config_path = write_config(tmp_path, parameter_record)

    assert main.main(["--config", config_path, "--force"], provider=provider) == 1

    result = stdout_result(capsys)
    assert result["Status"] == "Failure"
    assert "customerToken" in result["Message"]
    assert provider.calls == []


def test_source_resolution_failure_exits_non_zero(tmp_path, parameter_record, capsys):
    provider = FakeProvider(source_error="account not found")
    config_path = write_config(tmp_path, parameter_record)

    assert main.main(["--config", config_path, "--force"], provider=provider) == 1
    assert stdout_result(capsys)["Status"] == "Failure"


def test_missing_config_file_exits_non_zero(tmp_path, capsys):
    assert main.main(["--config", str(tmp_path / "missing.yaml")]) == 1
    assert stdout_result(capsys)["Status"] == "Failure"


def test_dry_run_copies_nothing(tmp_path, parameter_record, capsys):
    provider = FakeProvider([blob("exports/2024/a.csv")])
    config_path = write_config(tmp_path, parameter_record)

    assert main.main(["--config", config_path, "--dry-run"], provider=provider) == 0
    assert provider.destination.copies == {}
    assert provider.destination.uploads == {}
    assert capsys.readouterr().out == ""


def test_cron_mode_skips_when_not_scheduled(tmp_path, parameter_record, monkeypatch, capsys):
    monkeypatch.setattr(
        main.ScheduleChecker, "should_run_today", staticmethod(lambda schedule: False)
    )
    provider = FakeProvider([blob("exports/2024/a.csv")])
    config_path = write_config(tmp_path, parameter_record)

    assert main.main(["--config", config_path], provider=provider) == 0
    assert provider.calls == []
    assert capsys.readouterr().out == ""


def uploaded_logs(destination):
    return {
        name: text
        for (container, name), text in destination.uploads.items()
        if container == "logs"
    }


def test_run_log_keeps_info_lines_above_configured_level(tmp_path, parameter_record, capsys):
    provider = FakeProvider([blob("exports/2024/a.csv")])
    config_path = write_config(tmp_path, parameter_record, log_level="WARNING")

    assert main.main(["--config", config_path, "--force"], provider=provider) == 0
    assert stdout_result(capsys)["Status"] == "Success"

    logs = uploaded_logs(provider.destination)
    log_text = next(text for name, text in logs.items() if name.endswith(".log"))
    assert "Copied 'exports/2024/a.csv'" in log_text

    # The local log file still honours the configured level
    local_log = (tmp_path / "log" / "blob_export.log").read_text(encoding="utf-8")
    assert "Copied 'exports/2024/a.csv'" not in local_log


def test_empty_run_publishes_log_by_default(tmp_path, parameter_record, capsys):
    provider = FakeProvider([blob("exports/2024/old.csv", age=timedelta(days=10))])
    config_path = write_config(tmp_path, parameter_record)

    assert main.main(["--config", config_path, "--force"], provider=provider) == 0
    assert stdout_result(capsys)["TotalBlobs"] == 0

    logs = uploaded_logs(provider.destination)
    assert any(name.endswith(".log") for name in logs)
    assert any(name.endswith("_result.json") for name in logs)
    assert "contoso-main" not in provider.destination.create_calls
    assert provider.destination.create_calls == ["logs"]

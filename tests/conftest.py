"""
Shared fixtures: an in-memory storage provider standing in for Azure.
"""

import logging
from datetime import datetime, timedelta, timezone

import pytest

from blob_export.exceptions import SourceResolutionError
from blob_export.models import ObjectDescriptor, TransferConfig

NOW = datetime(2024, 6, 15, 12, 0, 0, tzinfo=timezone.utc)


class FakeSource:
    def __init__(self, objects):
        self.objects = list(objects)
        self.listed_prefixes = []

    def list_objects(self, prefix):
        self.listed_prefixes.append(prefix)
        for obj in self.objects:
            if obj.name.startswith(prefix):
                yield obj

    def object_url(self, name):
        return f"https://source.example/exports/{name}?sig=read"


class FakeDestination:
    """
    Records copies. `fail_on` maps blob names to an exception to raise, or to
    a terminal status string other than 'success'. Names in `pending` never
    leave the pending state; names in `no_status` report no copy state at all.
    """

    account_name = "customer"

    def __init__(self, fail_on=None, pending=(), existing_containers=(), no_status=()):
        self.fail_on = dict(fail_on or {})
        self.pending = set(pending)
        self.no_status = set(no_status)
        self.containers = set(existing_containers)
        self.create_calls = []
        self.copies = {}
        self.uploads = {}

    def ensure_container(self, name):
        self.create_calls.append(name)
        if name in self.containers:
            return False
        self.containers.add(name)
        return True

    def start_copy(self, container, name, source_url):
        failure = self.fail_on.get(name)
        if isinstance(failure, Exception):
            raise failure
        if name in self.no_status:
            return None, ""
        if name in self.pending:
            return "pending", "copy-id"
        if failure is not None:
            return "pending", "copy-id"
        self.copies[(container, name)] = source_url
        return "success", "copy-id"

    def copy_status(self, container, name):
        if name in self.pending:
            return "pending", ""
        return self.fail_on[name], "server rejected copy"

    def upload_text(self, container, name, text, content_type="text/plain"):
        self.uploads[(container, name)] = text


class FakeProvider:
    def __init__(self, objects=(), destination=None, source_error=None):
        self.source = FakeSource(objects)
        self.destination = destination or FakeDestination()
        self.source_error = source_error
        self.calls = []

    def resolve_source(self, account, container):
        self.calls.append(("source", account, container))
        if self.source_error is not None:
            raise SourceResolutionError(self.source_error)
        return self.source

    def resolve_destination(self, account, token):
        self.calls.append(("destination", account, token))
        return self.destination


def blob(name, age=timedelta(hours=1), size=100):
    return ObjectDescriptor(name=name, last_modified=NOW - age, size_bytes=size)


@pytest.fixture
def now():
    return NOW


@pytest.fixture
def transfer_config():
    return TransferConfig(
        source_account="exportsprod",
        source_container="exports",
        source_path_prefix="/exports/2024/",
        destination_account="contosodata",
        destination_credential_token="sv=2022&sig=abc",
        site_name="Contoso-Main",
        retention_days=1,
        subscription_name="analytics-prod",
        location="westeurope",
    )


@pytest.fixture
def parameter_record():
    return {
        "exportStorageAccount": "exportsprod",
        "exportStorageContainer": "exports",
        "exportsDirectory": "exports/2024",
        "customerStorageAccount": "contosodata",
        "customerToken": "sv=2022&sig=abc",
        "subscriptionName": "analytics-prod",
        "location": "westeurope",
        "siteName": "Contoso-Main",
    }


@pytest.fixture(autouse=True)
def reset_package_logger():
    """Undo handler and propagation changes made by main.setup_logging."""
    logger = logging.getLogger("blob_export")
    level = logger.level
    yield
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()
    logger.propagate = True
    logger.setLevel(level)

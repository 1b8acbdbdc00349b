"""Azure Blob Storage handles used by the transfer engine and log publisher."""

import logging
from datetime import datetime, timedelta, timezone
from typing import Iterator, Optional, Tuple

from azure.core.exceptions import AzureError, ResourceExistsError
from azure.identity import DefaultAzureCredential
from azure.storage.blob import (
    BlobSasPermissions,
    BlobServiceClient,
    ContentSettings,
    generate_blob_sas,
)

from .exceptions import SourceResolutionError
from .models import ObjectDescriptor

logger = logging.getLogger(__name__)


def account_url(account_name: str) -> str:
    return f"https://{account_name}.blob.core.windows.net"


class BlobSource:
    """Read access to the container holding the exports."""

    def __init__(
        self,
        service: BlobServiceClient,
        container: str,
        delegation_key=None,
        sas_expiry: Optional[datetime] = None,
    ):
        self.service = service
        self.container = container
        self._container_client = service.get_container_client(container)
        self._delegation_key = delegation_key
        self._sas_expiry = sas_expiry

    def list_objects(self, prefix: str) -> Iterator[ObjectDescriptor]:
        """Yield every blob whose name starts with prefix, across all pages."""
        for blob in self._container_client.list_blobs(name_starts_with=prefix or None):
            yield ObjectDescriptor(
                name=blob.name,
                last_modified=blob.last_modified,
                size_bytes=blob.size or 0,
            )

    def object_url(self, name: str) -> str:
        """URL of a source blob, signed for reading when a delegation key is held."""
        blob_client = self._container_client.get_blob_client(name)
        if self._delegation_key is None:
            return blob_client.url

        sas = generate_blob_sas(
            account_name=self.service.account_name,
            container_name=self.container,
            blob_name=name,
            user_delegation_key=self._delegation_key,
            permission=BlobSasPermissions(read=True),
            expiry=self._sas_expiry,
        )
        return f"{blob_client.url}?{sas}"


class BlobDestination:
    """Write access to the customer storage account."""

    def __init__(self, service: BlobServiceClient):
        self.service = service

    @property
    def account_name(self) -> str:
        return self.service.account_name

    def ensure_container(self, name: str) -> bool:
        """
        Create a private container unless it already exists.

        Returns:
            True if the container was created by this call
        """
        container = self.service.get_container_client(name)
        if container.exists():
            return False
        try:
            container.create_container()
        except ResourceExistsError:
            # Created concurrently by another run
            logger.debug(f"Container '{name}' already exists")
            return False
        return True

    def start_copy(
        self, container: str, name: str, source_url: str
    ) -> Tuple[Optional[str], str]:
        """
        Request a server-side copy of source_url to container/name.

        Returns:
            Tuple of (copy_status, copy_id); copy_status is None when the
            service reported no copy state
        """
        blob_client = self.service.get_blob_client(container, name)
        response = blob_client.start_copy_from_url(source_url)
        return response.get("copy_status"), response.get("copy_id") or ""

    def copy_status(self, container: str, name: str) -> Tuple[Optional[str], str]:
        """
        Current state of the last copy into container/name.

        Returns:
            Tuple of (copy_status, status_description)
        """
        blob_client = self.service.get_blob_client(container, name)
        copy = blob_client.get_blob_properties().copy
        return copy.status, copy.status_description or ""

    def upload_text(
        self, container: str, name: str, text: str, content_type: str = "text/plain"
    ) -> None:
        """Upload text content, replacing any existing blob."""
        blob_client = self.service.get_blob_client(container, name)
        blob_client.upload_blob(
            text.encode("utf-8"),
            overwrite=True,
            content_settings=ContentSettings(content_type=content_type),
        )


class AzureStorageProvider:
    """Resolves source and destination handles for a transfer run."""

    def __init__(self, credential=None, sas_expiry_hours: int = 24):
        self._credential = credential
        self.sas_expiry_hours = sas_expiry_hours

    @property
    def credential(self):
        if self._credential is None:
            self._credential = DefaultAzureCredential()
        return self._credential

    def resolve_source(self, account: str, container: str) -> BlobSource:
        """
        Open the export container using the job's own identity.

        A user delegation key is requested up front so that the destination
        service can read each source blob through a short-lived SAS.
        """
        service = BlobServiceClient(account_url(account), credential=self.credential)
        try:
            service.get_container_client(container).get_container_properties()
            start = datetime.now(timezone.utc) - timedelta(minutes=5)
            expiry = start + timedelta(hours=self.sas_expiry_hours)
            delegation_key = service.get_user_delegation_key(start, expiry)
        except AzureError as e:
            raise SourceResolutionError(
                f"Cannot resolve source '{account}/{container}': {e}"
            ) from e

        logger.info(f"Resolved source storage account '{account}'")
        return BlobSource(service, container, delegation_key=delegation_key, sas_expiry=expiry)

    def resolve_destination(self, account: str, token: str) -> BlobDestination:
        """Build a destination handle from a SAS token; no request is made."""
        service = BlobServiceClient(account_url(account), credential=token.lstrip("?"))
        return BlobDestination(service)

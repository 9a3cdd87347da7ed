"""Azure Blob Storage integration for bulk upload source files.

Clients upload CSVs under the ``unprocessed/`` prefix; the bulk upload task
downloads them to local disk and, once processing ends, moves them to
``bulkUploads/<taskId>``.  The prefix is the only record of whether a file
has been processed.

Usage::

    from pdc.storage import bulk_upload_storage

    size = await bulk_upload_storage.download_to_file(key, "/tmp/upload.csv")
    await bulk_upload_storage.move(key, get_processed_key(task_id))
"""

import asyncio
import logging
import os

import aiofiles
from azure.core.exceptions import AzureError
from azure.storage.blob.aio import BlobServiceClient
from dotenv import load_dotenv

from pdc.exceptions import StorageError

load_dotenv()

logger = logging.getLogger(__name__)

UNPROCESSED_KEY_PREFIX = "unprocessed"
BULK_UPLOADS_KEY_PREFIX = "bulkUploads"

DEFAULT_CONTAINER_NAME = "pdc-bulk-uploads"
COPY_POLL_INTERVAL_SECONDS = 0.5
COPY_TIMEOUT_SECONDS = 300


def is_unprocessed_key(key: str) -> bool:
    return key.startswith(f"{UNPROCESSED_KEY_PREFIX}/")


def get_processed_key(bulk_upload_id: int) -> str:
    return f"{BULK_UPLOADS_KEY_PREFIX}/{bulk_upload_id}"


def _require_connection_string(connection_string: str | None) -> str:
    if not connection_string:
        raise RuntimeError(
            "AZURE_STORAGE_CONNECTION_STRING is not set. "
            "Bulk upload processing requires Azure Blob Storage configuration."
        )
    return connection_string


class BulkUploadStorage:
    """Async wrapper around Azure Blob Storage for bulk upload files."""

    def __init__(
        self,
        connection_string: str | None = None,
        container: str | None = None,
    ) -> None:
        self.connection_string: str | None = connection_string or os.getenv(
            "AZURE_STORAGE_CONNECTION_STRING"
        )
        self.container = container or os.getenv(
            "PDC_STORAGE_CONTAINER", DEFAULT_CONTAINER_NAME
        )

        if not self.connection_string:
            logger.warning(
                "AZURE_STORAGE_CONNECTION_STRING not set; "
                "bulk upload downloads will fail at call time"
            )

    def _client(self) -> BlobServiceClient:
        return BlobServiceClient.from_connection_string(
            _require_connection_string(self.connection_string)
        )

    async def download_to_file(self, key: str, path: str) -> int:
        """Stream the blob at *key* into the local file *path*.

        Returns the number of bytes written.

        Raises:
            StorageError: If the blob cannot be read.
        """
        written = 0
        try:
            async with self._client() as client:
                blob_client = client.get_blob_client(container=self.container, blob=key)
                downloader = await blob_client.download_blob()
                async with aiofiles.open(path, "wb") as local_file:
                    async for chunk in downloader.chunks():
                        await local_file.write(chunk)
                        written += len(chunk)
        except AzureError as exc:
            logger.error(
                "Failed to load an object from blob storage",
                extra={"key": key, "container": self.container},
            )
            raise StorageError(f"Unable to load the object {key}") from exc
        logger.info("Downloaded %s (%d bytes) to %s", key, written, path)
        return written

    async def copy(self, source_key: str, destination_key: str) -> None:
        """Server-side copy within the container, waiting for completion."""
        try:
            async with self._client() as client:
                source = client.get_blob_client(container=self.container, blob=source_key)
                destination = client.get_blob_client(
                    container=self.container, blob=destination_key
                )
                await destination.start_copy_from_url(source.url)
                await self._wait_for_copy(destination, destination_key)
        except AzureError as exc:
            raise StorageError(
                f"Unable to copy {source_key} to {destination_key}"
            ) from exc

    async def _wait_for_copy(self, destination, destination_key: str) -> None:
        loop = asyncio.get_running_loop()
        deadline = loop.time() + COPY_TIMEOUT_SECONDS
        while True:
            properties = await destination.get_blob_properties()
            copy_status = properties.copy.status
            if copy_status in (None, "success"):
                return
            if copy_status != "pending":
                raise StorageError(
                    f"Copy to {destination_key} ended with status {copy_status}"
                )
            if loop.time() > deadline:
                raise StorageError(f"Copy to {destination_key} timed out")
            await asyncio.sleep(COPY_POLL_INTERVAL_SECONDS)

    async def delete(self, key: str) -> None:
        try:
            async with self._client() as client:
                blob_client = client.get_blob_client(container=self.container, blob=key)
                await blob_client.delete_blob(delete_snapshots="include")
        except AzureError as exc:
            raise StorageError(f"Unable to delete {key}") from exc
        logger.info("Deleted blob: %s", key)

    async def move(self, source_key: str, destination_key: str) -> None:
        """Copy *source_key* to *destination_key*, then delete the source."""
        await self.copy(source_key, destination_key)
        await self.delete(source_key)
        logger.info("Moved blob %s to %s", source_key, destination_key)


# Module-level singleton
bulk_upload_storage = BulkUploadStorage()

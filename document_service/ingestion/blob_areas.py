"""Named storage areas (inbox, processed, failed, documents) over GCS.

Each area maps to one bucket. Methods are blocking; async callers wrap them
with ``asyncio.to_thread``. Any GCS failure surfaces as ``StorageError``.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from collections.abc import Mapping
from dataclasses import dataclass
from datetime import UTC, datetime

from google.api_core import exceptions as gexc
from google.cloud import storage

from document_service.errors import StorageError
from document_service.ingestion.planner import moved_blob_name, order_for_processing
from document_service.ingestion.types import BlobDescriptor

logger = logging.getLogger(__name__)

AREAS = ("inbox", "processed", "failed", "documents")


@dataclass(frozen=True)
class DownloadedBlob:
    descriptor: BlobDescriptor
    data: bytes


def gs_uri(bucket: str, name: str) -> str:
    return f"gs://{bucket}/{name}"


class BlobAreas(ABC):
    @abstractmethod
    def list(self, area: str, limit: int | None = None) -> list[BlobDescriptor]:
        """Objects in an area, oldest first, at most ``limit`` of them."""

    @abstractmethod
    def download(self, area: str, name: str) -> DownloadedBlob | None:
        """Bytes and descriptor, or None if the object no longer exists."""

    @abstractmethod
    def upload(
        self,
        area: str,
        name: str,
        data: bytes,
        content_type: str | None,
        metadata: Mapping[str, str] | None = None,
    ) -> None: ...

    @abstractmethod
    def delete(self, area: str, name: str) -> None:
        """Remove an object; a missing object is not an error."""

    @abstractmethod
    def move(
        self,
        from_area: str,
        to_area: str,
        name: str,
        extra_metadata: Mapping[str, str] | None = None,
    ) -> str:
        """Copy to ``to_area`` under a timestamped name, then delete the source.

        Returns the destination object name. The source is never deleted
        unless the copy succeeded.
        """


class GcsBlobAreas(BlobAreas):
    def __init__(
        self,
        client: storage.Client,
        buckets: Mapping[str, str],
        *,
        system_user: str = "InboxProcessor",
    ) -> None:
        unknown = set(buckets) - set(AREAS)
        if unknown:
            raise ValueError(f"Unknown storage area(s): {', '.join(sorted(unknown))}")
        self._client = client
        self._buckets = dict(buckets)
        self._system_user = system_user

    def bucket_name(self, area: str) -> str:
        try:
            return self._buckets[area]
        except KeyError:
            raise StorageError(f"No bucket configured for area '{area}'") from None

    def _bucket(self, area: str) -> storage.Bucket:
        return self._client.bucket(self.bucket_name(area))

    @staticmethod
    def _describe(area: str, blob: storage.Blob) -> BlobDescriptor:
        return BlobDescriptor(
            area=area,
            name=blob.name,
            content_type=blob.content_type,
            size=blob.size,
            created_at=blob.time_created,
            metadata=dict(blob.metadata or {}),
        )

    def list(self, area: str, limit: int | None = None) -> list[BlobDescriptor]:
        bucket = self.bucket_name(area)
        try:
            descriptors = [self._describe(area, b) for b in self._client.list_blobs(bucket)]
        except gexc.GoogleAPIError as e:
            raise StorageError(f"Listing {gs_uri(bucket, '')} failed: {e}") from e
        return order_for_processing(descriptors, limit or 0)

    def download(self, area: str, name: str) -> DownloadedBlob | None:
        bucket = self._bucket(area)
        try:
            blob = bucket.get_blob(name)
            if blob is None:
                return None
            data = blob.download_as_bytes()
        except gexc.NotFound:
            return None
        except gexc.GoogleAPIError as e:
            raise StorageError(f"Download of {gs_uri(bucket.name, name)} failed: {e}") from e
        return DownloadedBlob(descriptor=self._describe(area, blob), data=data)

    def upload(
        self,
        area: str,
        name: str,
        data: bytes,
        content_type: str | None,
        metadata: Mapping[str, str] | None = None,
    ) -> None:
        bucket = self._bucket(area)
        blob = bucket.blob(name)
        if metadata:
            blob.metadata = dict(metadata)
        try:
            blob.upload_from_string(data, content_type=content_type or "application/octet-stream")
        except gexc.GoogleAPIError as e:
            raise StorageError(f"Upload to {gs_uri(bucket.name, name)} failed: {e}") from e

    def delete(self, area: str, name: str) -> None:
        bucket = self._bucket(area)
        try:
            bucket.blob(name).delete()
        except gexc.NotFound:
            logger.debug("%s already gone", gs_uri(bucket.name, name))
            return
        except gexc.GoogleAPIError as e:
            raise StorageError(f"Delete of {gs_uri(bucket.name, name)} failed: {e}") from e
        logger.info("Deleted %s", gs_uri(bucket.name, name))

    def move(
        self,
        from_area: str,
        to_area: str,
        name: str,
        extra_metadata: Mapping[str, str] | None = None,
    ) -> str:
        src_bucket = self._bucket(from_area)
        dst_bucket = self._bucket(to_area)
        now = datetime.now(UTC)
        dest_name = moved_blob_name(name, now)

        try:
            src = src_bucket.get_blob(name)
            if src is None:
                raise StorageError(f"Source {gs_uri(src_bucket.name, name)} not found")

            metadata = dict(src.metadata or {})
            metadata.update(
                {
                    "ProcessedTime": now.isoformat(),
                    "ProcessedBy": self._system_user,
                    "SourceContainer": src_bucket.name,
                }
            )
            if extra_metadata:
                metadata.update(extra_metadata)

            dst = src_bucket.copy_blob(src, dst_bucket, dest_name)
            dst.metadata = metadata
            dst.patch()
        except gexc.GoogleAPIError as e:
            raise StorageError(
                f"Copy {gs_uri(src_bucket.name, name)} -> {gs_uri(dst_bucket.name, dest_name)} failed: {e}"
            ) from e

        try:
            src.delete()
        except gexc.NotFound:
            logger.warning("Source %s already gone after copy", gs_uri(src_bucket.name, name))
        except gexc.GoogleAPIError as e:
            raise StorageError(f"Delete of {gs_uri(src_bucket.name, name)} failed: {e}") from e

        logger.info(
            "Moved %s -> %s",
            gs_uri(src_bucket.name, name),
            gs_uri(dst_bucket.name, dest_name),
        )
        return dest_name

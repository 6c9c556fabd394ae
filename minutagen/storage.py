"""
GCS staging for long audio files. LongRunningRecognize only reads audio > 1 minute
from a gs:// URI, so each upload is staged in GCS_BUCKET_NAME and deleted once the
request finishes (no transcript or audio is kept after that).
"""
from __future__ import annotations

import logging
import os
import time

from google.api_core import exceptions as gapi_exceptions
from google.auth import exceptions as auth_exceptions
from google.cloud import storage

from minutagen.config import Settings, get_settings
from minutagen.errors import UpstreamUnavailable

logger = logging.getLogger(__name__)


class GcsAudioStore:
    """Blocking google-cloud-storage calls; run from an executor."""

    def __init__(self, client: storage.Client | None = None, settings: Settings | None = None) -> None:
        self._client = client
        self._settings = settings or get_settings()

    @property
    def bucket_name(self) -> str:
        return self._settings.GCS_BUCKET_NAME

    def _bucket(self) -> storage.Bucket:
        if not self.bucket_name:
            raise UpstreamUnavailable("GCS_BUCKET_NAME is not configured")
        if self._client is None:
            try:
                self._client = storage.Client()
            except auth_exceptions.GoogleAuthError as e:
                raise UpstreamUnavailable(f"Cloud Storage client unavailable: {e}") from e
        return self._client.bucket(self.bucket_name)

    def upload(self, local_path: str) -> str:
        """Upload file; return object name (blob name within the bucket)."""
        prefix = self._settings.GCS_UPLOAD_PREFIX.strip("/")
        name = f"{prefix}/{int(time.time() * 1000)}-{os.path.basename(local_path)}"
        logger.info("Uploading %s to gs://%s/%s", local_path, self.bucket_name, name)
        try:
            self._bucket().blob(name).upload_from_filename(local_path)
        except gapi_exceptions.GoogleAPIError as e:
            raise UpstreamUnavailable(f"Cloud Storage upload failed: {e}") from e
        return name

    def uri(self, name: str) -> str:
        return f"gs://{self.bucket_name}/{name}"

    def delete(self, name: str) -> None:
        """Best-effort delete; failures are logged, never raised."""
        try:
            self._bucket().blob(name).delete()
            logger.info("Deleted staged object gs://%s/%s", self.bucket_name, name)
        except (gapi_exceptions.GoogleAPIError, UpstreamUnavailable) as e:
            logger.warning("Could not delete gs://%s/%s: %s", self.bucket_name, name, e)

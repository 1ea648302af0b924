import logging
import threading
from datetime import timedelta
from typing import Optional

import google.auth
import google.auth.transport.requests
from google.api_core import exceptions as gcs_exceptions
from google.auth import impersonated_credentials
from google.cloud import storage

from app.core import config
from app.core.exceptions import PublishError

logger = logging.getLogger("compiler.storage")

VIDEO_CONTENT_TYPE = "video/mp4"


class StorageService:
    """GCS-backed publisher for finished compilations.

    Objects are private; callers only ever receive a V4 signed GET URL scoped
    to one object.
    """

    def __init__(
        self,
        bucket_name: str = config.GCS_BUCKET_NAME,
        base_prefix: str = config.GCS_BASE_PREFIX,
        signed_url_expiry_minutes: int = config.SIGNED_URL_EXPIRY_MINUTES,
        location: str = config.GCS_BUCKET_LOCATION,
        signing_sa_email: Optional[str] = config.GCS_SIGNING_SA_EMAIL,
        client: Optional[storage.Client] = None,
    ):
        self.bucket_name = bucket_name
        self.base_prefix = (base_prefix or "").strip("/")
        self.signed_url_expiry_minutes = signed_url_expiry_minutes
        self.location = location
        self.signing_sa_email = signing_sa_email
        self.credentials = None
        self.signing_credentials = None
        self._client = client
        self._bucket = None
        self._lock = threading.Lock()

    @property
    def client(self) -> storage.Client:
        if self._client is None:
            self.credentials, _ = google.auth.default()
            # On GCE/Cloud Run the default credentials have no private key, so
            # signing goes through the IAM signBlob API of a service account.
            if self.signing_sa_email:
                self.signing_credentials = impersonated_credentials.Credentials(
                    source_credentials=self.credentials,
                    target_principal=self.signing_sa_email,
                    target_scopes=["https://www.googleapis.com/auth/devstorage.read_only"],
                )
            else:
                self.signing_credentials = self.credentials
            self._client = storage.Client(credentials=self.credentials)
        return self._client

    def _build_key(self, remote_path: str) -> str:
        cleaned_path = remote_path.strip("/")
        if self.base_prefix:
            return f"{self.base_prefix}/{cleaned_path}"
        return cleaned_path

    def ensure_bucket(self) -> storage.Bucket:
        """Return the bucket, creating it (private) on first use."""
        with self._lock:
            if self._bucket is not None:
                return self._bucket

            bucket = self.client.lookup_bucket(self.bucket_name)
            if bucket is None:
                bucket = self.client.bucket(self.bucket_name)
                bucket.iam_configuration.uniform_bucket_level_access_enabled = True
                bucket.iam_configuration.public_access_prevention = "enforced"
                try:
                    bucket = self.client.create_bucket(bucket, location=self.location)
                    logger.info("Created bucket %s (%s)", self.bucket_name, self.location)
                except gcs_exceptions.Conflict:
                    # Another publisher created it first
                    bucket = self.client.bucket(self.bucket_name)
            self._bucket = bucket
            return bucket

    def _signed_url(self, blob: storage.Blob) -> str:
        if self.credentials is not None:
            auth_req = google.auth.transport.requests.Request()
            self.credentials.refresh(auth_req)
        return blob.generate_signed_url(
            expiration=timedelta(minutes=self.signed_url_expiry_minutes),
            method="GET",
            version="v4",
            credentials=self.signing_credentials,
        )

    def publish(self, local_path: str, blob_name: str) -> str:
        """Upload ``local_path`` as ``blob_name`` and return a signed read URL."""
        key = self._build_key(blob_name)
        try:
            bucket = self.ensure_bucket()
            blob = bucket.blob(key)
            blob.upload_from_filename(local_path, content_type=VIDEO_CONTENT_TYPE)
        except Exception as exc:
            raise PublishError(f"GCS upload failed for {local_path}: {exc}") from exc
        logger.info("Uploaded %s to gs://%s/%s", local_path, self.bucket_name, key)

        try:
            return self._signed_url(blob)
        except Exception as exc:
            raise PublishError(f"Could not sign URL for {key}: {exc}") from exc


storage_service = StorageService()

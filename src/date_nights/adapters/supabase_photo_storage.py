"""Supabase Storage implementation for entry photos."""

from dataclasses import dataclass

from storage3.utils import StorageException
from supabase import Client

from date_nights.domain.errors import SignedUrlError, UploadError
from date_nights.services.feed import PhotoStorage


def _error_message(exc: StorageException) -> str | None:
    payload = exc.args[0] if exc.args else None
    if isinstance(payload, dict):
        return payload.get("message") or payload.get("error")
    return str(exc) or None


@dataclass
class SupabasePhotoStorage(PhotoStorage):
    """Private bucket storage with signed download URLs."""

    client: Client
    bucket: str = "photos"

    def upload(self, path: str, content: bytes, content_type: str | None) -> None:
        """Upload a new object; existing paths are never overwritten."""
        file_options = {"upsert": "false"}
        if content_type:
            file_options["content-type"] = content_type
        try:
            self.client.storage.from_(self.bucket).upload(path, content, file_options)
        except StorageException as exc:
            raise UploadError(_error_message(exc)) from exc

    def create_signed_url(self, path: str, ttl_seconds: int) -> str:
        """Return a signed download URL valid for ``ttl_seconds``."""
        try:
            response = self.client.storage.from_(self.bucket).create_signed_url(
                path, ttl_seconds
            )
        except StorageException as exc:
            raise SignedUrlError(_error_message(exc)) from exc
        url = response.get("signedUrl") or response.get("signedURL")
        if not url:
            raise SignedUrlError()
        return url

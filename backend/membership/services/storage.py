from __future__ import annotations

import datetime as dt
from typing import Optional

import structlog
from fastapi import Request
from google.cloud import storage

from membership.config import Settings, get_settings

logger = structlog.get_logger(__name__)


class GcsSigner:
    """Issues V4 signed GET URLs for objects in one GCS bucket.

    The client is built on first use so importing the app never needs
    credentials.
    """

    provider = "gcs"

    def __init__(self, settings: Optional[Settings] = None, client: Optional[storage.Client] = None) -> None:
        self.settings = settings or get_settings()
        self._client = client

    @property
    def client(self) -> storage.Client:
        if self._client is None:
            self._client = storage.Client()
        return self._client

    def signed_download_url(
        self,
        key: str,
        *,
        expires_in: dt.timedelta,
        response_disposition: Optional[str] = None,
        response_type: Optional[str] = None,
    ) -> str:
        bucket_name = self.settings.GCS_BUCKET
        if not bucket_name:
            raise RuntimeError("GCS_BUCKET is not configured")
        blob = self.client.bucket(bucket_name).blob(key)
        return blob.generate_signed_url(
            version="v4",
            expiration=expires_in,
            method="GET",
            response_disposition=response_disposition,
            response_type=response_type,
        )


def get_storage(request: Request) -> GcsSigner:
    return request.app.state.storage

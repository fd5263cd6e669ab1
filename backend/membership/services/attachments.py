from __future__ import annotations

import datetime as dt
import re
import unicodedata
import uuid
from typing import Optional
from urllib.parse import quote

import structlog
from sqlalchemy import select
from sqlalchemy.orm import Session

from membership.config import get_settings
from membership.errors import NotFoundError, ValidationError
from membership.models.attachment import Attachment
from membership.models.post import Post
from membership.services.storage import GcsSigner

logger = structlog.get_logger(__name__)

DISPOSITIONS = ("inline", "attachment")

# quotes, backslash, separators and anything that would end the header value
_UNSAFE_FILENAME_CHARS = re.compile(r'["\\/;\r\n\t]')
_FALLBACK_FILENAME = "download"


def parse_attachment_id(raw: str) -> str:
    """Return the canonical UUID string or raise before any lookup happens."""
    try:
        return str(uuid.UUID((raw or "").strip()))
    except ValueError:
        raise ValidationError("Invalid id")


def sanitize_filename(filename: Optional[str]) -> str:
    if not filename:
        return _FALLBACK_FILENAME
    cleaned = "".join(ch for ch in filename if unicodedata.category(ch)[0] != "C")
    cleaned = _UNSAFE_FILENAME_CHARS.sub("", cleaned).strip().strip(".")
    return cleaned or _FALLBACK_FILENAME


def content_disposition(disposition: str, filename: str) -> str:
    safe = sanitize_filename(filename)
    ascii_name = safe.encode("ascii", "replace").decode("ascii").replace("?", "_")
    return f"{disposition}; filename=\"{ascii_name}\"; filename*=UTF-8''{quote(safe, safe='')}"


def published_attachment_stmt(attachment_id: str):
    # Joining the post keeps attachments of unpublished posts unresolvable by id.
    return (
        select(Attachment)
        .join(Post, Post.id == Attachment.post_id)
        .where(Attachment.id == attachment_id, Post.published.is_(True))
        .limit(1)
    )


def signed_download_url(
    db: Session,
    signer: GcsSigner,
    *,
    attachment_id: str,
    disposition: str = "attachment",
) -> str:
    settings = get_settings()
    if disposition not in DISPOSITIONS:
        raise ValidationError("Invalid disposition")
    canonical_id = parse_attachment_id(attachment_id)

    attachment = db.execute(published_attachment_stmt(canonical_id)).scalar_one_or_none()
    if attachment is None:
        raise NotFoundError("Not Found")

    if attachment.storage_provider != settings.STORAGE_PROVIDER:
        raise ValidationError("Unsupported storage provider")

    url = signer.signed_download_url(
        attachment.storage_key,
        expires_in=dt.timedelta(seconds=settings.SIGNED_URL_TTL_SECONDS),
        response_disposition=content_disposition(disposition, attachment.filename),
        response_type=attachment.content_type or None,
    )
    logger.info(
        "attachments.download_signed",
        attachment_id=canonical_id,
        post_id=attachment.post_id,
        disposition=disposition,
    )
    return url

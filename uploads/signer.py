"""
uploads/signer.py -- Signed upload URLs from the hosted object store.

The object store issues a short-lived URL plus an opaque token that together
permit exactly one object write. This module picks the object path and
forwards the request.

Object paths are "<user_id>/<epoch_ms>-<sanitized file name>":
  - the user_id prefix scopes storage policies to the caller's own folder;
  - the millisecond timestamp keeps repeated uploads of the same name apart;
  - sanitizing the name rules out "../" traversal and odd characters.
"""

from __future__ import annotations

import logging
import re
import time
from dataclasses import dataclass

from supabase import Client, StorageException

logger = logging.getLogger("supagate.uploads")

# Lifetime the hosted object store applies to signed upload URLs.
SIGNED_UPLOAD_TTL_SECONDS = 60

_UNSAFE_CHARS = re.compile(r"[^a-zA-Z0-9._-]")


class UploadSigningError(Exception):
    """The object store refused to issue a signed upload URL."""


@dataclass(frozen=True)
class UploadTicket:
    upload_url: str
    path: str
    token: str
    expires_in: int = SIGNED_UPLOAD_TTL_SECONDS


def sanitize_file_name(file_name: str) -> str:
    """Replace every character outside [A-Za-z0-9._-] with "_"."""
    return _UNSAFE_CHARS.sub("_", file_name)


def build_upload_path(user_id: str, file_name: str, now_ms: int | None = None) -> str:
    if now_ms is None:
        now_ms = int(time.time() * 1000)
    return f"{user_id}/{now_ms}-{sanitize_file_name(file_name)}"


class UploadSigner:
    """Issues signed upload URLs through the service-role client."""

    def __init__(self, client: Client) -> None:
        self.client = client

    def issue(self, user_id: str, file_name: str, bucket: str) -> UploadTicket:
        path = build_upload_path(user_id, file_name)
        try:
            data = self.client.storage.from_(bucket).create_signed_upload_url(path)
        except StorageException as exc:
            raise UploadSigningError(str(exc)) from exc

        # Older client releases only populate the camelCase key.
        upload_url = data.get("signed_url") or data.get("signedUrl")
        if not upload_url:
            raise UploadSigningError("Object store returned no signed URL")
        logger.info("Issued signed upload URL for %s/%s", bucket, path)
        return UploadTicket(upload_url=upload_url, path=path, token=data.get("token", ""))

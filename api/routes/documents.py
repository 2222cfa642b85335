"""
api/routes/documents.py -- Signed upload URLs for document storage.

Routes:
  POST /api/documents/upload  -- issue a one-shot signed upload URL (requires auth)

The client uploads the file bytes straight to the object store with the
returned URL and token; nothing passes through this service. fileType is
accepted for compatibility with existing clients but the object store does
not bind the content type to the signed URL.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Request

from api.models import UploadRequest, UploadResponse
from auth.dependencies import get_auth_result
from auth.models import AuthResult
from uploads.signer import UploadSigningError

# Auth policy:
# - POST /api/documents/upload: requires identity, no role check
router = APIRouter()


@router.post("/documents/upload", response_model=UploadResponse)
def create_upload_url(
    request: Request,
    body: UploadRequest,
    auth: AuthResult = Depends(get_auth_result),
) -> UploadResponse:
    """Return a signed upload URL scoped to the caller's folder in the bucket."""
    if not body.file_name:
        raise HTTPException(
            status_code=400,
            detail={"code": "bad_request", "message": "fileName is required."},
        )
    settings = request.app.state.settings
    if body.bucket not in settings.upload_buckets:
        raise HTTPException(
            status_code=400,
            detail={"code": "bad_request", "message": f"Unknown bucket {body.bucket!r}."},
        )

    try:
        ticket = request.app.state.upload_signer.issue(auth.identity.subject_id, body.file_name, body.bucket)
    except UploadSigningError as exc:
        raise HTTPException(
            status_code=500,
            detail={"code": "upload_url_failed", "message": str(exc)},
        ) from exc

    return UploadResponse(
        upload_url=ticket.upload_url,
        path=ticket.path,
        token=ticket.token,
        expires_in=ticket.expires_in,
    )

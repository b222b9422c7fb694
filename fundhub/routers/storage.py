"""
Signed URL downloads.

URLs are produced by the admin ``signed-url`` endpoint and carry their own
authorization (HMAC signature + expiry), so no identity headers are needed.
"""
import os

from fastapi import APIRouter, Depends, Query, Response

from fundhub.routers.admin_documents import pdf_response
from fundhub.services.storage import LocalObjectStorage, get_storage

router = APIRouter()


@router.get("/signed")
async def signed_download(
    path: str = Query(...),
    expires: int = Query(...),
    signature: str = Query(...),
    storage: LocalObjectStorage = Depends(get_storage),
) -> Response:
    storage.verify_signature(path, expires, signature)
    data = await storage.download(path)
    return pdf_response(data, os.path.basename(path), inline=False)

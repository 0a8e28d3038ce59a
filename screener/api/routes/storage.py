"""
Signed CV download endpoint.
"""
import logging
from fastapi import APIRouter, Depends, HTTPException, Query, status
from fastapi.responses import Response

from screener.core.exceptions import StorageNotFound
from screener.services.storage import StorageGateway, get_storage

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/storage", tags=["Storage"])


@router.get("/cvs")
def download_cv(
    token: str = Query(..., description="Signed download token"),
    storage: StorageGateway = Depends(get_storage),
):
    """
    Download a CV through a signed link.

    The token is the authorization; links expire after SIGNED_URL_TTL_SECONDS.
    """
    try:
        path = storage.resolve_signed_token(token)
        data = storage.open(path)
    except StorageNotFound as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=e.user_message)

    filename = path.rsplit("/", 1)[-1]
    return Response(
        content=data,
        media_type="application/pdf",
        headers={"Content-Disposition": f'inline; filename="{filename}"'},
    )

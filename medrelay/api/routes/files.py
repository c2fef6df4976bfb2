from fastapi import APIRouter, Depends
from fastapi.responses import FileResponse
import logging

from ...core.exceptions import NotFoundError
from ...core.security import verify_signed_token
from ...core.storage import ReportStorage, StorageError, get_storage

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Files"])

@router.get("/files/{token}")
async def download_file(
    token: str,
    storage: ReportStorage = Depends(get_storage)
):
    """Serve an object to the holder of a valid signed URL."""
    payload = verify_signed_token(token)
    if payload is None:
        raise NotFoundError("Link is invalid or has expired")

    try:
        path = storage.open_path(payload.sub)
    except StorageError as e:
        logger.warning(f"Signed URL for missing object: {e}")
        raise NotFoundError("File not found")

    return FileResponse(path, filename=path.name)
